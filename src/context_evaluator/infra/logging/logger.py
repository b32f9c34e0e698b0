from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

from dependency_injector.resources import Resource

from .handlers import build_console_handler, build_json_file_handler


class EvaluationLogger(Resource):
    """Structured logger for one evaluation run.

    Records go to ``log_file`` as JSONL (when the run has one) and,
    optionally, to stderr in human-readable form. Every record written to
    the file carries the run id.
    """

    def init(
        self,
        *,
        log_file: Optional[Path] = None,
        run_id: Optional[str] = None,
        logger_name: str = "context_evaluator",
        console_output: bool = False,
        level: str = "INFO",
    ) -> "EvaluationLogger":
        numeric_level = logging.getLevelName(level.upper())
        if not isinstance(numeric_level, int):
            raise ValueError(f"Unknown log level: {level}")

        self.log_file = log_file
        self.run_id = run_id
        self._logger = logging.getLogger(logger_name)
        self._logger.setLevel(numeric_level)
        self._logger.propagate = False
        self._logger.handlers.clear()

        if log_file is not None:
            self._logger.addHandler(build_json_file_handler(log_file, level=numeric_level, run_id=run_id))
        if console_output:
            self._logger.addHandler(build_console_handler(level=numeric_level))
        return self

    def shutdown(self, resource: "EvaluationLogger") -> None:
        """Flush and close handlers so the run's log file is complete."""
        for handler in list(self._logger.handlers):
            handler.flush()
            handler.close()
            self._logger.removeHandler(handler)

    def _emit(self, level: int, message: str, fields: dict[str, Any], exc_info: bool = False) -> None:
        self._logger.log(level, message, extra=fields or None, exc_info=exc_info)

    def debug(self, message: str, **fields: Any) -> None:
        self._emit(logging.DEBUG, message, fields)

    def info(self, message: str, **fields: Any) -> None:
        self._emit(logging.INFO, message, fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._emit(logging.WARNING, message, fields)

    def error(self, message: str, exc_info: bool = False, **fields: Any) -> None:
        self._emit(logging.ERROR, message, fields, exc_info=exc_info)

    def exception(self, message: str, **fields: Any) -> None:
        self._emit(logging.ERROR, message, fields, exc_info=True)
