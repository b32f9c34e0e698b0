from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import IO, Optional

from .formatters import JSONFormatter, HumanReadableFormatter


class RunContextFilter(logging.Filter):
    """Stamps every record with the evaluation run it belongs to."""

    def __init__(self, run_id: Optional[str]) -> None:
        super().__init__()
        self.run_id = run_id

    def filter(self, record: logging.LogRecord) -> bool:
        if self.run_id and not hasattr(record, "run_id"):
            record.run_id = self.run_id
        return True


def build_json_file_handler(path: Path, level: int = logging.INFO, run_id: Optional[str] = None) -> logging.Handler:
    """JSONL handler for one run's log file; records carry ``run_id`` when given."""
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8", mode="a")
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter())
    handler.addFilter(RunContextFilter(run_id))
    return handler


def build_console_handler(level: int = logging.INFO, stream: Optional[IO[str]] = None) -> logging.Handler:
    # stdout is reserved for evaluation output (--json)
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(HumanReadableFormatter())
    return handler
