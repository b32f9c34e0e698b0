from __future__ import annotations

import logging

from pythonjsonlogger.json import JsonFormatter


class JSONFormatter(JsonFormatter):
    """JSON formatter using python-json-logger.

    Structured fields passed through ``extra`` end up as top-level keys of
    each JSONL record.
    """

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record['timestamp'] = self.formatTime(record, '%Y-%m-%dT%H:%M:%S')
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['message'] = record.getMessage()


class HumanReadableFormatter(logging.Formatter):
    """Console formatter: timestamp, level, event name and the ``type`` field if present."""

    def __init__(self) -> None:
        super().__init__(
            fmt='%(asctime)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        evaluator = getattr(record, 'evaluator', None)
        if evaluator:
            text += f" [{evaluator}]"
        error = getattr(record, 'error', None)
        if error:
            text += f": {error}"
        return text
