from __future__ import annotations

from .logger import EvaluationLogger
from .handlers import RunContextFilter, build_json_file_handler, build_console_handler
from .formatters import JSONFormatter, HumanReadableFormatter

__all__ = [
    "EvaluationLogger",
    "RunContextFilter",
    "build_json_file_handler",
    "build_console_handler",
    "JSONFormatter",
    "HumanReadableFormatter",
]
