from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal


ErrorCategory = Literal["provider", "parsing", "repository", "file_system", "timeout", "internal"]
ErrorSeverity = Literal["fatal", "partial", "warning"]

# Checked in order; the first category whose keywords match wins.
_CATEGORY_KEYWORDS: tuple[tuple[ErrorCategory, tuple[str, ...]], ...] = (
    ("timeout", ("timeout", "timed out")),
    ("parsing", ("parse", "json", "invalid")),
    ("file_system", ("file", "read", "write")),
    ("provider", ("provider", "llm", "api")),
    ("repository", ("git", "repository", "clone")),
)

_RETRYABLE: frozenset[ErrorCategory] = frozenset({"timeout", "provider"})


@dataclass(frozen=True)
class StructuredError:
    message: str
    category: ErrorCategory
    severity: ErrorSeverity
    evaluator_name: str | None = None
    file_path: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    retryable: bool = False
    technical_details: str | None = None
    context: dict[str, Any] | None = None

    def to_jsonable(self) -> dict[str, object]:
        data: dict[str, object] = {
            "message": self.message,
            "category": self.category,
            "severity": self.severity,
            "timestamp": self.timestamp.isoformat(),
            "retryable": self.retryable,
        }
        if self.evaluator_name:
            data["evaluator_name"] = self.evaluator_name
        if self.file_path:
            data["file_path"] = self.file_path
        if self.technical_details:
            data["technical_details"] = self.technical_details
        if self.context:
            data["context"] = self.context
        return data


def determine_error_category(error: BaseException | str) -> ErrorCategory:
    message = str(error).lower()
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(k in message for k in keywords):
            return category
    return "internal"


def to_structured_error(
    error: BaseException | str,
    *,
    evaluator_name: str | None = None,
    file_path: str | None = None,
    severity: ErrorSeverity = "partial",
    category: ErrorCategory | None = None,
) -> StructuredError:
    category = category or determine_error_category(error)
    details = None
    if isinstance(error, BaseException):
        details = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    return StructuredError(
        message=str(error) or type(error).__name__,
        category=category,
        severity=severity,
        evaluator_name=evaluator_name,
        file_path=file_path,
        retryable=category in _RETRYABLE,
        technical_details=details,
    )
