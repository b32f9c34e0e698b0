from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Literal


EventType = Literal[
    "discovery.started",
    "discovery.completed",
    "context.started",
    "context.completed",
    "file.started",
    "file.completed",
    "evaluator.progress",
    "evaluator.retry",
    "evaluator.timeout",
    "evaluation.warning",
    "curation.started",
    "curation.completed",
    "job.started",
    "job.completed",
    "job.failed",
]


@dataclass(frozen=True)
class ProgressEvent:
    type: EventType
    data: dict[str, Any] = field(default_factory=dict)


ProgressCallback = Callable[[ProgressEvent], None]
