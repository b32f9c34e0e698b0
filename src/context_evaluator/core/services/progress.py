from __future__ import annotations

from typing import Any, Optional

from ..domain.events import EventType, ProgressCallback, ProgressEvent
from ..ports import LoggerPort


class ProgressEmitter:
    """Delivers progress events to an optional caller callback.

    A failing callback is logged and otherwise ignored; consumers cannot
    abort a job by raising.
    """

    def __init__(self, callback: Optional[ProgressCallback], logger: LoggerPort) -> None:
        self._callback = callback
        self._logger = logger

    def emit(self, event_type: EventType, **data: Any) -> None:
        if self._callback is None:
            return
        try:
            self._callback(ProgressEvent(type=event_type, data=data))
        except Exception:
            self._logger.exception("progress_callback_error", type="progress_callback_error", event=event_type)
