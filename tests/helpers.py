from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Callable, Optional, Union

from context_evaluator.core.domain.issues import ErrorIssue, Location, SuggestionIssue
from context_evaluator.core.domain.models import ProviderResponse, RetryEvent, Usage


def mark_by_dir(items, base_dir, marker):
    base = Path(base_dir).resolve()
    for item in items:
        # pytest 7/8: item.path (Path) on newer versions, item.fspath on older ones
        p = getattr(item, "path", None)
        p = Path(p) if p is not None else Path(str(getattr(item, "fspath")))
        try:
            p.resolve().relative_to(base)
        except ValueError:
            continue
        item.add_marker(marker)


class FakeLogger:
    """Records every call as (level, message, fields)."""

    def __init__(self) -> None:
        self.records: list[tuple[str, str, dict[str, Any]]] = []

    def _log(self, level: str, message: str, fields: dict[str, Any]) -> None:
        self.records.append((level, message, fields))

    def debug(self, message: str, **fields: Any) -> None:
        self._log("debug", message, fields)

    def info(self, message: str, **fields: Any) -> None:
        self._log("info", message, fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._log("warning", message, fields)

    def error(self, message: str, exc_info: bool = False, **fields: Any) -> None:
        self._log("error", message, fields)

    def exception(self, message: str, **fields: Any) -> None:
        self._log("error", message, fields)

    def messages(self, level: Optional[str] = None) -> list[str]:
        return [m for lvl, m, _ in self.records if level is None or lvl == level]


class FakePromptSource:
    """Every template is ``# <name>`` unless overridden."""

    def __init__(self, templates: Optional[dict[str, str]] = None) -> None:
        self._templates = dict(templates or {})

    def get(self, name: str) -> str:
        return self._templates.get(name, f"# {name}\n")

    def exists(self, name: str) -> bool:
        return True


Reply = Union[str, Exception, ProviderResponse]
Responder = Callable[[str], Reply]

_EVALUATOR_HEADER = re.compile(r"^# evaluators/([a-z-]+)", re.MULTILINE)


def evaluator_of(prompt: str) -> Optional[str]:
    """Evaluator id of a prompt built from FakePromptSource templates."""
    match = _EVALUATOR_HEADER.search(prompt)
    return match.group(1) if match else None


class FakeProvider:
    """AIProviderPort double driven by a responder function.

    The responder gets the prompt and returns the text to answer with, a
    full ProviderResponse, or an exception to raise.
    """

    def __init__(
        self,
        responder: Optional[Responder] = None,
        *,
        available: bool = True,
        cost_usd: float = 0.01,
        retries_before_success: int = 0,
    ) -> None:
        self.name = "fake"
        self.display_name = "fake:test"
        self._responder = responder or (lambda prompt: "[]")
        self._available = available
        self._cost = cost_usd
        self._retries_before_success = retries_before_success
        self.prompts: list[str] = []

    async def is_available(self) -> bool:
        return self._available

    async def invoke(self, prompt: str, *, timeout_ms: Optional[int] = None) -> ProviderResponse:
        self.prompts.append(prompt)
        reply = self._responder(prompt)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, ProviderResponse):
            return reply
        return ProviderResponse(
            result=reply,
            usage=Usage(input_tokens=100, output_tokens=50),
            cost_usd=self._cost,
            duration_ms=5,
        )

    async def invoke_with_retry(
        self,
        prompt: str,
        *,
        timeout_ms: Optional[int] = None,
        max_retries: Optional[int] = None,
        on_retry=None,
        on_timeout=None,
    ) -> ProviderResponse:
        for attempt in range(self._retries_before_success):
            if on_retry is not None:
                on_retry(RetryEvent(attempt=attempt + 1, max_retries=max_retries or 3, error="flaky", delay_ms=0))
        return await self.invoke(prompt, timeout_ms=timeout_ms)


def error_issue(dedup_id: str, *, severity: int = 7, problem: str = "Problem", line: int = 1, file: str = "AGENTS.md", **kwargs) -> ErrorIssue:
    kwargs.setdefault("category", "Content Quality")
    return ErrorIssue(
        dedup_id=dedup_id,
        severity=severity,
        problem=problem,
        location=(Location(start=line, end=line, file=file),),
        **kwargs,
    )


def suggestion_issue(dedup_id: str, *, impact_level: str = "Medium", problem: str = "Suggestion", **kwargs) -> SuggestionIssue:
    kwargs.setdefault("category", "Context Gaps")
    return SuggestionIssue(dedup_id=dedup_id, impact_level=impact_level, problem=problem, **kwargs)
