from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Optional, Protocol

from .domain.issues import IssueIdSequence
from .domain.models import ContextFile, ProjectInputs, ProviderResponse, RetryEvent, TimeoutEvent


RetryObserver = Callable[[RetryEvent], None]
TimeoutObserver = Callable[[TimeoutEvent], None]


class AIProviderPort(Protocol):
    """Port for AI inference.

    Retry and backoff are owned by the implementation; callers only observe
    them through the ``on_retry``/``on_timeout`` hooks.
    """

    name: str
    display_name: str

    async def is_available(self) -> bool:
        ...

    async def invoke(self, prompt: str, *, timeout_ms: Optional[int] = None) -> ProviderResponse:
        ...

    async def invoke_with_retry(
        self,
        prompt: str,
        *,
        timeout_ms: Optional[int] = None,
        max_retries: Optional[int] = None,
        on_retry: Optional[RetryObserver] = None,
        on_timeout: Optional[TimeoutObserver] = None,
    ) -> ProviderResponse:
        """Invoke with retries; raises once retries are exhausted."""
        ...


class PromptSourcePort(Protocol):
    """Port for prompt templates, addressed by name (e.g. ``evaluators/security``)."""

    def get(self, name: str) -> str:
        """Return the template text. Raises PromptNotFoundError."""
        ...

    def exists(self, name: str) -> bool:
        ...


class ProjectDiscoveryPort(Protocol):
    """Port for collecting context files, skills and docs from a repository."""

    def find_context_files(self, repo_path: Path) -> list[ContextFile]:
        ...

    def collect_project_inputs(
        self, repo_path: Path, context_files: list[ContextFile], ids: Optional[IssueIdSequence] = None
    ) -> ProjectInputs:
        """Skills, linked docs, technical inventory and AGENTS.md/CLAUDE.md conflicts.

        Conflict issues take their ids from ``ids`` so they share the job sequence.
        """
        ...


class DebugSinkPort(Protocol):
    """Append-only sink for per-evaluator debug records."""

    def write(self, name: str, text: str) -> None:
        ...


class LoggerPort(Protocol):
    """Port for structured logging.

    Keyword arguments become structured fields of the log record.
    """

    def debug(self, message: str, **fields: Any) -> None:
        ...

    def info(self, message: str, **fields: Any) -> None:
        ...

    def warning(self, message: str, **fields: Any) -> None:
        ...

    def error(self, message: str, exc_info: bool = False, **fields: Any) -> None:
        ...

    def exception(self, message: str, **fields: Any) -> None:
        ...
