from __future__ import annotations

from typing import Protocol, runtime_checkable

from .types import LLMResponse


@runtime_checkable
class CompletionAdapter(Protocol):
    """Minimal interface for a single-turn, text-only completion."""

    model: str

    def complete(self, prompt: str, *, max_output_tokens: int = 16_000) -> LLMResponse:
        """Send one user prompt and return normalized text + token usage."""
        raise NotImplementedError
