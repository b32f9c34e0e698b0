from __future__ import annotations

from openai import OpenAI

from .types import LLMResponse, TokenUsage


class OpenAICompletionAdapter:
    """OpenAI Responses API adapter (gpt-4.1, o3, etc.)."""

    def __init__(self, model: str, api_key: str) -> None:
        self.model = model
        self._client = OpenAI(api_key=api_key)

    def complete(self, prompt: str, *, max_output_tokens: int = 16_000) -> LLMResponse:
        response = self._client.responses.create(
            model=self.model,
            input=prompt,
            max_output_tokens=max_output_tokens,
        )
        usage = None
        u = response.usage
        if u is not None:
            iu = u.input_tokens
            ou = u.output_tokens
            tt = u.total_tokens if u.total_tokens is not None else (iu or 0) + (ou or 0)
            details = getattr(u, "input_tokens_details", None)
            cached = getattr(details, "cached_tokens", None) if details is not None else None
            usage = TokenUsage(input_tokens=iu, output_tokens=ou, total_tokens=tt, cache_read_input_tokens=cached)
        return LLMResponse(text=response.output_text or "", usage=usage)
