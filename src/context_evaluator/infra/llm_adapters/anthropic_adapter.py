from __future__ import annotations

import anthropic

from .types import LLMResponse, TokenUsage


class AnthropicCompletionAdapter:
    """Anthropic Messages API adapter (Claude Sonnet, etc.)."""

    def __init__(self, model: str, api_key: str) -> None:
        self.model = model
        self._client = anthropic.Anthropic(api_key=api_key)

    def complete(self, prompt: str, *, max_output_tokens: int = 16_000) -> LLMResponse:
        message = self._client.messages.create(
            model=self.model,
            max_tokens=max_output_tokens,
            messages=[{"role": "user", "content": prompt}],
        )
        # message.content is a list of content blocks; we only join text blocks
        texts: list[str] = [block.text for block in message.content if block.type == "text"]

        u = message.usage
        usage = None
        if u is not None:
            usage = TokenUsage(
                input_tokens=u.input_tokens,
                output_tokens=u.output_tokens,
                total_tokens=(u.input_tokens or 0) + (u.output_tokens or 0),
                cache_creation_input_tokens=u.cache_creation_input_tokens,
                cache_read_input_tokens=u.cache_read_input_tokens,
            )
        return LLMResponse(text="".join(texts), usage=usage)
