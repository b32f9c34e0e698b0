from __future__ import annotations

from .anthropic_adapter import AnthropicCompletionAdapter
from .interface import CompletionAdapter
from .openai_adapter import OpenAICompletionAdapter


def get_adapter(provider: str, model: str, api_key: str) -> CompletionAdapter:
    """Factory that returns an adapter for the requested provider/model."""
    if provider == "openai":
        return OpenAICompletionAdapter(model, api_key)
    if provider == "anthropic":
        return AnthropicCompletionAdapter(model, api_key)
    raise ValueError("provider must be 'openai' or 'anthropic'")
