from .types import Provider, TokenUsage, LLMResponse
from .interface import CompletionAdapter
from .openai_adapter import OpenAICompletionAdapter
from .anthropic_adapter import AnthropicCompletionAdapter
from .factory import get_adapter

__all__ = [
    "Provider",
    "TokenUsage",
    "LLMResponse",
    "CompletionAdapter",
    "OpenAICompletionAdapter",
    "AnthropicCompletionAdapter",
    "get_adapter",
]
