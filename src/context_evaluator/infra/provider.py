from __future__ import annotations

import asyncio
import re
import time
from typing import Optional

from .llm_adapters import CompletionAdapter, TokenUsage, get_adapter
from ..core.domain.exceptions import ProviderInvocationError, ProviderTimeoutError
from ..core.domain.models import ProviderResponse, RetryEvent, TimeoutEvent, Usage
from ..core.ports import LoggerPort, RetryObserver, TimeoutObserver


DEFAULT_TIMEOUT_MS = 300_000
SUPPORTED_PROVIDERS = ("openai", "anthropic")

# Errors with these messages fail immediately
_NON_RETRYABLE = ("not found", "Permission denied", "ENOENT", "EACCES", "E2BIG")
_TIMEOUT_MS = re.compile(r"(\d+)ms")


def is_non_retryable(message: str) -> bool:
    return any(marker in message for marker in _NON_RETRYABLE)


def _to_usage(usage: TokenUsage | None) -> Usage | None:
    if usage is None:
        return None
    return Usage(
        input_tokens=usage.input_tokens or 0,
        output_tokens=usage.output_tokens or 0,
        cache_creation_input_tokens=usage.cache_creation_input_tokens or 0,
        cache_read_input_tokens=usage.cache_read_input_tokens or 0,
    )


class LLMProvider:
    """AI provider backed by a hosted completion API.

    SDK calls are blocking, so each one runs in a worker thread under an
    asyncio deadline.
    """

    def __init__(
        self,
        *,
        provider: str,
        model: str,
        api_key: str,
        logger: LoggerPort,
        max_output_tokens: int = 16_000,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        max_retries: int = 3,
        retry_base_delay_ms: int = 1000,
        input_cost_per_million: float = 0.0,
        output_cost_per_million: float = 0.0,
    ) -> None:
        self.name = provider
        self.display_name = f"{provider}:{model}"
        self._provider = provider
        self._model = model
        self._api_key = api_key
        self._logger = logger
        self._max_output_tokens = max_output_tokens
        self._timeout_ms = timeout_ms
        self._max_retries = max_retries
        self._retry_base_delay_ms = retry_base_delay_ms
        self._input_cost = input_cost_per_million
        self._output_cost = output_cost_per_million
        self._adapter: CompletionAdapter | None = None

    async def is_available(self) -> bool:
        return bool(self._api_key) and self._provider in SUPPORTED_PROVIDERS

    def _get_adapter(self) -> CompletionAdapter:
        if self._adapter is None:
            self._adapter = get_adapter(self._provider, self._model, self._api_key)
        return self._adapter

    def cost_of(self, usage: Usage | None) -> float:
        if usage is None:
            return 0.0
        return (usage.input_tokens * self._input_cost + usage.output_tokens * self._output_cost) / 1_000_000

    async def invoke(self, prompt: str, *, timeout_ms: Optional[int] = None) -> ProviderResponse:
        timeout_ms = timeout_ms or self._timeout_ms
        self._logger.info(
            "llm_input",
            type="llm_input",
            provider=self._provider,
            model=self._model,
            prompt_len=len(prompt),
            prompt=prompt,
        )

        adapter = self._get_adapter()
        started = time.monotonic()
        try:
            resp = await asyncio.wait_for(
                asyncio.to_thread(adapter.complete, prompt, max_output_tokens=self._max_output_tokens),
                timeout=timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            raise ProviderTimeoutError(self.display_name, timeout_ms) from None
        except Exception as e:
            message = str(e) or type(e).__name__
            raise ProviderInvocationError(message, retryable=not is_non_retryable(message)) from e
        duration_ms = int((time.monotonic() - started) * 1000)

        usage = _to_usage(resp.usage)
        cost = self.cost_of(usage)
        if usage is not None:
            self._logger.info(
                "llm_usage",
                type="llm_usage",
                provider=self._provider,
                model=self._model,
                input_tokens=usage.input_tokens,
                output_tokens=usage.output_tokens,
                total_tokens=usage.total_tokens,
                cost_usd=cost,
            )

        self._logger.info(
            "llm_output",
            type="llm_output",
            provider=self._provider,
            model=self._model,
            raw_text_len=len(resp.text),
            raw_text=resp.text,
            duration_ms=duration_ms,
        )
        return ProviderResponse(result=resp.text, usage=usage, cost_usd=cost, duration_ms=duration_ms)

    async def invoke_with_retry(
        self,
        prompt: str,
        *,
        timeout_ms: Optional[int] = None,
        max_retries: Optional[int] = None,
        on_retry: Optional[RetryObserver] = None,
        on_timeout: Optional[TimeoutObserver] = None,
    ) -> ProviderResponse:
        """``max_retries`` is the total number of attempts."""
        attempts = max(1, max_retries if max_retries is not None else self._max_retries)
        for attempt in range(attempts):
            try:
                return await self.invoke(prompt, timeout_ms=timeout_ms)
            except ProviderInvocationError as e:
                message = str(e)
                if "timed out" in message or "timeout" in message:
                    match = _TIMEOUT_MS.search(message)
                    limit = int(match.group(1)) if match else (timeout_ms or self._timeout_ms)
                    if on_timeout is not None:
                        on_timeout(TimeoutEvent(elapsed_ms=limit, timeout_ms=limit))

                if not e.retryable or attempt == attempts - 1:
                    raise

                delay_ms = self._retry_base_delay_ms * (attempt + 1)
                self._logger.warning(
                    "llm_retry",
                    type="llm_retry",
                    provider=self._provider,
                    attempt=attempt + 1,
                    max_retries=attempts,
                    error=message,
                    delay_ms=delay_ms,
                )
                if on_retry is not None:
                    on_retry(RetryEvent(attempt=attempt + 1, max_retries=attempts, error=message, delay_ms=delay_ms))
                await asyncio.sleep(delay_ms / 1000)
        raise AssertionError("unreachable")
