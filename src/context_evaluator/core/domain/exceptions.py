"""Domain exceptions for context_evaluator."""

from __future__ import annotations


class EvaluationError(Exception):
    """Base class for errors that abort an evaluation job."""

    code = "EVALUATION_FAILED"


class ProviderUnavailableError(EvaluationError):
    """Raised when the configured AI provider cannot be used."""

    code = "PROVIDER_UNAVAILABLE"

    def __init__(self, provider: str, message: str | None = None) -> None:
        self.provider = provider
        if message is None:
            message = f"AI provider not available: {provider}"
        super().__init__(message)


class RepositoryError(EvaluationError):
    """Raised when the repository to evaluate cannot be read."""

    code = "REPOSITORY_ERROR"

    def __init__(self, path: str, message: str | None = None) -> None:
        self.path = path
        if message is None:
            message = f"Repository not accessible: {path}"
        super().__init__(message)


class UnknownEvaluatorError(ValueError):
    def __init__(self, evaluator_id: str) -> None:
        self.evaluator_id = evaluator_id
        super().__init__(f"Unknown evaluator: {evaluator_id}")


class PromptNotFoundError(LookupError):
    def __init__(self, name: str, location: str | None = None) -> None:
        self.name = name
        message = f"Prompt not found: {name}"
        if location:
            message += f" (searched {location})"
        super().__init__(message)


class ProviderInvocationError(RuntimeError):
    """A single provider call failed."""

    def __init__(self, message: str, *, retryable: bool = True) -> None:
        self.retryable = retryable
        super().__init__(message)


class ProviderTimeoutError(ProviderInvocationError):
    def __init__(self, provider: str, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(
            f"{provider} timed out after {timeout_ms}ms ({timeout_ms / 1000:.1f}s)",
            retryable=True,
        )
