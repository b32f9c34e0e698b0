import pytest

from context_evaluator.core.domain.errors import determine_error_category, to_structured_error
from context_evaluator.core.domain.exceptions import (
    PromptNotFoundError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    RepositoryError,
    UnknownEvaluatorError,
)
from context_evaluator.core.usecases.list_evaluators import ListEvaluatorsUseCase


@pytest.mark.parametrize(
    "message,category",
    [
        ("Request timed out after 30s", "timeout"),
        ("Failed to parse JSON", "parsing"),
        ("Could not read file", "file_system"),
        ("LLM API rate limit", "provider"),
        ("git clone failed", "repository"),
        ("something odd", "internal"),
    ],
)
def test_determine_error_category(message, category):
    assert determine_error_category(message) == category


def test_structured_error_from_exception():
    try:
        raise ValueError("invalid value")
    except ValueError as e:
        err = to_structured_error(e, evaluator_name="security", file_path="AGENTS.md", severity="fatal")

    assert err.category == "parsing"
    assert err.severity == "fatal"
    assert err.retryable is False
    assert "ValueError" in err.technical_details
    assert err.to_jsonable()["file_path"] == "AGENTS.md"


def test_explicit_category_wins():
    err = to_structured_error("weird", category="provider")
    assert err.category == "provider"
    assert err.retryable is True


def test_empty_message_falls_back_to_type_name():
    assert to_structured_error(RuntimeError()).message == "RuntimeError"


def test_exception_codes_and_messages():
    assert ProviderUnavailableError("anthropic").code == "PROVIDER_UNAVAILABLE"
    assert str(ProviderUnavailableError("anthropic")) == "AI provider not available: anthropic"
    assert RepositoryError("/x").code == "REPOSITORY_ERROR"
    assert str(UnknownEvaluatorError("nope")) == "Unknown evaluator: nope"
    assert "searched /prompts" in str(PromptNotFoundError("evaluators/x", "/prompts"))

    timeout = ProviderTimeoutError("anthropic:claude", 2500)
    assert timeout.retryable is True
    assert str(timeout) == "anthropic:claude timed out after 2500ms (2.5s)"


def test_list_evaluators_usecase():
    uc = ListEvaluatorsUseCase()

    assert len(uc.execute()) == 17
    assert all(spec.issue_type == "suggestion" for spec in uc.execute(evaluator_filter="suggestion"))
