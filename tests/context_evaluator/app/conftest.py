"""Shared fixtures for app-level tests."""
import json
from pathlib import Path

import pytest

from context_evaluator.app.config import AppConfig, DirectoryConfig, LLMConfig, ScoringConfig
from context_evaluator.infra.llm_adapters import LLMResponse, TokenUsage


ISSUE_REPLY = json.dumps(
    [
        {
            "category": "Command Completeness",
            "severity": 8,
            "problem": "Test command is missing its required flags",
            "location": {"start": 3, "end": 3},
            "fix": "Document `make test ARGS=-v`",
        }
    ]
)


def create_context_repo(tmp_path: Path) -> Path:
    """Helper to create a repository with one AGENTS.md."""
    repo_dir = tmp_path / "repo"
    repo_dir.mkdir()
    (repo_dir / "AGENTS.md").write_text("# Project\n\nRun tests with `make test`.\n", encoding="utf-8")
    (repo_dir / "main.py").write_text("print('hi')\n", encoding="utf-8")
    return repo_dir


class FakeAdapter:
    """CompletionAdapter double returning the same canned text for every prompt."""

    def __init__(self, text: str = ISSUE_REPLY):
        self.model = "fake-model"
        self.text = text
        self.prompts = []

    def complete(self, prompt, *, max_output_tokens=16_000):
        self.prompts.append(prompt)
        return LLMResponse(text=self.text, usage=TokenUsage(input_tokens=100, output_tokens=20))


@pytest.fixture
def context_repo(tmp_path):
    return create_context_repo(tmp_path)


@pytest.fixture
def fake_adapter(monkeypatch):
    adapter = FakeAdapter()
    monkeypatch.setattr("context_evaluator.infra.provider.get_adapter", lambda provider, model, api_key: adapter)
    return adapter


@pytest.fixture
def test_config(tmp_path):
    """Create test configuration with explicit values."""
    return AppConfig(
        directories=DirectoryConfig(home=tmp_path / "home"),
        llm=LLMConfig(
            api_key="test-key",
            provider_name="anthropic",
            model_name="claude-test",
        ),
        scoring=ScoringConfig(ai_explanation=False),
    )
