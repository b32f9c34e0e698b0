import os
import sys
from pathlib import Path

import pytest
from dotenv import load_dotenv

from helpers import FakeLogger, FakePromptSource, mark_by_dir

load_dotenv()


@pytest.fixture(autouse=True)
def _ensure_src_on_syspath():
    # Add project src/ to sys.path for src-layout imports
    root = Path(__file__).resolve().parents[1]
    src_path = root / "src"
    if str(src_path) not in sys.path:
        sys.path.insert(0, str(src_path))
    yield


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch, tmp_path):
    """Keep developer CONTEXT_EVALUATOR_* settings out of the tests."""
    for key in list(os.environ):
        if key.startswith("CONTEXT_EVALUATOR_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("CONTEXT_EVALUATOR_DIRECTORIES__HOME", str(tmp_path / "home"))
    yield


@pytest.fixture
def logger() -> FakeLogger:
    return FakeLogger()


@pytest.fixture
def prompts() -> FakePromptSource:
    return FakePromptSource()


TESTS = Path(__file__).parent

def pytest_collection_modifyitems(config, items):
    # Mark tests by directory structure
    mark_by_dir(items, TESTS / "context_evaluator" / "core", pytest.mark.unit)
    mark_by_dir(items, TESTS / "context_evaluator" / "shared", pytest.mark.unit)
    mark_by_dir(items, TESTS / "context_evaluator" / "infra", pytest.mark.integration)
    mark_by_dir(items, TESTS / "context_evaluator" / "app", pytest.mark.e2e)
