from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

from .config import AppConfig
from .container import Container
from ..core.domain.evaluators import EvaluatorFilter, EvaluatorSpec
from ..core.domain.events import ProgressCallback
from ..core.domain.models import EvaluationMode, EvaluationOptions


def _create_container(config: AppConfig | None = None) -> Container:
    """Create and initialize a container.

    Args:
        config: Optional config. If None, loads from environment variables.

    Returns:
        Initialized container instance
    """
    container = Container()

    if config is None:
        # Load from environment variables (BaseSettings default behavior)
        config = AppConfig()

    container.config.from_pydantic(config)
    container.init_resources()

    return container


def new_run_id() -> str:
    """Timestamped run identifier, used to name the run's log file."""
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return f"{stamp}-{uuid.uuid4().hex[:8]}"


def apply_overrides(
    config: AppConfig,
    *,
    provider: str | None = None,
    model: str | None = None,
    api_key: str | None = None,
    run_id: str | None = None,
) -> AppConfig:
    """Return a copy of ``config`` with runtime overrides applied.

    AppConfig is frozen, so overrides go through ``model_copy`` instead of
    attribute assignment.
    """
    llm_update = {
        key: value
        for key, value in (("provider_name", provider), ("model_name", model), ("api_key", api_key))
        if value
    }
    update: dict[str, object] = {}
    if llm_update:
        update["llm"] = config.llm.model_copy(update=llm_update)
    if run_id or not config.runtime.run_id:
        update["runtime"] = config.runtime.model_copy(update={"run_id": run_id or new_run_id()})
    return config.model_copy(update=update) if update else config


def evaluate(
    repo_path: str | Path,
    *,
    mode: EvaluationMode | None = None,
    evaluators: Sequence[str] | None = None,
    evaluator_filter: EvaluatorFilter | None = None,
    provider: str | None = None,
    model: str | None = None,
    api_key: str | None = None,
    config: AppConfig | None = None,
    on_progress: ProgressCallback | None = None,
) -> dict[str, object]:
    """Evaluate the AI agent context files of a repository.

    Discovers AGENTS.md / CLAUDE.md / copilot instructions, runs the
    evaluator catalog against them, deduplicates and curates the findings
    and scores the repository's overall context setup.

    Args:
        repo_path: Local repository directory
        mode: Force "unified" or "independent" evaluation (auto when None)
        evaluators: Explicit evaluator ids to run
        evaluator_filter: Run only "error" or "suggestion" evaluators
        provider: LLM provider override (optional)
        model: LLM model override (optional)
        api_key: LLM API key override (optional, otherwise from config/env)
        config: Optional config for testing. If None, loads from env vars.
        on_progress: Optional callback receiving progress events

    Returns:
        Evaluation output as a JSON-serializable dictionary

    Raises:
        ValueError: If the API key is missing
        EvaluationError: If the provider is unavailable or the repository is unusable
    """
    config = apply_overrides(
        config or AppConfig(),
        provider=provider,
        model=model,
        api_key=api_key,
    )
    if not config.llm.api_key:
        raise ValueError("API key required via CONTEXT_EVALUATOR_LLM__API_KEY")

    container = _create_container(config)
    try:
        uc = container.evaluate_uc()
        options = EvaluationOptions(
            mode=mode,
            evaluators=tuple(evaluators) if evaluators else None,
            evaluator_filter=evaluator_filter,
        )
        output = asyncio.run(uc.execute(repo_path=repo_path, options=options, on_progress=on_progress))
        return output.to_dict()
    finally:
        container.shutdown_resources()


def list_evaluators(issue_type: EvaluatorFilter = "all") -> list[EvaluatorSpec]:
    """List the evaluator catalog.

    Args:
        issue_type: "all", "error" or "suggestion"

    Returns:
        Evaluator specs in catalog order
    """
    container = Container()
    uc = container.list_evaluators_uc()
    return uc.execute(evaluator_filter=issue_type)
