from __future__ import annotations

from pathlib import Path

from dependency_injector import containers, providers

from .config import AppConfig, run_log_file
from ..core.usecases.evaluate import EvaluateUseCase
from ..core.usecases.list_evaluators import ListEvaluatorsUseCase
from ..core.services import (
    ContextScorer,
    CurationPipeline,
    DeduplicationPipeline,
    EvaluationEngine,
    EvaluatorRunner,
    ImpactCurator,
    JsonExtractor,
    SemanticDeduplicator,
)
from ..infra.debug_sink import FileDebugSink
from ..infra.discovery import FileSystemDiscovery
from ..infra.logging import EvaluationLogger
from ..infra.prompt_source import build_prompt_source
from ..infra.provider import LLMProvider


def _debug_sink(*, enabled: bool, debug_dir: Path, run_id: str | None) -> FileDebugSink | None:
    if not enabled:
        return None
    return FileDebugSink(debug_dir=debug_dir, run_id=run_id or "latest")


class Container(containers.DeclarativeContainer):
    """DI container with Pydantic BaseSettings support."""

    config = providers.Configuration(pydantic_settings=[AppConfig()])

    # Logger (Resource: manages lifecycle with init/shutdown)
    log_file = providers.Callable(
        run_log_file,
        logs_dir=config.directories.logs_dir,
        run_id=config.runtime.run_id,
    )

    logger = providers.Resource(
        EvaluationLogger,
        log_file=log_file,
        run_id=config.runtime.run_id,
        logger_name=config.logging.logger_name,
        console_output=config.logging.console_output,
        level=config.logging.level,
    )

    # Adapters
    prompts = providers.Singleton(
        build_prompt_source,
        directory=config.prompts.directory,
    )

    discovery = providers.Singleton(
        FileSystemDiscovery,
        logger=logger,
        max_depth=config.evaluation.discovery_depth,
    )

    llm_provider = providers.Singleton(
        LLMProvider,
        provider=config.llm.provider_name,
        model=config.llm.model_name,
        api_key=config.llm.api_key,
        logger=logger,
        max_output_tokens=config.llm.max_output_tokens,
        timeout_ms=config.llm.timeout_ms,
        max_retries=config.llm.max_retries,
        input_cost_per_million=config.llm.input_usd_per_million,
        output_cost_per_million=config.llm.output_usd_per_million,
    )

    debug_sink = providers.Singleton(
        _debug_sink,
        enabled=config.evaluation.debug,
        debug_dir=config.directories.debug_dir,
        run_id=config.runtime.run_id,
    )

    # Domain services
    json_extractor = providers.Singleton(JsonExtractor)

    runner = providers.Factory(
        EvaluatorRunner,
        provider=llm_provider,
        prompts=prompts,
        logger=logger,
        json_extractor=json_extractor,
        concurrency=config.evaluation.concurrency,
        timeout_ms=config.llm.timeout_ms,
        max_retries=config.llm.max_retries,
        max_tokens=config.evaluation.max_tokens,
        debug_sink=debug_sink,
    )

    semantic_deduplicator = providers.Factory(
        SemanticDeduplicator,
        provider=llm_provider,
        prompts=prompts,
        logger=logger,
        json_extractor=json_extractor,
        max_issues_for_ai=config.deduplication.max_issues_for_ai,
        timeout_ms=config.llm.timeout_ms,
    )

    deduplication = providers.Factory(
        DeduplicationPipeline,
        logger=logger,
        semantic=semantic_deduplicator,
        enabled=config.deduplication.enabled,
        phase1_enabled=config.deduplication.phase1_enabled,
        phase2_enabled=config.deduplication.phase2_enabled,
        location_tolerance=config.deduplication.location_tolerance,
        similarity_threshold=config.deduplication.similarity_threshold,
    )

    curator = providers.Factory(
        ImpactCurator,
        provider=llm_provider,
        prompts=prompts,
        logger=logger,
        json_extractor=json_extractor,
        timeout_ms=config.llm.timeout_ms,
    )

    curation = providers.Factory(
        CurationPipeline,
        curator=curator,
        logger=logger,
        enabled=config.curation.enabled,
        error_top_n=config.curation.error_top_n,
        suggestion_top_n=config.curation.suggestion_top_n,
    )

    scorer = providers.Factory(
        ContextScorer,
        provider=llm_provider,
        prompts=prompts,
        logger=logger,
        json_extractor=json_extractor,
        ai_explanation=config.scoring.ai_explanation,
    )

    engine = providers.Factory(
        EvaluationEngine,
        provider=llm_provider,
        discovery=discovery,
        runner=runner,
        deduplication=deduplication,
        curation=curation,
        scorer=scorer,
        logger=logger,
        default_mode=config.evaluation.mode,
        default_filter=config.evaluation.evaluator_filter,
        default_evaluators=config.evaluation.evaluators,
    )

    # Use cases
    evaluate_uc = providers.Factory(
        EvaluateUseCase,
        engine=engine,
    )

    list_evaluators_uc = providers.Factory(ListEvaluatorsUseCase)
