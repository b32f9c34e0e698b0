from __future__ import annotations

import asyncio
import time
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Sequence

from ..domain.errors import StructuredError
from ..domain.evaluators import EvaluatorFilter, select_evaluators
from ..domain.events import ProgressCallback
from ..domain.exceptions import ProviderUnavailableError, RepositoryError
from ..domain.issues import Issue, IssueIdSequence, create_deduplication_id_set, issue_severity
from ..domain.models import (
    ContextFile,
    EvaluationMetadata,
    EvaluationMode,
    EvaluationOptions,
    EvaluationOutput,
    EvaluatorResult,
    FailedEvaluator,
    FileEvaluationResult,
    ProjectInputs,
    Usage,
)
from ..ports import AIProviderPort, LoggerPort, ProjectDiscoveryPort
from .context_scorer import ContextScorer
from .curation_pipeline import CurationPipeline, calculate_curation_metadata
from .dedup_pipeline import DeduplicationPipeline
from .progress import ProgressEmitter
from .runner import EvaluatorRunner, aggregate_file_results, sum_usage


def _keep(issues: Sequence[Issue], survivors: set[str]) -> list[Issue]:
    return [i for i in issues if i.dedup_id in survivors]


def _filter_result(result: EvaluatorResult, survivors: set[str]) -> EvaluatorResult:
    return replace(result, issues=_keep(result.issues, survivors))


class EvaluationEngine:
    """Runs one evaluation job end to end.

    discovery -> context -> evaluators -> dedup -> curation -> scoring ->
    assembly. Only provider unavailability, repository problems and
    unexpected exceptions abort the job; evaluator failures end up in the
    output metadata.
    """

    def __init__(
        self,
        *,
        provider: AIProviderPort,
        discovery: ProjectDiscoveryPort,
        runner: EvaluatorRunner,
        deduplication: DeduplicationPipeline,
        curation: CurationPipeline,
        scorer: ContextScorer,
        logger: LoggerPort,
        default_mode: Optional[EvaluationMode] = None,
        default_filter: EvaluatorFilter = "all",
        default_evaluators: Optional[Sequence[str]] = None,
    ) -> None:
        self._provider = provider
        self._discovery = discovery
        self._runner = runner
        self._deduplication = deduplication
        self._curation = curation
        self._scorer = scorer
        self._logger = logger
        self._default_mode = default_mode
        self._default_filter = default_filter
        self._default_evaluators = tuple(default_evaluators) if default_evaluators else None

    def select_mode(self, files: Sequence[ContextFile], requested: Optional[EvaluationMode]) -> EvaluationMode:
        """Unified only when the files fit the token budget, even if requested."""
        if not files or requested == "independent":
            return "independent"
        if (requested == "unified" or len(files) > 1) and self._runner.fits_unified(files):
            return "unified"
        return "independent"

    async def evaluate(
        self,
        repo_path: Path | str,
        *,
        options: Optional[EvaluationOptions] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> EvaluationOutput:
        options = options or EvaluationOptions()
        progress = ProgressEmitter(on_progress, self._logger)
        repo = Path(repo_path)
        started = time.monotonic()
        self._logger.info("evaluation_started", type="evaluation_started", repo_path=str(repo), provider=self._provider.name)

        try:
            output = await self._evaluate(repo, options, progress)
        except Exception as e:
            code = getattr(e, "code", "EVALUATION_FAILED")
            self._logger.error("evaluation_failed", exc_info=True, type="evaluation_failed", repo_path=str(repo), code=code, error=str(e))
            progress.emit("job.failed", message=str(e), code=code)
            raise

        output.metadata.duration_ms = int((time.monotonic() - started) * 1000)
        self._logger.info(
            "evaluation_completed",
            type="evaluation_completed",
            repo_path=str(repo),
            mode=output.mode,
            total_issues=output.metadata.total_issues,
            cost_usd=output.metadata.cost_usd,
            duration_ms=output.metadata.duration_ms,
        )
        progress.emit("job.completed", result=output)
        return output

    async def _evaluate(self, repo: Path, options: EvaluationOptions, progress: ProgressEmitter) -> EvaluationOutput:
        if not await self._provider.is_available():
            raise ProviderUnavailableError(self._provider.name)
        if not repo.is_dir():
            raise RepositoryError(str(repo), "path does not exist or is not a directory")

        progress.emit("discovery.started")
        files = await asyncio.to_thread(self._discovery.find_context_files, repo)
        progress.emit("discovery.completed", files_found=len(files), file_paths=[f.relative_path for f in files])

        ids = IssueIdSequence()
        progress.emit("context.started", repo_path=str(repo))
        inputs: ProjectInputs = await asyncio.to_thread(self._discovery.collect_project_inputs, repo, files, ids)
        progress.emit(
            "context.completed",
            skills=len(inputs.skills),
            linked_docs=len(inputs.linked_docs),
            has_inventory=bool(inputs.technical_inventory),
            consistency_issues=len(inputs.consistency_issues),
        )

        evaluators = select_evaluators(
            options.evaluator_filter or self._default_filter,
            options.evaluators or self._default_evaluators,
        )
        requested = options.mode or self._default_mode
        mode = self.select_mode(files, requested)
        fallback_warning = None
        if requested == "unified" and mode != "unified" and files:
            fallback_warning = "Unified mode exceeds the token limit; falling back to independent mode"
            self._logger.warning("unified_mode_fallback", type="unified_mode_fallback", files=len(files))
            progress.emit("evaluation.warning", message=fallback_warning)
        progress.emit("job.started", total_files=len(files), evaluation_mode=mode, evaluators=len(evaluators))
        self._logger.info("evaluation_mode_selected", type="evaluation_mode_selected", mode=mode, files=len(files), evaluators=len(evaluators))

        file_results: dict[str, list[EvaluatorResult]] = {}
        unified_results: list[EvaluatorResult] = []
        cross_file: list[Issue] = []

        if mode == "unified":
            unified = await self._runner.run_unified_evaluation(
                files,
                evaluators=evaluators,
                ids=ids,
                project_context=inputs.project_context,
                progress=progress,
            )
            unified_results = unified.results
            cross_file = list(unified.cross_file_issues)
            all_results = unified_results
        elif not files:
            no_file = await self._runner.run_all_evaluators(
                None,
                evaluators=evaluators,
                ids=ids,
                project_context=inputs.project_context,
                progress=progress,
            )
            cross_file = [i for r in no_file for i in r.issues]
            all_results = no_file
        else:
            all_results = []
            for index, file in enumerate(files):
                progress.emit("file.started", file=file.relative_path, index=index, total=len(files))
                results = await self._runner.run_all_evaluators(
                    file,
                    evaluators=evaluators,
                    ids=ids,
                    all_files=files,
                    project_context=inputs.project_context,
                    progress=progress,
                )
                file_results[file.relative_path] = results
                all_results.extend(results)
                progress.emit(
                    "file.completed",
                    file=file.relative_path,
                    index=index,
                    total=len(files),
                    issues=sum(len(r.issues) for r in results),
                )

        # colocated AGENTS.md/CLAUDE.md conflicts are cross-file issues from discovery
        cross_file.extend(inputs.consistency_issues)
        all_issues = [i for r in all_results for i in r.issues] + list(inputs.consistency_issues)
        dedup = await self._deduplication.run(all_issues)
        curation = await self._curation.run(dedup.deduplicated, progress)
        self._logger.info("curation_summary", type="curation_summary", **calculate_curation_metadata(curation))
        if files:
            score = await self._scorer.score(all_issues, files_found=len(files), inputs=inputs)
        else:
            score = self._scorer.no_files_score()

        survivors = create_deduplication_id_set(dedup.deduplicated)
        canonical = dedup.deduplicated
        files_out: dict[str, FileEvaluationResult] = {
            path: aggregate_file_results(path, [_filter_result(r, survivors) for r in results])
            for path, results in file_results.items()
        }
        results_out = [_filter_result(r, survivors) for r in unified_results]
        cross_out = _keep(cross_file, survivors)

        errors: list[StructuredError] = [e for r in all_results for e in r.structured_errors]
        partial = [e for e in errors if e.severity == "partial"]
        failed = [
            FailedEvaluator(evaluator=e.evaluator_name, message=e.message, category=e.category, file=e.file_path)
            for e in errors
            if e.evaluator_name
        ]
        warnings = [e.message for e in errors if e.severity == "warning"]
        if fallback_warning:
            warnings.append(fallback_warning)
        if partial:
            message = f"{len(failed)} evaluator(s) encountered errors"
            warnings.append(message)
            progress.emit("evaluation.warning", message=message, errors=[e.to_jsonable() for e in partial])
            self._logger.warning(
                "evaluation_partial_failures",
                type="evaluation_partial_failures",
                failed=sorted({f.evaluator for f in failed}),
            )

        buckets = [issue_severity(i) for i in canonical]
        usage: Usage = sum_usage(all_results)
        cost = (
            sum(r.cost_usd for r in all_results)
            + (dedup.phase2.cost_usd if dedup.phase2 else 0.0)
            + curation.total_cost_usd
            + score.cost_usd
        )
        metadata = EvaluationMetadata(
            generated_at=datetime.now(timezone.utc).isoformat(),
            agent=self._provider.name,
            evaluation_mode=mode,
            total_files=len(files),
            total_issues=len(canonical),
            error_count=sum(1 for i in canonical if i.issue_type == "error"),
            suggestion_count=sum(1 for i in canonical if i.issue_type == "suggestion"),
            high_count=buckets.count("high"),
            medium_count=buckets.count("medium"),
            low_count=buckets.count("low"),
            usage=usage,
            cost_usd=cost,
            deduplication=dedup,
            curation=curation,
            context_score=score,
            files_evaluated=[f.relative_path for f in files],
            per_file_issue_count=sum(1 for i in canonical if not i.is_cross_file),
            cross_file_issue_count=sum(1 for i in canonical if i.is_cross_file),
            has_errors=any(e.severity == "fatal" for e in errors),
            has_partial_failures=bool(partial),
            failed_evaluators=failed,
            warnings=warnings,
        )
        return EvaluationOutput(
            metadata=metadata,
            issues=list(canonical),
            files=files_out,
            results=results_out,
            cross_file_issues=cross_out,
        )
