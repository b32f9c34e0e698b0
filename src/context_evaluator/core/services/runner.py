from __future__ import annotations

import asyncio
import time
from dataclasses import replace
from typing import Callable, Mapping, Optional, Sequence

from ..domain.errors import StructuredError, to_structured_error
from ..domain.evaluators import (
    DEFAULT_FILE_CONFIG,
    EvaluatorFileConfig,
    EvaluatorSpec,
    apply_file_filter,
)
from ..domain.exceptions import ProviderInvocationError, ProviderTimeoutError
from ..domain.issues import Issue, IssueIdSequence, issue_severity
from ..domain.models import (
    ContextFile,
    EvaluatorResult,
    FileEvaluationResult,
    RetryEvent,
    TimeoutEvent,
    UnifiedEvaluationResult,
    Usage,
)
from ..domain.prompt import build_multi_file_prompt, build_single_file_prompt, estimate_tokens, render_template
from ..ports import AIProviderPort, DebugSinkPort, LoggerPort, PromptSourcePort
from .concurrency import run_bounded
from .json_extractor import JsonExtractor
from .progress import ProgressEmitter
from .response_parser import parse_evaluator_result, populate_snippets, separate_issues_by_type


NO_FILE_SKIP_REASON = "No context file exists and this evaluator requires existing content to evaluate"

RetryHook = Callable[[str, RetryEvent], None]
TimeoutHook = Callable[[str, TimeoutEvent], None]


def sum_usage(results: Sequence[EvaluatorResult]) -> Usage:
    total = Usage()
    for r in results:
        if r.usage is not None:
            total = total + r.usage
    return total


def aggregate_file_results(file: str, evaluations: Sequence[EvaluatorResult]) -> FileEvaluationResult:
    """Roll a file's evaluator results up into counts and totals."""
    issues = [i for r in evaluations for i in r.issues]
    buckets = [issue_severity(i) for i in issues]
    return FileEvaluationResult(
        file=file,
        evaluations=list(evaluations),
        total_issues=len(issues),
        high_count=buckets.count("high"),
        medium_count=buckets.count("medium"),
        low_count=buckets.count("low"),
        usage=sum_usage(evaluations),
        cost_usd=sum(r.cost_usd for r in evaluations),
        duration_ms=sum(r.duration_ms for r in evaluations),
    )


class EvaluatorRunner:
    """Runs the evaluator catalog against context files under a concurrency cap."""

    def __init__(
        self,
        *,
        provider: AIProviderPort,
        prompts: PromptSourcePort,
        logger: LoggerPort,
        json_extractor: JsonExtractor,
        concurrency: int = 3,
        timeout_ms: Optional[int] = None,
        max_retries: int = 3,
        max_tokens: int = 100_000,
        file_configs: Mapping[str, EvaluatorFileConfig] = DEFAULT_FILE_CONFIG,
        debug_sink: Optional[DebugSinkPort] = None,
    ) -> None:
        self._provider = provider
        self._prompts = prompts
        self._logger = logger
        self._json_extractor = json_extractor
        self._concurrency = concurrency
        self._timeout_ms = timeout_ms
        self._max_retries = max_retries
        self._max_tokens = max_tokens
        self._file_configs = file_configs
        self._debug_sink = debug_sink

    def fits_unified(self, files: Sequence[ContextFile]) -> bool:
        """Whether the combined content fits the unified-mode token budget."""
        combined = "\n\n".join(f.content for f in files)
        return estimate_tokens(combined) <= self._max_tokens

    async def run_all_evaluators(
        self,
        file: Optional[ContextFile],
        *,
        evaluators: Sequence[EvaluatorSpec],
        ids: IssueIdSequence,
        all_files: Sequence[ContextFile] = (),
        project_context: Optional[str] = None,
        progress: Optional[ProgressEmitter] = None,
        on_retry: Optional[RetryHook] = None,
        on_timeout: Optional[TimeoutHook] = None,
    ) -> list[EvaluatorResult]:
        """Independent mode: every evaluator against one file.

        ``file`` is None when the repository has no context file at all;
        only evaluators flagged ``execute_if_no_file`` run in that case.
        """
        progress = progress or ProgressEmitter(None, self._logger)
        file_path = file.relative_path if file else None
        contents = {file.relative_path: file.content} if file else {}
        total = len(evaluators)

        async def _run(spec: EvaluatorSpec, index: int) -> EvaluatorResult:
            if file is None:
                if not spec.execute_if_no_file:
                    return self._skipped(spec, index, total, progress)
                inputs: list[ContextFile] = []
            else:
                inputs = apply_file_filter(spec.id, [file], self._file_configs, all_files=all_files or [file])
                if not inputs:
                    self._logger.debug("evaluator_filtered_out", type="evaluator_filtered_out", evaluator=spec.id, file=file_path)
                    return EvaluatorResult(evaluator=spec.id, file=file_path)

            prompt = build_single_file_prompt(
                evaluator_prompt=self._prompts.get(spec.prompt_name),
                output_format=self._output_format(spec),
                content=inputs[0].content if inputs else None,
                project_context=project_context,
            )
            return await self._execute(
                spec,
                prompt,
                ids=ids,
                index=index,
                total=total,
                file_path=file_path,
                contents=contents,
                default_content=file.content if file else None,
                progress=progress,
                on_retry=on_retry,
                on_timeout=on_timeout,
            )

        return await run_bounded(
            evaluators,
            _run,
            concurrency=self._concurrency,
            on_error=lambda spec, index, e: self._failed(spec, e, file_path=file_path, progress=progress),
        )

    async def run_unified_evaluation(
        self,
        files: Sequence[ContextFile],
        *,
        evaluators: Sequence[EvaluatorSpec],
        ids: IssueIdSequence,
        project_context: Optional[str] = None,
        progress: Optional[ProgressEmitter] = None,
        on_retry: Optional[RetryHook] = None,
        on_timeout: Optional[TimeoutHook] = None,
    ) -> UnifiedEvaluationResult:
        """Unified mode: every evaluator sees all files in one prompt."""
        progress = progress or ProgressEmitter(None, self._logger)
        contents = {f.relative_path: f.content for f in files}
        total = len(evaluators)

        async def _run(spec: EvaluatorSpec, index: int) -> EvaluatorResult:
            if not files and not spec.execute_if_no_file:
                return self._skipped(spec, index, total, progress)
            inputs = apply_file_filter(spec.id, files, self._file_configs)
            if files and not inputs:
                self._logger.debug("evaluator_filtered_out", type="evaluator_filtered_out", evaluator=spec.id)
                return EvaluatorResult(evaluator=spec.id)

            prompt = build_multi_file_prompt(
                evaluator_prompt=self._prompts.get(spec.prompt_name),
                output_format=self._output_format(spec),
                files=inputs,
                project_context=project_context,
            )
            return await self._execute(
                spec,
                prompt,
                ids=ids,
                index=index,
                total=total,
                file_path=None,
                contents=contents,
                default_content=inputs[0].content if len(inputs) == 1 else None,
                progress=progress,
                on_retry=on_retry,
                on_timeout=on_timeout,
            )

        results = await run_bounded(
            evaluators,
            _run,
            concurrency=self._concurrency,
            on_error=lambda spec, index, e: self._failed(spec, e, file_path=None, progress=progress),
        )

        all_issues = [i for r in results for i in r.issues]
        per_file, cross_file = separate_issues_by_type(all_issues, files)
        return UnifiedEvaluationResult(
            results=results,
            per_file_issues=per_file,
            cross_file_issues=cross_file,
            total_usage=sum_usage(results),
            total_cost_usd=sum(r.cost_usd for r in results),
            total_duration_ms=sum(r.duration_ms for r in results),
        )

    def _output_format(self, spec: EvaluatorSpec) -> str:
        template = self._prompts.get(f"shared/output-format-{spec.issue_type}")
        return render_template(template, CATEGORY=spec.name)

    def _skipped(self, spec: EvaluatorSpec, index: int, total: int, progress: ProgressEmitter) -> EvaluatorResult:
        progress.emit("evaluator.progress", evaluator=spec.id, index=index, total=total, status="skipped")
        return EvaluatorResult(evaluator=spec.id, skipped=True, skip_reason=NO_FILE_SKIP_REASON)

    def _failed(
        self,
        spec: EvaluatorSpec,
        error: Exception,
        *,
        file_path: Optional[str],
        progress: ProgressEmitter,
        duration_ms: int = 0,
        prompt: Optional[str] = None,
    ) -> EvaluatorResult:
        if isinstance(error, (ProviderTimeoutError, asyncio.TimeoutError)):
            category = "timeout"
        elif isinstance(error, ProviderInvocationError):
            category = "provider"
        else:
            category = None
        structured = to_structured_error(
            error,
            evaluator_name=spec.id,
            file_path=file_path,
            severity="partial",
            category=category,
        )
        self._logger.warning(
            "evaluator_failed",
            type="evaluator_failed",
            evaluator=spec.id,
            file=file_path,
            error=structured.message,
            category=structured.category,
        )
        progress.emit("evaluator.progress", evaluator=spec.id, file=file_path, status="failed", error=structured.message)
        return EvaluatorResult(
            evaluator=spec.id,
            file=file_path,
            error=structured.message,
            structured_errors=[structured],
            duration_ms=duration_ms,
            final_prompt=prompt,
        )

    async def _execute(
        self,
        spec: EvaluatorSpec,
        prompt: str,
        *,
        ids: IssueIdSequence,
        index: int,
        total: int,
        file_path: Optional[str],
        contents: Mapping[str, str],
        default_content: Optional[str],
        progress: ProgressEmitter,
        on_retry: Optional[RetryHook],
        on_timeout: Optional[TimeoutHook],
    ) -> EvaluatorResult:
        progress.emit("evaluator.progress", evaluator=spec.id, file=file_path, index=index, total=total, status="started")
        self._logger.info("evaluator_started", type="evaluator_started", evaluator=spec.id, file=file_path, prompt_len=len(prompt))

        def _retry(event: RetryEvent) -> None:
            progress.emit(
                "evaluator.retry",
                evaluator=spec.id,
                file=file_path,
                attempt=event.attempt,
                max_retries=event.max_retries,
                error=event.error,
                delay_ms=event.delay_ms,
            )
            if on_retry is not None:
                on_retry(spec.id, event)

        def _timeout(event: TimeoutEvent) -> None:
            progress.emit(
                "evaluator.timeout",
                evaluator=spec.id,
                file=file_path,
                elapsed_ms=event.elapsed_ms,
                timeout_ms=event.timeout_ms,
            )
            if on_timeout is not None:
                on_timeout(spec.id, event)

        started = time.monotonic()
        try:
            response = await self._provider.invoke_with_retry(
                prompt,
                timeout_ms=self._timeout_ms,
                max_retries=self._max_retries,
                on_retry=_retry,
                on_timeout=_timeout,
            )
        except Exception as e:
            elapsed = int((time.monotonic() - started) * 1000)
            return self._failed(spec, e, file_path=file_path, progress=progress, duration_ms=elapsed, prompt=prompt)

        duration_ms = response.duration_ms if response.duration_ms is not None else int((time.monotonic() - started) * 1000)
        parsed = parse_evaluator_result(
            response.result,
            evaluator=spec.id,
            issue_type=spec.issue_type,
            ids=ids,
            extractor=self._json_extractor,
            file_path=file_path,
        )
        errors: list[StructuredError] = [replace(err, severity="partial") for err in parsed.errors]
        issues: list[Issue] = populate_snippets(parsed.issues, contents, default_content)

        if self._debug_sink is not None:
            name = spec.id if file_path is None else f"{spec.id}--{file_path.replace('/', '_')}"
            self._debug_sink.write(name, f"# PROMPT\n\n{prompt}\n\n# RESPONSE\n\n{response.result}\n")

        if errors:
            self._logger.warning(
                "evaluator_parse_failed",
                type="evaluator_parse_failed",
                evaluator=spec.id,
                file=file_path,
                error=errors[0].message,
            )
        self._logger.info(
            "evaluator_completed",
            type="evaluator_completed",
            evaluator=spec.id,
            file=file_path,
            issues=len(issues),
            dropped=parsed.dropped,
            cost_usd=response.cost_usd or 0.0,
            duration_ms=duration_ms,
        )
        progress.emit(
            "evaluator.progress",
            evaluator=spec.id,
            file=file_path,
            index=index,
            total=total,
            status="failed" if errors else "completed",
            issues=len(issues),
        )
        return EvaluatorResult(
            evaluator=spec.id,
            issues=issues,
            file=file_path,
            error=errors[0].message if errors else None,
            structured_errors=errors,
            usage=response.usage,
            cost_usd=response.cost_usd or 0.0,
            duration_ms=duration_ms,
            final_prompt=prompt,
        )
