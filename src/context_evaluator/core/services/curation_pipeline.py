from __future__ import annotations

from typing import Any, Optional, Sequence

from ..domain.evaluators import get_issue_type
from ..domain.issues import Issue
from ..domain.models import CurationOutput
from ..ports import LoggerPort
from .curator import DEFAULT_TOP_N, ImpactCurator, map_curated_to_original_issues
from .progress import ProgressEmitter


def split_by_issue_type(issues: Sequence[Issue]) -> tuple[list[Issue], list[Issue]]:
    """(errors, suggestions), classified by the producing evaluator."""
    errors: list[Issue] = []
    suggestions: list[Issue] = []
    for issue in issues:
        kind = get_issue_type(issue.evaluator_name) if issue.evaluator_name else issue.issue_type
        (errors if kind == "error" else suggestions).append(issue)
    return errors, suggestions


class CurationPipeline:
    def __init__(
        self,
        *,
        curator: ImpactCurator,
        logger: LoggerPort,
        enabled: bool = True,
        error_top_n: int = DEFAULT_TOP_N,
        suggestion_top_n: int = DEFAULT_TOP_N,
    ) -> None:
        self._curator = curator
        self._logger = logger
        self._enabled = enabled
        self._error_top_n = error_top_n
        self._suggestion_top_n = suggestion_top_n

    async def run(self, issues: Sequence[Issue], progress: Optional[ProgressEmitter] = None) -> CurationOutput:
        if not self._enabled:
            return CurationOutput(enabled=False)
        progress = progress or ProgressEmitter(None, self._logger)
        errors, suggestions = split_by_issue_type(issues)
        output = CurationOutput()

        for issue_type, subset, top_n in (
            ("error", errors, self._error_top_n),
            ("suggestion", suggestions, self._suggestion_top_n),
        ):
            if len(subset) <= top_n:
                continue
            progress.emit("curation.started", total_issues=len(subset), issue_type=issue_type)
            result = await self._curator.curate(subset, issue_type=issue_type, top_n=top_n)
            if result is None:
                progress.emit("curation.completed", curated_count=0, issue_type=issue_type)
                continue
            curated = map_curated_to_original_issues(result, subset)
            progress.emit("curation.completed", curated_count=len(curated), issue_type=issue_type)
            if issue_type == "error":
                output.error_curation = result
                output.curated_errors = curated
            else:
                output.suggestion_curation = result
                output.curated_suggestions = curated
            output.total_cost_usd += result.cost_usd or 0.0
            output.total_duration_ms += result.duration_ms or 0
        return output


def calculate_curation_metadata(output: CurationOutput) -> dict[str, Any]:
    err, sug = output.error_curation, output.suggestion_curation
    return {
        "curation_enabled": output.enabled,
        "errors_curated_count": len(output.curated_errors) if err else None,
        "suggestions_curated_count": len(output.curated_suggestions) if sug else None,
        "error_curation_cost_usd": err.cost_usd if err else None,
        "suggestion_curation_cost_usd": sug.cost_usd if sug else None,
        "error_curation_duration_ms": err.duration_ms if err else None,
        "suggestion_curation_duration_ms": sug.duration_ms if sug else None,
        "total_curated_count": len(output.curated_errors) + len(output.curated_suggestions),
        "total_curation_cost_usd": output.total_cost_usd,
        "total_curation_duration_ms": output.total_duration_ms,
    }
