"""CLI output formatting utilities for human-readable display."""

from __future__ import annotations

from ..core.domain.evaluators import EvaluatorSpec
from ..core.domain.events import ProgressEvent
from ..core.domain.issues import ErrorIssue, Issue, SuggestionIssue
from ..core.domain.models import EvaluationOutput


def _issue_line(issue: Issue) -> str:
    if isinstance(issue, ErrorIssue):
        tag = f"[E{issue.severity}]"
    elif isinstance(issue, SuggestionIssue):
        tag = f"[S:{issue.impact_level}]"
    else:
        tag = "[?]"
    where = ""
    loc = issue.primary_location
    if loc is not None:
        file_part = loc.file or ""
        where = f" ({file_part}:{loc.start})" if file_part else f" (L{loc.start})"
    text = issue.problem or issue.title or issue.description or ""
    return f"{tag} {issue.category}: {text}{where}"


def format_evaluation_output(output: EvaluationOutput) -> str:
    """Format evaluation output for human-readable CLI output.

    Args:
        output: Evaluation output

    Returns:
        Formatted string for display
    """
    meta = output.metadata
    lines = []
    lines.append("=" * 80)
    lines.append("CONTEXT EVALUATION")
    lines.append("=" * 80)

    lines.append(f"\nAgent: {meta.agent} | Mode: {meta.evaluation_mode}")
    lines.append(f"Files evaluated: {meta.total_files}")
    for path in meta.files_evaluated:
        lines.append(f"  - {path}")

    score = meta.context_score
    if score is not None:
        lines.append("\n" + "-" * 80)
        lines.append("CONTEXT SCORE")
        lines.append("-" * 80)
        lines.append(f"\n{score.score}/10 ({score.grade})")
        lines.append(f"\n{score.summary}")
        if score.recommendations:
            lines.append("\nRecommendations:")
            for i, rec in enumerate(score.recommendations, 1):
                lines.append(f"  {i}. {rec}")

    lines.append("\n" + "-" * 80)
    lines.append(f"ISSUES ({meta.error_count} errors, {meta.suggestion_count} suggestions)")
    lines.append("-" * 80)

    curation = meta.curation
    if curation is not None and (curation.curated_errors or curation.curated_suggestions):
        lines.append("\nTop issues by impact:")
        for issue in curation.curated_errors + curation.curated_suggestions:
            lines.append(f"  {_issue_line(issue)}")
            if issue.curation_reason:
                lines.append(f"      why: {issue.curation_reason}")
    elif output.issues:
        lines.append("")
        for issue in output.issues:
            lines.append(f"  {_issue_line(issue)}")
    else:
        lines.append("\nNo issues found.")

    if meta.failed_evaluators:
        lines.append("\nFailed evaluators:")
        for failed in meta.failed_evaluators:
            suffix = f" [{failed.file}]" if failed.file else ""
            lines.append(f"  - {failed.evaluator}{suffix}: {failed.message}")

    lines.append(f"\nCost: ${meta.cost_usd:.4f} | Duration: {meta.duration_ms / 1000:.1f}s")
    lines.append("\n" + "=" * 80)

    return "\n".join(lines)


def format_evaluator_list(evaluators: list[EvaluatorSpec]) -> str:
    """Format the evaluator catalog for human-readable CLI output."""
    width = max((len(e.id) for e in evaluators), default=0)
    lines = [f"{e.id.ljust(width)}  {e.issue_type:<10}  {e.name}" for e in evaluators]
    lines.append(f"\nTotal: {len(evaluators)}")
    return "\n".join(lines)


def format_progress_event(event: ProgressEvent) -> str | None:
    """One status line per progress event; None for events not shown."""
    data = event.data
    if event.type == "discovery.completed":
        return f"Found {data.get('files_found', 0)} context file(s)"
    if event.type == "job.started":
        return f"Running {data.get('evaluators')} evaluator(s) in {data.get('evaluation_mode')} mode"
    if event.type == "file.started":
        return f"[{data.get('index', 0) + 1}/{data.get('total')}] {data.get('file')}"
    if event.type == "evaluator.retry":
        return f"  retry {data.get('attempt')}/{data.get('max_retries')} for {data.get('evaluator')}: {data.get('error')}"
    if event.type == "evaluator.timeout":
        return f"  {data.get('evaluator')} timed out"
    if event.type == "curation.started":
        return f"Curating {data.get('total_issues')} {data.get('issue_type')}(s)"
    if event.type == "evaluation.warning":
        return f"Warning: {data.get('message')}"
    return None
