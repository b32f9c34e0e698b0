from __future__ import annotations

import json
import time
from dataclasses import replace
from typing import Any, Optional, Sequence

from ..domain.issues import ErrorIssue, Issue, IssueType
from ..domain.models import CuratedIssue, CurationResult
from ..domain.prompt import render_template
from ..ports import AIProviderPort, LoggerPort, PromptSourcePort
from .json_extractor import JsonExtractor


PROMPT_NAME = "shared/impact-curation"
DEFAULT_TOP_N = 30
MAX_ISSUES_FOR_CURATION = 150
MAX_SNIPPET_LENGTH_FOR_CURATION = 50


def format_issues_for_curation(issues: Sequence[Issue]) -> list[dict[str, Any]]:
    formatted = []
    for index, issue in enumerate(issues):
        loc = issue.primary_location
        item: dict[str, Any] = {
            "id": index,
            "category": issue.category,
            "severity": issue.severity if isinstance(issue, ErrorIssue) else 0,
            "problem": issue.problem or issue.description or issue.title or "",
            "impact": issue.impact,
            "fix": issue.fix or issue.recommendation,
            "location": [l.to_dict() for l in issue.location],
            "file": loc.file if loc else None,
        }
        if issue.snippet and len(issue.snippet) < MAX_SNIPPET_LENGTH_FOR_CURATION:
            item["snippet"] = issue.snippet
        formatted.append(item)
    return formatted


def parse_curated_issues(parsed: Optional[dict[str, Any]]) -> Optional[list[CuratedIssue]]:
    if not parsed or not isinstance(parsed.get("curatedIssues"), list):
        return None
    curated = []
    for raw in parsed["curatedIssues"]:
        if not isinstance(raw, dict):
            continue
        index = raw.get("originalIndex")
        if isinstance(index, bool) or not isinstance(index, int):
            continue
        curated.append(CuratedIssue(original_index=index, reason=str(raw.get("reason", ""))))
    return curated


def map_curated_to_original_issues(result: CurationResult, issues: Sequence[Issue]) -> list[Issue]:
    """Selected issues with their curation reason; indices outside the list are dropped."""
    return [
        replace(issues[c.original_index], curation_reason=c.reason)
        for c in result.curated_issues
        if 0 <= c.original_index < len(issues)
    ]


class ImpactCurator:
    """Asks the AI provider to pick the highest-impact issues of one type."""

    def __init__(
        self,
        *,
        provider: AIProviderPort,
        prompts: PromptSourcePort,
        logger: LoggerPort,
        json_extractor: JsonExtractor,
        timeout_ms: Optional[int] = None,
    ) -> None:
        self._provider = provider
        self._prompts = prompts
        self._logger = logger
        self._json_extractor = json_extractor
        self._timeout_ms = timeout_ms

    def build_prompt(self, issues: Sequence[Issue], top_n: int) -> str:
        template = render_template(self._prompts.get(PROMPT_NAME), TOP_N=top_n)
        issues_json = json.dumps(format_issues_for_curation(issues), indent=2, ensure_ascii=False)
        return f"{template}\n```json\n{issues_json}\n```"

    async def curate(
        self,
        issues: Sequence[Issue],
        *,
        issue_type: IssueType,
        top_n: int = DEFAULT_TOP_N,
    ) -> Optional[CurationResult]:
        """Curated selection, or None when not needed or when the AI answer is unusable.

        The ``original_index`` values refer to ``issues[:MAX_ISSUES_FOR_CURATION]``.
        """
        if len(issues) <= top_n:
            return None

        to_curate = list(issues[:MAX_ISSUES_FOR_CURATION])
        if len(issues) > MAX_ISSUES_FOR_CURATION:
            self._logger.warning(
                "curation_truncated",
                type="curation_truncated",
                issue_type=issue_type,
                total=len(issues),
                processed=len(to_curate),
            )

        started = time.monotonic()
        try:
            response = await self._provider.invoke_with_retry(self.build_prompt(to_curate, top_n), timeout_ms=self._timeout_ms)
        except Exception as e:
            self._logger.warning("curation_failed", type="curation_failed", issue_type=issue_type, error=str(e))
            return None
        duration_ms = int((time.monotonic() - started) * 1000)

        curated = parse_curated_issues(self._json_extractor.extract_object(response.result or "", "curatedIssues"))
        if curated is None:
            self._logger.warning(
                "curation_unparsable",
                type="curation_unparsable",
                issue_type=issue_type,
                preview=(response.result or "")[:500],
            )
            return None

        self._logger.info(
            "curation_completed",
            type="curation_completed",
            issue_type=issue_type,
            selected=len(curated),
            reviewed=len(to_curate),
            cost_usd=response.cost_usd or 0.0,
            duration_ms=duration_ms,
        )
        return CurationResult(
            curated_issues=tuple(curated),
            total_issues_reviewed=len(to_curate),
            cost_usd=response.cost_usd,
            duration_ms=duration_ms,
        )
