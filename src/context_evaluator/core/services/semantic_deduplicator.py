from __future__ import annotations

import json
import time
from typing import Any, Optional, Sequence

from ..domain.issues import Issue
from ..domain.models import DeduplicationCluster, DuplicateGroup, SemanticDeduplicationResult
from ..domain.prompt import render_template
from ..ports import AIProviderPort, LoggerPort, PromptSourcePort
from .json_extractor import JsonExtractor


PROMPT_NAME = "shared/semantic-deduplication"
DEFAULT_MAX_ISSUES_FOR_AI = 500


def format_issues_for_deduplication(
    issues: Sequence[Issue],
    location_candidates: Sequence[DeduplicationCluster] = (),
    entity_candidates: Sequence[DeduplicationCluster] = (),
) -> list[dict[str, Any]]:
    """Compact representation of each issue for the semantic prompt; ``id`` is the list index."""
    location_ids = {i.dedup_id for c in location_candidates for i in c.issues}
    entity_map: dict[str, list[str]] = {}
    for cluster in entity_candidates:
        for issue in cluster.issues:
            entity_map[issue.dedup_id] = list(cluster.shared_entities)

    formatted = []
    for index, issue in enumerate(issues):
        loc = issue.primary_location
        item: dict[str, Any] = {
            "id": index,
            "category": issue.category,
            "problem": issue.problem or issue.description or issue.title or "",
            "title": issue.title,
            "file": loc.file if loc else None,
            "locationCandidate": issue.dedup_id in location_ids,
            "entityCandidate": issue.dedup_id in entity_map,
        }
        if issue.dedup_id in entity_map:
            item["sharedEntities"] = entity_map[issue.dedup_id]
        formatted.append(item)
    return formatted


def parse_duplicate_groups(parsed: Optional[dict[str, Any]], issue_count: int) -> list[DuplicateGroup]:
    """Valid groups only; out-of-range indices are discarded."""
    if not parsed or not isinstance(parsed.get("groups"), list):
        return []
    groups: list[DuplicateGroup] = []
    for raw in parsed["groups"]:
        if not isinstance(raw, dict):
            continue
        rep = raw.get("representativeIndex")
        dups = raw.get("duplicateIndices")
        if not isinstance(rep, int) or not 0 <= rep < issue_count or not isinstance(dups, list):
            continue
        indices = tuple(
            d for d in dups
            if isinstance(d, int) and not isinstance(d, bool) and 0 <= d < issue_count and d != rep
        )
        if not indices:
            continue
        groups.append(DuplicateGroup(representative_index=rep, duplicate_indices=indices, reason=str(raw.get("reason", ""))))
    return groups


class SemanticDeduplicator:
    """Phase 2: asks the AI provider which surviving issues say the same thing.

    Fail-open: an unusable response or a provider error keeps every issue.
    """

    def __init__(
        self,
        *,
        provider: AIProviderPort,
        prompts: PromptSourcePort,
        logger: LoggerPort,
        json_extractor: JsonExtractor,
        max_issues_for_ai: int = DEFAULT_MAX_ISSUES_FOR_AI,
        timeout_ms: Optional[int] = None,
    ) -> None:
        self._provider = provider
        self._prompts = prompts
        self._logger = logger
        self._json_extractor = json_extractor
        self._max_issues_for_ai = max_issues_for_ai
        self._timeout_ms = timeout_ms

    def build_prompt(self, formatted: list[dict[str, Any]]) -> str:
        template = self._prompts.get(PROMPT_NAME)
        return render_template(template, ISSUES=json.dumps(formatted, indent=2, ensure_ascii=False))

    async def deduplicate(
        self,
        issues: Sequence[Issue],
        *,
        location_candidates: Sequence[DeduplicationCluster] = (),
        entity_candidates: Sequence[DeduplicationCluster] = (),
    ) -> SemanticDeduplicationResult:
        issues = list(issues)
        if not issues:
            return SemanticDeduplicationResult(groups=[], kept=[], removed=[], original_count=0, final_count=0)

        to_process = issues[: self._max_issues_for_ai]
        if len(issues) > len(to_process):
            self._logger.warning(
                "semantic_dedup_truncated",
                type="semantic_dedup_truncated",
                total=len(issues),
                processed=len(to_process),
            )

        started = time.monotonic()
        try:
            prompt = self.build_prompt(format_issues_for_deduplication(to_process, location_candidates, entity_candidates))
            response = await self._provider.invoke_with_retry(prompt, timeout_ms=self._timeout_ms)
        except Exception as e:
            self._logger.warning("semantic_dedup_failed", type="semantic_dedup_failed", error=str(e))
            return SemanticDeduplicationResult(
                groups=[],
                kept=issues,
                removed=[],
                original_count=len(issues),
                final_count=len(issues),
            )
        duration_ms = int((time.monotonic() - started) * 1000)

        parsed = self._json_extractor.extract_object(response.result or "", "groups")
        if parsed is None or not isinstance(parsed.get("groups"), list):
            self._logger.warning(
                "semantic_dedup_unparsable",
                type="semantic_dedup_unparsable",
                preview=(response.result or "")[:500],
            )
        groups = parse_duplicate_groups(parsed, len(to_process))

        removed_indices = {d for g in groups for d in g.duplicate_indices}
        kept = [issue for idx, issue in enumerate(issues) if idx not in removed_indices]
        removed = [issue for idx, issue in enumerate(issues) if idx in removed_indices]

        self._logger.info(
            "semantic_dedup_completed",
            type="semantic_dedup_completed",
            groups=len(groups),
            removed=len(removed),
            cost_usd=response.cost_usd or 0.0,
            duration_ms=duration_ms,
        )
        return SemanticDeduplicationResult(
            groups=groups,
            kept=kept,
            removed=removed,
            original_count=len(issues),
            final_count=len(kept),
            cost_usd=response.cost_usd or 0.0,
            duration_ms=duration_ms,
        )
