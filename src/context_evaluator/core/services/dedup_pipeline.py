from __future__ import annotations

from typing import Optional, Sequence

from ..domain.issues import Issue
from ..domain.models import DeduplicationPhaseStats, DeduplicationResult
from ..ports import LoggerPort
from .deduplicator import DEFAULT_LOCATION_TOLERANCE, DEFAULT_SIMILARITY_THRESHOLD, deduplicate_issues
from .semantic_deduplicator import SemanticDeduplicator


class DeduplicationPipeline:
    """Rule-based phase followed by the AI semantic phase.

    Either phase can be switched off; with both off the input passes
    through unchanged.
    """

    def __init__(
        self,
        *,
        logger: LoggerPort,
        semantic: Optional[SemanticDeduplicator] = None,
        enabled: bool = True,
        phase1_enabled: bool = True,
        phase2_enabled: bool = True,
        location_tolerance: int = DEFAULT_LOCATION_TOLERANCE,
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    ) -> None:
        self._logger = logger
        self._semantic = semantic
        self._enabled = enabled
        self._phase1_enabled = phase1_enabled
        self._phase2_enabled = phase2_enabled and semantic is not None
        self._location_tolerance = location_tolerance
        self._similarity_threshold = similarity_threshold

    async def run(self, issues: Sequence[Issue]) -> DeduplicationResult:
        issues = list(issues)
        result = DeduplicationResult(deduplicated=issues, original_count=len(issues))
        if not self._enabled or not issues:
            return result

        current = issues
        location_candidates = []
        entity_candidates = []

        if self._phase1_enabled:
            phase1 = deduplicate_issues(
                current,
                location_tolerance=self._location_tolerance,
                similarity_threshold=self._similarity_threshold,
            )
            result.phase1 = DeduplicationPhaseStats(
                original_count=len(current),
                final_count=len(phase1.deduplicated),
                removed=len(phase1.removed),
                clusters=len(phase1.clusters),
            )
            self._logger.info(
                "dedup_phase1_completed",
                type="dedup_phase1_completed",
                original_count=len(current),
                final_count=len(phase1.deduplicated),
                clusters=len(phase1.clusters),
                location_candidates=len(phase1.location_candidates),
                entity_candidates=len(phase1.entity_candidates),
            )
            current = phase1.deduplicated
            location_candidates = phase1.location_candidates
            entity_candidates = phase1.entity_candidates

        if self._phase2_enabled and len(current) > 1:
            assert self._semantic is not None
            phase2 = await self._semantic.deduplicate(
                current,
                location_candidates=location_candidates,
                entity_candidates=entity_candidates,
            )
            result.phase2 = DeduplicationPhaseStats(
                original_count=phase2.original_count,
                final_count=phase2.final_count,
                removed=len(phase2.removed),
                groups=len(phase2.groups),
                cost_usd=phase2.cost_usd,
                duration_ms=phase2.duration_ms,
            )
            current = phase2.kept

        result.deduplicated = current
        result.total_removed = len(issues) - len(current)
        result.total_clusters = (result.phase1.clusters if result.phase1 else 0) + (
            result.phase2.groups if result.phase2 else 0
        )
        return result
