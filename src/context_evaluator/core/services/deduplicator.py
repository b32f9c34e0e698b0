"""Rule-based (phase 1) issue deduplication.

Issues are first clustered by location: two issues belong together when
they point at the same file and their line ranges, widened by the
tolerance, intersect. Inside a location cluster, pairs whose text
similarity reaches the threshold are merged through union-find and each
merged group keeps a single representative. Location clusters without a
similar pair are kept whole and handed to the semantic phase as location
candidates. Independently, issues that mention the same database, ORM or
IP address are handed over as entity candidates.
"""

from __future__ import annotations

import re
from collections import defaultdict
from typing import Sequence

from ..domain.issues import ErrorIssue, Issue, Location, SuggestionIssue
from ..domain.models import DeduplicationCluster, Phase1Result


DEFAULT_LOCATION_TOLERANCE = 5
DEFAULT_SIMILARITY_THRESHOLD = 0.55

_DATABASE_RE = re.compile(
    r"\b(mysql|postgresql|postgres|mongodb|mongo|sqlite|mariadb|redis|cassandra|dynamodb|oracle|mssql|sqlserver)\b",
    re.IGNORECASE,
)
_ORM_RE = re.compile(
    r"\b(typeorm|mongoose|prisma|sequelize|knex|bookshelf|objection|mikro-orm|mikroorm|drizzle)\b",
    re.IGNORECASE,
)
_IPV4_RE = re.compile(r"\b(\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})\b")

_IMPACT_POINTS = {"High": 80, "Medium": 50, "Low": 30}


def levenshtein_distance(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def text_similarity(a: str, b: str) -> float:
    """0.6 * normalized Levenshtein similarity + 0.4 * word Jaccard."""
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    lev = 1 - levenshtein_distance(a, b) / max(len(a), len(b))
    words_a, words_b = set(a.split()), set(b.split())
    union = words_a | words_b
    jaccard = len(words_a & words_b) / len(union) if union else 0.0
    return 0.6 * lev + 0.4 * jaccard


def locations_overlap(first: Sequence[Location], second: Sequence[Location], tolerance: int) -> bool:
    for a in first:
        for b in second:
            if a.file != b.file:
                continue
            if not (a.end + tolerance < b.start - tolerance or b.end + tolerance < a.start - tolerance):
                return True
    return False


def cluster_by_location(issues: Sequence[Issue], tolerance: int) -> list[list[Issue]]:
    """Greedy clustering around the first unclustered issue; issues without a location stay alone."""
    clusters: list[list[Issue]] = []
    taken = [False] * len(issues)
    for i, issue in enumerate(issues):
        if taken[i]:
            continue
        taken[i] = True
        cluster = [issue]
        for j in range(i + 1, len(issues)):
            if not taken[j] and locations_overlap(issue.location, issues[j].location, tolerance):
                cluster.append(issues[j])
                taken[j] = True
        clusters.append(cluster)
    return clusters


def representative_score(issue: Issue) -> float:
    if isinstance(issue, ErrorIssue):
        score = float(issue.severity * 10)
    elif isinstance(issue, SuggestionIssue):
        score = float(_IMPACT_POINTS.get(issue.impact_level, 0))
    else:
        score = 0.0
    if issue.problem:
        score += 5
    if issue.impact:
        score += 5
    if issue.fix or issue.recommendation:
        score += 5
    if issue.snippet:
        score += 3
    if issue.description:
        score += len(issue.description) / 100
    return score


def select_representative(issues: Sequence[Issue]) -> Issue:
    """Highest score wins; ties keep the first issue seen."""
    if not issues:
        raise ValueError("cannot select a representative from an empty group")
    best = issues[0]
    best_score = representative_score(best)
    for issue in issues[1:]:
        score = representative_score(issue)
        if score > best_score:
            best, best_score = issue, score
    return best


def _similar_groups(cluster: Sequence[Issue], threshold: float) -> list[tuple[list[Issue], float]]:
    texts = [issue.text() for issue in cluster]
    pairs: list[tuple[int, int, float]] = []
    for i in range(len(cluster)):
        for j in range(i + 1, len(cluster)):
            sim = text_similarity(texts[i], texts[j])
            if sim >= threshold:
                pairs.append((i, j, sim))
    if not pairs:
        return []

    parent = list(range(len(cluster)))

    def find(x: int) -> int:
        while parent[x] != x:
            parent[x] = parent[parent[x]]
            x = parent[x]
        return x

    for i, j, _ in pairs:
        ri, rj = find(i), find(j)
        if ri != rj:
            parent[rj] = ri

    members: dict[int, list[int]] = defaultdict(list)
    for i in range(len(cluster)):
        members[find(i)].append(i)

    groups = []
    for indices in members.values():
        index_set = set(indices)
        sims = [s for i, j, s in pairs if i in index_set and j in index_set]
        avg = sum(sims) / len(sims) if sims else 1.0
        groups.append(([cluster[i] for i in indices], avg))
    return groups


def extract_entities(issue: Issue) -> set[str]:
    text = " ".join(
        value for value in (issue.problem, issue.description, issue.title, issue.impact, issue.recommendation) if value
    )
    entities = {m.lower() for m in _DATABASE_RE.findall(text)}
    entities.update(m.lower() for m in _ORM_RE.findall(text))
    entities.update(_IPV4_RE.findall(text))
    return entities


def shared_entities(issues: Sequence[Issue]) -> list[str]:
    """Entities mentioned by at least two of ``issues``, sorted."""
    counts: dict[str, int] = defaultdict(int)
    for issue in issues:
        for entity in extract_entities(issue):
            counts[entity] += 1
    return sorted(e for e, n in counts.items() if n >= 2)


def find_entity_candidates(issues: Sequence[Issue], min_issues: int = 2) -> list[DeduplicationCluster]:
    """Group issues by shared entity; identical memberships collapse into one cluster."""
    by_entity: dict[str, list[Issue]] = defaultdict(list)
    for issue in issues:
        for entity in sorted(extract_entities(issue)):
            by_entity[entity].append(issue)

    seen: set[tuple[str, ...]] = set()
    clusters: list[DeduplicationCluster] = []
    for group in by_entity.values():
        if len(group) < min_issues:
            continue
        key = tuple(i.dedup_id for i in group)
        if key in seen:
            continue
        seen.add(key)
        clusters.append(
            DeduplicationCluster(
                kind="entity_candidate",
                issues=tuple(group),
                shared_entities=tuple(shared_entities(group)),
            )
        )
    return clusters


def deduplicate_issues(
    issues: Sequence[Issue],
    *,
    location_tolerance: int = DEFAULT_LOCATION_TOLERANCE,
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
) -> Phase1Result:
    kept_ids: set[str] = set()
    removed: list[Issue] = []
    merged: list[DeduplicationCluster] = []
    location_candidates: list[DeduplicationCluster] = []

    for cluster in cluster_by_location(issues, location_tolerance):
        if len(cluster) < 2:
            kept_ids.add(cluster[0].dedup_id)
            continue

        groups = _similar_groups(cluster, similarity_threshold)
        if not groups:
            kept_ids.update(i.dedup_id for i in cluster)
            location_candidates.append(DeduplicationCluster(kind="location_candidate", issues=tuple(cluster)))
            continue

        for group, similarity in groups:
            representative = select_representative(group)
            kept_ids.add(representative.dedup_id)
            if len(group) < 2:
                continue
            removed.extend(i for i in group if i is not representative)
            merged.append(
                DeduplicationCluster(
                    kind="merged",
                    issues=tuple(group),
                    representative=representative,
                    similarity=similarity,
                )
            )

    return Phase1Result(
        deduplicated=[i for i in issues if i.dedup_id in kept_ids],
        removed=removed,
        clusters=merged,
        location_candidates=location_candidates,
        entity_candidates=find_entity_candidates(issues),
    )
