from __future__ import annotations

import itertools
from dataclasses import dataclass, fields
from typing import Any, ClassVar, Iterable, Literal, Mapping


IssueType = Literal["error", "suggestion"]
ImpactLevel = Literal["High", "Medium", "Low"]
SeverityBucket = Literal["high", "medium", "low"]

IMPACT_LEVELS: tuple[ImpactLevel, ...] = ("High", "Medium", "Low")

# Used when an error evaluator reports only an impact level
_IMPACT_TO_SEVERITY: dict[str, int] = {"High": 9, "Medium": 6, "Low": 3}


@dataclass(frozen=True)
class Location:
    """Line range inside a context file (1-indexed, inclusive)."""

    start: int
    end: int
    file: str | None = None

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {"start": self.start, "end": self.end}
        if self.file is not None:
            data["file"] = self.file
        return data


class IssueIdSequence:
    """Hands out job-unique issue ids (``issue_1``, ``issue_2``, ...).

    One sequence is shared by every evaluator of a job so that each issue
    receives its id exactly once, when it is constructed.
    """

    def __init__(self, start: int = 1) -> None:
        self._counter = itertools.count(start)

    def next_id(self) -> str:
        return f"issue_{next(self._counter)}"


@dataclass(frozen=True, kw_only=True)
class Issue:
    """Base issue. Instantiate ``ErrorIssue`` or ``SuggestionIssue``."""

    issue_type: ClassVar[IssueType]

    dedup_id: str
    category: str
    problem: str | None = None
    description: str | None = None
    title: str | None = None
    fix: str | None = None
    recommendation: str | None = None
    impact: str | None = None
    location: tuple[Location, ...] = ()
    evaluator_name: str | None = None
    snippet: str | None = None
    snippet_error: str | None = None
    affected_files: tuple[str, ...] = ()
    curation_reason: str | None = None

    def __post_init__(self) -> None:
        if type(self) is Issue:
            raise TypeError("Issue is abstract; use ErrorIssue or SuggestionIssue")
        if not self.dedup_id:
            raise ValueError("dedup_id is required")

    @property
    def primary_location(self) -> Location | None:
        return self.location[0] if self.location else None

    def files(self) -> list[str]:
        """Distinct files referenced by this issue, in order of appearance."""
        seen: list[str] = []
        for loc in self.location:
            if loc.file and loc.file not in seen:
                seen.append(loc.file)
        for f in self.affected_files:
            if f not in seen:
                seen.append(f)
        return seen

    @property
    def is_cross_file(self) -> bool:
        if self.affected_files:
            return True
        return len({loc.file for loc in self.location if loc.file}) >= 2

    def text(self) -> str:
        """Normalized text used for similarity comparisons."""
        for value in (self.problem, self.description, self.title, self.category):
            if value and value.strip():
                return value.lower().strip()
        return ""

    def to_jsonable(self) -> dict[str, object]:
        return issue_to_dict(self)


@dataclass(frozen=True, kw_only=True)
class ErrorIssue(Issue):
    issue_type: ClassVar[IssueType] = "error"

    severity: int

    def __post_init__(self) -> None:
        super().__post_init__()
        if isinstance(self.severity, bool) or not isinstance(self.severity, int):
            raise TypeError(f"severity must be an int, got {type(self.severity).__name__}")
        if not 0 <= self.severity <= 10:
            raise ValueError(f"severity must be within 0-10, got {self.severity}")


@dataclass(frozen=True, kw_only=True)
class SuggestionIssue(Issue):
    issue_type: ClassVar[IssueType] = "suggestion"

    impact_level: ImpactLevel

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.impact_level not in IMPACT_LEVELS:
            raise ValueError(f"impact_level must be one of {IMPACT_LEVELS}, got {self.impact_level!r}")


def issue_severity(issue: Issue) -> SeverityBucket:
    """Bucket an issue into high/medium/low for counting."""
    if isinstance(issue, ErrorIssue):
        if issue.severity >= 8:
            return "high"
        if issue.severity >= 6:
            return "medium"
        return "low"
    if isinstance(issue, SuggestionIssue):
        return issue.impact_level.lower()  # type: ignore[return-value]
    raise TypeError(f"unsupported issue type: {type(issue).__name__}")


def _first_str(raw: Mapping[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = raw.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return None


def _coerce_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(round(value))
    if isinstance(value, str):
        try:
            return int(round(float(value.strip())))
        except ValueError:
            return None
    return None


def _coerce_impact(value: Any) -> ImpactLevel | None:
    if not isinstance(value, str):
        return None
    normalized = value.strip().capitalize()
    if normalized in IMPACT_LEVELS:
        return normalized  # type: ignore[return-value]
    return None


def _parse_location_entry(entry: Any) -> Location | None:
    if isinstance(entry, Mapping):
        start = _coerce_int(entry.get("start"))
        end = _coerce_int(entry.get("end"))
        if start is None:
            return None
        file = entry.get("file")
        return Location(
            start=start,
            end=end if end is not None else start,
            file=file if isinstance(file, str) and file else None,
        )
    if isinstance(entry, str):
        # "AGENTS.md:23-27"
        path, _, span = entry.rpartition(":")
        if not path:
            return None
        lo, _, hi = span.partition("-")
        start = _coerce_int(lo)
        if start is None:
            return None
        end = _coerce_int(hi) if hi else start
        return Location(start=start, end=end if end is not None else start, file=path)
    return None


def parse_locations(raw: Any) -> tuple[Location, ...]:
    if raw is None:
        return ()
    entries = raw if isinstance(raw, list) else [raw]
    parsed = (_parse_location_entry(e) for e in entries)
    return tuple(loc for loc in parsed if loc is not None)


def create_issue(
    raw: Mapping[str, Any],
    *,
    issue_type: IssueType,
    evaluator_name: str | None,
    ids: IssueIdSequence,
) -> Issue | None:
    """Build an issue from one object of an evaluator's JSON response.

    Returns None when the object carries neither a severity nor an impact
    level.
    """
    severity = _coerce_int(raw.get("severity"))
    impact_level = _coerce_impact(raw.get("impactLevel", raw.get("impact_level")))
    if severity is None and impact_level is None:
        return None

    affected = raw.get("affectedFiles", raw.get("affected_files"))
    common: dict[str, Any] = dict(
        category=_first_str(raw, "category") or "Uncategorized",
        problem=_first_str(raw, "problem"),
        description=_first_str(raw, "description"),
        title=_first_str(raw, "title"),
        fix=_first_str(raw, "fix"),
        recommendation=_first_str(raw, "recommendation"),
        impact=_first_str(raw, "impact"),
        location=parse_locations(raw.get("location")),
        evaluator_name=evaluator_name,
        affected_files=tuple(f for f in affected if isinstance(f, str)) if isinstance(affected, list) else (),
    )

    if issue_type == "error":
        if severity is None:
            severity = _IMPACT_TO_SEVERITY[impact_level]  # type: ignore[index]
        return ErrorIssue(dedup_id=ids.next_id(), severity=max(0, min(10, severity)), **common)

    if impact_level is None:
        assert severity is not None
        impact_level = "High" if severity >= 8 else "Medium" if severity >= 6 else "Low"
    return SuggestionIssue(dedup_id=ids.next_id(), impact_level=impact_level, **common)


def issue_to_dict(issue: Issue) -> dict[str, object]:
    data: dict[str, object] = {"issue_type": issue.issue_type}
    for f in fields(issue):
        value = getattr(issue, f.name)
        if f.name == "location":
            data["location"] = [loc.to_dict() for loc in value]
        elif f.name == "affected_files":
            if value:
                data["affected_files"] = list(value)
        elif value is not None:
            data[f.name] = value
    return data


def create_deduplication_id_set(issues: Iterable[Issue]) -> set[str]:
    return {issue.dedup_id for issue in issues}
