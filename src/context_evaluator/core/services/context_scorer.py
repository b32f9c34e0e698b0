"""Context quality score (1-10) for a repository's agent context files.

score = clamp(1, 10, BASE + setup bonus - issue penalty), rounded to one
decimal. The AI is only asked to phrase the summary and recommendations;
the number itself is deterministic.
"""
from __future__ import annotations

import math
import re
import time
from dataclasses import dataclass
from typing import Optional, Sequence

from ..domain.evaluators import get_issue_type
from ..domain.issues import ErrorIssue, Issue, SeverityBucket
from ..domain.models import (
    ContextScore,
    ContextScoreBreakdown,
    Grade,
    IssuePenalty,
    LocTier,
    ProjectInputs,
    ScoreContext,
    SetupBonus,
)
from ..domain.prompt import render_template
from ..ports import AIProviderPort, LoggerPort, PromptSourcePort
from .json_extractor import JsonExtractor


BASE_SCORE = 6.0
MAX_AGENTS_FILES_BONUS = 2.5
MAX_SKILLS_BONUS = 1.0
MAX_LINKED_DOCS_BONUS = 1.0
MAX_SETUP_BONUS = 4.5
MAX_ISSUE_PENALTY = 3.0
NO_FILES_SCORE = 3.5
NO_FILES_PENALTY = 2.5

LOC_TIERS: tuple[tuple[LocTier, float, int], ...] = (
    ("small", 5_000, 5),
    ("medium", 25_000, 10),
    ("large", 100_000, 15),
    ("enterprise", math.inf, 20),
)
SEVERITY_WEIGHTS: dict[SeverityBucket, float] = {"high": 0.45, "medium": 0.15, "low": 0.05}
ISSUE_TYPE_WEIGHTS = {"error": 1.0, "suggestion": 0.2}

EXPLANATION_PROMPT_NAME = "shared/context-score-explanation"

NO_FILES_SUMMARY = "No AGENTS.md files found. AI agents have no context guidance for this repository."
NO_FILES_RECOMMENDATIONS = (
    "Bootstrap an AGENTS.md file at the repository root to provide essential AI context.",
    "Document key context gaps: project architecture, coding conventions, and testing requirements.",
    "Add technology stack details and critical workflows that AI agents need to understand.",
)

_LOC_LINE = re.compile(r":\s*([\d,]+)")


def _round2(value: float) -> float:
    return round(value * 100) / 100


def calculate_agents_files_bonus(count: int) -> float:
    """1 file -> 1.5, 2 -> 1.9, 3 -> 2.13, capped at 2.5."""
    if count <= 0:
        return 0.0
    return min(MAX_AGENTS_FILES_BONUS, _round2(1.5 + 0.4 * math.log2(count)))


def calculate_skills_bonus(count: int) -> float:
    if count <= 0:
        return 0.0
    return min(MAX_SKILLS_BONUS, _round2(0.2 * math.log2(1 + count)))


def calculate_linked_docs_bonus(count: int) -> float:
    if count <= 0:
        return 0.0
    return min(MAX_LINKED_DOCS_BONUS, _round2(0.2 * math.log2(1 + count)))


def calculate_setup_bonus(agents_files: int, skills: int, linked_docs: int) -> SetupBonus:
    agents = calculate_agents_files_bonus(agents_files)
    skills_bonus = calculate_skills_bonus(skills)
    docs = calculate_linked_docs_bonus(linked_docs)
    return SetupBonus(
        agents_files_bonus=agents,
        skills_bonus=skills_bonus,
        linked_docs_bonus=docs,
        total=_round2(min(MAX_SETUP_BONUS, agents + skills_bonus + docs)),
    )


def parse_total_loc(summary: Optional[str]) -> int:
    """Sum per-language line counts, e.g. ``"Python: 15,234\\nShell: 342"``."""
    if not summary:
        return 0
    total = 0
    for line in summary.splitlines():
        match = _LOC_LINE.search(line)
        if match:
            digits = match.group(1).replace(",", "")
            if digits:
                total += int(digits)
    return total


def get_loc_tier(total_loc: int) -> LocTier:
    for tier, max_loc, _ in LOC_TIERS:
        if total_loc < max_loc:
            return tier
    return "enterprise"


def get_issue_allowance(tier: LocTier) -> int:
    for name, _, allowance in LOC_TIERS:
        if name == tier:
            return allowance
    raise ValueError(f"unknown LOC tier: {tier}")


def get_maturity_factor(issues_per_file: float) -> float:
    if issues_per_file <= 1:
        return 0.7
    if issues_per_file <= 2:
        return 0.85
    return 1.0


def get_grade(score: float) -> Grade:
    if score >= 8.5:
        return "Excellent"
    if score >= 6.5:
        return "Good"
    if score >= 4.5:
        return "Fair"
    if score >= 3.0:
        return "Developing"
    return "Getting Started"


def _classify(issue: Issue) -> str:
    if issue.evaluator_name:
        return get_issue_type(issue.evaluator_name)
    return issue.issue_type


def _bucket(issue: Issue) -> SeverityBucket:
    # Suggestions have no numeric severity and count as low
    if isinstance(issue, ErrorIssue):
        if issue.severity >= 8:
            return "high"
        if issue.severity >= 6:
            return "medium"
    return "low"


def calculate_issue_penalty(
    issues: Sequence[Issue],
    *,
    allowance: int,
    agents_file_count: int,
) -> tuple[IssuePenalty, dict[str, int]]:
    """Penalty plus the per-type / per-bucket counts it was computed from."""
    counts = {"error": 0, "suggestion": 0, "high": 0, "medium": 0, "low": 0}
    weighted = 0.0
    for issue in issues:
        kind = "suggestion" if _classify(issue) == "suggestion" else "error"
        bucket = _bucket(issue)
        counts[kind] += 1
        counts[bucket] += 1
        weighted += SEVERITY_WEIGHTS[bucket] * ISSUE_TYPE_WEIGHTS[kind]

    excess = max(0.0, weighted - allowance * 0.5)
    raw_penalty = math.log2(1 + excess) * 1.2
    per_file = len(issues) / agents_file_count if agents_file_count > 0 else float(len(issues))
    maturity = get_maturity_factor(per_file)
    penalty = min(MAX_ISSUE_PENALTY, raw_penalty * maturity)
    return (
        IssuePenalty(
            weighted_issue_count=_round2(weighted),
            issue_allowance=allowance,
            excess_issues=_round2(excess),
            maturity_factor=maturity,
            penalty=_round2(penalty),
        ),
        counts,
    )


def compute_context_score(
    issues: Sequence[Issue],
    *,
    files_found: int,
    inputs: Optional[ProjectInputs] = None,
) -> ContextScoreBreakdown:
    if inputs is not None and inputs.agents_file_paths:
        agents_count = len(inputs.agents_file_paths)
    else:
        agents_count = files_found
    skills_count = len(inputs.skills) if inputs else 0
    docs_count = len(inputs.linked_docs) if inputs else 0

    bonus = calculate_setup_bonus(agents_count, skills_count, docs_count)
    total_loc = parse_total_loc(inputs.technical_inventory if inputs else None)
    tier = get_loc_tier(total_loc)
    penalty, counts = calculate_issue_penalty(
        issues, allowance=get_issue_allowance(tier), agents_file_count=agents_count
    )
    return ContextScoreBreakdown(
        base_score=BASE_SCORE,
        setup_bonus=bonus,
        issue_penalty=penalty,
        context=ScoreContext(
            loc_tier=tier,
            total_loc=total_loc,
            agents_file_count=agents_count,
            skills_count=skills_count,
            linked_docs_count=docs_count,
            error_count=counts["error"],
            suggestion_count=counts["suggestion"],
            high_count=counts["high"],
            medium_count=counts["medium"],
            low_count=counts["low"],
        ),
    )


def calculate_score(breakdown: ContextScoreBreakdown) -> float:
    raw = breakdown.base_score + breakdown.setup_bonus.total - breakdown.issue_penalty.penalty
    return round(max(1.0, min(10.0, raw)), 1)


def default_summary(breakdown: ContextScoreBreakdown, grade: Grade) -> str:
    ctx = breakdown.context
    if ctx.agents_file_count == 0:
        return NO_FILES_SUMMARY
    if grade == "Excellent":
        return "Your AGENTS.md files provide excellent context for AI agents with minimal issues."
    if grade == "Good":
        return f"Your AGENTS.md files provide good context with {ctx.error_count} minor errors to address."
    if grade == "Fair":
        return (
            f"Your AGENTS.md files need improvement. Found {ctx.error_count} errors "
            f"and {ctx.suggestion_count} suggestions."
        )
    if grade == "Developing":
        return f"Your AGENTS.md files have significant issues. {ctx.high_count} high-severity problems require attention."
    return f"Critical issues in AGENTS.md files. {ctx.high_count} high-severity problems found."


def default_recommendations(breakdown: ContextScoreBreakdown) -> list[str]:
    ctx = breakdown.context
    if ctx.agents_file_count == 0:
        return list(NO_FILES_RECOMMENDATIONS)

    recs: list[str] = []
    if ctx.high_count > 0:
        recs.append("Address high-severity issues first; they significantly impact AI agent effectiveness.")
    if ctx.skills_count == 0:
        recs.append("Add SKILL.md files to define reusable workflows for AI agents.")
    if ctx.linked_docs_count == 0:
        recs.append("Link relevant documentation from your AGENTS.md to provide deeper context.")
    if ctx.suggestion_count > ctx.error_count:
        recs.append("Consider adding AGENTS.md files to subdirectories for better coverage.")
    recs.append("Regularly review and update AGENTS.md files as your codebase evolves.")
    return recs[:3]


@dataclass(frozen=True)
class NarrativeResult:
    """Outcome of the AI narrative call: either text or the error that prevented it."""

    summary: str = ""
    recommendations: tuple[str, ...] = ()
    error: Optional[str] = None
    cost_usd: float = 0.0
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


def _top_issues(issues: Sequence[Issue], limit: int = 5) -> str:
    high = [i for i in issues if isinstance(i, ErrorIssue) and i.severity >= 8][:limit]
    return "\n".join(
        f"- [HIGH] {i.category}: {i.title or i.problem or i.description or 'No description'}" for i in high
    )


class ContextScorer:
    def __init__(
        self,
        *,
        provider: Optional[AIProviderPort],
        prompts: PromptSourcePort,
        logger: LoggerPort,
        json_extractor: JsonExtractor,
        ai_explanation: bool = True,
        timeout_ms: Optional[int] = 60_000,
    ) -> None:
        self._provider = provider
        self._prompts = prompts
        self._logger = logger
        self._json_extractor = json_extractor
        self._ai_explanation = ai_explanation and provider is not None
        self._timeout_ms = timeout_ms

    def build_prompt(self, score: float, breakdown: ContextScoreBreakdown, issues: Sequence[Issue]) -> str:
        ctx = breakdown.context
        bonus = breakdown.setup_bonus
        top = _top_issues(issues)
        return render_template(
            self._prompts.get(EXPLANATION_PROMPT_NAME),
            SCORE=score,
            GRADE=get_grade(score),
            AGENTS_FILES=ctx.agents_file_count,
            AGENTS_BONUS=bonus.agents_files_bonus,
            SKILLS=ctx.skills_count,
            SKILLS_BONUS=bonus.skills_bonus,
            LINKED_DOCS=ctx.linked_docs_count,
            DOCS_BONUS=bonus.linked_docs_bonus,
            SETUP_BONUS=bonus.total,
            HIGH=ctx.high_count,
            MEDIUM=ctx.medium_count,
            LOW=ctx.low_count,
            ERRORS=ctx.error_count,
            SUGGESTIONS=ctx.suggestion_count,
            PENALTY=breakdown.issue_penalty.penalty,
            LOC_TIER=ctx.loc_tier,
            ALLOWANCE=breakdown.issue_penalty.issue_allowance,
            TOP_ISSUES=f"Top Issues:\n{top}" if top else "No high-severity issues found.",
        )

    async def explain(
        self,
        score: float,
        breakdown: ContextScoreBreakdown,
        issues: Sequence[Issue],
    ) -> NarrativeResult:
        """Ask the provider for a summary; errors come back inside the result."""
        if not self._ai_explanation:
            return NarrativeResult(error="ai explanation disabled")
        assert self._provider is not None

        started = time.monotonic()
        try:
            prompt = self.build_prompt(score, breakdown, issues)
            response = await self._provider.invoke_with_retry(prompt, timeout_ms=self._timeout_ms)
        except Exception as e:
            return NarrativeResult(error=str(e))
        duration_ms = int((time.monotonic() - started) * 1000)

        parsed = self._json_extractor.extract_object(response.result or "", "summary")
        if not parsed or not isinstance(parsed.get("summary"), str) or not parsed["summary"].strip():
            return NarrativeResult(error="unparsable explanation", cost_usd=response.cost_usd or 0.0, duration_ms=duration_ms)
        recs = parsed.get("recommendations")
        recommendations = tuple(str(r) for r in recs[:3]) if isinstance(recs, list) else ()
        return NarrativeResult(
            summary=parsed["summary"].strip(),
            recommendations=recommendations,
            cost_usd=response.cost_usd or 0.0,
            duration_ms=duration_ms,
        )

    async def score(
        self,
        issues: Sequence[Issue],
        *,
        files_found: int,
        inputs: Optional[ProjectInputs] = None,
    ) -> ContextScore:
        breakdown = compute_context_score(issues, files_found=files_found, inputs=inputs)
        if breakdown.context.agents_file_count == 0:
            return self.no_files_score()

        value = calculate_score(breakdown)
        grade = get_grade(value)
        narrative = await self.explain(value, breakdown, issues)
        if narrative.ok:
            summary = narrative.summary
            recommendations = narrative.recommendations or tuple(default_recommendations(breakdown))
            source = "ai"
        else:
            self._logger.info("score_explanation_fallback", type="score_explanation_fallback", reason=narrative.error)
            summary = default_summary(breakdown, grade)
            recommendations = tuple(default_recommendations(breakdown))
            source = "fallback"

        self._logger.info(
            "context_scored",
            type="context_scored",
            score=value,
            grade=grade,
            setup_bonus=breakdown.setup_bonus.total,
            penalty=breakdown.issue_penalty.penalty,
        )
        return ContextScore(
            score=value,
            grade=grade,
            breakdown=breakdown,
            summary=summary,
            recommendations=recommendations,
            explanation_source=source,
            cost_usd=narrative.cost_usd,
            duration_ms=narrative.duration_ms,
        )

    def no_files_score(self) -> ContextScore:
        breakdown = ContextScoreBreakdown(
            base_score=BASE_SCORE,
            setup_bonus=SetupBonus(agents_files_bonus=0.0, skills_bonus=0.0, linked_docs_bonus=0.0, total=0.0),
            issue_penalty=IssuePenalty(
                weighted_issue_count=0.0,
                issue_allowance=get_issue_allowance("small"),
                excess_issues=0.0,
                maturity_factor=1.0,
                penalty=NO_FILES_PENALTY,
            ),
            context=ScoreContext(
                loc_tier="small",
                total_loc=0,
                agents_file_count=0,
                skills_count=0,
                linked_docs_count=0,
                error_count=0,
                suggestion_count=0,
                high_count=0,
                medium_count=0,
                low_count=0,
            ),
        )
        return ContextScore(
            score=NO_FILES_SCORE,
            grade=get_grade(NO_FILES_SCORE),
            breakdown=breakdown,
            summary=NO_FILES_SUMMARY,
            recommendations=NO_FILES_RECOMMENDATIONS,
            explanation_source="static",
        )
