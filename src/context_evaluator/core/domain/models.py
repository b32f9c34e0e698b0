from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from ...shared.to_jsonable import to_jsonable

if TYPE_CHECKING:
    from .errors import StructuredError
    from .evaluators import EvaluatorFilter
    from .issues import Issue


EvaluationMode = Literal["unified", "independent"]


@dataclass(frozen=True)
class ContextFile:
    """A discovered context file (AGENTS.md, CLAUDE.md, ...)."""

    relative_path: str
    content: str


@dataclass(frozen=True)
class Skill:
    name: str
    path: str
    description: str | None = None


@dataclass(frozen=True)
class LinkedDoc:
    path: str
    summary: str | None = None


@dataclass
class ProjectInputs:
    """Everything discovery hands to the engine for one repository."""

    context_files: list[ContextFile] = field(default_factory=list)
    skills: list[Skill] = field(default_factory=list)
    linked_docs: list[LinkedDoc] = field(default_factory=list)
    agents_file_paths: list[str] = field(default_factory=list)
    project_context: str | None = None
    technical_inventory: str | None = None
    consistency_issues: list[Issue] = field(default_factory=list)


@dataclass(frozen=True)
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0

    def __add__(self, other: Usage) -> Usage:
        return Usage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            cache_creation_input_tokens=self.cache_creation_input_tokens + other.cache_creation_input_tokens,
            cache_read_input_tokens=self.cache_read_input_tokens + other.cache_read_input_tokens,
        )

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class ProviderResponse:
    result: str
    usage: Usage | None = None
    cost_usd: float | None = None
    duration_ms: int | None = None
    session_id: str | None = None


@dataclass(frozen=True)
class RetryEvent:
    attempt: int
    max_retries: int
    error: str
    delay_ms: int


@dataclass(frozen=True)
class TimeoutEvent:
    elapsed_ms: int
    timeout_ms: int


@dataclass
class EvaluatorResult:
    """Outcome of one evaluator invocation (or of skipping it)."""

    evaluator: str
    issues: list[Issue] = field(default_factory=list)
    file: str | None = None
    error: str | None = None
    structured_errors: list[StructuredError] = field(default_factory=list)
    usage: Usage | None = None
    cost_usd: float = 0.0
    duration_ms: int = 0
    skipped: bool = False
    skip_reason: str | None = None
    final_prompt: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass
class UnifiedEvaluationResult:
    results: list[EvaluatorResult]
    per_file_issues: dict[str, list[Issue]]
    cross_file_issues: list[Issue]
    total_usage: Usage = field(default_factory=Usage)
    total_cost_usd: float = 0.0
    total_duration_ms: int = 0


@dataclass
class FileEvaluationResult:
    file: str
    evaluations: list[EvaluatorResult]
    total_issues: int = 0
    high_count: int = 0
    medium_count: int = 0
    low_count: int = 0
    usage: Usage = field(default_factory=Usage)
    cost_usd: float = 0.0
    duration_ms: int = 0


ClusterKind = Literal["merged", "location_candidate", "entity_candidate"]


@dataclass(frozen=True)
class DeduplicationCluster:
    kind: ClusterKind
    issues: tuple[Issue, ...]
    representative: Issue | None = None
    similarity: float | None = None
    shared_entities: tuple[str, ...] = ()


@dataclass(frozen=True)
class DuplicateGroup:
    representative_index: int
    duplicate_indices: tuple[int, ...]
    reason: str = ""


@dataclass
class Phase1Result:
    deduplicated: list[Issue]
    removed: list[Issue]
    clusters: list[DeduplicationCluster]
    location_candidates: list[DeduplicationCluster] = field(default_factory=list)
    entity_candidates: list[DeduplicationCluster] = field(default_factory=list)


@dataclass
class SemanticDeduplicationResult:
    groups: list[DuplicateGroup]
    kept: list[Issue]
    removed: list[Issue]
    original_count: int
    final_count: int
    cost_usd: float = 0.0
    duration_ms: int = 0


@dataclass(frozen=True)
class DeduplicationPhaseStats:
    original_count: int
    final_count: int
    removed: int
    clusters: int = 0
    groups: int = 0
    cost_usd: float = 0.0
    duration_ms: int = 0


@dataclass
class DeduplicationResult:
    deduplicated: list[Issue]
    original_count: int
    phase1: DeduplicationPhaseStats | None = None
    phase2: DeduplicationPhaseStats | None = None
    total_removed: int = 0
    total_clusters: int = 0


@dataclass(frozen=True)
class CuratedIssue:
    original_index: int
    reason: str = ""


@dataclass(frozen=True)
class CurationResult:
    curated_issues: tuple[CuratedIssue, ...]
    total_issues_reviewed: int
    cost_usd: float | None = None
    duration_ms: int | None = None


@dataclass
class CurationOutput:
    enabled: bool = True
    error_curation: CurationResult | None = None
    suggestion_curation: CurationResult | None = None
    curated_errors: list[Issue] = field(default_factory=list)
    curated_suggestions: list[Issue] = field(default_factory=list)
    total_cost_usd: float = 0.0
    total_duration_ms: int = 0


LocTier = Literal["small", "medium", "large", "enterprise"]
Grade = Literal["Excellent", "Good", "Fair", "Developing", "Getting Started"]


@dataclass(frozen=True)
class SetupBonus:
    agents_files_bonus: float
    skills_bonus: float
    linked_docs_bonus: float
    total: float


@dataclass(frozen=True)
class IssuePenalty:
    weighted_issue_count: float
    issue_allowance: int
    excess_issues: float
    maturity_factor: float
    penalty: float


@dataclass(frozen=True)
class ScoreContext:
    loc_tier: LocTier
    total_loc: int | None
    agents_file_count: int
    skills_count: int
    linked_docs_count: int
    error_count: int
    suggestion_count: int
    high_count: int
    medium_count: int
    low_count: int


@dataclass(frozen=True)
class ContextScoreBreakdown:
    base_score: float
    setup_bonus: SetupBonus
    issue_penalty: IssuePenalty
    context: ScoreContext


@dataclass(frozen=True)
class ContextScore:
    score: float
    grade: Grade
    breakdown: ContextScoreBreakdown
    summary: str
    recommendations: tuple[str, ...]
    explanation_source: Literal["ai", "fallback", "static"] = "fallback"
    cost_usd: float = 0.0
    duration_ms: int = 0


@dataclass(frozen=True)
class FailedEvaluator:
    evaluator: str
    message: str
    category: str
    file: str | None = None


@dataclass
class EvaluationMetadata:
    generated_at: str
    agent: str
    evaluation_mode: EvaluationMode
    total_files: int
    total_issues: int
    error_count: int = 0
    suggestion_count: int = 0
    high_count: int = 0
    medium_count: int = 0
    low_count: int = 0
    usage: Usage = field(default_factory=Usage)
    cost_usd: float = 0.0
    duration_ms: int = 0
    deduplication: DeduplicationResult | None = None
    curation: CurationOutput | None = None
    context_score: ContextScore | None = None
    files_evaluated: list[str] = field(default_factory=list)
    per_file_issue_count: int = 0
    cross_file_issue_count: int = 0
    has_errors: bool = False
    has_partial_failures: bool = False
    failed_evaluators: list[FailedEvaluator] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class EvaluationOutput:
    """Final job output.

    Independent mode fills ``files``; unified mode fills ``results``.
    ``issues`` is the canonical deduplicated list every other structure is
    filtered against.
    """

    metadata: EvaluationMetadata
    issues: list[Issue] = field(default_factory=list)
    files: dict[str, FileEvaluationResult] = field(default_factory=dict)
    results: list[EvaluatorResult] = field(default_factory=list)
    cross_file_issues: list[Issue] = field(default_factory=list)

    @property
    def mode(self) -> EvaluationMode:
        return self.metadata.evaluation_mode

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready form of the whole output, with the evaluation mode at the top."""
        return {"mode": self.mode, **to_jsonable(self)}


@dataclass(frozen=True)
class EvaluationOptions:
    """Per-run overrides; None means "use the configured default"."""

    mode: EvaluationMode | None = None
    evaluators: tuple[str, ...] | None = None
    evaluator_filter: EvaluatorFilter | None = None
