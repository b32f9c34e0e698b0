from __future__ import annotations

from pathlib import Path
from typing import Literal

from platformdirs import PlatformDirs
from pydantic import BaseModel, Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


APP_NAME = "context_evaluator"


def _default_home() -> Path:
    """Get default home directory using platformdirs."""
    return Path(PlatformDirs(appname=APP_NAME, appauthor=False).user_data_dir)


def run_log_file(logs_dir: Path, run_id: str | None) -> Path | None:
    """JSONL log file of one run; runs without an id are not written to disk."""
    return logs_dir / f"{run_id}.jsonl" if run_id else None


class DirectoryConfig(BaseModel):
    """Directory configuration with computed paths."""

    home: Path = Field(
        default_factory=_default_home,
        description="Base directory for all context_evaluator data",
    )

    @computed_field
    @property
    def logs_dir(self) -> Path:
        """Per-run JSONL logs."""
        path = self.home / "logs"
        path.mkdir(parents=True, exist_ok=True)
        return path

    @computed_field
    @property
    def debug_dir(self) -> Path:
        """Per-evaluator prompt/response dumps (only written when debug is on)."""
        path = self.home / "debug"
        path.mkdir(parents=True, exist_ok=True)
        return path


class LLMConfig(BaseModel):
    """LLM configuration."""

    api_key: str | None = Field(
        default=None,
        description="LLM API key (OpenAI or Anthropic)",
    )

    provider_name: Literal["openai", "anthropic"] = Field(
        default="anthropic",
        description="LLM provider (openai, anthropic)",
    )

    model_name: str = Field(
        default="claude-sonnet-4-5",
        description="LLM model name",
    )

    max_output_tokens: int = Field(
        default=16_000,
        gt=0,
        description="Maximum tokens the model may generate per call",
    )

    timeout_ms: int = Field(
        default=300_000,
        gt=0,
        description="Deadline for a single provider call, in milliseconds",
    )

    max_retries: int = Field(
        default=3,
        ge=1,
        description="Total attempts per provider call (linear backoff between attempts)",
    )

    input_usd_per_million: float = Field(
        default=3.0,
        ge=0,
        description="Input token price used for cost reporting (USD per 1M tokens)",
    )

    output_usd_per_million: float = Field(
        default=15.0,
        ge=0,
        description="Output token price used for cost reporting (USD per 1M tokens)",
    )


class EvaluationConfig(BaseModel):
    """Evaluator runner settings."""

    mode: Literal["unified", "independent"] | None = Field(
        default=None,
        description="Force an evaluation mode; auto-selected when unset",
    )

    concurrency: int = Field(
        default=3,
        ge=1,
        description="Maximum evaluator calls in flight",
    )

    max_tokens: int = Field(
        default=100_000,
        gt=0,
        description="Estimated-token budget under which unified mode is used",
    )

    evaluator_filter: Literal["all", "error", "suggestion"] = Field(
        default="all",
        description="Run only evaluators producing this issue type",
    )

    evaluators: list[str] | None = Field(
        default=None,
        description="Explicit evaluator ids to run (overrides evaluator_filter)",
    )

    discovery_depth: int | None = Field(
        default=None,
        ge=0,
        description="Maximum directory depth searched for context files (unset = unlimited)",
    )

    debug: bool = Field(
        default=False,
        description="Write each evaluator prompt and raw response to the debug directory",
    )


class DeduplicationConfig(BaseModel):
    """Issue deduplication settings."""

    enabled: bool = Field(default=True, description="Run deduplication at all")
    phase1_enabled: bool = Field(default=True, description="Rule-based location/text clustering")
    phase2_enabled: bool = Field(default=True, description="AI semantic merge")
    location_tolerance: int = Field(default=5, ge=0, description="Line distance treated as the same location")
    similarity_threshold: float = Field(default=0.55, ge=0, le=1, description="Text similarity needed to merge")
    max_issues_for_ai: int = Field(default=500, gt=0, description="Issues sent to the semantic merge prompt")


class CurationConfig(BaseModel):
    """Impact curation settings."""

    enabled: bool = Field(default=True, description="Select the highest-impact issues with the AI")
    error_top_n: int = Field(default=30, gt=0, description="Errors kept by curation")
    suggestion_top_n: int = Field(default=30, gt=0, description="Suggestions kept by curation")


class ScoringConfig(BaseModel):
    """Context score settings."""

    ai_explanation: bool = Field(
        default=True,
        description="Ask the AI to phrase the score summary (deterministic text otherwise)",
    )


class PromptsConfig(BaseModel):
    """Prompt template location."""

    directory: Path | None = Field(
        default=None,
        description="Load prompt templates from this directory instead of the packaged ones",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    logger_name: str = Field(default="context_evaluator", description="Logger name")
    console_output: bool = Field(default=False, description="Echo log records to stderr")
    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")


class RuntimeConfig(BaseModel):
    """Per-invocation values set by the facade."""

    run_id: str | None = Field(default=None, description="Run identifier; names the log file")


class AppConfig(BaseSettings):
    """Root application configuration.

    All configuration is loaded from environment variables with CONTEXT_EVALUATOR_ prefix.
    Use double underscore for nested config: CONTEXT_EVALUATOR_LLM__API_KEY

    Example env vars:
        # Required
        export CONTEXT_EVALUATOR_LLM__API_KEY=sk-xxxxxxxxxxxxx

        # Optional (with defaults)
        export CONTEXT_EVALUATOR_LLM__PROVIDER_NAME=anthropic
        export CONTEXT_EVALUATOR_LLM__MODEL_NAME=claude-sonnet-4-5
        export CONTEXT_EVALUATOR_EVALUATION__CONCURRENCY=3
        export CONTEXT_EVALUATOR_CURATION__ENABLED=false
        export CONTEXT_EVALUATOR_DIRECTORIES__HOME=/custom/path
    """

    model_config = SettingsConfigDict(
        env_prefix="CONTEXT_EVALUATOR_",
        env_nested_delimiter="__",
        frozen=True,
        extra="forbid",
    )

    directories: DirectoryConfig = Field(default_factory=DirectoryConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    evaluation: EvaluationConfig = Field(default_factory=EvaluationConfig)
    deduplication: DeduplicationConfig = Field(default_factory=DeduplicationConfig)
    curation: CurationConfig = Field(default_factory=CurationConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    prompts: PromptsConfig = Field(default_factory=PromptsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
