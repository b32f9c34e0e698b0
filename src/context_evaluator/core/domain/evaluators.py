from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Callable, Iterable, Literal, Mapping, Sequence

from .exceptions import UnknownEvaluatorError
from .issues import IssueType
from .models import ContextFile


EvaluatorFilter = Literal["all", "error", "suggestion"]
FileFilterStrategy = Literal["all_files", "root_only", "custom"]


@dataclass(frozen=True)
class EvaluatorSpec:
    """Static description of one evaluator in the catalog."""

    id: str
    name: str
    issue_type: IssueType
    execute_if_no_file: bool = False

    @property
    def prompt_name(self) -> str:
        return f"evaluators/{self.id}"


EVALUATORS: tuple[EvaluatorSpec, ...] = (
    EvaluatorSpec("content-quality", "Content Quality & Focus", "error"),
    EvaluatorSpec("structure-formatting", "Structure & Formatting", "error"),
    EvaluatorSpec("command-completeness", "Command Completeness", "error"),
    EvaluatorSpec("testing-validation", "Testing & Validation", "error"),
    EvaluatorSpec("code-style", "Code Style Clarity", "error"),
    EvaluatorSpec("language-clarity", "Language Clarity", "error"),
    EvaluatorSpec("git-workflow", "Git Workflow", "error"),
    EvaluatorSpec("project-structure", "Project Structure", "error"),
    EvaluatorSpec("security", "Security Awareness", "error"),
    EvaluatorSpec("completeness", "Completeness & Balance", "error"),
    EvaluatorSpec("subdirectory-coverage", "Subdirectory Coverage", "suggestion"),
    EvaluatorSpec("context-gaps", "Context Gaps", "suggestion", execute_if_no_file=True),
    EvaluatorSpec("contradictory-instructions", "Contradictory Instructions", "error"),
    EvaluatorSpec("test-patterns-coverage", "Test Patterns Coverage", "suggestion", execute_if_no_file=True),
    EvaluatorSpec("database-patterns-coverage", "Database Patterns Coverage", "suggestion", execute_if_no_file=True),
    EvaluatorSpec("markdown-validity", "Markdown Validity", "error"),
    EvaluatorSpec("outdated-documentation", "Outdated Documentation", "error"),
)

_BY_ID: dict[str, EvaluatorSpec] = {e.id: e for e in EVALUATORS}


def get_evaluator(evaluator_id: str) -> EvaluatorSpec:
    try:
        return _BY_ID[evaluator_id]
    except KeyError:
        raise UnknownEvaluatorError(evaluator_id) from None


def get_issue_type(evaluator_id: str) -> IssueType:
    """Issue type produced by an evaluator. Unknown evaluators produce errors."""
    spec = _BY_ID.get(evaluator_id)
    return spec.issue_type if spec is not None else "error"


def select_evaluators(
    evaluator_filter: EvaluatorFilter = "all",
    ids: Sequence[str] | None = None,
) -> list[EvaluatorSpec]:
    """Catalog subset, in catalog order.

    An explicit id list takes precedence over the type filter.
    """
    if ids:
        wanted = {get_evaluator(i).id for i in ids}
        return [e for e in EVALUATORS if e.id in wanted]
    if evaluator_filter == "all":
        return list(EVALUATORS)
    return [e for e in EVALUATORS if e.issue_type == evaluator_filter]


@dataclass(frozen=True)
class EvaluatorFileConfig:
    strategy: FileFilterStrategy = "all_files"
    custom_filter: Callable[[Sequence[ContextFile]], list[ContextFile]] | None = None


DEFAULT_FILE_CONFIG: Mapping[str, EvaluatorFileConfig] = {
    "git-workflow": EvaluatorFileConfig(strategy="root_only"),
}


def path_depth(relative_path: str) -> int:
    return len(PurePosixPath(relative_path.replace("\\", "/")).parts)


def find_root_file(files: Iterable[ContextFile]) -> ContextFile | None:
    """Shallowest file wins; ties keep discovery order."""
    root: ContextFile | None = None
    for f in files:
        if root is None or path_depth(f.relative_path) < path_depth(root.relative_path):
            root = f
    return root


def apply_file_filter(
    evaluator_id: str,
    files: Sequence[ContextFile],
    configs: Mapping[str, EvaluatorFileConfig] = DEFAULT_FILE_CONFIG,
    *,
    all_files: Sequence[ContextFile] | None = None,
) -> list[ContextFile]:
    """Files an evaluator should see.

    ``all_files`` is the full discovered set; in independent mode ``files``
    holds the single file being evaluated and the root is still computed
    over every discovered file.
    """
    config = configs.get(evaluator_id, EvaluatorFileConfig())
    if config.strategy == "all_files":
        return list(files)
    if config.strategy == "root_only":
        root = find_root_file(all_files if all_files is not None else files)
        if root is None:
            return []
        return [f for f in files if f.relative_path == root.relative_path]
    if config.custom_filter is None:
        return list(files)
    return list(config.custom_filter(files))
