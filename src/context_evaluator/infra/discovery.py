from __future__ import annotations

import difflib
import os
import re
from collections import Counter
from pathlib import Path, PurePosixPath
from typing import Iterator, Optional

from ..core.domain.issues import ErrorIssue, Issue, IssueIdSequence, Location
from ..core.domain.models import ContextFile, LinkedDoc, ProjectInputs, Skill
from ..core.ports import LoggerPort


IGNORED_DIRS = frozenset({".git", "node_modules", "dist", "build", "vendor", "coverage", ".venv", "venv", "__pycache__"})
CONTEXT_FILE_NAMES = frozenset({"agents.md", "claude.md"})
MAX_LINKED_DOCS = 30
MAX_LOC_FILE_BYTES = 1_000_000
CONSISTENCY_EVALUATOR = "file-consistency"

LANGUAGES_BY_SUFFIX = {
    ".py": "Python",
    ".ts": "TypeScript",
    ".tsx": "TypeScript",
    ".js": "JavaScript",
    ".jsx": "JavaScript",
    ".go": "Go",
    ".rs": "Rust",
    ".java": "Java",
    ".kt": "Kotlin",
    ".rb": "Ruby",
    ".php": "PHP",
    ".cs": "C#",
    ".c": "C",
    ".h": "C",
    ".cpp": "C++",
    ".swift": "Swift",
    ".sh": "Shell",
}

_MD_LINK = re.compile(r"\[([^\]]+)\]\(([^)\s]+\.md)(?:#[^)]*)?\)", re.IGNORECASE)
_FRONTMATTER = re.compile(r"^---\s*\n([\s\S]*?)\n---")
_FM_NAME = re.compile(r"""^name:\s*["']?(.+?)["']?\s*$""", re.MULTILINE)
_FM_DESCRIPTION = re.compile(r"""^description:\s*["']?(.+?)["']?\s*$""", re.MULTILINE)
_FILE_REFERENCE = re.compile(r"^@(?:\./)?(?:agents|claude)\.md$", re.IGNORECASE)


def _walk(root: Path, max_depth: Optional[int]) -> Iterator[Path]:
    for dirpath, dirnames, filenames in os.walk(root):
        rel_dir = Path(dirpath).relative_to(root)
        depth = 0 if rel_dir == Path(".") else len(rel_dir.parts)
        dirnames[:] = sorted(d for d in dirnames if d not in IGNORED_DIRS)
        if max_depth is not None and depth >= max_depth:
            dirnames[:] = []
        for name in sorted(filenames):
            yield Path(dirpath) / name


def _relative(path: Path, root: Path) -> str:
    return path.relative_to(root).as_posix()


def _read(path: Path) -> str:
    return path.read_text(encoding="utf-8", errors="replace")


def is_context_file(relative_path: str) -> bool:
    posix = PurePosixPath(relative_path)
    name = posix.name.lower()
    if name in CONTEXT_FILE_NAMES:
        return True
    return name == "copilot-instructions.md" and ".github" in posix.parts[:-1]


def parse_skill_frontmatter(content: str) -> tuple[str, str] | None:
    match = _FRONTMATTER.match(content)
    if not match:
        return None
    name = _FM_NAME.search(match.group(1))
    description = _FM_DESCRIPTION.search(match.group(1))
    if not name or not description:
        return None
    return name.group(1).strip(), description.group(1).strip()


def find_linked_doc_paths(content: str, source: str) -> list[str]:
    """Relative markdown links in ``content``, resolved against ``source``'s directory."""
    base = PurePosixPath(source).parent
    found: list[str] = []
    for _, target in _MD_LINK.findall(content):
        if "://" in target or target.startswith(("/", "#", "mailto:")):
            continue
        parts: list[str] = []
        for part in (base / target).parts:
            if part == "..":
                if parts:
                    parts.pop()
            elif part != ".":
                parts.append(part)
        resolved = "/".join(parts)
        if resolved and resolved not in found:
            found.append(resolved)
    return found


def format_inventory(lines_by_language: Counter[str]) -> str:
    return "\n".join(f"{lang}: {count:,}" for lang, count in lines_by_language.most_common())


def normalize_for_comparison(content: str) -> str:
    """Trailing blank lines at EOF collapse to a single newline."""
    return content.rstrip("\n") + "\n"


def is_file_reference(content: str) -> bool:
    """True when the whole file is an ``@AGENTS.md`` / ``@./CLAUDE.md`` pointer."""
    return bool(_FILE_REFERENCE.match(content.strip()))


def find_consistency_issues(context_files: list[ContextFile], ids: IssueIdSequence) -> list[Issue]:
    """One cross-file issue per directory holding an AGENTS.md and a CLAUDE.md that disagree.

    Pairs where either file is only an ``@`` pointer to the other are not conflicts.
    """
    by_dir: dict[str, dict[str, ContextFile]] = {}
    for f in context_files:
        posix = PurePosixPath(f.relative_path)
        name = posix.name.lower()
        if name in CONTEXT_FILE_NAMES:
            by_dir.setdefault(str(posix.parent), {})[name] = f

    issues: list[Issue] = []
    for directory, pair in sorted(by_dir.items()):
        agents, claude = pair.get("agents.md"), pair.get("claude.md")
        if agents is None or claude is None:
            continue
        if is_file_reference(agents.content) or is_file_reference(claude.content):
            continue
        left, right = normalize_for_comparison(agents.content), normalize_for_comparison(claude.content)
        if left == right:
            continue
        diff = "".join(
            difflib.unified_diff(
                left.splitlines(keepends=True),
                right.splitlines(keepends=True),
                fromfile=agents.relative_path,
                tofile=claude.relative_path,
                n=1,
            )
        )
        where = "the repository root" if directory == "." else directory
        issues.append(
            ErrorIssue(
                dedup_id=ids.next_id(),
                category="File Consistency",
                severity=9,
                title="Conflicting AGENTS.md and CLAUDE.md files",
                problem="AGENTS.md and CLAUDE.md coexist with different content",
                description=(
                    f"Found colocated AGENTS.md and CLAUDE.md files with different content in {where}. "
                    "AI agents may receive inconsistent instructions."
                ),
                impact="Agents reading different files follow different rules, leading to unpredictable behavior.",
                fix="Merge the unique CLAUDE.md content into AGENTS.md, then replace CLAUDE.md with `@AGENTS.md`.",
                location=(
                    Location(start=1, end=len(agents.content.split("\n")), file=agents.relative_path),
                    Location(start=1, end=len(claude.content.split("\n")), file=claude.relative_path),
                ),
                affected_files=(agents.relative_path, claude.relative_path),
                evaluator_name=CONSISTENCY_EVALUATOR,
                snippet=diff,
            )
        )
    return issues


class FileSystemDiscovery:
    """Finds agent context files, skills, linked docs and a line count inventory."""

    def __init__(self, *, logger: LoggerPort, max_depth: Optional[int] = None) -> None:
        self._logger = logger
        self._max_depth = max_depth

    def find_context_files(self, repo_path: Path) -> list[ContextFile]:
        root = Path(repo_path)
        found = [
            ContextFile(relative_path=_relative(p, root), content=_read(p))
            for p in _walk(root, self._max_depth)
            if is_context_file(_relative(p, root))
        ]
        files = self._drop_identical_pairs(found)
        files.sort(key=lambda f: (len(PurePosixPath(f.relative_path).parts), f.relative_path))
        self._logger.info("context_files_found", type="context_files_found", count=len(files), paths=[f.relative_path for f in files])
        return files

    def _drop_identical_pairs(self, files: list[ContextFile]) -> list[ContextFile]:
        """CLAUDE.md identical to the AGENTS.md in the same directory is dropped."""
        agents_by_dir = {
            str(PurePosixPath(f.relative_path).parent): f
            for f in files
            if PurePosixPath(f.relative_path).name.lower() == "agents.md"
        }
        kept = []
        for f in files:
            posix = PurePosixPath(f.relative_path)
            twin = agents_by_dir.get(str(posix.parent))
            if posix.name.lower() == "claude.md" and twin is not None and twin.content.strip() == f.content.strip():
                self._logger.debug("context_file_deduplicated", type="context_file_deduplicated", path=f.relative_path, kept=twin.relative_path)
                continue
            kept.append(f)
        return kept

    def collect_project_inputs(
        self, repo_path: Path, context_files: list[ContextFile], ids: Optional[IssueIdSequence] = None
    ) -> ProjectInputs:
        root = Path(repo_path)
        skills: list[Skill] = []
        lines_by_language: Counter[str] = Counter()

        for path in _walk(root, self._max_depth):
            rel = _relative(path, root)
            if path.name == "SKILL.md":
                parsed = parse_skill_frontmatter(_read(path))
                if parsed is None:
                    self._logger.debug("skill_skipped", type="skill_skipped", path=rel)
                    continue
                name, description = parsed
                skills.append(Skill(name=name, path=rel, description=description))
                continue
            language = LANGUAGES_BY_SUFFIX.get(path.suffix.lower())
            if language is None:
                continue
            try:
                if path.stat().st_size > MAX_LOC_FILE_BYTES:
                    continue
                with path.open("rb") as fh:
                    lines_by_language[language] += sum(1 for _ in fh)
            except OSError as e:
                self._logger.debug("loc_read_failed", type="loc_read_failed", path=rel, error=str(e))

        docs: list[LinkedDoc] = []
        context_paths = {f.relative_path for f in context_files}
        for cf in context_files:
            for target in find_linked_doc_paths(cf.content, cf.relative_path):
                if len(docs) >= MAX_LINKED_DOCS:
                    break
                if target in context_paths or any(d.path == target for d in docs):
                    continue
                doc_path = root / target
                if not doc_path.is_file():
                    continue
                first_line = next((line.strip("# ").strip() for line in _read(doc_path).splitlines() if line.strip()), None)
                docs.append(LinkedDoc(path=target, summary=first_line))

        consistency = find_consistency_issues(context_files, ids or IssueIdSequence())
        inventory = format_inventory(lines_by_language) or None
        summary_lines = []
        if lines_by_language:
            summary_lines.append("Languages: " + ", ".join(lang for lang, _ in lines_by_language.most_common()))
        if context_files:
            summary_lines.append("Context files: " + ", ".join(f.relative_path for f in context_files))
        if skills:
            summary_lines.append("Skills: " + ", ".join(s.name for s in skills))
        if docs:
            summary_lines.append("Linked docs: " + ", ".join(d.path for d in docs))

        self._logger.info(
            "project_inputs_collected",
            type="project_inputs_collected",
            skills=len(skills),
            linked_docs=len(docs),
            languages=len(lines_by_language),
            consistency_conflicts=len(consistency),
        )
        return ProjectInputs(
            context_files=list(context_files),
            skills=skills,
            linked_docs=docs,
            agents_file_paths=[f.relative_path for f in context_files],
            project_context="\n".join(summary_lines) or None,
            technical_inventory=inventory,
            consistency_issues=consistency,
        )
