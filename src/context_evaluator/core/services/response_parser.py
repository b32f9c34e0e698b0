from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import Mapping, Sequence

from ..domain.errors import StructuredError
from ..domain.issues import Issue, IssueIdSequence, IssueType, Location, create_issue
from ..domain.models import ContextFile
from .json_extractor import JsonExtractor, strip_code_fences


_JSON_FIXES: dict[str, str] = {
    "unquoted_key": 'Wrap all object keys in double quotes: {"category": ...} not {category: ...}',
    "unquoted_value": 'Wrap all string values in double quotes: {"severity": "high"} not {"severity": high}',
    "text_before_json": "Remove all text before the opening bracket [. Response must start with [",
    "single_quotes": "Replace single quotes with double quotes: \"value\" not 'value'",
    "unclosed_brackets": "Close all brackets: every { needs }, every [ needs ]",
    "unknown": "Ensure output is valid JSON.",
}


@dataclass
class ParseResult:
    issues: list[Issue] = field(default_factory=list)
    errors: list[StructuredError] = field(default_factory=list)
    dropped: int = 0


def detect_json_error_type(content: str) -> str:
    if re.search(r"\{\s*[a-zA-Z_]+\s*:", content):
        return "unquoted_key"
    if re.search(r":\s*[a-zA-Z_]+(?:\s*[,}])", content):
        return "unquoted_value"
    if content.strip() and content.strip()[0] not in "[{":
        return "text_before_json"
    if re.search(r"'[^']*'", content):
        return "single_quotes"
    if len(re.findall(r"[{\[]", content)) > len(re.findall(r"[}\]]", content)):
        return "unclosed_brackets"
    return "unknown"


def parse_evaluator_result(
    text: str,
    *,
    evaluator: str,
    issue_type: IssueType,
    ids: IssueIdSequence,
    extractor: JsonExtractor | None = None,
    file_path: str | None = None,
) -> ParseResult:
    """Turn an evaluator's raw response into issues.

    Issues are constructed here, which is where they receive their ids.
    Objects without a severity or impact level are dropped and counted.
    """
    extractor = extractor or JsonExtractor()
    result = ParseResult()

    if not text or not text.strip():
        result.errors.append(
            StructuredError(
                message="Empty response from evaluator",
                category="parsing",
                severity="fatal",
                evaluator_name=evaluator,
                file_path=file_path,
            )
        )
        return result

    try:
        items = extractor.extract_array(text)
    except ValueError as e:
        stripped = strip_code_fences(text).strip()
        error_type = detect_json_error_type(stripped)
        result.errors.append(
            StructuredError(
                message=str(e),
                category="parsing",
                severity="fatal",
                evaluator_name=evaluator,
                file_path=file_path,
                context={
                    "response_preview": text[:500],
                    "error_type": error_type,
                    "suggested_fix": _JSON_FIXES[error_type],
                },
            )
        )
        return result

    for item in items:
        if not isinstance(item, Mapping):
            result.dropped += 1
            continue
        issue = create_issue(item, issue_type=issue_type, evaluator_name=evaluator, ids=ids)
        if issue is None:
            result.dropped += 1
            continue
        result.issues.append(issue)
    return result


def _match_file(name: str, files: Sequence[ContextFile]) -> ContextFile | None:
    for f in files:
        if f.relative_path == name or f.relative_path.endswith("/" + name) or f.relative_path.rsplit("/", 1)[-1] == name:
            return f
    return None


def separate_issues_by_type(
    issues: Sequence[Issue],
    files: Sequence[ContextFile],
) -> tuple[dict[str, list[Issue]], list[Issue]]:
    """Split issues into (per-file, cross-file).

    Issues whose location names no known file land on the first file.
    """
    per_file: dict[str, list[Issue]] = {f.relative_path: [] for f in files}
    cross_file: list[Issue] = []
    for issue in issues:
        if issue.is_cross_file:
            cross_file.append(issue)
            continue
        if not files:
            continue
        loc = issue.primary_location
        target = _match_file(loc.file, files) if loc and loc.file else None
        per_file[(target or files[0]).relative_path].append(issue)
    return per_file, cross_file


@dataclass(frozen=True)
class Snippet:
    content: str
    start_line: int
    highlight_start: int
    highlight_end: int


def extract_snippet_with_context(content: str, location: Location, context_lines: int = 2) -> Snippet | None:
    lines = content.split("\n")
    start, end = location.start, location.end
    if start < 1 or end < start:
        return None
    clamped_start = max(1, min(start, len(lines)))
    clamped_end = max(clamped_start, min(end, len(lines)))
    ctx_start = max(1, clamped_start - context_lines)
    ctx_end = min(len(lines), clamped_end + context_lines)
    text = "\n".join(lines[ctx_start - 1:ctx_end])
    if not text.strip():
        return None
    return Snippet(content=text, start_line=ctx_start, highlight_start=clamped_start, highlight_end=clamped_end)


def _resolve_content(file: str, contents: Mapping[str, str]) -> tuple[str | None, str | None]:
    if file in contents:
        return contents[file], None
    if "/" in file:
        return None, f"File not found: {file}"
    matches = [p for p in contents if p.rsplit("/", 1)[-1] == file]
    if len(matches) == 1:
        return contents[matches[0]], None
    if len(matches) > 1:
        root = next((p for p in matches if "/" not in p), None)
        if root is not None:
            return contents[root], None
        return None, f"Ambiguous file reference: multiple files have basename {file!r} ({', '.join(matches)})"
    return None, f"File not found: {file}"


def populate_snippets(
    issues: Sequence[Issue],
    contents: Mapping[str, str],
    default_content: str | None = None,
) -> list[Issue]:
    """Return copies of ``issues`` carrying source snippets.

    Locations whose range runs past the end of the file are clamped to the
    displayed range.
    """
    out: list[Issue] = []
    for issue in issues:
        loc = issue.primary_location
        if loc is None:
            out.append(issue)
            continue

        content, error = (None, None)
        if loc.file:
            content, error = _resolve_content(loc.file, contents)
        if content is None and default_content:
            content, error = default_content, None

        if content is None:
            out.append(replace(issue, snippet_error=error) if error else issue)
            continue

        snippet = extract_snippet_with_context(content, loc)
        if snippet is None:
            total = len(content.split("\n"))
            if loc.start > total:
                error = f"Line {loc.start} exceeds file length ({total} lines)"
            else:
                error = "Unable to extract code snippet"
            out.append(replace(issue, snippet_error=error))
            continue

        location = issue.location
        if (loc.start, loc.end) != (snippet.highlight_start, snippet.highlight_end):
            clamped = replace(loc, start=snippet.highlight_start, end=snippet.highlight_end)
            location = (clamped,) + issue.location[1:]
        out.append(replace(issue, snippet=snippet.content, location=location))
    return out
