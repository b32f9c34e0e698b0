from __future__ import annotations

import math
import re
from typing import Sequence

from .models import ContextFile


NO_FILE_MESSAGE = (
    "## No Context File Found\n\n"
    "This repository does not have an AGENTS.md, CLAUDE.md, or copilot-instructions.md file. "
    "Focus on suggesting what documentation should be created based on the codebase analysis.\n\n"
    'Use location {"file": "AGENTS.md", "start": 0, "end": 0} for all issues since the file does not exist yet.'
)

JSON_OUTPUT_REMINDER = (
    "\n\n---\n\n"
    "REMINDER: Your ENTIRE response must be ONLY a valid JSON array. "
    "Start with `[` and end with `]`. No text before or after. No markdown. No explanations. "
    "Just the JSON array."
)

_SEPARATOR = "=" * 80
_PLACEHOLDER = re.compile(r"\{\{([A-Z_]+)\}\}")


def estimate_tokens(text: str) -> int:
    """Rough token estimate (~4 characters per token)."""
    return math.ceil(len(text) / 4)


def is_empty_content(content: str | None) -> bool:
    return not content or not content.strip()


def render_template(template: str, **values: object) -> str:
    """Replace ``{{NAME}}`` placeholders; unknown placeholders are left as-is."""

    def _sub(match: re.Match[str]) -> str:
        key = match.group(1)
        return str(values[key]) if key in values else match.group(0)

    return _PLACEHOLDER.sub(_sub, template)


def add_line_numbers(content: str) -> str:
    lines = content.split("\n")
    width = len(str(len(lines)))
    return "\n".join(f"{i:>{width}} | {line}" for i, line in enumerate(lines, 1))


def _project_context_section(project_context: str | None) -> str:
    if not project_context:
        return ""
    return (
        "## Project Context\n\n"
        "The following context was automatically identified from the codebase:\n\n"
        f"{project_context}\n\n---\n\n"
    )


def _file_block(file: ContextFile, index: int) -> str:
    header = f"FILE {index + 1}: {file.relative_path}"
    footer = f"END OF FILE {index + 1}: {file.relative_path}"
    if is_empty_content(file.content):
        body = "*File does not exist or is empty*"
    else:
        body = add_line_numbers(file.content)
    return f"{_SEPARATOR}\n{header}\n{_SEPARATOR}\n\n{body}\n\n{_SEPARATOR}\n{footer}\n{_SEPARATOR}"


def build_single_file_prompt(
    *,
    evaluator_prompt: str,
    output_format: str,
    content: str | None,
    project_context: str | None = None,
) -> str:
    head = f"{evaluator_prompt}\n\n{_project_context_section(project_context)}{output_format}\n\n---\n\n"
    if is_empty_content(content):
        return head + NO_FILE_MESSAGE + JSON_OUTPUT_REMINDER
    numbered = add_line_numbers(content or "")
    return (
        head
        + "## Context File Content to Evaluate:\n\n```markdown\n"
        + numbered
        + "\n```"
        + JSON_OUTPUT_REMINDER
    )


def build_multi_file_prompt(
    *,
    evaluator_prompt: str,
    output_format: str,
    files: Sequence[ContextFile],
    project_context: str | None = None,
) -> str:
    head = f"{evaluator_prompt}\n\n{_project_context_section(project_context)}{output_format}\n\n---\n\n"
    if not files or all(is_empty_content(f.content) for f in files):
        return head + NO_FILE_MESSAGE + JSON_OUTPUT_REMINDER
    blocks = "\n\n".join(_file_block(f, i) for i, f in enumerate(files))
    return head + "## Multiple Context Files to Evaluate:\n\n" + blocks + JSON_OUTPUT_REMINDER
