from __future__ import annotations

import json
import re
from typing import Any, Optional


_CODE_FENCE = re.compile(r"^```(?:json|JSON)?\s*\n?([\s\S]*?)\n?```\s*$")
_ARRAY_ON_OWN_LINE = re.compile(r"\n\s*(\[[\s\S]*?\])\s*(?:\n|$)")
_ARRAY_WHOLE = re.compile(r"^\s*(\[[\s\S]*?\])\s*$")
_ARRAY_ANY = re.compile(r"\[[\s\S]*?\]")


def strip_code_fences(text: str) -> str:
    match = _CODE_FENCE.match(text.strip())
    if match and match.group(1):
        return match.group(1).strip()
    return text


class JsonExtractor:
    """Domain service for extracting JSON from LLM responses.

    Handles JSON wrapped in markdown fences or surrounded by prose.
    """

    def extract_array(self, text: str) -> list[Any]:
        """Extract the JSON array an evaluator responded with.

        Raises:
            ValueError: If no JSON array can be parsed. The message names the
                content that was tried when a candidate was found.
        """
        stripped = strip_code_fences(text)
        try:
            parsed = json.loads(stripped.strip())
            if isinstance(parsed, list):
                return parsed
        except json.JSONDecodeError:
            pass

        candidate: Optional[str] = None
        match = _ARRAY_ON_OWN_LINE.search(stripped) or _ARRAY_WHOLE.search(stripped)
        if match:
            candidate = match.group(1)
        else:
            # Prefer the last bracketed block; earlier ones are often markdown links
            matches = _ARRAY_ANY.findall(stripped)
            if matches:
                candidate = matches[-1]

        if candidate is None:
            raise ValueError("Could not parse evaluator response as JSON array")

        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError as e:
            raise ValueError(f"Failed to parse JSON array: {e.msg}") from e
        if not isinstance(parsed, list):
            raise ValueError("Could not parse evaluator response as JSON array")
        return parsed

    def extract_object(self, text: str, key: str) -> Optional[dict[str, Any]]:
        """Extract a JSON object that contains ``key``.

        Returns None if nothing usable is found.
        """
        try:
            parsed = json.loads(text)
            if isinstance(parsed, dict) and key in parsed:
                return parsed
        except json.JSONDecodeError:
            pass

        match = re.search(r'\{[\s\S]*"' + re.escape(key) + r'"[\s\S]*\}', text)
        if not match:
            return None
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError:
            return None
        if isinstance(parsed, dict) and key in parsed:
            return parsed
        return None
