"""Recover a JSON object from loosely formatted model output."""

from __future__ import annotations

import json
import re
from typing import Any, Dict

from ..core.errors import ParseFailure

_FENCED_RE = re.compile(r"```(?:json|JSON)?\s*([\s\S]*?)\s*```")
# String literals are matched first so their contents survive the rewrites.
_STRING = r'"(?:\\.|[^"\\])*"'
_COMMENT_RE = re.compile(_STRING + r"|/\*[\s\S]*?\*/|//[^\n]*")
_TRAILING_COMMA_RE = re.compile(_STRING + r"|,\s*([}\]])")


def extract_json_candidate(text: str) -> str:
    """Pick the part of ``text`` most likely to be the JSON payload."""
    fenced = _FENCED_RE.search(text)
    if fenced and fenced.group(1).strip():
        return fenced.group(1)
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        return text[start : end + 1]
    return ""


def _strip_comments(text: str) -> str:
    def repl(match: re.Match[str]) -> str:
        token = match.group(0)
        return token if token.startswith('"') else ""

    return _COMMENT_RE.sub(repl, text)


def _strip_trailing_commas(text: str) -> str:
    def repl(match: re.Match[str]) -> str:
        closer = match.group(1)
        return match.group(0) if closer is None else closer

    return _TRAILING_COMMA_RE.sub(repl, text)


def repair_json(text: str) -> str:
    cleaned = text.strip()
    cleaned = cleaned.replace("\ufeff", "").replace("\u200b", "")
    cleaned = cleaned.replace("\u2028", "\n").replace("\u2029", "\n")
    cleaned = _strip_comments(cleaned)
    cleaned = _strip_trailing_commas(cleaned)
    return cleaned


def _loads_object(text: str) -> Dict[str, Any]:
    value = json.loads(text, strict=False)
    if not isinstance(value, dict):
        raise ValueError(f"expected a JSON object, got {type(value).__name__}")
    return value


def parse_structured_output(text: str) -> Dict[str, Any]:
    """Parse model output into a dict, repairing common defects.

    Raises :class:`ParseFailure` when nothing usable can be recovered.
    """
    if not text or not text.strip():
        raise ParseFailure("model output is empty")

    stripped = text.strip().lstrip("\ufeff")
    try:
        return _loads_object(stripped)
    except ValueError:
        pass

    candidate = extract_json_candidate(stripped)
    if not candidate:
        raise ParseFailure("no JSON object found in model output")

    try:
        return _loads_object(candidate.strip())
    except ValueError:
        pass
    try:
        return _loads_object(repair_json(candidate))
    except ValueError as exc:
        raise ParseFailure(f"could not parse model output as JSON: {exc}") from exc
