"""Recover a single JSON object from free-form model output."""
from __future__ import annotations

import json
import re
from typing import Any, Dict, Iterator, Optional

from flask import current_app

SNIPPET_LENGTH = 500
MAX_SPAN_ATTEMPTS = 64

# Fence lines, or a fence opening/closing the whole text; backticks inside values survive
_FENCE_RE = re.compile(
    r'^[ \t]*```(?:json)?[ \t]*$|\A\s*```(?:json)?|```\s*\Z',
    re.IGNORECASE | re.MULTILINE,
)


class JsonExtractionError(ValueError):
    """Raised when no JSON object can be recovered from a response."""

    code = 'JSON_EXTRACTION_FAILED'

    def __init__(self, message: str, snippet: str = ''):
        super().__init__(message)
        self.snippet = snippet

    def __str__(self) -> str:
        base = super().__str__()
        return f"{self.code}: {base}" + (f" | text: {self.snippet!r}" if self.snippet else '')


def strip_code_fences(text: str) -> str:
    """Remove markdown fence markers (```json / ```) and surrounding whitespace."""
    return _FENCE_RE.sub('', text).strip()


def _loads_object(candidate: str) -> Optional[Dict[str, Any]]:
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        current_app.logger.debug(f"JSON decode error at position {e.pos}: {e.msg}")
        return None
    except (ValueError, RecursionError) as e:
        current_app.logger.debug(f"JSON decode failed: {type(e).__name__}")
        return None
    return parsed if isinstance(parsed, dict) else None


def _balanced_spans(text: str) -> Iterator[str]:
    """Yield brace-balanced {...} substrings, in order of their opening brace.

    One pass with a stack of open-brace offsets. Braces inside JSON string
    literals are ignored; quotes outside any brace do not open a string.
    At most MAX_SPAN_ATTEMPTS spans are yielded.
    """
    spans = []
    stack = []
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == '\\':
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"' and stack:
            in_string = True
        elif ch == '{':
            stack.append(i)
        elif ch == '}' and stack:
            spans.append((stack.pop(), i + 1))

    spans.sort()
    for start, end in spans[:MAX_SPAN_ATTEMPTS]:
        yield text[start:end]


def extract_json_object(text: Any) -> Dict[str, Any]:
    """Extract exactly one JSON object from ``text``.

    Tries, in order: the fence-stripped text as a whole, the greedy span from
    the first ``{`` to the last ``}``, then the balanced ``{...}`` spans
    (at most MAX_SPAN_ATTEMPTS of them).

    Raises:
        JsonExtractionError: nothing parses to a JSON object. The error keeps
            only the first 500 characters of the offending text.
    """
    if not isinstance(text, str):
        raise JsonExtractionError(f"expected text, got {type(text).__name__}")

    cleaned = strip_code_fences(text)
    if not cleaned:
        raise JsonExtractionError("empty response")

    parsed = _loads_object(cleaned)
    if parsed is not None:
        return parsed

    first, last = cleaned.find('{'), cleaned.rfind('}')
    if first != -1 and last > first:
        parsed = _loads_object(cleaned[first:last + 1])
        if parsed is not None:
            return parsed

        for span in _balanced_spans(cleaned):
            parsed = _loads_object(span)
            if parsed is not None:
                return parsed

    raise JsonExtractionError("could not extract a valid JSON object", snippet=cleaned[:SNIPPET_LENGTH])


def try_extract_json_object(text: Any, stage: str = 'response') -> Optional[Dict[str, Any]]:
    """Like extract_json_object but logs and returns None on failure."""
    try:
        return extract_json_object(text)
    except JsonExtractionError as exc:
        current_app.logger.warning("Failed to parse %s JSON: %s", stage, exc)
        return None
