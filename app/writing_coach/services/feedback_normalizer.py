"""Coercion helpers for loosely-typed model payloads.

Every accessor checks for presence and type explicitly and falls back to a
documented default; nothing here raises on malformed input.
"""
from __future__ import annotations

import json
import math
import re
from typing import Any, Dict, List, Optional, Tuple

ELEMENT_SCORES = ('excellent', 'good', 'needs_work', 'poor')


def pick_field(data: Dict[str, Any], candidate_keys: Tuple[str, ...]) -> Any:
    """Pick the first non-empty field from a list of candidate keys."""
    if not isinstance(data, dict):
        return None
    for key in candidate_keys:
        value = data.get(key)
        if value not in (None, '', [], {}):
            return value
    return None


def safe_float(value: Any, default: float = 0.0) -> float:
    """Safely coerce a value to float."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        result = float(value)
    else:
        try:
            result = float(str(value).strip())
        except (TypeError, ValueError):
            return default
    if math.isnan(result) or math.isinf(result):
        return default
    return result


def safe_int(value: Any) -> Optional[int]:
    """Safely coerce a value to int, returning None on failure."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def safe_bool(value: Any, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {'true', 'yes', '1'}:
            return True
        if lowered in {'false', 'no', '0'}:
            return False
    return default


def parse_json_like(value: Any) -> Any:
    """Attempt to interpret stringified JSON structures."""
    if isinstance(value, str):
        candidate = value.strip()
        if not candidate:
            return None
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            return candidate
    return value


def normalize_text(value: Any) -> Optional[str]:
    """Normalize free-text fields into concise strings."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        text = value.strip()
        return text or None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, list):
        joined = "; ".join(filter(None, (normalize_text(item) for item in value)))
        return joined or None
    if isinstance(value, dict):
        for key in ('text', 'summary', 'value', 'message', 'content'):
            if key in value:
                candidate = normalize_text(value[key])
                if candidate:
                    return candidate
        return None
    return str(value)


def normalize_list(value: Any, limit: Optional[int] = None, max_len: Optional[int] = None) -> List[str]:
    """Normalize list-like feedback fields into bounded lists of concise strings."""
    parsed = parse_json_like(value)
    if isinstance(parsed, list):
        iterable = parsed
    elif isinstance(parsed, str):
        iterable = [seg.strip() for seg in re.split(r'[\n;]+', parsed) if seg.strip()]
    elif parsed is None:
        iterable = []
    else:
        iterable = [parsed]

    items: List[str] = []
    for entry in iterable:
        text = normalize_text(entry)
        if not text:
            continue
        items.append(text[:max_len] if max_len else text)

    return items[:limit] if limit is not None else items


def normalize_element_score(value: Any, default: str = 'needs_work') -> str:
    """Map 'Needs work', 'needs-work', etc. onto the four qualitative scores."""
    text = normalize_text(value)
    if not text:
        return default
    key = re.sub(r'[\s\-]+', '_', text.lower())
    return key if key in ELEMENT_SCORES else default


def normalize_criteria(value: Any) -> Dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(key): normalize_element_score(score) for key, score in value.items()}


def round_to_half_band(value: float) -> float:
    """Round half-up to the nearest 0.5 (IELTS convention)."""
    return math.floor(value * 2 + 0.5) / 2


def normalize_band(value: Any) -> Optional[float]:
    """Clamp to 0-9 and round to half bands; None when the value is not numeric."""
    score = safe_float(value, default=float('nan'))
    if math.isnan(score):
        return None
    return round_to_half_band(max(0.0, min(9.0, score)))
