"""
Character-span annotations for highlighting structural elements in the essay.
Every emitted annotation satisfies essay[start_index:end_index] == text.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from flask import current_app

from .feedback_normalizer import normalize_text, parse_json_like, pick_field, safe_int
from .json_extraction import try_extract_json_object
from .writing_prompts import ANNOTATION_SYSTEM_INSTRUCTION, build_annotation_prompt

MAX_ANNOTATIONS = 20
ANNOTATION_TYPES = ('good', 'needs_work', 'error')
PRIORITIES = ('high', 'medium', 'low')


def align_span(essay: str, text: str, start_index: Optional[int], end_index: Optional[int]) -> Optional[Tuple[int, int]]:
    """Return offsets that reproduce ``text`` in ``essay``, or None.

    Offsets that already match are kept; otherwise the first verbatim
    occurrence of the text is used.
    """
    if not text:
        return None
    if (
        start_index is not None and end_index is not None
        and 0 <= start_index < end_index <= len(essay)
        and essay[start_index:end_index] == text
    ):
        return start_index, end_index
    found = essay.find(text)
    if found == -1:
        return None
    return found, found + len(text)


def normalize_ai_annotations(essay: str, value: Any) -> List[Dict[str, Any]]:
    """Normalize model annotations and drop any that cannot be aligned."""
    parsed = parse_json_like(value)
    if not isinstance(parsed, list):
        return []

    annotations: List[Dict[str, Any]] = []
    for raw in parsed:
        if not isinstance(raw, dict):
            continue
        text = raw.get('text') if isinstance(raw.get('text'), str) else None
        if not text or not text.strip():
            continue

        span = align_span(
            essay,
            text,
            safe_int(pick_field(raw, ('start_index', 'startIndex', 'start'))),
            safe_int(pick_field(raw, ('end_index', 'endIndex', 'end'))),
        )
        if span is None:
            stripped = text.strip()
            span = align_span(essay, stripped, None, None)
            text = stripped
        if span is None:
            current_app.logger.debug("Dropping annotation not found in essay: %r", text[:80])
            continue

        issue_type = (normalize_text(raw.get('type')) or 'needs_work').lower().replace(' ', '_')
        priority = (normalize_text(raw.get('priority')) or 'medium').lower()
        annotations.append({
            'text': text,
            'start_index': span[0],
            'end_index': span[1],
            'type': issue_type if issue_type in ANNOTATION_TYPES else 'needs_work',
            'element': (normalize_text(raw.get('element')) or 'general').lower()[:40],
            'message': (normalize_text(raw.get('message') or raw.get('comment')) or '')[:300],
            'suggestion': (normalize_text(raw.get('suggestion')) or '')[:300],
            'priority': priority if priority in PRIORITIES else 'medium',
        })

    return annotations[:MAX_ANNOTATIONS]


def literal_annotations(essay: str, hook_text: str, thesis_text: str) -> List[Dict[str, Any]]:
    """Locate hook and thesis by substring search; missing texts are omitted."""
    annotations: List[Dict[str, Any]] = []
    for element, text, message in (
        ('hook', hook_text, 'Identified hook sentence'),
        ('thesis', thesis_text, 'Identified thesis statement'),
    ):
        span = align_span(essay, text, None, None)
        if span is None:
            if text:
                current_app.logger.warning("Could not align %s text with the essay; omitting annotation", element)
            continue
        annotations.append({
            'text': text,
            'start_index': span[0],
            'end_index': span[1],
            'type': 'good',
            'element': element,
            'message': message,
            'suggestion': '',
            'priority': 'high',
        })
    return annotations


def build_annotations(essay: str, hook_text: str, thesis_text: str, client=None) -> Tuple[List[Dict[str, Any]], str]:
    """Build annotations, trying the model first and substring search second.

    Returns:
        (annotations, source) where source is 'ai', 'rules' or 'none'.
    """
    if client is not None:
        try:
            response = client.generate_text(
                build_annotation_prompt(essay, hook_text, thesis_text),
                temperature=0.2,
                system_instruction=ANNOTATION_SYSTEM_INSTRUCTION,
                max_output_tokens=4096,
            )
            payload = try_extract_json_object(response, stage='annotation')
            if payload is not None:
                annotations = normalize_ai_annotations(essay, payload.get('annotations'))
                if annotations:
                    return annotations, 'ai'
                current_app.logger.warning("AI annotation pass returned no usable annotations")
        except Exception as e:
            current_app.logger.error(f"Failed to create AI annotations: {e}", exc_info=True)

    annotations = literal_annotations(essay, hook_text, thesis_text)
    return annotations, 'rules' if annotations else 'none'
