"""Deterministic results built only from rule-based data, used when AI output is unusable."""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from .essay_segmenter import SegmentedEssay
from .structure_detector import (
    HOOK,
    OVERALL_CONCLUSION,
    PARAGRAPH_CONCLUSION,
    THESIS,
    TOPIC_SENTENCE,
    Candidate,
    StructureCandidates,
)

FALLBACK_BAND = 4.0
MIN_WORD_COUNT = 250

ROLE_LABELS = {
    HOOK: 'hook sentence',
    THESIS: 'thesis statement',
    TOPIC_SENTENCE: 'topic sentence',
    PARAGRAPH_CONCLUSION: 'paragraph conclusion',
    OVERALL_CONCLUSION: 'overall conclusion',
}

ROLE_CRITERIA = {
    HOOK: ('attention_grabbing', 'relevance_to_topic', 'clarity'),
    THESIS: ('clear_position', 'specific_claims', 'arguable'),
    TOPIC_SENTENCE: ('clear_main_idea', 'appropriate_transition', 'connects_to_thesis'),
    PARAGRAPH_CONCLUSION: ('summarizes_paragraph', 'draws_conclusion', 'links_to_thesis'),
    OVERALL_CONCLUSION: ('restates_thesis', 'summarizes_main_points', 'provides_closure'),
}

BAND_CRITERIA = ('task_response', 'coherence_cohesion', 'lexical_resource', 'grammar_accuracy')

_FALLBACK_JUSTIFICATIONS = {
    'task_response': "Automated assessment failed; task response could not be fully assessed.",
    'coherence_cohesion': "Automated assessment failed; organisation and linking were not assessed.",
    'lexical_resource': "Automated assessment failed; vocabulary assessment incomplete.",
    'grammar_accuracy': "Automated assessment failed; grammar analysis incomplete.",
}


def not_found_entry(role: str, paragraph: Optional[int] = None) -> Dict[str, Any]:
    entry = {
        'selected_candidate': None,
        'text': '',
        'score': 'poor',
        'feedback': f"No {ROLE_LABELS[role]} found.",
        'found': False,
        'source': 'rules',
        'criteria': {name: 'poor' for name in ROLE_CRITERIA[role]},
    }
    if role in (TOPIC_SENTENCE, PARAGRAPH_CONCLUSION):
        entry['paragraph'] = paragraph
    return entry


def candidate_entry(candidate: Candidate, position: int) -> Dict[str, Any]:
    """Rule-based selection for one role, rated needs_work."""
    entry = {
        'selected_candidate': position,
        'text': candidate.text,
        'score': 'needs_work',
        'feedback': f"Identified {ROLE_LABELS[candidate.role]} candidate: {candidate.reason}.",
        'found': True,
        'source': 'rules',
        'confidence': candidate.confidence,
        'criteria': {name: 'needs_work' for name in ROLE_CRITERIA[candidate.role]},
    }
    if candidate.role in (TOPIC_SENTENCE, PARAGRAPH_CONCLUSION):
        entry['paragraph'] = candidate.paragraph_index
    if candidate.analysis:
        entry['analysis'] = dict(candidate.analysis)
    return entry


def top_entry(role: str, candidates: Sequence[Candidate]) -> Dict[str, Any]:
    if not candidates:
        return not_found_entry(role)
    return candidate_entry(candidates[0], 1)


def per_paragraph_entries(role: str, candidates: Sequence[Candidate]) -> List[Dict[str, Any]]:
    """Best candidate for each paragraph, ordered by paragraph index."""
    best: Dict[int, Dict[str, Any]] = {}
    for position, candidate in enumerate(candidates, start=1):
        if candidate.paragraph_index not in best:
            best[candidate.paragraph_index] = candidate_entry(candidate, position)
    if not best:
        return [not_found_entry(role)]
    return [best[index] for index in sorted(best)]


def overall_structure_entry(structure: SegmentedEssay) -> Dict[str, Any]:
    meta = structure.metadata()
    complete = meta['has_introduction'] and meta['has_conclusion']
    return {
        'score': 'needs_work' if complete else 'poor',
        'feedback': (
            f"Essay has {meta['paragraph_count']} paragraphs with "
            f"{'an introduction' if meta['has_introduction'] else 'no introduction'} and "
            f"{'a conclusion' if meta['has_conclusion'] else 'no conclusion'}."
        ),
        'paragraph_count': meta['paragraph_count'],
        'logical_flow': 'needs_work' if complete else 'poor',
        'source': 'rules',
    }


def fallback_structure_analysis(candidates: StructureCandidates, structure: SegmentedEssay) -> Dict[str, Any]:
    """Structural result from the top rule-based candidate of every role."""
    return {
        'hook': top_entry(HOOK, candidates.hook),
        'thesis': top_entry(THESIS, candidates.thesis),
        'topic_sentences': per_paragraph_entries(TOPIC_SENTENCE, candidates.topic_sentence),
        'paragraph_conclusions': per_paragraph_entries(PARAGRAPH_CONCLUSION, candidates.paragraph_conclusion),
        'overall_conclusion': top_entry(OVERALL_CONCLUSION, candidates.overall_conclusion),
        'overall_structure': overall_structure_entry(structure),
    }


def word_count_assessment(word_count: int) -> Dict[str, Any]:
    adequate = word_count >= MIN_WORD_COUNT
    return {
        'actual': word_count,
        'adequate': adequate,
        'feedback': (
            "Word count is adequate." if adequate
            else f"Word count is below the minimum requirement of {MIN_WORD_COUNT} words."
        ),
    }


def fallback_band_analysis(word_count: int) -> Dict[str, Any]:
    """Fixed band 4 result flagging that automated assessment failed."""
    return {
        'band_scores': {
            name: {
                'score': FALLBACK_BAND,
                'justification': _FALLBACK_JUSTIFICATIONS[name],
                'strengths': [],
                'weaknesses': [],
            }
            for name in BAND_CRITERIA
        },
        'overall_band': FALLBACK_BAND,
        'overall_feedback': "Automated assessment failed, so these are placeholder scores. Please try again.",
        'word_count_assessment': word_count_assessment(word_count),
    }
