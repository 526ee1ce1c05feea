"""Rule-based candidate detection for hook, thesis, topic sentences and conclusions."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .essay_segmenter import SegmentedEssay, Sentence
from .structure_scoring import (
    clamp_score,
    has_forward_link,
    has_recommendation,
    has_thesis_connection,
    has_transition_word,
    overall_conclusion_likelihood,
    paragraph_conclusion_likelihood,
    thesis_likelihood,
    thesis_restatement,
    topic_sentence_likelihood,
)

HOOK = 'hook'
THESIS = 'thesis'
TOPIC_SENTENCE = 'topic_sentence'
PARAGRAPH_CONCLUSION = 'paragraph_conclusion'
OVERALL_CONCLUSION = 'overall_conclusion'

ROLES = (HOOK, THESIS, TOPIC_SENTENCE, PARAGRAPH_CONCLUSION, OVERALL_CONCLUSION)

THESIS_INDICATOR_THRESHOLD = 0.6


@dataclass(frozen=True)
class Candidate:
    """A sentence proposed for a structural role."""

    sentence: Sentence
    role: str
    confidence: float
    reason: str
    paragraph_index: Optional[int] = None
    sentence_index: Optional[int] = None
    analysis: Dict[str, Any] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return self.sentence.text


@dataclass(frozen=True)
class StructureCandidates:
    hook: Tuple[Candidate, ...] = ()
    thesis: Tuple[Candidate, ...] = ()
    topic_sentence: Tuple[Candidate, ...] = ()
    paragraph_conclusion: Tuple[Candidate, ...] = ()
    overall_conclusion: Tuple[Candidate, ...] = ()

    def for_role(self, role: str) -> Tuple[Candidate, ...]:
        return getattr(self, role)

    def counts(self) -> Dict[str, int]:
        return {role: len(self.for_role(role)) for role in ROLES}


def rank(candidates: Iterable[Candidate]) -> Tuple[Candidate, ...]:
    """Sort by confidence descending; sorted() is stable so ties keep text order."""
    return tuple(sorted(candidates, key=lambda c: -c.confidence))


def detect_hook_candidates(structure: SegmentedEssay) -> Tuple[Candidate, ...]:
    candidates: List[Candidate] = []
    intro = structure.introduction
    if intro and intro.sentences:
        candidates.append(Candidate(
            sentence=intro.sentences[0],
            role=HOOK,
            confidence=0.9,
            reason='first sentence of introduction',
            paragraph_index=intro.index,
        ))

    if structure.sentences:
        first_overall = structure.sentences[0]
        if not any(c.text == first_overall.text for c in candidates):
            candidates.append(Candidate(
                sentence=first_overall,
                role=HOOK,
                confidence=0.8,
                reason='first sentence of essay',
            ))

    return rank(candidates)


def detect_thesis_candidates(structure: SegmentedEssay) -> Tuple[Candidate, ...]:
    intro = structure.introduction
    if not intro:
        return ()

    sentences = intro.sentences
    candidates: List[Candidate] = []

    if len(sentences) > 1:
        candidates.append(Candidate(
            sentence=sentences[-1],
            role=THESIS,
            confidence=0.9,
            reason='last sentence of introduction',
            paragraph_index=intro.index,
        ))
    if len(sentences) > 2:
        candidates.append(Candidate(
            sentence=sentences[-2],
            role=THESIS,
            confidence=0.7,
            reason='second-to-last sentence of introduction',
            paragraph_index=intro.index,
        ))

    for sentence in sentences:
        score = thesis_likelihood(sentence.text)
        if score > THESIS_INDICATOR_THRESHOLD and not any(c.text == sentence.text for c in candidates):
            candidates.append(Candidate(
                sentence=sentence,
                role=THESIS,
                confidence=score,
                reason='contains thesis indicators',
                paragraph_index=intro.index,
            ))

    return rank(candidates)


def _topic_analysis(text: str, score: float) -> Dict[str, bool]:
    return {
        'has_transition': has_transition_word(text),
        'introduces_main_idea': score > 0.7,
        'connects_to_thesis': has_thesis_connection(text),
    }


def detect_topic_sentence_candidates(structure: SegmentedEssay) -> Tuple[Candidate, ...]:
    candidates: List[Candidate] = []

    for paragraph in structure.body_paragraphs:
        if not paragraph.sentences:
            continue
        first = paragraph.sentences[0]
        first_score = topic_sentence_likelihood(first.text, paragraph.index)
        candidates.append(Candidate(
            sentence=first,
            role=TOPIC_SENTENCE,
            confidence=clamp_score(max(0.75, first_score)),
            reason='first sentence of body paragraph',
            paragraph_index=paragraph.index,
            analysis=_topic_analysis(first.text, first_score),
        ))

        if len(paragraph.sentences) > 1:
            second = paragraph.sentences[1]
            second_score = topic_sentence_likelihood(second.text, paragraph.index)
            if second_score > first_score:
                candidates.append(Candidate(
                    sentence=second,
                    role=TOPIC_SENTENCE,
                    confidence=second_score,
                    reason='stronger topic indicators',
                    paragraph_index=paragraph.index,
                    analysis=_topic_analysis(second.text, second_score),
                ))

    return rank(candidates)


def detect_paragraph_conclusion_candidates(structure: SegmentedEssay) -> Tuple[Candidate, ...]:
    candidates: List[Candidate] = []

    for paragraph in structure.body_paragraphs:
        if len(paragraph.sentences) < 2:
            continue
        last = paragraph.sentences[-1]
        score = paragraph_conclusion_likelihood(last.text, paragraph.sentences[0].text)
        candidates.append(Candidate(
            sentence=last,
            role=PARAGRAPH_CONCLUSION,
            confidence=clamp_score(max(0.6, score)),
            reason='last sentence of body paragraph',
            paragraph_index=paragraph.index,
            analysis={
                'summarizes_main': score > 0.7,
                'has_transition': has_transition_word(last.text),
                'links_to_next': has_forward_link(last.text),
            },
        ))

    return rank(candidates)


def detect_overall_conclusion_candidates(
    structure: SegmentedEssay,
    thesis_text: str = '',
) -> Tuple[Candidate, ...]:
    paragraph = structure.conclusion_paragraph
    if not paragraph or not paragraph.sentences:
        return ()

    last_sentence_index = structure.sentences[-1].index
    total = len(paragraph.sentences)
    candidates: List[Candidate] = []

    for position, sentence in enumerate(paragraph.sentences):
        is_last = sentence.index == last_sentence_index
        score = overall_conclusion_likelihood(
            sentence.text,
            is_first_in_paragraph=position == 0,
            is_last_of_essay=is_last,
            thesis_text=thesis_text,
        )
        if position == 0:
            reason = 'first sentence of conclusion paragraph'
        elif position == total - 1:
            reason = 'final sentence of essay'
        else:
            reason = 'middle sentence of conclusion'

        candidates.append(Candidate(
            sentence=sentence,
            role=OVERALL_CONCLUSION,
            confidence=score,
            reason=reason,
            paragraph_index=paragraph.index,
            sentence_index=position,
            analysis={
                'restates_thesis': thesis_restatement(sentence.text, thesis_text) > 0.6 if thesis_text else False,
                'summarizes_main': score > 0.7,
                'provides_closure': is_last,
                'has_recommendation': has_recommendation(sentence.text),
            },
        ))

    return rank(candidates)


def detect_candidates(structure: SegmentedEssay) -> StructureCandidates:
    """Run every role detector; the top thesis feeds the conclusion overlap score."""
    thesis = detect_thesis_candidates(structure)
    thesis_text = thesis[0].text if thesis else ''
    return StructureCandidates(
        hook=detect_hook_candidates(structure),
        thesis=thesis,
        topic_sentence=detect_topic_sentence_candidates(structure),
        paragraph_conclusion=detect_paragraph_conclusion_candidates(structure),
        overall_conclusion=detect_overall_conclusion_candidates(structure, thesis_text),
    )
