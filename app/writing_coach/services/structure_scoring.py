"""
Heuristic confidence scoring for essay structure candidates.
Every function here is pure: text (plus positional context) in, score out.
"""
from __future__ import annotations

import re
from typing import Dict, List, Optional, Sequence, Tuple


def _words(*phrases: str) -> re.Pattern[str]:
    return re.compile(r'\b(' + '|'.join(phrases) + r')\b', re.IGNORECASE)


PatternTable = Sequence[Tuple[str, re.Pattern[str]]]

THESIS_INDICATORS: PatternTable = (
    ('opinion', _words('believe', 'think', 'argue', 'claim', 'assert', 'maintain', 'contend', 'propose')),
    ('position', _words('should', 'must', 'need to', 'ought to', 'have to')),
    ('evaluative', _words('better', 'worse', 'more important', 'significant', 'crucial', 'essential')),
    ('stance', _words('agree', 'disagree', 'support', 'oppose', 'favor', 'against')),
    ('connector', _words('therefore', 'thus', 'hence', 'consequently', 'as a result')),
)

ORDINAL_TRANSITIONS: Dict[str, re.Pattern[str]] = {
    'first': _words('first', 'firstly', 'initially', 'to begin with', 'one', 'primarily'),
    'second': _words('second', 'secondly', 'furthermore', 'moreover', 'additionally', 'another', 'next'),
    'third': _words('third', 'thirdly', 'finally', 'lastly', 'in addition', 'most importantly'),
}
GENERAL_TRANSITION = _words('however', 'nevertheless', 'on the other hand', 'in contrast', 'similarly', 'likewise')

TOPIC_INDICATORS: PatternTable = (
    ('importance', _words('main', 'primary', 'key', 'important', 'significant', 'crucial')),
    ('cause', _words('reason', 'cause', 'factor', 'aspect', 'element', 'issue')),
    ('benefit_problem', _words('benefit', 'advantage', 'disadvantage', 'problem', 'challenge')),
    ('example', _words('example', 'instance', 'case', 'situation', 'scenario')),
)

PARAGRAPH_CONCLUSION_INDICATORS: PatternTable = (
    ('causal', _words('therefore', 'thus', 'hence', 'consequently', 'as a result')),
    ('summary', _words('in summary', 'overall', 'clearly', 'obviously', 'evidently')),
    ('demonstrative', _words('this shows', 'this demonstrates', 'this proves', 'this indicates')),
    ('importance', _words('important', 'significant', 'crucial', 'essential', 'key')),
)

OVERALL_CONCLUSION_INDICATORS: PatternTable = (
    ('closing', _words('in conclusion', 'to conclude', 'in summary', 'overall', 'finally')),
    ('causal', _words('therefore', 'thus', 'hence', 'consequently', 'as a result')),
    ('certainty', _words('it is clear', 'clearly', 'obviously', 'evidently')),
    ('importance', _words('important', 'crucial', 'essential', 'necessary')),
)

TRANSITION_WORDS = _words(
    'first', 'firstly', 'second', 'secondly', 'third', 'thirdly',
    'furthermore', 'moreover', 'additionally', 'however', 'nevertheless',
    'on the other hand', 'in contrast', 'similarly', 'likewise',
)

THESIS_CONNECTORS = (
    _words('benefit', 'advantage', 'positive', 'improve', 'enhance'),
    _words('problem', 'issue', 'negative', 'disadvantage', 'harmful'),
    _words('important', 'significant', 'crucial', 'essential', 'necessary'),
    _words('education', 'technology', 'society', 'economic', 'social'),
)

FORWARD_LINKS = (
    _words('next', 'following', 'furthermore', 'moreover', 'additionally'),
    _words('this leads to', 'this suggests', 'this indicates'),
    _words('moving forward', 'looking ahead', 'in the future'),
)

RECOMMENDATION_INDICATORS = (
    _words('should', 'must', 'need to', 'ought to', 'recommend', 'suggest'),
    _words('important to', 'necessary to', 'crucial to', 'essential to'),
    _words('future', 'going forward', 'moving forward', 'in order to'),
)

STOP_WORDS = frozenset({
    'the', 'a', 'an', 'and', 'or', 'but', 'in', 'on', 'at', 'to', 'for', 'of',
    'with', 'by', 'that', 'this', 'is', 'are', 'was', 'were', 'be', 'been',
    'have', 'has', 'had', 'do', 'does', 'did', 'will', 'would', 'could',
    'should', 'may', 'might', 'can',
})

_NON_WORD_RE = re.compile(r'[^\w\s]')


def clamp_score(score: float) -> float:
    return round(max(0.0, min(1.0, score)), 4)


def count_matches(text: str, table: PatternTable) -> int:
    """Number of pattern categories in ``table`` that match ``text``."""
    return sum(1 for _, pattern in table if pattern.search(text))


def _word_count(text: str) -> int:
    return len(text.split())


def extract_keywords(text: str) -> List[str]:
    """Lower-cased content words longer than three characters, first occurrence order."""
    seen: List[str] = []
    for token in _NON_WORD_RE.sub(' ', text.lower()).split():
        if len(token) > 3 and token not in STOP_WORDS and token not in seen:
            seen.append(token)
    return seen


def shared_keywords(text: str, other: str) -> List[str]:
    other_keywords = set(extract_keywords(other))
    return [word for word in extract_keywords(text) if word in other_keywords]


def thesis_restatement(text: str, thesis_text: str) -> float:
    """Share of the thesis keywords that reappear in ``text`` (0.0 to 1.0)."""
    thesis_keywords = extract_keywords(thesis_text)
    if not thesis_keywords:
        return 0.0
    text_keywords = set(extract_keywords(text))
    shared = [word for word in thesis_keywords if word in text_keywords]
    return len(shared) / len(thesis_keywords)


def has_transition_word(text: str) -> bool:
    return bool(TRANSITION_WORDS.search(text))


def has_thesis_connection(text: str) -> bool:
    return any(pattern.search(text) for pattern in THESIS_CONNECTORS)


def has_forward_link(text: str) -> bool:
    return any(pattern.search(text) for pattern in FORWARD_LINKS)


def has_recommendation(text: str) -> bool:
    return any(pattern.search(text) for pattern in RECOMMENDATION_INDICATORS)


def thesis_likelihood(text: str) -> float:
    score = 0.3 + 0.15 * count_matches(text, THESIS_INDICATORS)
    if _word_count(text) > 15:
        score += 0.1
    return clamp_score(score)


def ordinal_transition_key(paragraph_index: int) -> Optional[str]:
    """Ordinal table for a body paragraph's index; later paragraphs have none."""
    return {1: 'first', 2: 'second', 3: 'third'}.get(paragraph_index)


def has_positional_transition(text: str, paragraph_index: int) -> bool:
    """Only the first three body paragraphs can earn a transition bonus."""
    key = ordinal_transition_key(paragraph_index)
    if key is None:
        return False
    if ORDINAL_TRANSITIONS[key].search(text):
        return True
    return bool(GENERAL_TRANSITION.search(text))


def topic_sentence_likelihood(text: str, paragraph_index: int) -> float:
    score = 0.5
    if has_positional_transition(text, paragraph_index):
        score += 0.2
    score += 0.15 * count_matches(text, TOPIC_INDICATORS)
    if _word_count(text) > 12:
        score += 0.1
    if ',' in text:
        score += 0.05
    return clamp_score(score)


def paragraph_conclusion_likelihood(text: str, first_sentence_text: str) -> float:
    score = 0.4
    score += 0.15 * count_matches(text, PARAGRAPH_CONCLUSION_INDICATORS)
    if shared_keywords(text, first_sentence_text):
        score += 0.1
    if _word_count(text) > 10:
        score += 0.1
    if ',' in text:
        score += 0.05
    return clamp_score(score)


def overall_conclusion_likelihood(
    text: str,
    is_first_in_paragraph: bool,
    is_last_of_essay: bool,
    thesis_text: str = '',
) -> float:
    score = 0.5
    if is_first_in_paragraph:
        score += 0.1
    if is_last_of_essay:
        score += 0.2
    score += 0.15 * count_matches(text, OVERALL_CONCLUSION_INDICATORS)
    if thesis_text:
        score += thesis_restatement(text, thesis_text) * 0.3
    if has_recommendation(text):
        score += 0.1
    return clamp_score(score)
