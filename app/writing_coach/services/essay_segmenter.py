"""Split an essay into paragraphs and sentences with absolute character offsets."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple


_PARAGRAPH_BREAK_RE = re.compile(r'\n[ \t\r\f\v]*\n\s*')
_SENTENCE_END_RE = re.compile(r'[.!?]+')

INTRODUCTION = 'introduction'
BODY = 'body'
CONCLUSION = 'conclusion'


@dataclass(frozen=True)
class Sentence:
    text: str
    start_index: int
    end_index: int
    index: int
    word_count: int


@dataclass(frozen=True)
class Paragraph:
    index: int
    text: str
    start_index: int
    end_index: int
    type: str
    sentences: Tuple[Sentence, ...]
    word_count: int


@dataclass(frozen=True)
class SegmentedEssay:
    essay: str
    paragraphs: Tuple[Paragraph, ...]
    sentences: Tuple[Sentence, ...]
    word_count: int

    @property
    def is_degenerate(self) -> bool:
        return not self.sentences

    @property
    def introduction(self) -> Optional[Paragraph]:
        return self.paragraphs[0] if self.paragraphs else None

    @property
    def body_paragraphs(self) -> List[Paragraph]:
        return [p for p in self.paragraphs if p.type == BODY]

    @property
    def conclusion_paragraph(self) -> Optional[Paragraph]:
        """Paragraph typed as conclusion, or the last paragraph if none is."""
        for paragraph in self.paragraphs:
            if paragraph.type == CONCLUSION:
                return paragraph
        return self.paragraphs[-1] if self.paragraphs else None

    def metadata(self) -> dict:
        sentence_count = len(self.sentences)
        return {
            'paragraph_count': len(self.paragraphs),
            'sentence_count': sentence_count,
            'average_words_per_sentence': round(self.word_count / sentence_count, 1) if sentence_count else 0.0,
            'has_introduction': any(p.type == INTRODUCTION for p in self.paragraphs),
            'has_conclusion': any(p.type == CONCLUSION for p in self.paragraphs),
            'has_body_paragraphs': any(p.type == BODY for p in self.paragraphs),
        }


def count_words(text: str) -> int:
    return len(text.split())


def classify_paragraph(index: int, total: int) -> str:
    """Paragraph type is derived from position only."""
    if index == 0:
        return INTRODUCTION
    if index == total - 1:
        return CONCLUSION
    return BODY


def _trimmed_span(text: str, start: int, end: int) -> Optional[Tuple[int, int]]:
    """Shrink [start, end) so it excludes surrounding whitespace; None if empty."""
    chunk = text[start:end]
    stripped = chunk.strip()
    if not stripped:
        return None
    lead = len(chunk) - len(chunk.lstrip())
    new_start = start + lead
    return new_start, new_start + len(stripped)


def _paragraph_spans(essay: str) -> List[Tuple[int, int]]:
    spans = []
    cursor = 0
    for match in _PARAGRAPH_BREAK_RE.finditer(essay):
        span = _trimmed_span(essay, cursor, match.start())
        if span:
            spans.append(span)
        cursor = match.end()
    span = _trimmed_span(essay, cursor, len(essay))
    if span:
        spans.append(span)
    return spans


def split_sentences(essay: str, start: int, end: int, first_index: int = 0) -> List[Sentence]:
    """Split essay[start:end] on runs of terminal punctuation.

    Offsets on the returned sentences point into ``essay`` itself. A trailing
    fragment without terminal punctuation still becomes a sentence.
    """
    sentences: List[Sentence] = []
    cursor = start
    for match in _SENTENCE_END_RE.finditer(essay, start, end):
        span = _trimmed_span(essay, cursor, match.end())
        cursor = match.end()
        if not span:
            continue
        text = essay[span[0]:span[1]]
        sentences.append(Sentence(text, span[0], span[1], first_index + len(sentences), count_words(text)))

    if cursor < end:
        span = _trimmed_span(essay, cursor, end)
        if span:
            text = essay[span[0]:span[1]]
            sentences.append(Sentence(text, span[0], span[1], first_index + len(sentences), count_words(text)))

    return sentences


def segment_essay(essay: str) -> SegmentedEssay:
    """Segment ``essay`` into paragraphs and sentences.

    Empty and whitespace-only essays produce no paragraphs rather than an
    error. The input string is never modified, so every offset can be used
    to slice it directly.
    """
    essay = essay or ''
    spans = _paragraph_spans(essay)
    paragraphs: List[Paragraph] = []
    all_sentences: List[Sentence] = []

    for index, (start, end) in enumerate(spans):
        sentences = split_sentences(essay, start, end, first_index=len(all_sentences))
        all_sentences.extend(sentences)
        text = essay[start:end]
        paragraphs.append(Paragraph(
            index=index,
            text=text,
            start_index=start,
            end_index=end,
            type=classify_paragraph(index, len(spans)),
            sentences=tuple(sentences),
            word_count=count_words(text),
        ))

    return SegmentedEssay(
        essay=essay,
        paragraphs=tuple(paragraphs),
        sentences=tuple(all_sentences),
        word_count=count_words(essay),
    )
