import pytest
from flask import Flask

from app.writing_coach.services.essay_segmenter import segment_essay
from app.writing_coach.services.structure_detector import (
    ROLES,
    detect_candidates,
    detect_overall_conclusion_candidates,
    detect_thesis_candidates,
    detect_topic_sentence_candidates,
)
from app.writing_coach.services.structure_scoring import (
    clamp_score,
    extract_keywords,
    has_positional_transition,
    thesis_likelihood,
    thesis_restatement,
    topic_sentence_likelihood,
)


@pytest.fixture(autouse=True)
def app_context():
    app = Flask(__name__)
    with app.app_context():
        yield


def test_detects_candidates_for_every_role(sample_essay):
    candidates = detect_candidates(segment_essay(sample_essay))

    assert candidates.counts() == {
        'hook': 1,
        'thesis': 2,
        'topic_sentence': 2,
        'paragraph_conclusion': 2,
        'overall_conclusion': 2,
    }
    assert candidates.hook[0].text == "Technology has transformed almost every part of modern life."
    assert candidates.hook[0].confidence == 0.9
    assert candidates.thesis[0].text.startswith("I believe that technology")
    assert candidates.thesis[0].confidence == 0.9
    assert candidates.thesis[1].confidence == 0.7


def test_candidate_lists_are_sorted_by_confidence(sample_essay):
    candidates = detect_candidates(segment_essay(sample_essay))

    for role in ROLES:
        scores = [c.confidence for c in candidates.for_role(role)]
        assert scores == sorted(scores, reverse=True)
        assert all(0.0 <= score <= 1.0 for score in scores)


def test_topic_sentence_ties_keep_paragraph_order(sample_essay):
    topics = detect_topic_sentence_candidates(segment_essay(sample_essay))

    assert [c.paragraph_index for c in topics] == [1, 2]
    assert topics[0].confidence == topics[1].confidence == 0.75
    assert topics[0].analysis['has_transition'] is True
    assert topics[0].text.startswith("Firstly,")


def test_stronger_second_sentence_becomes_topic_candidate():
    essay = (
        "Intro one. Intro two.\n\n"
        "Cats sleep. The main reason for this problem is a key economic factor, for example in cities.\n\n"
        "The end."
    )
    topics = detect_topic_sentence_candidates(segment_essay(essay))

    assert len(topics) == 2
    assert topics[0].text.startswith("The main reason")
    assert topics[0].reason == 'stronger topic indicators'


def test_conclusion_restating_thesis_scores_high(sample_essay):
    structure = segment_essay(sample_essay)
    thesis = detect_thesis_candidates(structure)[0]
    conclusion = detect_overall_conclusion_candidates(structure, thesis.text)

    first = next(c for c in conclusion if c.sentence_index == 0)
    assert first.confidence > 0.6
    assert first.analysis['restates_thesis'] is True
    last = next(c for c in conclusion if c.sentence_index == 1)
    assert last.analysis['provides_closure'] is True
    assert last.analysis['has_recommendation'] is True


def test_single_sentence_introduction_has_no_positional_thesis():
    structure = segment_essay("Crime is rising.\n\nBody text here.\n\nThe end.")
    assert detect_thesis_candidates(structure) == ()


def test_thesis_indicator_sentence_is_added_once():
    essay = "I strongly believe we should support public transport. It is cheap. Cars are noisy.\n\nEnd."
    thesis = detect_thesis_candidates(segment_essay(essay))

    reasons = [c.reason for c in thesis]
    assert reasons.count('contains thesis indicators') == 1
    indicator = next(c for c in thesis if c.reason == 'contains thesis indicators')
    assert indicator.confidence == 0.75


def test_empty_essay_has_no_candidates():
    candidates = detect_candidates(segment_essay(""))
    assert all(count == 0 for count in candidates.counts().values())


def test_thesis_likelihood_counts_categories():
    assert thesis_likelihood("I believe we should support this.") == 0.75
    assert thesis_likelihood("Cats sleep.") == 0.3


def test_ordinal_transitions_apply_to_first_three_body_paragraphs():
    assert has_positional_transition("Firstly, cars pollute.", 1)
    assert not has_positional_transition("Firstly, cars pollute.", 2)
    assert has_positional_transition("However, cars pollute.", 3)
    assert not has_positional_transition("However, cars pollute.", 5)
    assert not has_positional_transition("Finally, cars pollute.", 4)
    assert topic_sentence_likelihood("Cats sleep.", 1) == 0.5


def test_later_body_paragraphs_get_no_transition_bonus():
    assert topic_sentence_likelihood("However cars pollute the air.", 2) == pytest.approx(0.7)
    assert topic_sentence_likelihood("However cars pollute the air.", 4) == 0.5


def test_keyword_helpers():
    assert extract_keywords("The Technology, the technology and society!") == ['technology', 'society']
    assert thesis_restatement("anything", "") == 0.0
    assert thesis_restatement("Technology helps society", "technology harms society") == pytest.approx(2 / 3)
    assert clamp_score(1.4) == 1.0
    assert clamp_score(-0.2) == 0.0


def test_conclusion_restating_thesis_keywords_scores_high():
    thesis = "I believe cats should be adopted more because they reduce loneliness."
    essay = f"Cats are useful. {thesis}\n\nIn conclusion, cats reduce loneliness and should be adopted more."
    structure = segment_essay(essay)

    conclusion = detect_overall_conclusion_candidates(structure, thesis)

    assert len(conclusion) == 1
    assert conclusion[0].text == "In conclusion, cats reduce loneliness and should be adopted more."
    assert conclusion[0].confidence > 0.6
    assert thesis_restatement(conclusion[0].text, thesis) > 0.6
    assert conclusion[0].analysis['restates_thesis'] is True
