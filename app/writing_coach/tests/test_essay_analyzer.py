import json
import threading

import pytest
from flask import Flask, current_app

from app.writing_coach.services.essay_analyzer import (
    EssayAnalyzer,
    calculate_confidence,
    calculate_overall_band,
)
from app.writing_coach.services.gemini_client import GeminiError


HOOK = "Technology has transformed almost every part of modern life."
THESIS = "I believe that technology has made our lives easier because it saves time and improves communication."
TOPIC_1 = "Firstly, technology saves a great deal of time in daily tasks."
TOPIC_2 = "Secondly, communication has improved significantly."
PARAGRAPH_CONCLUSION_1 = "Therefore, people have more free time for their families."
CONCLUSION = "In conclusion, technology has made our lives easier because it saves time and improves communication."

BAND_RESPONSE = json.dumps({
    "band_scores": {
        "task_response": {"score": 6, "justification": "Clear position.", "strengths": ["Relevant ideas"], "weaknesses": []},
        "coherence_cohesion": {"score": 7, "justification": "Logical paragraphs."},
        "lexical_resource": {"score": 6, "justification": "Adequate range."},
        "grammar_accuracy": {"score": 7, "justification": "Mostly accurate.", "weaknesses": "Articles; Plurals"},
    },
    "overall_feedback": "A well organised answer that needs more development.",
    "word_count_assessment": {"actual": 1, "adequate": True, "feedback": "Too short for Task 2."},
})


def _prompt_kind(prompt: str) -> str:
    if "PROPOSED IDENTIFICATIONS" in prompt:
        return 'validation'
    if "ESSAY TO ANNOTATE" in prompt:
        return 'annotation'
    if "HOOK SENTENCE CANDIDATES" in prompt:
        return 'structure'
    if "WORD COUNT:" in prompt:
        return 'band'
    return 'unknown'


class FakeClient:
    """Returns canned text per prompt kind; Exceptions are raised, callables are invoked."""

    is_configured = True

    def __init__(self, **responses):
        self.responses = responses
        self.calls = []

    def generate_text(self, prompt, temperature=0.3, system_instruction=None, max_output_tokens=None):
        kind = _prompt_kind(prompt)
        self.calls.append(kind)
        response = self.responses.get(kind)
        if callable(response):
            response = response()
        if isinstance(response, Exception):
            raise response
        if response is None:
            raise GeminiError(f"no canned {kind} response")
        return response


def _span(essay, text):
    start = essay.find(text)
    return {"text": text, "start_index": start, "end_index": start + len(text)}


def _structure_response():
    payload = {
        "structural_analysis": {
            "hook": {
                "selected_candidate": 1, "text": HOOK, "score": "Good", "feedback": "Engaging opener.",
                "criteria": {"attention_grabbing": "needs work", "relevance_to_topic": "good", "clarity": "excellent"},
            },
            "thesis": {"selected_candidate": 1, "text": THESIS, "score": "excellent", "feedback": "Clear stance."},
            "topic_sentences": [
                {"paragraph": 1, "selected_candidate": 1, "text": TOPIC_1, "score": "good", "feedback": "Clear."},
                {"paragraph": 2, "selected_candidate": 2, "text": TOPIC_2, "score": "needs work", "feedback": "Vague."},
            ],
            "paragraph_conclusions": [
                {"paragraph": 1, "selected_candidate": 1, "text": PARAGRAPH_CONCLUSION_1, "score": "good"},
            ],
            "overall_conclusion": {"selected_candidate": 1, "text": CONCLUSION, "score": "good", "feedback": "Restates thesis."},
            "overall_structure": {"score": "good", "feedback": "Clear four-paragraph structure.", "paragraph_count": 4, "logical_flow": "good"},
        }
    }
    return "Here is my analysis:\n```json\n" + json.dumps(payload) + "\n```"


@pytest.fixture(autouse=True)
def app_context():
    app = Flask(__name__)
    with app.app_context():
        yield


def test_ai_selections_and_band_scores_are_merged(sample_essay):
    annotations = {"annotations": [
        dict(_span(sample_essay, HOOK), type="good", element="hook", message="Strong opener.", priority="high"),
        dict(_span(sample_essay, THESIS), type="good", element="thesis", message="Clear position.", priority="high"),
    ]}
    client = FakeClient(structure=_structure_response(), band=BAND_RESPONSE, annotation=json.dumps(annotations))

    result = EssayAnalyzer(client=client).analyze(sample_essay, "Has technology made life easier?")

    structural = result['structural_analysis']
    assert structural['hook']['text'] == HOOK
    assert structural['hook']['score'] == 'good'
    assert structural['hook']['source'] == 'ai'
    assert structural['hook']['criteria']['attention_grabbing'] == 'needs_work'
    assert structural['thesis']['score'] == 'excellent'
    assert [t['paragraph'] for t in structural['topic_sentences']] == [1, 2]
    assert structural['topic_sentences'][1]['score'] == 'needs_work'
    assert structural['topic_sentences'][1]['selected_candidate'] == 2
    assert [c['paragraph'] for c in structural['paragraph_conclusions']] == [1, 2]
    assert structural['paragraph_conclusions'][1]['source'] == 'rules'
    assert structural['overall_conclusion']['text'] == CONCLUSION
    assert structural['overall_structure']['paragraph_count'] == 4

    assert result['overall_band'] == 6.5
    assert result['band_scores']['grammar_accuracy']['weaknesses'] == ['Articles', 'Plurals']
    assert result['word_count_assessment']['actual'] == result['word_count']
    assert result['word_count_assessment']['adequate'] is False
    assert result['word_count_assessment']['feedback'] == "Too short for Task 2."
    assert result['prompt'] == "Has technology made life easier?"

    metadata = result['metadata']
    assert metadata['structure_source'] == 'ai'
    assert metadata['band_source'] == 'ai'
    assert metadata['annotation_source'] == 'ai'
    assert metadata['analysis_method'] == 'hybrid_rule_ai'
    assert metadata['confidence'] == 1.0
    assert metadata['rule_based_candidates']['topic_sentence'] == 2
    assert metadata['structure_metadata']['paragraph_count'] == 4
    assert 'validation' not in metadata
    assert sorted(client.calls) == ['annotation', 'band', 'structure']


def test_plain_text_structure_response_falls_back_with_all_roles(sample_essay):
    client = FakeClient(structure="I cannot help with that.", band=BAND_RESPONSE)

    result = EssayAnalyzer(client=client).analyze(sample_essay)

    structural = result['structural_analysis']
    assert result['metadata']['structure_source'] == 'fallback'
    for role in ('hook', 'thesis', 'overall_conclusion'):
        assert structural[role]['found'] is True
        assert structural[role]['text']
        assert structural[role]['score'] == 'needs_work'
    assert structural['hook']['text'] == HOOK
    assert structural['thesis']['text'] == THESIS
    assert len(structural['topic_sentences']) == 2
    assert len(structural['paragraph_conclusions']) == 2
    assert result['overall_band'] == 6.5
    assert result['metadata']['annotation_source'] == 'rules'


def test_empty_essay_skips_ai_and_uses_fallbacks():
    client = FakeClient(structure=_structure_response(), band=BAND_RESPONSE)

    result = EssayAnalyzer(client=client).analyze('', None)

    assert client.calls == []
    assert result['word_count'] == 0
    assert result['overall_band'] == 4
    assert result['annotations'] == []
    assert result['prompt'] is None
    assert all(count == 0 for count in result['metadata']['rule_based_candidates'].values())
    assert result['metadata']['analysis_method'] == 'rule_based'
    structural = result['structural_analysis']
    assert structural['hook']['found'] is False
    assert structural['hook']['score'] == 'poor'
    assert len(structural['topic_sentences']) == 1
    assert structural['topic_sentences'][0]['found'] is False


def test_band_failure_uses_fallback_band_four(sample_essay):
    client = FakeClient(structure=_structure_response(), band=GeminiError("HTTP 500", status_code=500))

    result = EssayAnalyzer(client=client).analyze(sample_essay)

    assert result['metadata']['band_source'] == 'fallback'
    assert result['metadata']['structure_source'] == 'ai'
    assert result['overall_band'] == 4.0
    assert all(entry['score'] == 4.0 for entry in result['band_scores'].values())
    assert all('failed' in entry['justification'] for entry in result['band_scores'].values())


def test_missing_roles_are_filled_from_rule_candidates(sample_essay):
    structure = json.dumps({"structural_analysis": {"hook": {"selected_candidate": 1, "score": "good"}}})
    client = FakeClient(structure=structure, band=BAND_RESPONSE)

    structural = EssayAnalyzer(client=client).analyze(sample_essay)['structural_analysis']

    assert structural['hook']['text'] == HOOK
    assert structural['hook']['source'] == 'ai'
    assert structural['thesis']['text'] == THESIS
    assert structural['thesis']['source'] == 'rules'
    assert [t['source'] for t in structural['topic_sentences']] == ['rules', 'rules']
    assert structural['overall_conclusion']['found'] is True
    assert structural['overall_structure']['source'] == 'rules'


def test_unplaceable_list_selections_are_dropped(sample_essay):
    video = "Video calls let families stay in touch across continents."
    structure = json.dumps({"structural_analysis": {
        "hook": {"selected_candidate": 1, "score": "good"},
        "topic_sentences": [
            {"text": "A paraphrased topic sentence.", "score": "good"},
            {"text": video, "score": "fair"},
        ],
        "paragraph_conclusions": [{"paragraph": 7, "text": "Nowhere in the essay.", "score": "good"}],
    }})
    client = FakeClient(structure=structure, band=BAND_RESPONSE)

    structural = EssayAnalyzer(client=client).analyze(sample_essay)['structural_analysis']

    topics = [(t['paragraph'], t['text'], t['source']) for t in structural['topic_sentences']]
    assert topics == [(1, TOPIC_1, 'rules'), (2, video, 'ai')]
    conclusions = structural['paragraph_conclusions']
    assert [c['paragraph'] for c in conclusions] == [1, 2]
    assert all(c['source'] == 'rules' for c in conclusions)


def test_deeply_nested_structure_reply_falls_back(sample_essay):
    nested = "[" * 100000 + "]" * 100000
    client = FakeClient(structure=nested, band=BAND_RESPONSE)

    result = EssayAnalyzer(client=client).analyze(sample_essay)

    assert result['metadata']['structure_source'] == 'fallback'
    assert result['structural_analysis']['hook']['text'] == HOOK
    assert result['overall_band'] == 6.5


def test_band_scores_are_clamped_rounded_and_completed(sample_essay):
    band = json.dumps({
        "bandScores": {
            "taskResponse": {"score": 9.7},
            "coherence_cohesion": {"score": "6.3"},
            "lexical_resource": 7,
            "grammar_accuracy": {"score": "n/a"},
        },
        "overallBand": "7.2",
    })
    client = FakeClient(structure=_structure_response(), band=band)

    result = EssayAnalyzer(client=client).analyze(sample_essay)

    scores = {name: entry['score'] for name, entry in result['band_scores'].items()}
    assert scores == {
        'task_response': 9.0,
        'coherence_cohesion': 6.5,
        'lexical_resource': 7.0,
        'grammar_accuracy': 7.5,
    }
    assert 'estimated' in result['band_scores']['grammar_accuracy']['justification']
    assert result['overall_band'] == 7.0


def test_band_payload_without_scores_falls_back(sample_essay):
    client = FakeClient(structure=_structure_response(), band='{"overall_band": 8}')

    result = EssayAnalyzer(client=client).analyze(sample_essay)

    assert result['metadata']['band_source'] == 'fallback'
    assert result['overall_band'] == 4.0


def test_misaligned_annotations_are_reanchored_or_dropped(sample_essay):
    video = "Video calls let families stay in touch across continents."
    annotations = {"annotations": [
        {"text": HOOK, "start_index": 0, "end_index": 5, "type": "good", "element": "hook"},
        {"text": video + "  ", "startIndex": 3, "endIndex": 9, "type": "Needs Work", "priority": "urgent"},
        {"text": "Smartphones are evil.", "start_index": 0, "end_index": 21, "type": "error"},
    ]}
    client = FakeClient(structure=_structure_response(), band=BAND_RESPONSE, annotation=json.dumps(annotations))

    result = EssayAnalyzer(client=client).analyze(sample_essay)

    assert result['metadata']['annotation_source'] == 'ai'
    assert [a['text'] for a in result['annotations']] == [HOOK, video]
    for annotation in result['annotations']:
        assert sample_essay[annotation['start_index']:annotation['end_index']] == annotation['text']
    assert result['annotations'][1]['type'] == 'needs_work'
    assert result['annotations'][1]['priority'] == 'medium'


def test_literal_annotations_when_ai_annotation_fails(sample_essay):
    client = FakeClient(structure=_structure_response(), band=BAND_RESPONSE, annotation="no json here")

    result = EssayAnalyzer(client=client).analyze(sample_essay)

    assert result['metadata']['annotation_source'] == 'rules'
    assert [a['element'] for a in result['annotations']] == ['hook', 'thesis']
    for annotation in result['annotations']:
        assert sample_essay[annotation['start_index']:annotation['end_index']] == annotation['text']


def test_annotation_ai_can_be_disabled(sample_essay):
    current_app.config['ANNOTATION_AI_ENABLED'] = False
    client = FakeClient(structure=_structure_response(), band=BAND_RESPONSE)

    result = EssayAnalyzer(client=client).analyze(sample_essay)

    assert 'annotation' not in client.calls
    assert result['metadata']['annotation_source'] == 'rules'


def test_validation_pass_attaches_verdict(sample_essay):
    current_app.config['STRUCTURE_VALIDATION_ENABLED'] = True
    validation = json.dumps({"validation": {
        "hook": {"is_correct": True, "confidence": 1.5, "issues": []},
        "thesis": {"isCorrect": "false", "confidence": 0.4, "issues": ["Too long"], "alternative": "x"},
        "overall_accuracy": 0.7,
        "recommendations": ["Shorten the thesis"],
    }})
    client = FakeClient(structure=_structure_response(), band=BAND_RESPONSE, validation=validation)

    result = EssayAnalyzer(client=client).analyze(sample_essay)

    verdict = result['metadata']['validation']
    assert verdict['hook']['is_correct'] is True
    assert verdict['hook']['confidence'] == 1.0
    assert verdict['thesis']['is_correct'] is False
    assert verdict['thesis']['issues'] == ['Too long']
    assert verdict['overall_accuracy'] == 0.7


def test_validation_failure_is_ignored(sample_essay):
    current_app.config['STRUCTURE_VALIDATION_ENABLED'] = True
    client = FakeClient(structure=_structure_response(), band=BAND_RESPONSE, validation=GeminiError("down"))

    result = EssayAnalyzer(client=client).analyze(sample_essay)

    assert 'validation' not in result['metadata']
    assert result['metadata']['structure_source'] == 'ai'


def test_unconfigured_client_is_never_called(sample_essay):
    client = FakeClient(structure=_structure_response(), band=BAND_RESPONSE)
    client.is_configured = False

    result = EssayAnalyzer(client=client).analyze(sample_essay)

    assert client.calls == []
    assert result['metadata']['analysis_method'] == 'rule_based'
    assert result['overall_band'] == 4.0
    assert result['structural_analysis']['thesis']['text'] == THESIS


def test_slow_stage_times_out_to_fallback(sample_essay):
    current_app.config['ANALYSIS_STAGE_TIMEOUT_SECONDS'] = 0.2
    release = threading.Event()

    def slow_structure():
        release.wait(5)
        return _structure_response()

    client = FakeClient(structure=slow_structure, band=BAND_RESPONSE)
    try:
        result = EssayAnalyzer(client=client).analyze(sample_essay)
    finally:
        release.set()

    assert result['metadata']['structure_source'] == 'fallback'
    assert result['metadata']['band_source'] == 'ai'
    assert result['structural_analysis']['hook']['text'] == HOOK


def test_calculate_overall_band_rounds_half_up():
    assert calculate_overall_band({'task_response': 6, 'coherence_cohesion': 7, 'lexical_resource': 6, 'grammar_accuracy': 7}) == 6.5
    assert calculate_overall_band({'task_response': 6, 'coherence_cohesion': 6, 'lexical_resource': 6, 'grammar_accuracy': 7}) == 6.5
    assert calculate_overall_band({'task_response': 5, 'coherence_cohesion': 5, 'lexical_resource': 5, 'grammar_accuracy': 5.5}) == 5.0
    assert calculate_overall_band({
        'taskResponse': {'score': 6}, 'coherenceCohesion': {'score': 7},
        'lexicalResource': {'score': 6}, 'grammarAccuracy': {'score': 7},
    }) == 6.5
    assert calculate_overall_band({'task_response': 8}) == 2.0
    assert calculate_overall_band({}) == 0.0
    assert calculate_overall_band(None) == 0.0


def test_calculate_confidence():
    assert calculate_confidence({'hook': {'text': 'a'}, 'thesis': {'text': 'b'}}, 6.5) == 1.0
    assert calculate_confidence({'hook': {'text': ''}, 'thesis': {'text': ''}}, 0) == 0.5
    assert calculate_confidence({'hook': {'text': 'a'}, 'thesis': {}}, 4.0) == 0.8
