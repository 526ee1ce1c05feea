"""
Hybrid IELTS Writing Task 2 analysis.
Rule-based structure detection, AI validation and band scoring, with
deterministic fallbacks whenever the model output cannot be used.
"""
from __future__ import annotations

import concurrent.futures
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from flask import current_app

from .annotations import build_annotations
from .essay_segmenter import Paragraph, SegmentedEssay, segment_essay
from .fallbacks import (
    BAND_CRITERIA,
    candidate_entry,
    fallback_band_analysis,
    fallback_structure_analysis,
    not_found_entry,
    overall_structure_entry,
    word_count_assessment,
)
from .feedback_normalizer import (
    normalize_band,
    normalize_criteria,
    normalize_element_score,
    normalize_list,
    normalize_text,
    pick_field,
    round_to_half_band,
    safe_bool,
    safe_float,
    safe_int,
)
from .gemini_client import GeminiError, get_gemini_client
from .json_extraction import try_extract_json_object
from .structure_detector import (
    HOOK,
    OVERALL_CONCLUSION,
    PARAGRAPH_CONCLUSION,
    THESIS,
    TOPIC_SENTENCE,
    Candidate,
    StructureCandidates,
    detect_candidates,
)
from .usage import UsageTracker
from .writing_prompts import (
    BAND_SYSTEM_INSTRUCTION,
    STRUCTURE_SYSTEM_INSTRUCTION,
    VALIDATION_SYSTEM_INSTRUCTION,
    build_band_score_prompt,
    build_structure_prompt,
    build_validation_prompt,
)

DEFAULT_STAGE_TIMEOUT_SECONDS = 60

_STRUCTURE_KEYS = ('structural_analysis', 'structuralAnalysis', 'structure')
_SINGLE_ROLE_KEYS = {
    HOOK: ('hook',),
    THESIS: ('thesis',),
    OVERALL_CONCLUSION: ('overall_conclusion', 'overallConclusion', 'conclusion'),
}
_LIST_ROLE_KEYS = {
    TOPIC_SENTENCE: ('topic_sentences', 'topicSentences'),
    PARAGRAPH_CONCLUSION: ('paragraph_conclusions', 'paragraphConclusions'),
}
_BAND_KEYS = ('band_scores', 'bandScores', 'scores')
_CRITERION_KEYS = {
    'task_response': ('task_response', 'taskResponse', 'task_achievement'),
    'coherence_cohesion': ('coherence_cohesion', 'coherenceCohesion', 'coherence_and_cohesion'),
    'lexical_resource': ('lexical_resource', 'lexicalResource'),
    'grammar_accuracy': ('grammar_accuracy', 'grammarAccuracy', 'grammatical_range_accuracy', 'grammaticalRangeAccuracy'),
}


def calculate_overall_band(band_scores: Optional[Dict[str, Any]]) -> float:
    """Average of the four criteria rounded half-up to the nearest 0.5.

    Criteria may be plain numbers or ``{'score': ...}`` dicts; missing ones
    count as 0.
    """
    if not isinstance(band_scores, dict) or not band_scores:
        return 0.0
    scores = []
    for name in BAND_CRITERIA:
        raw = pick_field(band_scores, _CRITERION_KEYS[name])
        if isinstance(raw, dict):
            raw = raw.get('score')
        scores.append(safe_float(raw))
    return round_to_half_band(sum(scores) / len(scores))


def calculate_confidence(structural_analysis: Dict[str, Any], overall_band: Any) -> float:
    """0.5 base, +0.2 per hook/thesis text present, +0.1 for a positive band."""
    confidence = 0.5
    if (structural_analysis.get('hook') or {}).get('text'):
        confidence += 0.2
    if (structural_analysis.get('thesis') or {}).get('text'):
        confidence += 0.2
    if safe_float(overall_band) > 0:
        confidence += 0.1
    return round(min(confidence, 1.0), 2)


class EssayAnalyzer:
    """Analyze one essay per instance; holds no state shared across requests."""

    def __init__(self, client=None, usage: Optional[UsageTracker] = None):
        self._client = client
        self._usage = usage

    @property
    def client(self):
        if self._client is None:
            self._client = get_gemini_client(usage=self._usage)
        return self._client

    @property
    def ai_available(self) -> bool:
        return bool(self.client is not None and getattr(self.client, 'is_configured', True))

    def analyze(self, essay_text: str, prompt: Optional[str] = None) -> Dict[str, Any]:
        """
        Analyze an IELTS Writing Task 2 essay.

        Returns:
            Dict with word_count, timestamp, structural_analysis, band_scores,
            overall_band, overall_feedback, word_count_assessment,
            annotations, metadata and prompt. Never raises for string input.
        """
        essay = essay_text if isinstance(essay_text, str) else ''
        structure = segment_essay(essay)
        candidates = detect_candidates(structure)
        counts = candidates.counts()
        word_count = structure.word_count

        current_app.logger.info(
            f"Structure detected: {len(structure.paragraphs)} paragraphs, "
            f"{len(structure.sentences)} sentences, candidates={counts}"
        )

        use_ai = not structure.is_degenerate and self.ai_available
        if structure.is_degenerate:
            current_app.logger.warning("Essay has no sentences; skipping AI analysis and using fallbacks")
        elif not use_ai:
            current_app.logger.warning("AI client not configured; using rule-based analysis only")

        structure_text: Optional[str] = None
        band_text: Optional[str] = None
        if use_ai:
            structure_text, band_text = self._run_ai_stages(
                build_structure_prompt(essay, candidates),
                build_band_score_prompt(essay, word_count),
            )

        structural_analysis, structure_source = self._resolve_structure(structure_text, candidates, structure)
        band_analysis, band_source = self._resolve_band_scores(band_text, word_count)

        hook_text = structural_analysis['hook']['text']
        thesis_text = structural_analysis['thesis']['text']

        validation = None
        if use_ai and hook_text and thesis_text and current_app.config.get('STRUCTURE_VALIDATION_ENABLED', False):
            validation = self._validate_structural_elements(essay, hook_text, thesis_text)

        annotation_client = self.client if use_ai and current_app.config.get('ANNOTATION_AI_ENABLED', True) else None
        annotations, annotation_source = build_annotations(essay, hook_text, thesis_text, client=annotation_client)

        overall_band = band_analysis.get('overall_band') or calculate_overall_band(band_analysis.get('band_scores'))
        metadata: Dict[str, Any] = {
            'analysis_method': 'hybrid_rule_ai' if 'ai' in (structure_source, band_source, annotation_source) else 'rule_based',
            'structure_source': structure_source,
            'band_source': band_source,
            'annotation_source': annotation_source,
            'rule_based_candidates': counts,
            'structure_metadata': structure.metadata(),
            'confidence': calculate_confidence(structural_analysis, overall_band),
        }
        if validation is not None:
            metadata['validation'] = validation

        current_app.logger.info(
            "Essay analysis complete: overall_band=%s, structure=%s, band=%s, annotations=%s",
            overall_band, structure_source, band_source, len(annotations),
        )

        return {
            'word_count': word_count,
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'structural_analysis': structural_analysis,
            'band_scores': band_analysis.get('band_scores', {}),
            'overall_band': overall_band,
            'overall_feedback': band_analysis.get('overall_feedback', ''),
            'word_count_assessment': band_analysis.get('word_count_assessment') or word_count_assessment(word_count),
            'annotations': annotations,
            'metadata': metadata,
            'prompt': prompt or None,
        }

    # ------------------------------------------------------------------
    # AI stages
    # ------------------------------------------------------------------

    def _run_ai_stages(self, structure_prompt: str, band_prompt: str) -> Tuple[Optional[str], Optional[str]]:
        """Run structure validation and band scoring concurrently and wait for both."""
        app = current_app._get_current_object()
        timeout = current_app.config.get('ANALYSIS_STAGE_TIMEOUT_SECONDS', DEFAULT_STAGE_TIMEOUT_SECONDS)

        executor = concurrent.futures.ThreadPoolExecutor(max_workers=2, thread_name_prefix='essay-ai')
        try:
            structure_future = executor.submit(
                self._generate_in_context, app, 'structure', structure_prompt, STRUCTURE_SYSTEM_INSTRUCTION,
            )
            band_future = executor.submit(
                self._generate_in_context, app, 'band score', band_prompt, BAND_SYSTEM_INSTRUCTION,
            )
            done, not_done = concurrent.futures.wait([structure_future, band_future], timeout=timeout)
            if not_done:
                current_app.logger.warning(f"{len(not_done)} AI stage(s) did not finish within {timeout}s")
            return (
                structure_future.result() if structure_future in done else None,
                band_future.result() if band_future in done else None,
            )
        finally:
            executor.shutdown(wait=False)

    def _generate_in_context(self, app, stage: str, prompt: str, system_instruction: str) -> Optional[str]:
        """Worker-thread entry point; pushes an app context so logging works."""
        with app.app_context():
            try:
                text = self.client.generate_text(
                    prompt,
                    temperature=0.3,
                    system_instruction=system_instruction,
                    max_output_tokens=4096,
                )
                current_app.logger.info(f"AI {stage} response received ({len(text or '')} chars)")
                return text
            except GeminiError as e:
                current_app.logger.warning(f"AI {stage} call failed, falling back: {e}")
            except Exception as e:
                current_app.logger.error(f"AI {stage} call failed unexpectedly: {e}", exc_info=True)
            return None

    def _validate_structural_elements(self, essay: str, hook_text: str, thesis_text: str) -> Optional[Dict[str, Any]]:
        """Optional quality-control pass over the selected hook and thesis."""
        try:
            response = self.client.generate_text(
                build_validation_prompt(essay, hook_text, thesis_text),
                temperature=0.2,
                system_instruction=VALIDATION_SYSTEM_INSTRUCTION,
                max_output_tokens=1024,
            )
        except Exception as e:
            current_app.logger.error(f"Structure validation failed: {e}")
            return None

        payload = try_extract_json_object(response, stage='validation')
        if payload is None:
            return None
        data = payload.get('validation') if isinstance(payload.get('validation'), dict) else payload

        def _element(raw: Any) -> Dict[str, Any]:
            raw = raw if isinstance(raw, dict) else {}
            return {
                'is_correct': safe_bool(pick_field(raw, ('is_correct', 'isCorrect'))),
                'confidence': max(0.0, min(1.0, safe_float(raw.get('confidence')))),
                'issues': normalize_list(raw.get('issues'), limit=5, max_len=200),
                'alternative': normalize_text(raw.get('alternative')) or '',
            }

        validation = {
            'hook': _element(data.get('hook')),
            'thesis': _element(data.get('thesis')),
            'overall_accuracy': max(0.0, min(1.0, safe_float(pick_field(data, ('overall_accuracy', 'overallAccuracy'))))),
            'recommendations': normalize_list(data.get('recommendations'), limit=5, max_len=200),
        }
        current_app.logger.info(
            "Validation results: hook confidence=%s, thesis confidence=%s",
            validation['hook']['confidence'], validation['thesis']['confidence'],
        )
        return validation

    # ------------------------------------------------------------------
    # Structure stage
    # ------------------------------------------------------------------

    def _resolve_structure(
        self,
        response_text: Optional[str],
        candidates: StructureCandidates,
        structure: SegmentedEssay,
    ) -> Tuple[Dict[str, Any], str]:
        if response_text is not None:
            payload = try_extract_json_object(response_text, stage='structure analysis')
            if payload is not None:
                normalized = self._normalize_structure(payload, candidates, structure)
                if normalized is not None:
                    return normalized, 'ai'
                current_app.logger.warning("Structure payload had no recognizable elements; using rule-based fallback")
        return fallback_structure_analysis(candidates, structure), 'fallback'

    def _normalize_structure(
        self,
        payload: Dict[str, Any],
        candidates: StructureCandidates,
        structure: SegmentedEssay,
    ) -> Optional[Dict[str, Any]]:
        """Merge the model's selections with rule-based candidates.

        Roles the model omits fall back to their top candidate, so every role
        with at least one candidate ends up with a selection.
        """
        container = pick_field(payload, _STRUCTURE_KEYS)
        if not isinstance(container, dict):
            container = payload
        known_keys = [key for keys in (*_SINGLE_ROLE_KEYS.values(), *_LIST_ROLE_KEYS.values()) for key in keys]
        if not any(key in container for key in known_keys):
            return None

        result: Dict[str, Any] = {}
        for role, keys in _SINGLE_ROLE_KEYS.items():
            result[role] = self._normalize_element(pick_field(container, keys), role, candidates.for_role(role))

        result['topic_sentences'] = self._normalize_element_list(
            pick_field(container, _LIST_ROLE_KEYS[TOPIC_SENTENCE]), TOPIC_SENTENCE, candidates.topic_sentence,
            structure.body_paragraphs,
        )
        result['paragraph_conclusions'] = self._normalize_element_list(
            pick_field(container, _LIST_ROLE_KEYS[PARAGRAPH_CONCLUSION]), PARAGRAPH_CONCLUSION, candidates.paragraph_conclusion,
            structure.body_paragraphs,
        )

        raw_overall = pick_field(container, ('overall_structure', 'overallStructure'))
        if isinstance(raw_overall, dict):
            paragraph_count = safe_int(pick_field(raw_overall, ('paragraph_count', 'paragraphCount')))
            result['overall_structure'] = {
                'score': normalize_element_score(raw_overall.get('score')),
                'feedback': normalize_text(raw_overall.get('feedback')) or '',
                'paragraph_count': paragraph_count if paragraph_count is not None else len(structure.paragraphs),
                'logical_flow': normalize_element_score(pick_field(raw_overall, ('logical_flow', 'logicalFlow'))),
                'source': 'ai',
            }
        else:
            result['overall_structure'] = overall_structure_entry(structure)

        return result

    @staticmethod
    def _match_candidate(
        candidates: Sequence[Candidate],
        selected: Optional[int],
        text: Optional[str],
    ) -> Tuple[Optional[int], Optional[Candidate]]:
        """Resolve the model's choice to a (1-based position, candidate) pair."""
        if selected is not None and 1 <= selected <= len(candidates):
            candidate = candidates[selected - 1]
            if not text or candidate.text == text:
                return selected, candidate
        if text:
            for position, candidate in enumerate(candidates, start=1):
                if candidate.text == text:
                    return position, candidate
        return None, None

    def _normalize_element(self, raw: Any, role: str, candidates: Sequence[Candidate]) -> Dict[str, Any]:
        raw = raw if isinstance(raw, dict) else {}
        text = normalize_text(raw.get('text'))
        selected = safe_int(pick_field(raw, ('selected_candidate', 'selectedCandidate')))
        position, candidate = self._match_candidate(candidates, selected, text)

        if not text and candidate is not None:
            text = candidate.text
        if not text:
            if candidates:
                return candidate_entry(candidates[0], 1)
            return not_found_entry(role)

        entry: Dict[str, Any] = {
            'selected_candidate': position,
            'text': text,
            'score': normalize_element_score(raw.get('score')),
            'feedback': normalize_text(raw.get('feedback')) or '',
            'found': True,
            'source': 'ai',
            'criteria': normalize_criteria(raw.get('criteria')),
        }
        if candidate is not None:
            entry['confidence'] = candidate.confidence
        if role in (TOPIC_SENTENCE, PARAGRAPH_CONCLUSION):
            paragraph = candidate.paragraph_index if candidate is not None else None
            entry['paragraph'] = paragraph if paragraph is not None else safe_int(
                pick_field(raw, ('paragraph', 'paragraph_index', 'paragraphIndex'))
            )
        if isinstance(raw.get('analysis'), dict):
            entry['analysis'] = dict(raw['analysis'])
        elif candidate is not None and candidate.analysis:
            entry['analysis'] = dict(candidate.analysis)
        return entry

    def _normalize_element_list(
        self,
        raw: Any,
        role: str,
        candidates: Sequence[Candidate],
        body_paragraphs: Sequence[Paragraph],
    ) -> List[Dict[str, Any]]:
        body_indexes = {paragraph.index for paragraph in body_paragraphs}
        entries: Dict[int, Dict[str, Any]] = {}
        raw_items = raw if isinstance(raw, list) else []
        for item in raw_items:
            if not isinstance(item, dict):
                continue
            if not normalize_text(item.get('text')) and pick_field(item, ('selected_candidate', 'selectedCandidate')) is None:
                continue
            entry = self._normalize_element(item, role, candidates)
            if not entry['found']:
                continue
            if entry.get('paragraph') is None:
                entry['paragraph'] = next(
                    (p.index for p in body_paragraphs if entry['text'] in p.text), None
                )
            if entry['paragraph'] not in body_indexes:
                current_app.logger.debug(f"Dropping {role} selection with no body paragraph: {entry['text'][:60]!r}")
                continue
            entries.setdefault(entry['paragraph'], entry)

        for position, candidate in enumerate(candidates, start=1):
            if candidate.paragraph_index not in entries:
                entries[candidate.paragraph_index] = candidate_entry(candidate, position)

        if not entries:
            return [not_found_entry(role)]
        return [entries[index] for index in sorted(entries)]

    # ------------------------------------------------------------------
    # Band score stage
    # ------------------------------------------------------------------

    def _resolve_band_scores(self, response_text: Optional[str], word_count: int) -> Tuple[Dict[str, Any], str]:
        if response_text is not None:
            payload = try_extract_json_object(response_text, stage='band score')
            if payload is not None:
                normalized = self._normalize_band_scores(payload, word_count)
                if normalized is not None:
                    return normalized, 'ai'
                current_app.logger.warning("Band score payload had no usable criteria; using fallback band analysis")
        return fallback_band_analysis(word_count), 'fallback'

    def _normalize_band_scores(self, payload: Dict[str, Any], word_count: int) -> Optional[Dict[str, Any]]:
        container = pick_field(payload, _BAND_KEYS)
        if not isinstance(container, dict):
            return None

        band_scores: Dict[str, Dict[str, Any]] = {}
        for name in BAND_CRITERIA:
            raw = pick_field(container, _CRITERION_KEYS[name])
            raw = raw if isinstance(raw, dict) else {'score': raw}
            score = normalize_band(raw.get('score'))
            if score is None:
                continue
            band_scores[name] = {
                'score': score,
                'justification': normalize_text(raw.get('justification')) or '',
                'strengths': normalize_list(raw.get('strengths'), limit=5, max_len=200),
                'weaknesses': normalize_list(raw.get('weaknesses'), limit=5, max_len=200),
            }

        if not band_scores:
            return None

        missing = [name for name in BAND_CRITERIA if name not in band_scores]
        if missing:
            estimate = round_to_half_band(sum(entry['score'] for entry in band_scores.values()) / len(band_scores))
            current_app.logger.warning("Band payload missing criteria %s; estimating %.1f", missing, estimate)
            for name in missing:
                band_scores[name] = {
                    'score': estimate,
                    'justification': "Not assessed by the examiner model; estimated from the other criteria.",
                    'strengths': [],
                    'weaknesses': [],
                }

        overall_band = normalize_band(pick_field(payload, ('overall_band', 'overallBand')))
        if not overall_band:
            overall_band = calculate_overall_band(band_scores)

        assessment = word_count_assessment(word_count)
        raw_assessment = pick_field(payload, ('word_count_assessment', 'wordCountAssessment'))
        if isinstance(raw_assessment, dict):
            assessment['feedback'] = normalize_text(raw_assessment.get('feedback')) or assessment['feedback']

        return {
            'band_scores': {name: band_scores[name] for name in BAND_CRITERIA},
            'overall_band': overall_band,
            'overall_feedback': normalize_text(pick_field(payload, ('overall_feedback', 'overallFeedback'))) or '',
            'word_count_assessment': assessment,
        }
