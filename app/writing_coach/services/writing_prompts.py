"""
Prompt templates for IELTS Writing Task 2 analysis.
Each builder returns a plain string; the model is always asked for strict JSON.
"""
from __future__ import annotations

from typing import Iterable

from .structure_detector import Candidate, StructureCandidates

SCORE_SCALE = "excellent|good|needs_work|poor"

STRUCTURE_SYSTEM_INSTRUCTION = "You are an expert IELTS examiner who validates essay structure and answers in compact JSON."
BAND_SYSTEM_INSTRUCTION = "You are an official IELTS Writing examiner who rates essays strictly and answers in compact JSON."
ANNOTATION_SYSTEM_INSTRUCTION = "You are an IELTS examiner creating character-accurate inline feedback in JSON."
VALIDATION_SYSTEM_INSTRUCTION = "You are a senior IELTS examiner doing quality control on structural identifications."


def _format_candidates(candidates: Iterable[Candidate], with_paragraph: bool = False) -> str:
    lines = []
    for i, candidate in enumerate(candidates, start=1):
        prefix = f"Paragraph {candidate.paragraph_index}: " if with_paragraph else ""
        flags = ", ".join(f"{key}: {value}" for key, value in candidate.analysis.items())
        detail = f"confidence: {candidate.confidence:.2f}, reason: {candidate.reason}"
        if flags:
            detail = f"{detail}, {flags}"
        lines.append(f'{i}. {prefix}"{candidate.text}" ({detail})')
    return "\n".join(lines) or "No candidates provided"


def build_structure_prompt(essay: str, candidates: StructureCandidates) -> str:
    """Ask the model to choose and rate the best candidate per structural role."""
    return f"""You are an expert IELTS examiner. Analyze the structural elements of this essay using the provided candidates for validation.

ESSAY TO ANALYZE:
"{essay}"

HOOK SENTENCE CANDIDATES (choose the best one):
{_format_candidates(candidates.hook)}

THESIS STATEMENT CANDIDATES (choose the best one):
{_format_candidates(candidates.thesis)}

TOPIC SENTENCE CANDIDATES (choose the best for each paragraph):
{_format_candidates(candidates.topic_sentence, with_paragraph=True)}

PARAGRAPH CONCLUSION CANDIDATES (choose the best for each paragraph):
{_format_candidates(candidates.paragraph_conclusion, with_paragraph=True)}

OVERALL CONCLUSION CANDIDATES (choose the best one):
{_format_candidates(candidates.overall_conclusion)}

RULES:
- Copy the selected sentence text EXACTLY as it appears in the essay.
- "selected_candidate" is the 1-based number from the matching list above.
- Rate each element with one of: {SCORE_SCALE}.
- If no candidate fits a role, return an empty "text" and score "poor".

Return ONLY valid JSON:

{{
  "structural_analysis": {{
    "hook": {{"selected_candidate": 1, "text": "...", "score": "good", "feedback": "...",
              "criteria": {{"attention_grabbing": "good", "relevance_to_topic": "good", "clarity": "good"}}}},
    "thesis": {{"selected_candidate": 1, "text": "...", "score": "good", "feedback": "...",
                "criteria": {{"clear_position": "good", "specific_claims": "good", "arguable": "good"}}}},
    "topic_sentences": [
      {{"paragraph": 1, "selected_candidate": 1, "text": "...", "score": "good", "feedback": "..."}}
    ],
    "paragraph_conclusions": [
      {{"paragraph": 1, "selected_candidate": 1, "text": "...", "score": "good", "feedback": "..."}}
    ],
    "overall_conclusion": {{"selected_candidate": 1, "text": "...", "score": "good", "feedback": "..."}},
    "overall_structure": {{"score": "good", "feedback": "...", "paragraph_count": 4, "logical_flow": "good"}}
  }}
}}"""


def build_band_score_prompt(essay: str, word_count: int) -> str:
    """Ask for an independent band rating on the four Task 2 criteria."""
    return f"""You are an official IELTS examiner. Rate this Writing Task 2 essay according to the official IELTS criteria.

ESSAY TO EVALUATE:
"{essay}"

WORD COUNT: {word_count} words

IELTS WRITING CRITERIA (score each 1-9, half bands allowed):
- Task Response: addresses all parts of the task, clear position, developed ideas.
- Coherence & Cohesion: logical organisation, cohesive devices, paragraphing.
- Lexical Resource: range, precision and accuracy of vocabulary.
- Grammatical Range & Accuracy: variety of structures, error-free sentences.

Essays under 250 words must be penalised under Task Response.

Return ONLY valid JSON:

{{
  "band_scores": {{
    "task_response": {{"score": 6, "justification": "...", "strengths": ["..."], "weaknesses": ["..."]}},
    "coherence_cohesion": {{"score": 6, "justification": "...", "strengths": ["..."], "weaknesses": ["..."]}},
    "lexical_resource": {{"score": 6, "justification": "...", "strengths": ["..."], "weaknesses": ["..."]}},
    "grammar_accuracy": {{"score": 6, "justification": "...", "strengths": ["..."], "weaknesses": ["..."]}}
  }},
  "overall_band": 6.0,
  "overall_feedback": "...",
  "word_count_assessment": {{"actual": {word_count}, "adequate": true, "feedback": "..."}}
}}"""


def build_annotation_prompt(essay: str, hook_text: str, thesis_text: str) -> str:
    """Ask for character-accurate spans, anchored on the confirmed hook and thesis."""
    return f"""You are an IELTS examiner creating interactive feedback. Identify specific text spans for highlighting with precise character positions.

ESSAY TO ANNOTATE:
"{essay}"

CONFIRMED STRUCTURAL ELEMENTS:
- Hook: "{hook_text}"
- Thesis: "{thesis_text}"

CRITICAL REQUIREMENTS:
- Copy "text" EXACTLY as it appears in the essay.
- start_index / end_index are 0-based character offsets into the essay above, end exclusive.
- Include the confirmed hook and thesis first, then strengths and weaknesses.

Return ONLY valid JSON:

{{
  "annotations": [
    {{
      "text": "exact phrase from essay",
      "start_index": 0,
      "end_index": 25,
      "type": "good|needs_work|error",
      "element": "hook|thesis|topic_sentence|conclusion_sentence|task_response|coherence|vocabulary|grammar",
      "message": "Specific feedback about this text span",
      "suggestion": "How to improve (if type is needs_work or error)",
      "priority": "high|medium|low"
    }}
  ]
}}"""


def build_validation_prompt(essay: str, hook_text: str, thesis_text: str) -> str:
    """Quality-control prompt double-checking the selected hook and thesis."""
    return f"""You are a senior IELTS examiner doing quality control. Validate these structural element identifications.

ESSAY:
"{essay}"

PROPOSED IDENTIFICATIONS:
Hook: "{hook_text}"
Thesis: "{thesis_text}"

Check that the hook opens the essay and engages the reader, and that the thesis states a clear, arguable position near the end of the introduction.

Return ONLY valid JSON:

{{
  "validation": {{
    "hook": {{"is_correct": true, "confidence": 0.9, "issues": ["..."], "alternative": ""}},
    "thesis": {{"is_correct": true, "confidence": 0.9, "issues": ["..."], "alternative": ""}},
    "overall_accuracy": 0.9,
    "recommendations": ["..."]
  }}
}}"""
