"""Client wrapper around the Google Gemini Generative Language API."""
from __future__ import annotations

import os
from typing import Any, Dict, Optional

import requests
from flask import current_app

from .usage import UsageTracker


class GeminiError(RuntimeError):
    """The text generator could not produce a usable response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class GeminiClient:
    """Plain-text generation via Gemini. Callers treat the output as untrusted."""

    DEFAULT_MODEL = "gemini-2.5-flash"
    DEFAULT_TIMEOUT = 40

    def __init__(self, api_key: Optional[str] = None, usage: Optional[UsageTracker] = None):
        self.api_key = api_key or os.getenv("GEMINI_API_KEY")
        self.model = os.getenv("GEMINI_MODEL", self.DEFAULT_MODEL)
        self.api_root = os.getenv(
            "GEMINI_API_URL",
            f"https://generativelanguage.googleapis.com/v1beta/models/{self.model}:generateContent",
        )
        try:
            self.timeout = int(os.getenv("GEMINI_TIMEOUT_SECONDS", str(self.DEFAULT_TIMEOUT)))
        except ValueError:
            self.timeout = self.DEFAULT_TIMEOUT
        self.usage = usage

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def generate_text(
        self,
        prompt: str,
        temperature: float = 0.3,
        system_instruction: Optional[str] = None,
        max_output_tokens: Optional[int] = None,
    ) -> str:
        """Send a prompt and return the raw response text.

        A single attempt is made; failures are not retried.

        Raises:
            GeminiError: missing API key, HTTP/network failure, blocked
                prompt, or an empty response.
        """
        if not self.is_configured:
            current_app.logger.error("Gemini API not configured - API key missing")
            raise GeminiError("Gemini API key is not configured")

        payload: Dict[str, Any] = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": temperature},
        }
        if max_output_tokens is not None:
            payload["generationConfig"]["maxOutputTokens"] = max_output_tokens
        if system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}

        try:
            response = requests.post(
                f"{self.api_root}?key={self.api_key}",
                json=payload,
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.HTTPError as exc:
            status_code = exc.response.status_code if exc.response is not None else None
            current_app.logger.error("Gemini HTTP error: %s - %s", status_code, exc)
            self._record_failure()
            raise GeminiError(f"Gemini HTTP error {status_code}", status_code=status_code) from exc
        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as exc:
            current_app.logger.error("Gemini request failed due to timeout/connection issue: %s", exc)
            self._record_failure()
            raise GeminiError(f"Gemini request failed: {exc}") from exc
        except (requests.exceptions.RequestException, ValueError) as exc:
            current_app.logger.error("Gemini request failed with unexpected error: %s", exc)
            self._record_failure()
            raise GeminiError(f"Gemini request failed: {exc}") from exc

        text, finish_reason = self._extract_text_and_finish_reason(data if isinstance(data, dict) else {})
        if not text:
            current_app.logger.error(
                "Gemini response contained empty text. Finish reason: %s, Full response: %s",
                finish_reason,
                str(data)[:500],
            )
            self._record_failure()
            raise GeminiError(f"Gemini returned no text (finish reason: {finish_reason})")

        if self.usage is not None:
            cost = self.usage.record_success(prompt, text)
            current_app.logger.debug(f"Gemini call cost estimate: ${cost:.6f}")
        return text

    def _record_failure(self) -> None:
        if self.usage is not None:
            self.usage.record_failure()

    @staticmethod
    def _extract_text_and_finish_reason(data: Dict[str, Any]) -> tuple[str, Optional[str]]:
        """Extract the first non-empty text from candidates and return it with the finish reason."""
        candidates = data.get("candidates") or []
        if not candidates:
            prompt_feedback = data.get("promptFeedback") or {}
            block_reason = prompt_feedback.get("blockReason")
            if block_reason:
                current_app.logger.error(
                    "Gemini blocked request. Reason: %s, Safety ratings: %s",
                    block_reason,
                    prompt_feedback.get("safetyRatings", []),
                )
                return "", block_reason
            current_app.logger.warning("Gemini response missing candidates. Full response: %s", str(data)[:500])
            return "", None

        fallback_finish: Optional[str] = None
        for cand in candidates:
            if not isinstance(cand, dict):
                continue
            finish_reason = cand.get("finishReason")
            if not fallback_finish:
                fallback_finish = finish_reason
            parts = (cand.get("content") or {}).get("parts", [])
            collected = [
                part["text"] for part in parts
                if isinstance(part, dict) and isinstance(part.get("text"), str) and part["text"].strip()
            ]
            if collected:
                return "".join(collected), finish_reason

        return "", fallback_finish


def get_gemini_client(usage: Optional[UsageTracker] = None) -> GeminiClient:
    """Factory helper to allow lazy imports without circular references."""
    return GeminiClient(usage=usage)
