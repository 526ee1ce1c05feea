"""Process-wide accounting of AI text-generation calls (observability only)."""
from __future__ import annotations

import threading
from typing import Any, Dict

INPUT_COST_PER_MILLION = 0.30
OUTPUT_COST_PER_MILLION = 0.40


def estimate_text_tokens(text: str) -> int:
    """Rough estimate: one token per four characters."""
    return round(len(text or '') / 4)


def calculate_cost(input_tokens: int, output_tokens: int) -> float:
    return (input_tokens / 1_000_000) * INPUT_COST_PER_MILLION + (output_tokens / 1_000_000) * OUTPUT_COST_PER_MILLION


class UsageTracker:
    """Accumulates request counts and estimated cost across AI calls.

    Owned by the Flask app and injected into each client. Nothing reads these
    numbers back to make decisions.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.request_count = 0
        self.failure_count = 0
        self.total_input_tokens = 0
        self.total_output_tokens = 0
        self.total_cost = 0.0

    def record_success(self, prompt: str, response_text: str) -> float:
        input_tokens = estimate_text_tokens(prompt)
        output_tokens = estimate_text_tokens(response_text)
        cost = calculate_cost(input_tokens, output_tokens)
        with self._lock:
            self.request_count += 1
            self.total_input_tokens += input_tokens
            self.total_output_tokens += output_tokens
            self.total_cost += cost
        return cost

    def record_failure(self) -> None:
        with self._lock:
            self.request_count += 1
            self.failure_count += 1

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            succeeded = self.request_count - self.failure_count
            return {
                'request_count': self.request_count,
                'failure_count': self.failure_count,
                'total_input_tokens': self.total_input_tokens,
                'total_output_tokens': self.total_output_tokens,
                'total_cost': round(self.total_cost, 6),
                'average_cost_per_request': round(self.total_cost / succeeded, 6) if succeeded > 0 else 0.0,
            }
