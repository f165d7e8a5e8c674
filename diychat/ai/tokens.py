"""Pluggable token estimation.

Summarization policy is defined by message counts and idle time, so an
estimator only affects the ``tokens`` bookkeeping, never trigger decisions.
"""

import math
from typing import Protocol


class TokenEstimator(Protocol):
    def estimate(self, text: str) -> int: ...


class CharRatioTokenEstimator:
    """Rough estimate of one token per ``chars_per_token`` characters."""

    def __init__(self, chars_per_token: int = 4):
        if chars_per_token <= 0:
            raise ValueError("chars_per_token must be positive")
        self.chars_per_token = chars_per_token

    def estimate(self, text: str) -> int:
        if not text:
            return 0
        return math.ceil(len(text) / self.chars_per_token)


__all__ = ["CharRatioTokenEstimator", "TokenEstimator"]
