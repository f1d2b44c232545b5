"""
Approximate token cost of message text.

The default is a character heuristic: one cost unit per ``chars_per_token``
characters, rounded up. Any callable ``str -> int`` can be used instead.
"""

import math
from typing import Callable

TokenEstimator = Callable[[str], int]

DEFAULT_CHARS_PER_TOKEN = 4


class CharacterEstimator:
    """Estimate cost as ceil(len(text) / chars_per_token)."""

    def __init__(self, chars_per_token: int = DEFAULT_CHARS_PER_TOKEN) -> None:
        if chars_per_token <= 0:
            raise ValueError("chars_per_token must be positive")
        self.chars_per_token = chars_per_token

    def __call__(self, text: str) -> int:
        if not text:
            return 0
        return math.ceil(len(text) / self.chars_per_token)

    def __repr__(self) -> str:
        return f"CharacterEstimator(chars_per_token={self.chars_per_token})"


def estimate_tokens(text: str) -> int:
    """Estimate with the default character heuristic."""
    return _DEFAULT(text)


_DEFAULT = CharacterEstimator()
