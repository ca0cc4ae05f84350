"""Word-level k-shingle extraction."""
from __future__ import annotations

from typing import FrozenSet, Optional, Sequence

from veriwrite.core.config import Settings, get_settings
from veriwrite.services.text_processor import tokenize

ShingleSet = FrozenSet[str]


def shingles_from_tokens(tokens: Sequence[str], k: int) -> ShingleSet:
    """Unique k-token shingles.

    Fewer than ``k`` tokens yield a single shingle holding the whole token
    sequence; zero tokens yield an empty set.
    """
    if k < 1:
        raise ValueError("shingle size must be positive")
    if not tokens:
        return frozenset()
    if len(tokens) < k:
        return frozenset([" ".join(tokens)])
    return frozenset(" ".join(tokens[i:i + k]) for i in range(len(tokens) - k + 1))


class ShingleExtractor:
    """Turns text into shingle sets with the configured, shared k."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.k = self.settings.shingle_size

    def extract(self, text: Optional[str]) -> ShingleSet:
        return shingles_from_tokens(tokenize(text), self.k)

    def extract_tokens(self, tokens: Sequence[str]) -> ShingleSet:
        return shingles_from_tokens(tokens, self.k)
