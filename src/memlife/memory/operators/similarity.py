"""Pure similarity helpers shared by merge, conflict and consolidation operators."""

from __future__ import annotations

import re
from typing import AbstractSet

from memlife.memory.models import SECONDS_PER_DAY

_PUNCTUATION = re.compile(r"[^\w\s]")


def tokenize(text: str) -> set[str]:
    """Whitespace tokenization, case preserved."""
    return set(text.split())


def jaccard(a: AbstractSet[str], b: AbstractSet[str]) -> float:
    """Jaccard index with the reflexive convention: both empty is 1.0, one empty is 0.0."""
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def content_similarity(content_a: str, content_b: str) -> float:
    """Jaccard index over whitespace-separated words."""
    return jaccard(tokenize(content_a), tokenize(content_b))


def days_between(ts_a: float, ts_b: float) -> float:
    return abs(ts_a - ts_b) / SECONDS_PER_DAY


def time_similarity(ts_a: float, ts_b: float) -> float:
    """Bucketed proximity of two timestamps (seconds)."""
    days = days_between(ts_a, ts_b)
    if days <= 1:
        return 1.0
    if days <= 7:
        return 0.7
    if days <= 30:
        return 0.4
    return 0.1


def recency_score(days: float) -> float:
    """Bucketed closeness used when grouping memories for consolidation."""
    if days <= 1:
        return 0.8
    if days <= 7:
        return 0.5
    if days <= 30:
        return 0.3
    return 0.1


def _normalized_words(text: str) -> set[str]:
    return set(_PUNCTUATION.sub(" ", text.lower()).split())


def normalized_content_similarity(content_a: str, content_b: str) -> float:
    """Punctuation-insensitive word overlap blended with length ratio.

    Empty input on either side scores 0. Length similarity never drops
    below 0.3 so very short texts are not over-penalised.
    """
    words_a = _normalized_words(content_a)
    words_b = _normalized_words(content_b)
    if not words_a or not words_b:
        return 0.0

    word_sim = len(words_a & words_b) / len(words_a | words_b)
    length_ratio = min(len(content_a), len(content_b)) / max(len(content_a), len(content_b))
    length_sim = max(0.3, length_ratio)

    return max(0.0, min(1.0, word_sim * 0.7 + length_sim * 0.3))
