"""Similarity features over example strings.

Used by the knowledge base to rank stored entries against a new request
and to bucket entries by structural signature.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

_DIGIT = re.compile(r"\d")
_ALPHA = re.compile(r"[a-zA-Z]")
_CURRENCY = re.compile(r"[$€£¥]")
_DATE_LIKE = re.compile(r"\d{2,4}[-/]\d{2}[-/]\d{2,4}")
_SEPARATOR = re.compile(r"[,;|\t]")
_WHITESPACE = re.compile(r"\s")


def extract_features(examples: Sequence[str]) -> dict[str, float]:
    """Extract a feature vector describing the shape of example strings.

    Features capture what kind of text the examples are:
    - Character content: digits, letters, currency symbols, whitespace
    - Structure: date-like runs, field separators, key/value colons
    - Length: short, medium or long strings

    Args:
        examples: Example strings

    Returns:
        Dictionary of feature name to value in [0, 1]
    """
    features: dict[str, float] = {}
    if not examples:
        return features

    n = float(len(examples))

    def share(pattern: re.Pattern[str]) -> float:
        return sum(1 for e in examples if pattern.search(e)) / n

    features["has_digit"] = share(_DIGIT)
    features["has_alpha"] = share(_ALPHA)
    features["has_currency"] = share(_CURRENCY)
    features["has_whitespace"] = share(_WHITESPACE)
    features["date_like"] = share(_DATE_LIKE)
    features["separated"] = share(_SEPARATOR)
    features["key_value"] = sum(1 for e in examples if ":" in e or "=" in e) / n

    longest = max(len(e) for e in examples)
    features["len_short"] = 1.0 if longest <= 8 else 0.0
    features["len_medium"] = 1.0 if 8 < longest <= 32 else 0.0
    features["len_long"] = 1.0 if longest > 32 else 0.0

    return features


def feature_similarity(f1: dict[str, float], f2: dict[str, float]) -> float:
    """Calculate cosine similarity between two feature vectors.

    Returns:
        Similarity score between 0 and 1
    """
    all_keys = set(f1.keys()) | set(f2.keys())
    if not all_keys:
        return 0.0

    dot_product = 0.0
    mag1 = 0.0
    mag2 = 0.0
    for key in all_keys:
        v1 = f1.get(key, 0.0)
        v2 = f2.get(key, 0.0)
        dot_product += v1 * v2
        mag1 += v1 * v1
        mag2 += v2 * v2

    if mag1 == 0 or mag2 == 0:
        return 0.0
    return dot_product / (mag1**0.5 * mag2**0.5)


def char_jaccard(a: Sequence[str], b: Sequence[str]) -> float:
    """Jaccard overlap of the character sets of two example lists."""
    chars_a = set("".join(a))
    chars_b = set("".join(b))
    union = chars_a | chars_b
    if not union:
        return 0.0
    return len(chars_a & chars_b) / len(union)


def example_similarity(a: Sequence[str], b: Sequence[str]) -> float:
    """Blend of character overlap and shape similarity, 0 when either side is empty."""
    if not a or not b:
        return 0.0
    return (char_jaccard(a, b) + feature_similarity(extract_features(a), extract_features(b))) / 2


def compute_signature(examples: Sequence[str]) -> str:
    """Coarse structural bucket, e.g. ``d$_0`` for short currency strings."""
    if not examples:
        return "empty"
    flags = ""
    if any(_DIGIT.search(e) for e in examples):
        flags += "d"
    if any(_ALPHA.search(e) for e in examples):
        flags += "a"
    if any(_CURRENCY.search(e) for e in examples):
        flags += "$"
    if any(_DATE_LIKE.search(e) for e in examples):
        flags += "D"
    return f"{flags}_{max(len(e) for e in examples) // 10}"


__all__ = [
    "char_jaccard",
    "compute_signature",
    "example_similarity",
    "extract_features",
    "feature_similarity",
]
