"""
Token-overlap similarity used by the experience network.

Cheap, deterministic and order-independent; the cache is advisory, so an
embedding model is not required.
"""

from typing import FrozenSet


def tokenize(text: str) -> FrozenSet[str]:
    """Case-folded whitespace tokens of ``text``."""
    return frozenset(text.casefold().split())


def token_similarity(tokens_a: FrozenSet[str], tokens_b: FrozenSet[str]) -> float:
    """|A ∩ B| / max(|A|, |B|); 0.0 when both sets are empty."""
    denominator = max(len(tokens_a), len(tokens_b))
    if denominator == 0:
        return 0.0
    return len(tokens_a & tokens_b) / denominator


def calculate_similarity(text1: str, text2: str) -> float:
    """
    Similarity of two texts in [0, 1].

    Example:
        >>> calculate_similarity("optimize react rendering", "Optimize React bundle")
        0.6666666666666666
    """
    return token_similarity(tokenize(text1), tokenize(text2))
