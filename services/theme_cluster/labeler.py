"""
Theme Label Policy
Picks the most specific topic phrase of a cluster as its visible label
"""

from typing import Sequence

from shared.schemas.theme import UNCATEGORIZED


def count_words(value: str) -> int:
    """Number of whitespace-separated tokens (0 for blank strings)"""
    return len(value.split())


def pick_cluster_label(topics: Sequence[str]) -> str:
    """
    Choose the label for a cluster from its member topics.

    Prefers more words, then more characters. On a full tie the earliest
    topic keeps the label.

    Args:
        topics: Member topics in insertion order

    Returns:
        The chosen topic, or "Uncategorized" for an empty cluster
    """
    if not topics:
        return UNCATEGORIZED

    best = topics[0]
    best_words = count_words(best)
    best_length = len(best)

    for candidate in topics[1:]:
        words = count_words(candidate)
        length = len(candidate)
        if words > best_words or (words == best_words and length > best_length):
            best = candidate
            best_words = words
            best_length = length

    return best
