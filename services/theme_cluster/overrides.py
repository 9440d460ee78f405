"""
Theme Label Overrides
Post-clustering correction of labels that are too terse or too dominant.
A label is only ever replaced by the item's own topic text.
"""

from collections import Counter
from typing import Optional

import structlog

from shared.schemas.theme import (
    UNCATEGORIZED,
    ThemeClusterOutput,
    ThemeClusterResult,
    ThemeLabelOverrideOptions,
)

from .labeler import count_words

logger = structlog.get_logger()


def dominant_labels(items: list[ThemeClusterOutput], max_dominance_pct: float) -> set[str]:
    """
    Labels carried by at least max_dominance_pct of all items.

    "Uncategorized" items count toward the total but the sentinel itself
    is never dominant.
    """
    if max_dominance_pct <= 0 or not items:
        return set()
    total = len(items)
    counts = Counter(item.theme_label for item in items)
    return {
        label
        for label, count in counts.items()
        if label != UNCATEGORIZED and count / total >= max_dominance_pct
    }


def group_topics_by_label(items: list[ThemeClusterOutput]) -> dict[str, list[str]]:
    """label -> distinct member topics, both in first-seen order"""
    clusters: dict[str, list[str]] = {}
    for item in items:
        topics = clusters.setdefault(item.theme_label, [])
        if item.topic not in topics:
            topics.append(item.topic)
    return clusters


def apply_theme_label_overrides(
    result: ThemeClusterResult,
    options: Optional[ThemeLabelOverrideOptions] = None,
) -> ThemeClusterResult:
    """
    Restore an item's own topic as its label where clustering over-merged.

    An item is relabeled with its trimmed topic when that topic differs from
    the current label, has at least min_label_words words, and the current
    label is either shorter than min_label_words or dominant.

    Args:
        result: Output of the clustering orchestrator
        options: Override knobs; None or both disabled is a no-op

    Returns:
        The same result object when nothing changed, otherwise a new result
        with rebuilt clusters and cluster_count
    """
    if options is None or options.disabled:
        return result

    min_words = options.min_label_words
    dominant = dominant_labels(result.items, options.max_dominance_pct)

    changed = 0
    updated_items = []
    for item in result.items:
        raw_topic = item.topic.strip()
        label = item.theme_label
        if (
            raw_topic
            and raw_topic != UNCATEGORIZED
            and raw_topic != label
            and count_words(raw_topic) >= min_words
            and (count_words(label) < min_words or label in dominant)
        ):
            updated_items.append(item.model_copy(update={"theme_label": raw_topic}))
            changed += 1
        else:
            updated_items.append(item)

    if not changed:
        return result

    clusters = group_topics_by_label(updated_items)
    logger.info(
        "Applied theme label overrides",
        relabeled=changed,
        dominant=sorted(dominant),
        clusters=len(clusters),
    )
    return result.model_copy(
        update={
            "items": updated_items,
            "clusters": clusters,
            "stats": result.stats.model_copy(update={"cluster_count": len(clusters)}),
        }
    )
