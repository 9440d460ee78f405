"""
Theme Label Stage
Turns per-candidate triage topics into shared theme labels.

Two entry points share one clustering engine:
- cluster_triage_themes: embeds unique topics, then clusters (digest runs)
- cluster_items_with_existing_vectors: re-clusters stored vectors (admin)
"""

from typing import Callable, Iterable, Optional, Sequence

import structlog

from services.theme_cluster.clusterer import cluster_topics
from services.theme_cluster.config import resolve_threshold
from services.theme_cluster.embedder import EmbeddingsClient, create_env_embeddings_client
from shared.schemas.theme import (
    UNCATEGORIZED,
    SeedCluster,
    ThemeClusterInput,
    ThemeClusterOutput,
    ThemeClusterResult,
    ThemeClusterStats,
    ThemeVectorInput,
    fallback_label,
    is_valid_topic,
)

logger = structlog.get_logger()

ClientFactory = Callable[[], EmbeddingsClient]


def _identity_result(
    inputs: Sequence[ThemeClusterInput],
    unique_topics: int = 0,
) -> ThemeClusterResult:
    """Every item labeled with its own topic; no vectors, no clusters"""
    return ThemeClusterResult(
        items=[
            ThemeClusterOutput(
                candidate_id=item.candidate_id,
                topic=item.topic,
                vector=[],
                theme_label=fallback_label(item.topic),
            )
            for item in inputs
        ],
        clusters={},
        stats=ThemeClusterStats(unique_topics=unique_topics),
    )


async def cluster_triage_themes(
    inputs: Sequence[ThemeClusterInput],
    tier: str = "normal",
    threshold: Optional[float] = None,
    seeds: Optional[Iterable[SeedCluster]] = None,
    client_factory: ClientFactory = create_env_embeddings_client,
) -> ThemeClusterResult:
    """
    Cluster triage topics into theme labels using embedding similarity.

    Only distinct valid topics are embedded, in one batched request.
    Every input gets exactly one output, in input order.

    Args:
        inputs: Candidates with their triage topic
        tier: Budget tier used to pick the embedding model
        threshold: Similarity threshold (default: env or 0.75)
        seeds: Prior-run (label, vector) pairs for label continuity
        client_factory: Builds the embedding client; failures degrade to
            raw topic labels instead of raising

    Returns:
        ThemeClusterResult with labels, vectors, clusters and run stats
    """
    valid_items = [item for item in inputs if is_valid_topic(item.topic)]
    if not valid_items:
        return _identity_result(inputs)

    unique_topics = list(dict.fromkeys(item.topic for item in valid_items))

    try:
        client = client_factory()
    except Exception as e:
        logger.warning(
            "Embeddings disabled; falling back to raw theme labels",
            error=str(e),
            unique_topics=len(unique_topics),
        )
        return _identity_result(inputs, unique_topics=len(unique_topics))

    ref = client.choose_model(tier)
    logger.info(
        "Embedding triage topics",
        tier=tier,
        model=ref.model,
        items=len(inputs),
        unique_topics=len(unique_topics),
    )
    embed_result = await client.embed(ref, unique_topics)

    topic_vectors: dict[str, list[float]] = {}
    for i, topic in enumerate(unique_topics):
        vector = embed_result.vectors[i] if i < len(embed_result.vectors) else None
        if vector:
            topic_vectors[topic] = list(vector)

    if len(topic_vectors) < len(unique_topics):
        logger.warning(
            "Embedding response missing vectors",
            expected=len(unique_topics),
            received=len(topic_vectors),
        )

    effective_threshold = resolve_threshold(threshold)
    clustering = cluster_topics(
        [(topic, topic_vectors[topic]) for topic in unique_topics if topic in topic_vectors],
        threshold=effective_threshold,
        seeds=seeds or [],
    )

    items = []
    for item in inputs:
        if is_valid_topic(item.topic):
            label = clustering.topic_to_label.get(item.topic, item.topic)
        else:
            label = UNCATEGORIZED
        items.append(
            ThemeClusterOutput(
                candidate_id=item.candidate_id,
                topic=item.topic,
                vector=topic_vectors.get(item.topic, []),
                theme_label=label,
            )
        )

    clusters = {cluster.label: list(cluster.topics) for cluster in clustering.clusters}

    logger.info(
        "Theme clustering complete",
        threshold=effective_threshold,
        unique_topics=len(unique_topics),
        clusters=len(clustering.clusters),
        input_tokens=embed_result.input_tokens,
    )
    return ThemeClusterResult(
        items=items,
        clusters=clusters,
        stats=ThemeClusterStats(
            unique_topics=len(unique_topics),
            cluster_count=len(clustering.clusters),
            input_tokens=embed_result.input_tokens,
            cost_estimate_credits=embed_result.cost_estimate_credits,
        ),
    )


def cluster_items_with_existing_vectors(
    items: Sequence[ThemeVectorInput],
    threshold: Optional[float] = None,
) -> dict[str, str]:
    """
    Re-cluster items that already carry topic vectors (no embedding call).

    Returns:
        candidate_id -> theme label; items without a valid topic and vector
        map to "Uncategorized"
    """
    effective_threshold = resolve_threshold(threshold)
    valid_items = [item for item in items if is_valid_topic(item.topic) and item.vector]

    clustering = cluster_topics(
        [(item.topic, item.vector) for item in valid_items],
        threshold=effective_threshold,
    )

    labels = {}
    for item in items:
        labels[item.candidate_id] = clustering.topic_to_label.get(item.topic, UNCATEGORIZED)

    logger.info(
        "Re-clustered stored theme vectors",
        items=len(items),
        clustered=len(valid_items),
        clusters=len(clustering.clusters),
    )
    return labels


def seeds_from_outputs(items: Iterable[ThemeClusterOutput]) -> list[SeedCluster]:
    """
    Build seed clusters from a prior run's persisted outputs.

    One seed per label, in first-seen order. The vector comes from the item
    whose topic equals the label when there is one, else from the first item
    under that label with a vector.
    """
    exact: dict[str, list[float]] = {}
    first: dict[str, list[float]] = {}
    order: list[str] = []

    for item in items:
        label = item.theme_label.strip()
        if not label or label == UNCATEGORIZED:
            continue
        if label not in order:
            order.append(label)
        if not item.vector:
            continue
        if item.topic.strip() == label and label not in exact:
            exact[label] = item.vector
        first.setdefault(label, item.vector)

    seeds = []
    for label in order:
        vector = exact.get(label) or first.get(label)
        if vector:
            seeds.append(SeedCluster(label=label, vector=vector))
    return seeds
