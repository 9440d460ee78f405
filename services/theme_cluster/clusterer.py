"""
Theme Clustering Engine
Groups short topic phrases by embedding similarity using greedy
nearest-centroid assignment against a cosine threshold
"""

import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

import numpy as np
import structlog

from shared.schemas.theme import UNCATEGORIZED

from .config import DEFAULT_THRESHOLD
from .labeler import pick_cluster_label

logger = structlog.get_logger()


def _as_vector(values: Any) -> np.ndarray:
    """Convert to a float array; malformed input becomes an empty vector."""
    try:
        vector = np.asarray(values, dtype=float)
    except (TypeError, ValueError):
        return np.zeros(0)
    return vector if vector.ndim == 1 else np.zeros(0)


def cosine_similarity(a: Any, b: Any) -> float:
    """
    Cosine similarity between two vectors, in [-1, 1].

    Returns 0.0 instead of raising for empty, zero-norm, mismatched-length
    or non-finite vectors.
    """
    va = _as_vector(a)
    vb = _as_vector(b)
    if va.size == 0 or va.shape != vb.shape:
        return 0.0
    if not (np.isfinite(va).all() and np.isfinite(vb).all()):
        return 0.0

    with np.errstate(over="ignore", invalid="ignore"):
        denom = np.linalg.norm(va) * np.linalg.norm(vb)
        if denom == 0 or not np.isfinite(denom):
            return 0.0
        similarity = float(np.dot(va, vb) / denom)
    return similarity if math.isfinite(similarity) else 0.0


def compute_centroid(vectors: Sequence[np.ndarray]) -> np.ndarray:
    """Elementwise mean of all vectors, aligned to the first vector's dimension."""
    if not vectors:
        return np.zeros(0)
    dims = len(vectors[0])
    matrix = np.zeros((len(vectors), dims))
    for row, vector in enumerate(vectors):
        n = min(dims, len(vector))
        matrix[row, :n] = vector[:n]
    return matrix.mean(axis=0)


@dataclass
class TopicCluster:
    """A group of topics sharing one theme label"""
    label: str
    topics: list[str] = field(default_factory=list)
    vectors: list[np.ndarray] = field(default_factory=list)
    centroid: np.ndarray = field(default_factory=lambda: np.zeros(0))

    @classmethod
    def start(cls, topic: str, vector: np.ndarray) -> "TopicCluster":
        return cls(label=topic, topics=[topic], vectors=[vector], centroid=vector)

    def add(self, topic: str, vector: np.ndarray):
        self.topics.append(topic)
        self.vectors.append(vector)
        # Full mean over all members, not a running average
        self.centroid = compute_centroid(self.vectors)

    @property
    def size(self) -> int:
        return len(self.topics)


@dataclass
class ClusteringResult:
    """Clusters in creation order plus the topic -> final label mapping"""
    clusters: list[TopicCluster]
    topic_to_label: dict[str, str]


def _seed_field(seed: Any, name: str) -> Any:
    if isinstance(seed, dict):
        return seed.get(name)
    return getattr(seed, name, None)


def _valid_seeds(seeds: Iterable[Any]) -> list[tuple[str, np.ndarray]]:
    accepted = []
    seen_labels = set()
    for seed in seeds:
        label = (_seed_field(seed, "label") or "").strip()
        if not label or label == UNCATEGORIZED or label in seen_labels:
            continue
        vector = _seed_field(seed, "vector")
        if vector is None or len(vector) == 0:
            continue
        accepted.append((label, _as_vector(vector)))
        seen_labels.add(label)
    return accepted


def cluster_topics(
    items: Iterable[tuple[str, Sequence[float]]],
    threshold: float = DEFAULT_THRESHOLD,
    seeds: Iterable[Any] = (),
) -> ClusteringResult:
    """
    Greedy clustering of topics by embedding similarity.

    Each topic joins the cluster whose centroid is most similar, provided
    the similarity is strictly greater than the threshold; otherwise it
    starts a new cluster. Ties go to the cluster created first. A topic
    string is only ever placed once.

    Args:
        items: (topic, vector) pairs in assignment order
        threshold: Similarity a centroid must exceed to absorb a topic
        seeds: Prior-run clusters (label and vector), placed before items

    Returns:
        ClusteringResult with final labels chosen by pick_cluster_label
    """
    clusters: list[TopicCluster] = []
    seen_topics: dict[str, str] = {}

    for label, vector in _valid_seeds(seeds):
        clusters.append(TopicCluster.start(label, vector))
        seen_topics[label] = label

    for topic, raw_vector in items:
        if topic in seen_topics:
            continue

        vector = _as_vector(raw_vector)
        best_cluster = None
        best_similarity = threshold

        for cluster in clusters:
            similarity = cosine_similarity(vector, cluster.centroid)
            if similarity > best_similarity:
                best_cluster = cluster
                best_similarity = similarity

        if best_cluster is not None:
            best_cluster.add(topic, vector)
            seen_topics[topic] = best_cluster.label
        else:
            clusters.append(TopicCluster.start(topic, vector))
            seen_topics[topic] = topic

    for cluster in clusters:
        cluster.label = pick_cluster_label(cluster.topics)

    topic_to_label = {}
    for cluster in clusters:
        for topic in cluster.topics:
            topic_to_label[topic] = cluster.label

    logger.debug(
        "Clustered topics",
        topics=len(topic_to_label),
        clusters=len(clusters),
        threshold=threshold,
    )
    return ClusteringResult(clusters=clusters, topic_to_label=topic_to_label)
