"""
Digest Themes Cluster Service
Groups triage topic phrases into stable theme labels

Components:
- embedder.py: Embedding clients (OpenAI-compatible or Ollama) for topic strings
- clusterer.py: Greedy nearest-centroid clustering with seed clusters
- labeler.py: Label policy picking the most specific topic of a cluster
- overrides.py: Post-clustering fixes for terse or dominant labels
- config.py: Environment-driven threshold defaults
"""

from .clusterer import ClusteringResult, TopicCluster, cluster_topics, cosine_similarity
from .embedder import (
    EmbedCallResult,
    EmbeddingModelRef,
    EmbeddingsClient,
    EmbeddingsConfigError,
    EmbeddingsError,
    EmbeddingsProviderError,
    OllamaEmbeddingsClient,
    OpenAICompatEmbeddingsClient,
    create_env_embeddings_client,
)
from .labeler import count_words, pick_cluster_label
from .overrides import apply_theme_label_overrides

__all__ = [
    "cluster_topics",
    "cosine_similarity",
    "ClusteringResult",
    "TopicCluster",
    "pick_cluster_label",
    "count_words",
    "apply_theme_label_overrides",
    "EmbeddingsClient",
    "EmbeddingModelRef",
    "EmbedCallResult",
    "EmbeddingsError",
    "EmbeddingsConfigError",
    "EmbeddingsProviderError",
    "OpenAICompatEmbeddingsClient",
    "OllamaEmbeddingsClient",
    "create_env_embeddings_client",
]
