"""Shared fixtures: an in-memory embedding client keyed by topic text."""

import pytest

from services.theme_cluster.config import THRESHOLD_ENV
from services.theme_cluster.embedder import (
    EmbedCallResult,
    EmbeddingModelRef,
    EmbeddingsClient,
)


class FakeEmbeddingsClient(EmbeddingsClient):
    """Returns canned vectors per topic and records every call."""

    def __init__(self, vectors, input_tokens=0, cost=0.0, truncate_to=None, error=None):
        self.vectors = vectors
        self.input_tokens = input_tokens
        self.cost = cost
        self.truncate_to = truncate_to
        self.error = error
        self.tiers = []
        self.calls = []

    def choose_model(self, tier):
        self.tiers.append(tier)
        return EmbeddingModelRef(provider="fake", model=f"fake-{tier}", endpoint="memory://")

    async def embed(self, ref, texts):
        self.calls.append(list(texts))
        if self.error is not None:
            raise self.error
        vectors = [self.vectors[text] for text in texts]
        if self.truncate_to is not None:
            vectors = vectors[:self.truncate_to]
        return EmbedCallResult(
            vectors=vectors,
            input_tokens=self.input_tokens,
            cost_estimate_credits=self.cost,
            provider=ref.provider,
            model=ref.model,
            endpoint=ref.endpoint,
        )


@pytest.fixture(autouse=True)
def _no_threshold_env(monkeypatch):
    """Tests start from the built-in 0.75 default."""
    monkeypatch.delenv(THRESHOLD_ENV, raising=False)


@pytest.fixture
def fake_client():
    """Build a FakeEmbeddingsClient: fake_client({"topic": [..]}, ...)"""
    return FakeEmbeddingsClient


# sim(fed_a, fed_b) = 0.9, local elections orthogonal to both
FED_VECTORS = {
    "Fed rate cut": [1.0, 0.0, 0.0],
    "Fed rate cut signal": [0.9, 0.4358898943540674, 0.0],
    "Local elections": [0.0, 0.0, 1.0],
}


@pytest.fixture
def fed_vectors():
    return dict(FED_VECTORS)
