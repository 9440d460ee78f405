"""
Digest Themes - Theme Schemas

Defines theme clustering inputs, outputs and seed clusters.
Field names are snake_case; camelCase aliases are accepted so payloads
from the triage pipeline load unchanged.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

UNCATEGORIZED = "Uncategorized"


def is_valid_topic(topic: str) -> bool:
    """A topic is clusterable unless empty, whitespace or the sentinel."""
    return bool(topic) and topic != UNCATEGORIZED and bool(topic.strip())


def fallback_label(topic: str) -> str:
    """Label used when a topic never went through clustering."""
    return topic if is_valid_topic(topic) else UNCATEGORIZED


class ThemeModel(BaseModel):
    """Base model: snake_case fields with camelCase aliases"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ThemeClusterInput(ThemeModel):
    """One triage candidate and its LLM-generated topic phrase"""

    candidate_id: str
    topic: str = ""

    @field_validator("topic", mode="before")
    @classmethod
    def _none_topic(cls, value: Any) -> Any:
        return "" if value is None else value


class ThemeVectorInput(ThemeClusterInput):
    """Candidate with an already-computed topic vector (admin re-clustering)"""

    vector: list[float] = Field(default_factory=list)


class ThemeClusterOutput(ThemeModel):
    """Per-candidate clustering result"""

    candidate_id: str
    topic: str
    vector: list[float] = Field(default_factory=list)
    theme_label: str


class SeedCluster(ThemeModel):
    """
    Label and vector carried over from a prior run.
    Pre-populates a cluster so theme labels stay stable digest-over-digest.
    """

    label: str = ""
    vector: list[float] = Field(default_factory=list)


class ThemeClusterStats(ThemeModel):
    """Run statistics for pipeline reports"""

    unique_topics: int = 0
    cluster_count: int = 0
    input_tokens: int = 0
    cost_estimate_credits: float = 0.0


class ThemeClusterResult(ThemeModel):
    """Outputs in input order plus label -> member topics"""

    items: list[ThemeClusterOutput] = Field(default_factory=list)
    clusters: dict[str, list[str]] = Field(default_factory=dict)
    stats: ThemeClusterStats = Field(default_factory=ThemeClusterStats)


class ThemeLabelOverrideOptions(ThemeModel):
    """Knobs for the post-clustering label override pass"""

    min_label_words: int = Field(1, description="Minimum word count for a kept label")
    max_dominance_pct: float = Field(
        0.0, description="Share of items (0-1) at which a label counts as dominant"
    )

    @property
    def disabled(self) -> bool:
        return self.min_label_words <= 1 and self.max_dominance_pct <= 0
