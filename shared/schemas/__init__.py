"""Digest Themes Shared Schemas"""

from .theme import (
    UNCATEGORIZED,
    SeedCluster,
    ThemeClusterInput,
    ThemeClusterOutput,
    ThemeClusterResult,
    ThemeClusterStats,
    ThemeLabelOverrideOptions,
    ThemeVectorInput,
    fallback_label,
    is_valid_topic,
)
from .tuning import ThemeTuning, validate_theme_tuning

__all__ = [
    # Theme schemas
    "UNCATEGORIZED",
    "ThemeClusterInput",
    "ThemeVectorInput",
    "ThemeClusterOutput",
    "SeedCluster",
    "ThemeClusterStats",
    "ThemeClusterResult",
    "ThemeLabelOverrideOptions",
    "is_valid_topic",
    "fallback_label",
    # Tuning
    "ThemeTuning",
    "validate_theme_tuning",
]
