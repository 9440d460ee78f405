"""
Digest Themes - Theme Tuning

Per-topic settings for theme grouping, stored with the topic's custom settings.
All values are optional; ThemeTuning.parse() applies defaults and clamps.
"""

import math
from typing import Any

from pydantic import Field

from .theme import ThemeLabelOverrideOptions, ThemeModel

# (min, max) per numeric setting
TUNING_RANGES: dict[str, tuple[float, float]] = {
    "similarity_threshold": (0.3, 0.9),
    "lookback_days": (1, 14),
    "min_label_words": (1, 4),
    "max_dominance_pct": (0.0, 1.0),
}

_INTEGER_FIELDS = {"lookback_days", "min_label_words"}


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _lookup(raw: dict, name: str) -> Any:
    """Read a setting by snake_case name or its camelCase alias."""
    if name in raw:
        return raw[name]
    head, *rest = name.split("_")
    return raw.get(head + "".join(part.capitalize() for part in rest))


class ThemeTuning(ThemeModel):
    """
    Resolved theme tuning with all defaults applied.

    lookback_days is not used by clustering itself. Callers read it to pick
    which prior digest runs feed seed clusters (see seeds_from_outputs).
    """

    enabled: bool = True
    similarity_threshold: float = Field(0.65, description="Cosine threshold for joining a theme")
    lookback_days: int = Field(7, description="Days of prior digests the caller draws seeds from")
    min_label_words: int = 1
    max_dominance_pct: float = 0.0

    @classmethod
    def parse(cls, raw: Any) -> "ThemeTuning":
        """Resolve tuning from an untrusted settings value."""
        defaults = cls()
        if not isinstance(raw, dict):
            return defaults

        enabled = raw.get("enabled")
        values: dict[str, Any] = {
            "enabled": enabled if isinstance(enabled, bool) else defaults.enabled,
        }
        for name, (low, high) in TUNING_RANGES.items():
            value = _lookup(raw, name)
            if not _is_number(value):
                values[name] = getattr(defaults, name)
                continue
            clamped = max(low, min(high, value))
            values[name] = int(math.floor(clamped)) if name in _INTEGER_FIELDS else float(clamped)
        return cls(**values)

    def override_options(self) -> ThemeLabelOverrideOptions:
        return ThemeLabelOverrideOptions(
            min_label_words=self.min_label_words,
            max_dominance_pct=self.max_dominance_pct,
        )


def validate_theme_tuning(raw: Any) -> list[str]:
    """Validate tuning input from the API. Returns error messages (empty if valid)."""
    if raw is None:
        return []
    if not isinstance(raw, dict):
        return ["tuning must be an object"]

    errors = []
    enabled = raw.get("enabled")
    if enabled is not None and not isinstance(enabled, bool):
        errors.append("enabled must be a boolean")

    for name, (low, high) in TUNING_RANGES.items():
        value = _lookup(raw, name)
        if value is None:
            continue
        if not _is_number(value):
            errors.append(f"{name} must be a finite number")
        elif value < low or value > high:
            errors.append(f"{name} must be between {low:g} and {high:g}")
    return errors
