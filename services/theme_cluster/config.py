"""
Theme clustering configuration
Environment-driven defaults, read once per run at entry
"""

import math
import os
from typing import Mapping, Optional

DEFAULT_THRESHOLD = 0.75
THRESHOLD_ENV = "THEME_CLUSTER_THRESHOLD"


def parse_float_env(value: Optional[str]) -> Optional[float]:
    """Parse a float from an env value; None when unset, unparseable or non-finite."""
    if not value or not value.strip():
        return None
    try:
        parsed = float(value)
    except ValueError:
        return None
    return parsed if math.isfinite(parsed) else None


def resolve_threshold(
    threshold: Optional[float] = None,
    env: Optional[Mapping[str, str]] = None,
) -> float:
    """Explicit threshold, else THEME_CLUSTER_THRESHOLD, else DEFAULT_THRESHOLD."""
    if threshold is not None:
        return threshold
    env = os.environ if env is None else env
    from_env = parse_float_env(env.get(THRESHOLD_ENV))
    return from_env if from_env is not None else DEFAULT_THRESHOLD
