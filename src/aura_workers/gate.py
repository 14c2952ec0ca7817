"""Progressive gate: per-user complexity level selects the detector families.

Level 1 runs consistency only, level 2 adds reduction, level 3 adds
correlation, level 4 adds note-based lifestyle streaks. The gate holds no
detection logic; rollout is controlled by each detector's ``min_level``.
"""

from typing import Any

from . import detectors  # noqa: F401  (registers detectors)
from .registry import DetectorSpec, registered_detectors

MIN_COMPLEXITY_LEVEL = 1
MAX_COMPLEXITY_LEVEL = 4


def normalize_complexity_level(value: Any) -> int:
    """Clamp a stored level into 1..4; missing or garbage means 1."""
    try:
        level = int(value)
    except (TypeError, ValueError):
        return MIN_COMPLEXITY_LEVEL
    return max(MIN_COMPLEXITY_LEVEL, min(MAX_COMPLEXITY_LEVEL, level))


def select_detectors(complexity_level: Any) -> list[DetectorSpec]:
    level = normalize_complexity_level(complexity_level)
    return [spec for spec in registered_detectors() if spec.min_level <= level]
