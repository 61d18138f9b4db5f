"""
Scoring Helper Functions and Constants

Contains the normalization bounds, sentiment thresholds and small numeric
utilities shared by the content scorer, the mention analyzer and the
history aggregator.
"""

import math
from typing import Dict, Iterable, Mapping, Optional, Tuple


# ============================================================================
# SENTIMENT THRESHOLDS (VADER conventions)
# ============================================================================

POSITIVE_THRESHOLD = 0.05
NEGATIVE_THRESHOLD = -0.05


# Phrases that read as a cited claim
CITATION_PHRASES = (
    "according to",
    "research shows",
    "studies indicate",
    "data shows",
    "source",
    "cited",
)


# ============================================================================
# READABILITY -> EASE BOUNDS
# ============================================================================

# Grade-level metrics map onto a 0-100 ease scale linearly:
# grade <= easy bound -> 100, grade >= hard bound -> 0.
GRADE_EASE_BOUNDS: Dict[str, Tuple[float, float]] = {
    "flesch_kincaid_grade": (5.0, 18.0),
    "gunning_fog": (6.0, 20.0),
    "coleman_liau": (5.0, 18.0),
    "automated_readability_index": (5.0, 18.0),
    "smog": (6.0, 18.0),
}

# Flesch Reading Ease is already an ease score; it is only clamped.
FLESCH_EASE_BOUNDS: Tuple[float, float] = (0.0, 100.0)


def clamp(value: float, lower: float = 0.0, upper: float = 100.0) -> float:
    """Clamp a value into [lower, upper]; non-finite values fall to the lower bound."""
    if value is None or not math.isfinite(value):
        return lower
    return max(lower, min(upper, value))


def linear_scale(value: float, low: float, high: float) -> float:
    """
    Map value from [low, high] onto [0, 100], clamped.

    When low > high the mapping is inverted (used for grade levels where a
    higher grade means harder text).
    """
    if high == low:
        return 0.0
    return clamp((value - low) / (high - low) * 100)


def grade_to_ease(metric: str, grade: float) -> float:
    """Normalize a grade-level readability metric onto the 0-100 ease scale."""
    easy, hard = GRADE_EASE_BOUNDS[metric]
    return linear_scale(grade, hard, easy)


def compound_to_score(compound: float) -> float:
    """Map a sentiment compound value in [-1, 1] onto 0-100 favorability."""
    return clamp((clamp(compound, -1.0, 1.0) + 1) / 2 * 100)


def sentiment_label(compound: float) -> str:
    """Categorical label for a compound value."""
    if compound > POSITIVE_THRESHOLD:
        return "positive"
    if compound < NEGATIVE_THRESHOLD:
        return "negative"
    return "neutral"


def validate_weights(weights: Mapping[str, float], tolerance: float = 1e-6) -> Dict[str, float]:
    """
    Check that weights are non-negative and sum to 1.0.

    Raises:
        ValueError: If any weight is negative or the sum differs from 1.0
    """
    if not weights:
        raise ValueError("Weights must not be empty")
    if any(w < 0 for w in weights.values()):
        raise ValueError(f"Weights must be non-negative: {dict(weights)}")
    total = sum(weights.values())
    if abs(total - 1.0) > tolerance:
        raise ValueError(f"Weights must sum to 1.0, got {total:.6f}")
    return dict(weights)


def round_half_up(value: float) -> int:
    """Nearest integer with halves rounded up (62.5 -> 63; round() would give 62)."""
    return int(math.floor(value + 0.5))


def mean(values: Iterable[float]) -> Optional[float]:
    """Arithmetic mean, or None for an empty iterable."""
    values = list(values)
    if not values:
        return None
    return sum(values) / len(values)


def calculate_weighted_average(values: Mapping[str, float], weights: Mapping[str, float]) -> float:
    """
    Weighted average of named values.

    Args:
        values: Component name -> value
        weights: Component name -> weight (missing components count as 0)

    Returns:
        Weighted average
    """
    total_weight = sum(weights.values())
    if total_weight == 0:
        return 0.0

    weighted_sum = sum(values.get(name, 0.0) * weight for name, weight in weights.items())
    return weighted_sum / total_weight
