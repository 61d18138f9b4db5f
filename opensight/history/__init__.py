"""History, snapshots and brand/competitor comparison."""

from .aggregator import (
    ComparisonResult,
    EntityComparison,
    EntityHistory,
    ScorePoint,
    calculate_trend,
    compare,
    latest_point,
    percentile_position,
    rank_entities,
    share_of_voice,
)
from .pagination import DEFAULT_LIMIT, MAX_LIMIT, coerce_page
from .snapshots import Alert, VisibilitySnapshot, build_snapshot, detect_alerts

__all__ = [
    "ComparisonResult",
    "EntityComparison",
    "EntityHistory",
    "ScorePoint",
    "calculate_trend",
    "compare",
    "latest_point",
    "percentile_position",
    "rank_entities",
    "share_of_voice",
    "DEFAULT_LIMIT",
    "MAX_LIMIT",
    "coerce_page",
    "Alert",
    "VisibilitySnapshot",
    "build_snapshot",
    "detect_alerts",
]
