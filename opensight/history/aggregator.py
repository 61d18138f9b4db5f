"""
History & Comparison Aggregator

Turns per-entity score histories into a ComparisonResult:

- current score: latest point by time
- trend: current minus the point ``window`` periods earlier (None when the
  history is too short)
- ranking: by current score, ties broken by the most recent timestamp
  (older evidence ranks lower), then by entity id for a stable order
- percentile: share of the other ranked entities the brand outranks
- share of voice: each entity's mentions in the latest run over all mentions

All functions are synchronous and pure; the comparison service feeds them
from the repositories.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from ..models import MissingPair

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScorePoint:
    """One aggregate score at one time (a run, or one content scoring)."""
    value: float
    timestamp: datetime


@dataclass
class EntityHistory:
    """Score history of the brand or one competitor."""
    entity_id: str
    name: str
    kind: str = "competitor"
    points: List[ScorePoint] = field(default_factory=list)
    mention_count: int = 0


@dataclass
class EntityComparison:
    """Where one entity stands."""
    entity_id: str
    name: str
    kind: str
    current_score: Optional[float] = None
    scored_at: Optional[datetime] = None
    trend: Optional[float] = None
    rank: Optional[int] = None
    percentile: Optional[float] = None
    share_of_voice: float = 0.0
    history_points: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "name": self.name,
            "kind": self.kind,
            "current_score": self.current_score,
            "scored_at": self.scored_at.isoformat() if self.scored_at else None,
            "trend": self.trend,
            "rank": self.rank,
            "percentile": self.percentile,
            "share_of_voice": self.share_of_voice,
            "history_points": self.history_points,
        }


@dataclass
class ComparisonResult:
    """Brand vs. competitors; derived on demand, never persisted."""
    brand_id: str
    brand: EntityComparison
    entities: List[EntityComparison] = field(default_factory=list)
    coverage: float = 1.0
    missing_pairs: List[MissingPair] = field(default_factory=list)
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def ranking(self) -> List[EntityComparison]:
        """Ranked entities, best first."""
        return sorted((e for e in self.entities if e.rank is not None), key=lambda e: e.rank)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "brand_id": self.brand_id,
            "brand": self.brand.to_dict(),
            "entities": [e.to_dict() for e in self.entities],
            "ranking": [e.entity_id for e in self.ranking],
            "coverage": self.coverage,
            "missing_pairs": [m.to_dict() for m in self.missing_pairs],
            "generated_at": self.generated_at.isoformat(),
        }


# ============================================================================
# PRIMITIVES
# ============================================================================


def _chronological(points: Sequence[ScorePoint]) -> List[ScorePoint]:
    return sorted(points, key=lambda p: p.timestamp)


def latest_point(points: Sequence[ScorePoint]) -> Optional[ScorePoint]:
    if not points:
        return None
    return _chronological(points)[-1]


def calculate_trend(points: Sequence[ScorePoint], window: int = 1) -> Optional[float]:
    """
    Latest score minus the score ``window`` periods earlier.

    Returns None with fewer than window + 1 points.
    """
    if window < 1:
        raise ValueError(f"Trend window must be >= 1, got {window}")

    ordered = _chronological(points)
    if len(ordered) < window + 1:
        return None
    return round(ordered[-1].value - ordered[-1 - window].value, 2)


def rank_entities(currents: Dict[str, ScorePoint]) -> List[str]:
    """
    Entity ids ordered best first.

    Higher score first; on equal scores the more recent timestamp wins;
    remaining ties fall back to entity id so the order is stable.
    """
    by_id = sorted(currents)
    by_recency = sorted(by_id, key=lambda eid: currents[eid].timestamp, reverse=True)
    return sorted(by_recency, key=lambda eid: currents[eid].value, reverse=True)


def percentile_position(rank: int, total: int) -> float:
    """Percent of the other ranked entities that rank below ``rank`` (1 = best)."""
    if total <= 1:
        return 100.0
    return round((total - rank) / (total - 1) * 100, 2)


def share_of_voice(mention_counts: Dict[str, int]) -> Dict[str, float]:
    """Each entity's mentions as a percentage of all mentions."""
    total = sum(max(0, count) for count in mention_counts.values())
    if total == 0:
        return {entity_id: 0.0 for entity_id in mention_counts}
    return {
        entity_id: round(max(0, count) / total * 100, 2)
        for entity_id, count in mention_counts.items()
    }


# ============================================================================
# COMPARISON
# ============================================================================


def compare(
    brand: EntityHistory,
    competitors: Sequence[EntityHistory] = (),
    window: int = 1,
    coverage: float = 1.0,
    missing_pairs: Sequence[MissingPair] = (),
) -> ComparisonResult:
    """
    Build the ComparisonResult for a brand and its competitors.

    Args:
        brand: Brand history (kind "brand")
        competitors: Competitor histories
        window: Trend window in periods
        coverage: Successful / expected pairs of the brand's latest run
        missing_pairs: Pairs missing from the brand's latest run
    """
    histories = [brand] + list(competitors)

    currents: Dict[str, ScorePoint] = {}
    for history in histories:
        point = latest_point(history.points)
        if point is not None:
            currents[history.entity_id] = point

    order = rank_entities(currents)
    ranks = {entity_id: position + 1 for position, entity_id in enumerate(order)}
    voices = share_of_voice({h.entity_id: h.mention_count for h in histories})

    entities = []
    for history in histories:
        point = currents.get(history.entity_id)
        rank = ranks.get(history.entity_id)
        entities.append(EntityComparison(
            entity_id=history.entity_id,
            name=history.name,
            kind=history.kind,
            current_score=round(point.value, 2) if point else None,
            scored_at=point.timestamp if point else None,
            trend=calculate_trend(history.points, window),
            rank=rank,
            percentile=percentile_position(rank, len(order)) if rank else None,
            share_of_voice=voices.get(history.entity_id, 0.0),
            history_points=len(history.points),
        ))

    logger.debug(f"Compared brand {brand.entity_id} against {len(competitors)} competitors")

    return ComparisonResult(
        brand_id=brand.entity_id,
        brand=entities[0],
        entities=entities,
        coverage=coverage,
        missing_pairs=list(missing_pairs),
    )
