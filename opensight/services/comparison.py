"""
Comparison Service

Feeds the aggregator from the repositories:

- brand points: one per run snapshot (overall score at snapshot time)
- competitor points: the competitor's own snapshots when its domain is a
  tracked brand, otherwise its content score history
- mentions for share of voice: the brand's latest snapshot
- coverage and missing pairs: the brand's latest completed run
"""

import logging
from typing import Any, List, Optional

from ..database.repository import CatalogRepository, ContentRepository, ResultRepository
from ..history.aggregator import ComparisonResult, EntityHistory, ScorePoint, compare
from ..history.pagination import DEFAULT_LIMIT, MAX_LIMIT, coerce_page
from ..history.snapshots import VisibilitySnapshot
from ..models import Competitor

logger = logging.getLogger(__name__)


def _snapshot_points(snapshots: List[VisibilitySnapshot]) -> List[ScorePoint]:
    return [
        ScorePoint(value=float(s.overall_score), timestamp=s.created_at)
        for s in snapshots
        if s.overall_score is not None
    ]


class ComparisonService:
    """Brand vs. competitor comparison and brand score history."""

    def __init__(
        self,
        catalog: CatalogRepository,
        results: ResultRepository,
        content: Optional[ContentRepository] = None,
        window: int = 1,
        default_limit: int = DEFAULT_LIMIT,
        max_limit: int = MAX_LIMIT,
    ):
        self.catalog = catalog
        self.results = results
        self.content = content
        self.window = window
        self.default_limit = default_limit
        self.max_limit = max_limit

    def _competitor_points(self, competitor: Competitor) -> List[ScorePoint]:
        tracked = self.catalog.get_brand_by_domain(competitor.domain)
        if tracked is not None:
            return _snapshot_points(self.results.all_snapshots(tracked.id))
        if self.content is None:
            return []
        records = self.content.history(domain=competitor.domain, limit=self.max_limit)
        return [ScorePoint(value=r.composite_score, timestamp=r.scored_at) for r in records]

    def compare(self, brand_id: str, window: Optional[int] = None) -> ComparisonResult:
        """
        Raises:
            KeyError: Unknown brand
        """
        brand = self.catalog.get_brand(brand_id)
        if brand is None:
            raise KeyError(f"Unknown brand: {brand_id}")

        snapshots = self.results.all_snapshots(brand_id)
        latest = snapshots[-1] if snapshots else None

        brand_history = EntityHistory(
            entity_id=brand.id,
            name=brand.name,
            kind="brand",
            points=_snapshot_points(snapshots),
            mention_count=latest.total_mentions if latest else 0,
        )

        competitor_histories = []
        for competitor in self.catalog.list_competitors(brand_id):
            mentions = 0
            if latest is not None:
                mentions = latest.competitor_data.get(competitor.name, {}).get("mentions", 0)
            competitor_histories.append(EntityHistory(
                entity_id=competitor.id,
                name=competitor.name,
                points=self._competitor_points(competitor),
                mention_count=mentions,
            ))

        coverage = latest.coverage if latest else 1.0
        missing = []
        run = self.results.latest_run(brand_id)
        if run is not None:
            expected = run["expected_pairs"] or 0
            coverage = round(run["successful_pairs"] / expected, 4) if expected else 1.0
            missing = run["missing_pairs"]

        return compare(
            brand_history,
            competitor_histories,
            window=window or self.window,
            coverage=coverage,
            missing_pairs=missing,
        )

    def history(self, brand_id: str, limit: Any = None, offset: Any = None) -> List[VisibilitySnapshot]:
        """Brand snapshots, most recent first, paginated."""
        limit, offset = coerce_page(limit, offset, self.default_limit, self.max_limit)
        return self.results.snapshot_history(brand_id, limit=limit, offset=offset)
