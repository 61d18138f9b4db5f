"""
Visibility Snapshots and Alerts

A snapshot condenses one run's summaries into brand-level numbers; alerts
compare a new snapshot with the brand's previous one.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..models import PromptAnalysis, SentimentLabel
from ..scoring.helpers import round_half_up

logger = logging.getLogger(__name__)

VISIBILITY_DROP_PERCENT = 10.0
SENTIMENT_SHIFT_POINTS = 5.0


@dataclass
class Alert:
    """A change worth telling the brand owner about."""
    type: str
    severity: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.type, "severity": self.severity, "message": self.message}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Alert":
        return cls(type=data["type"], severity=data.get("severity", "info"), message=data.get("message", ""))


@dataclass
class VisibilitySnapshot:
    """Brand-level aggregate of one run."""
    run_id: str
    brand_id: str
    overall_score: Optional[int]
    engine_scores: Dict[str, Optional[int]] = field(default_factory=dict)
    sentiment_distribution: Dict[str, float] = field(default_factory=dict)
    total_mentions: int = 0
    total_prompts_checked: int = 0
    competitor_data: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    coverage: float = 1.0
    alerts: List[Alert] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "brand_id": self.brand_id,
            "overall_score": self.overall_score,
            "engine_scores": dict(self.engine_scores),
            "sentiment_distribution": dict(self.sentiment_distribution),
            "total_mentions": self.total_mentions,
            "total_prompts_checked": self.total_prompts_checked,
            "competitor_data": self.competitor_data,
            "coverage": self.coverage,
            "alerts": [a.to_dict() for a in self.alerts],
            "created_at": self.created_at.isoformat(),
        }


def build_snapshot(
    run_id: str,
    brand_id: str,
    analyses: Sequence[PromptAnalysis],
    engines: Iterable[str] = (),
    expected_pairs: Optional[int] = None,
) -> VisibilitySnapshot:
    """
    Aggregate one run's results.

    Args:
        run_id: Run the results belong to
        brand_id: Brand analyzed
        analyses: Successful (prompt, engine) results of the run
        engines: Configured engines; each gets an entry even without results
        expected_pairs: Pairs the run attempted (coverage denominator)
    """
    total = len(analyses)

    by_engine: Dict[str, List[float]] = {engine: [] for engine in engines}
    for analysis in analyses:
        by_engine.setdefault(analysis.engine, []).append(analysis.summary.score)

    engine_scores = {
        engine: (round_half_up(sum(scores) / len(scores)) if scores else None)
        for engine, scores in by_engine.items()
    }

    counts = {label.value: 0 for label in SentimentLabel}
    for analysis in analyses:
        counts[analysis.summary.sentiment.value] += 1
    distribution = {
        label: (round(count / total * 100, 2) if total else 0.0)
        for label, count in counts.items()
    }

    competitor_data: Dict[str, Dict[str, Any]] = {}
    for analysis in analyses:
        for mention in analysis.competitor_mentions:
            entry = competitor_data.setdefault(
                mention.name,
                {"mentions": 0, "sentiment": {label.value: 0 for label in SentimentLabel}},
            )
            entry["mentions"] += 1
            entry["sentiment"][mention.sentiment.value] += 1

    if expected_pairs is None:
        expected_pairs = total
    coverage = round(total / expected_pairs, 4) if expected_pairs else 1.0

    return VisibilitySnapshot(
        run_id=run_id,
        brand_id=brand_id,
        overall_score=round_half_up(sum(a.summary.score for a in analyses) / total) if total else None,
        engine_scores=engine_scores,
        sentiment_distribution=distribution,
        total_mentions=sum(1 for a in analyses if a.summary.mentioned),
        total_prompts_checked=total,
        competitor_data=competitor_data,
        coverage=coverage,
    )


def detect_alerts(
    current: VisibilitySnapshot,
    previous: Optional[VisibilitySnapshot],
) -> List[Alert]:
    """
    Compare a snapshot with the brand's previous one.

    No previous snapshot means no alerts.
    """
    if previous is None:
        return []

    alerts: List[Alert] = []

    previous_score = previous.overall_score or 0
    current_score = current.overall_score or 0
    if previous_score > 0:
        percent_drop = (previous_score - current_score) / previous_score * 100
        if percent_drop > VISIBILITY_DROP_PERCENT:
            alerts.append(Alert(
                type="visibility_drop",
                severity="warning",
                message=f"Visibility dropped {percent_drop:.1f}% from {previous_score} to {current_score}",
            ))

    if current.total_mentions > previous.total_mentions:
        alerts.append(Alert(
            type="new_mention",
            severity="info",
            message=f"New mentions detected: {current.total_mentions} (previously {previous.total_mentions})",
        ))

    positive_change = current.sentiment_distribution.get("positive", 0.0) - previous.sentiment_distribution.get("positive", 0.0)
    negative_change = current.sentiment_distribution.get("negative", 0.0) - previous.sentiment_distribution.get("negative", 0.0)
    if abs(positive_change) >= SENTIMENT_SHIFT_POINTS or abs(negative_change) >= SENTIMENT_SHIFT_POINTS:
        alerts.append(Alert(
            type="sentiment_shift",
            severity="warning",
            message=(
                f"Sentiment shift detected: positive {positive_change:+.1f}%, "
                f"negative {negative_change:+.1f}%"
            ),
        ))

    new_competitors = [name for name in current.competitor_data if name not in previous.competitor_data]
    if new_competitors:
        alerts.append(Alert(
            type="competitor_new",
            severity="info",
            message=f"New competitor appearances detected: {', '.join(new_competitors)}",
        ))

    if alerts:
        logger.info(f"{len(alerts)} alerts for brand {current.brand_id} (run {current.run_id})")
    return alerts
