"""
Test Suite: History & Comparison Aggregator

Snapshots, alerts, trend, ranking tie-breaks, share of voice and
pagination bounds.
"""

from datetime import datetime, timedelta, timezone

import pytest

from opensight.errors import ValidationError
from opensight.history import (
    EntityHistory,
    ScorePoint,
    VisibilitySnapshot,
    build_snapshot,
    calculate_trend,
    coerce_page,
    compare,
    detect_alerts,
    percentile_position,
    rank_entities,
    share_of_voice,
)
from opensight.models import CompetitorMention, MissingPair, PromptAnalysis, PromptResultSummary, SentimentLabel

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def analysis(prompt_id, engine, score, sentiment=SentimentLabel.POSITIVE, mentioned=True, competitors=()):
    return PromptAnalysis(
        prompt_id=prompt_id,
        summary=PromptResultSummary(engine=engine, score=score, sentiment=sentiment, mentioned=mentioned),
        competitor_mentions=[CompetitorMention(name=n, position=1, sentiment=SentimentLabel.NEUTRAL) for n in competitors],
    )


def snapshot(score, mentions=0, positive=0.0, negative=0.0, competitors=None) -> VisibilitySnapshot:
    return VisibilitySnapshot(
        run_id="r",
        brand_id="b",
        overall_score=score,
        total_mentions=mentions,
        sentiment_distribution={"positive": positive, "neutral": 100 - positive - negative, "negative": negative},
        competitor_data=competitors or {},
    )


class TestSnapshots:
    """Run -> brand-level aggregate."""

    def test_build_snapshot(self):
        analyses = [
            analysis("p1", "chatgpt", 80, competitors=["Globex"]),
            analysis("p2", "chatgpt", 60, sentiment=SentimentLabel.NEGATIVE),
            analysis("p1", "perplexity", 0, sentiment=SentimentLabel.NEUTRAL, mentioned=False, competitors=["Globex"]),
        ]
        snap = build_snapshot("run-1", "brand-1", analyses, engines=["chatgpt", "perplexity", "claude"], expected_pairs=4)

        assert snap.overall_score == 47
        assert snap.engine_scores == {"chatgpt": 70, "perplexity": 0, "claude": None}
        assert snap.sentiment_distribution == {"negative": 33.33, "neutral": 33.33, "positive": 33.33}
        assert snap.total_mentions == 2
        assert snap.total_prompts_checked == 3
        assert snap.competitor_data["Globex"]["mentions"] == 2
        assert snap.coverage == 0.75

    def test_half_scores_round_up(self):
        analyses = [analysis("p1", "chatgpt", 62), analysis("p2", "chatgpt", 63), analysis("p1", "claude", 62.5)]
        snap = build_snapshot("run-1", "brand-1", analyses, engines=["chatgpt", "claude"])

        # round() would give 62 for both
        assert snap.engine_scores == {"chatgpt": 63, "claude": 63}
        assert snap.overall_score == 63

    def test_empty_run(self):
        snap = build_snapshot("run-1", "brand-1", [], engines=["chatgpt"])
        assert snap.overall_score is None
        assert snap.engine_scores == {"chatgpt": None}
        assert snap.coverage == 1.0
        assert snap.sentiment_distribution["positive"] == 0.0


class TestAlerts:
    """Snapshot-to-snapshot changes."""

    def test_no_previous_no_alerts(self):
        assert detect_alerts(snapshot(50), None) == []

    def test_visibility_drop(self):
        alerts = detect_alerts(snapshot(40), snapshot(50))
        assert [a.type for a in alerts] == ["visibility_drop"]
        assert alerts[0].severity == "warning"

    def test_small_drop_ignored(self):
        assert detect_alerts(snapshot(46), snapshot(50)) == []

    def test_new_mention(self):
        alerts = detect_alerts(snapshot(50, mentions=3), snapshot(50, mentions=2))
        assert [a.type for a in alerts] == ["new_mention"]

    def test_sentiment_shift(self):
        alerts = detect_alerts(snapshot(50, negative=10), snapshot(50, negative=4))
        assert [a.type for a in alerts] == ["sentiment_shift"]
        assert detect_alerts(snapshot(50, positive=24), snapshot(50, positive=20)) == []

    def test_competitor_new(self):
        alerts = detect_alerts(
            snapshot(50, competitors={"Globex": {}, "Initech": {}}),
            snapshot(50, competitors={"Globex": {}}),
        )
        assert [a.type for a in alerts] == ["competitor_new"]
        assert "Initech" in alerts[0].message


class TestTrend:
    """calculate_trend."""

    def test_insufficient_history(self):
        assert calculate_trend([]) is None
        assert calculate_trend([ScorePoint(50, T0)]) is None

    def test_latest_minus_previous(self):
        points = [ScorePoint(70, T0 + timedelta(days=1)), ScorePoint(50, T0)]
        assert calculate_trend(points) == 20

    def test_window(self):
        points = [ScorePoint(v, T0 + timedelta(days=i)) for i, v in enumerate([10, 20, 35, 30])]
        assert calculate_trend(points, window=1) == -5
        assert calculate_trend(points, window=3) == 20
        assert calculate_trend(points, window=4) is None
        with pytest.raises(ValueError):
            calculate_trend(points, window=0)


class TestRanking:
    """Ranking, tie-break, percentile."""

    def test_higher_score_first(self):
        currents = {"a": ScorePoint(50, T0), "b": ScorePoint(70, T0), "c": ScorePoint(60, T0)}
        assert rank_entities(currents) == ["b", "c", "a"]

    def test_tie_broken_by_recency(self):
        currents = {
            "older": ScorePoint(60, T0),
            "newer": ScorePoint(60, T0 + timedelta(hours=1)),
        }
        assert rank_entities(currents) == ["newer", "older"]

    def test_full_tie_is_stable(self):
        currents = {"z": ScorePoint(60, T0), "a": ScorePoint(60, T0), "m": ScorePoint(60, T0)}
        assert rank_entities(currents) == ["a", "m", "z"]
        assert rank_entities(dict(reversed(list(currents.items())))) == ["a", "m", "z"]

    def test_percentile(self):
        assert percentile_position(1, 4) == 100.0
        assert percentile_position(4, 4) == 0.0
        assert percentile_position(2, 3) == 50.0
        assert percentile_position(1, 1) == 100.0


class TestShareOfVoice:

    def test_percentages(self):
        assert share_of_voice({"a": 3, "b": 1}) == {"a": 75.0, "b": 25.0}

    def test_nobody_mentioned(self):
        assert share_of_voice({"a": 0, "b": 0}) == {"a": 0.0, "b": 0.0}


class TestCompare:
    """ComparisonResult assembly."""

    def test_compare(self):
        brand = EntityHistory(
            "brand", "Example", "brand",
            points=[ScorePoint(50, T0), ScorePoint(65, T0 + timedelta(days=1))],
            mention_count=3,
        )
        rival = EntityHistory("rival", "Rival", points=[ScorePoint(70, T0)], mention_count=1)
        newcomer = EntityHistory("new", "Newcomer")

        result = compare(brand, [rival, newcomer], coverage=0.67, missing_pairs=[MissingPair("p1", "chatgpt")])

        assert result.brand.current_score == 65
        assert result.brand.trend == 15
        assert result.brand.rank == 2
        assert result.brand.percentile == 0.0
        assert result.brand.share_of_voice == 75.0
        assert [e.entity_id for e in result.ranking] == ["rival", "brand"]

        by_id = {e.entity_id: e for e in result.entities}
        assert by_id["rival"].trend is None
        assert by_id["new"].rank is None
        assert by_id["new"].current_score is None

        data = result.to_dict()
        assert data["coverage"] == 0.67
        assert data["missing_pairs"] == [{"prompt_id": "p1", "engine": "chatgpt", "error": ""}]


class TestPagination:
    """coerce_page."""

    def test_defaults(self):
        assert coerce_page() == (10, 0)
        assert coerce_page("", "") == (10, 0)

    def test_string_values(self):
        assert coerce_page("25", "5") == (25, 5)

    def test_bounds(self):
        assert coerce_page(500, -3) == (50, 0)
        assert coerce_page("0") == (1, 0)
        assert coerce_page(5, 0, default_limit=20, max_limit=30) == (5, 0)

    @pytest.mark.parametrize("limit", ["ten", "1.5", True])
    def test_invalid(self, limit):
        with pytest.raises(ValidationError):
            coerce_page(limit)
