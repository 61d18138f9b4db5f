"""
Test Suite: Engine Mention Analyzer

Mention matching policies, competitor extraction, analysis building and
the analyzer's timeout/error classification.
"""

import asyncio

import pytest

from conftest import FakeEngine
from opensight.analyzer import EngineMentionAnalyzer, MatchPolicy, build_analysis, find_mentions
from opensight.analyzer.mentions import extract_competitor_mentions, match_terms, sentence_position
from opensight.engines.base import EngineQuery, EngineResponse
from opensight.errors import EngineError, TransientExternalError
from opensight.models import Brand, Competitor, Prompt, SentimentLabel


@pytest.fixture
def acme():
    return Brand(name="Acme", domain="https://www.acme.io/", aliases=["Acme Cloud"])


@pytest.fixture
def rivals(acme):
    return [
        Competitor(brand_id=acme.id, name="Globex", url="https://globex.com"),
        Competitor(brand_id=acme.id, name="Initech", url="https://initech.com"),
    ]


class TestFindMentions:
    """Brand matching."""

    def test_not_mentioned(self):
        match = find_mentions("Nothing relevant here.", "Acme", "acme.io")
        assert not match.mentioned
        assert match.position is None
        assert match.count == 0

    def test_empty_text(self):
        assert not find_mentions("", "Acme", "acme.io").mentioned
        assert not find_mentions("   ", "Acme", "acme.io").mentioned

    def test_substring_counts_name_and_domain(self):
        text = "Try Acme. Visit acme.io for details. ACME is popular."
        match = find_mentions(text, "Acme", "https://acme.io", MatchPolicy.SUBSTRING)
        # "acme" x3 (including inside acme.io) + "acme.io" x1
        assert match.mentioned
        assert match.count == 4
        assert match.position == 1

    def test_substring_matches_inside_words(self):
        match = find_mentions("Acmeville is a town.", "Acme", "acme.io", MatchPolicy.SUBSTRING)
        assert match.mentioned

    def test_alias_requires_word_boundaries(self):
        match = find_mentions("Acmeville is a town.", "Acme", "acme.io", MatchPolicy.ALIAS)
        assert not match.mentioned

    def test_alias_merges_overlapping_terms(self):
        text = "First sentence. Acme Cloud is fast! Another line"
        match = find_mentions(text, "Acme", "acme.io", MatchPolicy.ALIAS, aliases=["Acme Cloud"])
        assert match.count == 1
        assert match.position == 2
        assert match.contexts == ["Acme Cloud is fast"]

    def test_alias_matches_domain_label(self):
        match = find_mentions("We compared shopify and others.", "Shopify Inc", "shopify.com")
        assert match.mentioned

    def test_domain_context_keeps_dots(self):
        text = "Go to acme.io today. Nothing else."
        match = find_mentions(text, "Acme", "acme.io", MatchPolicy.ALIAS)
        assert match.contexts[0] == "Go to acme.io today"

    def test_match_terms_skip_short_aliases(self):
        terms = match_terms("Acme", "acme.io", MatchPolicy.ALIAS, aliases=["A", "AC"])
        assert "a" not in terms
        assert "ac" in terms
        assert terms[:2] == ["acme", "acme.io"]

    def test_sentence_position(self):
        text = "One. Two! Three?\nFour"
        assert sentence_position(text, 0) == 1
        assert sentence_position(text, text.index("Two")) == 2
        assert sentence_position(text, text.index("Four")) == 4


class TestCompetitorMentions:
    """Competitor extraction."""

    def test_only_mentioned_competitors(self, rivals):
        text = "Globex is excellent and reliable. Some prefer other tools."
        mentions = extract_competitor_mentions(text, rivals)
        assert [m.name for m in mentions] == ["Globex"]
        assert mentions[0].position == 1
        assert mentions[0].sentiment == SentimentLabel.POSITIVE

    def test_none_for_empty(self, rivals):
        assert extract_competitor_mentions("", rivals) == []
        assert extract_competitor_mentions("Globex", []) == []


class TestBuildAnalysis:
    """EngineResponse -> PromptAnalysis."""

    def test_mentioned_positive(self, acme, rivals):
        response = EngineResponse(
            engine="chatgpt",
            response_text="Acme is an excellent, reliable choice. Globex is fine too.",
            citation_urls=["https://acme.io/pricing"],
        )
        analysis = build_analysis("p1", response, acme, rivals)

        assert analysis.summary.mentioned
        assert analysis.summary.sentiment == SentimentLabel.POSITIVE
        assert 50 < analysis.summary.score <= 100
        assert analysis.summary.engine == "chatgpt"
        assert analysis.mention_position == 1
        assert analysis.citation_urls == ["https://acme.io/pricing"]
        assert [m.name for m in analysis.competitor_mentions] == ["Globex"]
        assert analysis.key == ("p1", "chatgpt")
        # 40 mention + 20 position + 15 positive + 15 citation + 10 low competition
        assert analysis.visibility_score == 100

    def test_not_mentioned_forces_neutral_zero(self, acme):
        response = EngineResponse(engine="perplexity", response_text="I love Globex, it is wonderful!")
        analysis = build_analysis("p1", response, acme)

        assert not analysis.summary.mentioned
        assert analysis.summary.score == 0
        assert analysis.summary.sentiment == SentimentLabel.NEUTRAL
        assert analysis.summary.sentiment_compound == 0.0
        assert analysis.mention_position is None

    def test_negative_mention_scores_below_midpoint(self, acme):
        response = EngineResponse(engine="claude", response_text="Acme is terrible and users hate the awful support.")
        analysis = build_analysis("p1", response, acme)
        assert analysis.summary.sentiment == SentimentLabel.NEGATIVE
        assert analysis.summary.score < 50

    def test_engine_override(self, acme):
        response = EngineResponse(engine="google_aio", response_text="Acme")
        assert build_analysis("p1", response, acme, engine="google").summary.engine == "google"


class TestEngineMentionAnalyzer:
    """Querying engines."""

    @pytest.mark.asyncio
    async def test_analyze_queries_with_brand_context(self, acme):
        engine = FakeEngine("chatgpt", answer="Acme is great.")
        analyzer = EngineMentionAnalyzer({"chatgpt": engine})
        prompt = Prompt(brand_id=acme.id, text="best cloud tools")

        analysis = await analyzer.analyze(prompt, "chatgpt", acme)

        assert engine.calls == ["best cloud tools"]
        assert analysis.prompt_id == prompt.id
        assert analysis.summary.mentioned

    @pytest.mark.asyncio
    async def test_unknown_engine(self, acme):
        analyzer = EngineMentionAnalyzer({})
        with pytest.raises(EngineError):
            await analyzer.analyze(Prompt(brand_id=acme.id, text="x"), "bing", acme)

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self, acme):
        class SlowEngine(FakeEngine):
            async def query(self, query: EngineQuery):
                await asyncio.sleep(1)
                return await super().query(query)

        analyzer = EngineMentionAnalyzer({"slow": SlowEngine("slow", "Acme")}, timeout=0.01)
        with pytest.raises(TransientExternalError):
            await analyzer.analyze(Prompt(brand_id=acme.id, text="x"), "slow", acme)

    @pytest.mark.asyncio
    async def test_close_closes_clients(self):
        engine = FakeEngine("chatgpt")
        analyzer = EngineMentionAnalyzer({"chatgpt": engine})
        await analyzer.close()
        assert engine.closed
        assert analyzer.engine_names == ["chatgpt"]
