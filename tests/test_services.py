"""
Test Suite: Services and Input Validation

- Analysis intake: synchronous rejection, queueing
- Catalog service: validated prompt/competitor management
- Content scoring service: extraction, page signals, empty content, history pagination
- Comparison service: brand vs. competitors from stored history
- Service wiring from Settings, CLI argument parsing
"""

from datetime import datetime, timedelta, timezone

import pytest

from conftest import BRAND_ANSWER, FakeEngine, FakeExtractor, FakeNotifier, no_sleep, timeout_error
from opensight.analyzer import EngineMentionAnalyzer
from opensight.cli import build_parser
from opensight.errors import EmptyContentError, PermanentFailure, PersistenceConflictError, ValidationError
from opensight.history import VisibilitySnapshot
from opensight.models import Industry, MissingPair
from opensight.extraction import ExtractedPage
from opensight.scoring.content import ContentScoreRecord, ContentScorer
from opensight.services import AnalysisIntake, CatalogService, ComparisonService, ContentScoringService, build_services
from opensight.utils.config import Settings
from opensight.validation import AnalysisSubmission, PromptInput, validate, validate_analysis_submission
from opensight.workflow import AnalysisJobRunner, AnalysisOrchestrator, RunState

T0 = datetime(2024, 3, 1, tzinfo=timezone.utc)

ARTICLE = (
    "Our team builds simple tools. They are easy to use and fast to set up. "
    "Customers love the clear reports. Try it today and see the results."
)


class TestValidation:

    def test_url_reduced_to_host(self):
        submission = validate_analysis_submission({"domain": "https://www.Example.com/pricing", "email": "a@example.com"})
        assert submission.domain == "example.com"

    @pytest.mark.parametrize("payload, field", [
        ({"domain": "not a domain", "email": "a@example.com"}, "domain"),
        ({"domain": "localhost", "email": "a@example.com"}, "domain"),
        ({"domain": "", "email": "a@example.com"}, "domain"),
        ({"domain": "x" * 256 + ".com", "email": "a@example.com"}, "domain"),
        ({"domain": "example.com", "email": "not-an-email"}, "email"),
        ({"domain": "example.com"}, "email"),
    ])
    def test_rejected_submissions(self, payload, field):
        with pytest.raises(ValidationError) as exc:
            validate_analysis_submission(payload)
        assert field in [e["field"] for e in exc.value.errors]

    def test_non_object_payload(self):
        with pytest.raises(ValidationError):
            validate(AnalysisSubmission, "example.com")

    def test_model_instance_passes_through(self):
        submission = AnalysisSubmission(domain="example.com", email="a@example.com")
        assert validate(AnalysisSubmission, submission) is submission

    def test_prompt_tags(self):
        prompt = validate(PromptInput, {"text": "  best crm  ", "tags": ["crm", " crm ", "sales"]})
        assert prompt.text == "best crm"
        assert prompt.tags == ["crm", "sales"]

    @pytest.mark.parametrize("payload", [
        {"text": "   "},
        {"text": "x" * 1001},
        {"text": "ok", "tags": [f"t{i}" for i in range(11)]},
        {"text": "ok", "tags": ["x" * 51]},
        {"text": "ok", "tags": [""]},
    ])
    def test_rejected_prompts(self, payload):
        with pytest.raises(ValidationError):
            validate(PromptInput, payload)


class TestAnalysisIntake:

    @pytest.mark.asyncio
    async def test_accepted_submission_is_queued(self, store):
        intake = AnalysisIntake(store)

        accepted = await intake.submit({"domain": "www.example.com", "email": "owner@example.com"})

        assert accepted["queued"] is True
        assert accepted["domain"] == "example.com"
        assert accepted["email"] == "owner@example.com"
        checkpoint = store.load(accepted["run_id"])
        assert checkpoint.state == RunState.QUEUED
        assert checkpoint.request.domain == "example.com"

    @pytest.mark.asyncio
    async def test_invalid_submission_queues_nothing(self, store):
        intake = AnalysisIntake(store)

        with pytest.raises(ValidationError):
            await intake.submit({"domain": "not a domain", "email": "owner@example.com"})
        with pytest.raises(ValidationError):
            await intake.submit({"domain": "example.com", "email": "nope"})

        assert store.list_runs() == []

    @pytest.mark.asyncio
    async def test_submission_runs_to_completion(self, catalog, results, store, brand, fast_policy):
        orchestrator = AnalysisOrchestrator(
            catalog, results,
            EngineMentionAnalyzer({"chatgpt": FakeEngine("chatgpt", BRAND_ANSWER)}),
            FakeNotifier(), store,
            analysis_policy=fast_policy, persist_policy=fast_policy, notify_policy=fast_policy,
            sleep=no_sleep,
        )
        runner = AnalysisJobRunner(orchestrator)
        intake = AnalysisIntake(store, runner)

        accepted = await intake.submit({"domain": "example.com", "email": "owner@example.com"})
        final = await runner.wait(accepted["run_id"])

        assert final.state == RunState.COMPLETED
        assert results.count_results(accepted["run_id"]) == 3


class TestCatalogService:

    @pytest.fixture
    def service(self, catalog):
        return CatalogService(catalog)

    def test_create_brand(self, service):
        brand = service.create_brand({"name": "Acme", "domain": "https://www.acme.io", "industry": "saas"})
        assert brand.domain == "acme.io"
        assert brand.industry == Industry.SAAS

        with pytest.raises(ValidationError):
            service.create_brand({"name": "Bad", "domain": "acme.io", "industry": "retail"})

    def test_create_and_update_prompt(self, service, brand):
        prompt = service.create_prompt(brand.id, {"text": "crm with email", "tags": ["crm", "email"]})
        assert prompt.tags == {"crm", "email"}

        with pytest.raises(PersistenceConflictError):
            service.create_prompt(brand.id, {"text": "crm with email"})
        with pytest.raises(KeyError):
            service.create_prompt("missing", {"text": "anything"})

        updated = service.update_prompt(prompt.id, {"is_active": False})
        assert not updated.is_active
        assert updated.text == "crm with email"

    def test_bulk_create_validates_everything_first(self, service, brand):
        with pytest.raises(ValidationError):
            service.bulk_create_prompts(brand.id, [{"text": "fine"}, {"text": ""}])
        assert all(p.text != "fine" for p in service.list_prompts(brand.id))

        created = service.bulk_create_prompts(brand.id, [{"text": "fine"}, {"text": "best crm tools"}])
        assert [p.text for p in created] == ["fine"]

    def test_list_prompts_paginated(self, service, brand):
        assert len(service.list_prompts(brand.id, limit="2")) == 2
        assert len(service.list_prompts(brand.id, tag="crm")) == 3
        assert len(service.list_prompts(brand.id, limit="10", offset="3")) == 1

    def test_competitors(self, service, brand):
        with pytest.raises(ValidationError):
            service.add_competitor(brand.id, {"name": "No Scheme", "url": "globex.com"})
        with pytest.raises(ValidationError):
            service.add_competitor(brand.id, {"name": "", "url": "https://globex.com"})

        globex = service.add_competitor(brand.id, {"name": "Globex", "url": "https://globex.com", "industry": "finance"})
        assert globex.domain == "globex.com"
        assert [c.name for c in service.list_competitors(brand.id)] == ["Rival Corp", "Globex"]

        assert service.remove_competitor(brand.id, globex.id)
        assert [c.name for c in service.list_competitors(brand.id)] == ["Rival Corp"]


class TestContentScoringService:

    def _service(self, content_repo, extractor, fast_policy, **kwargs):
        return ContentScoringService(
            extractor, content_repo,
            extraction_policy=fast_policy, persist_policy=fast_policy,
            sleep=no_sleep, **kwargs,
        )

    @pytest.mark.asyncio
    async def test_score_and_store(self, content_repo, fast_policy):
        extractor = FakeExtractor({"https://example.com/post": ARTICLE})
        service = self._service(content_repo, extractor, fast_policy)

        record = await service.score_url("https://example.com/post")

        assert 0 <= record.composite_score <= 100
        assert record.id is not None
        assert content_repo.count(url="https://example.com/post") == 1
        assert service.history(domain="example.com")[0].composite_score == record.composite_score

    @pytest.mark.asyncio
    async def test_page_signals_reach_record(self, content_repo, fast_policy):
        page = ExtractedPage(
            url="https://example.com/guide",
            text=ARTICLE,
            markdown=ARTICLE,
            raw_html=f"<html><body><h1>Guide</h1><p>{ARTICLE}</p><blockquote>Quote</blockquote></body></html>",
        )
        service = self._service(content_repo, FakeExtractor({"https://example.com/guide": page}), fast_policy)

        record = await service.score_url("https://example.com/guide")

        # Page subscores are informational only
        assert record.composite_score == ContentScorer().score(ARTICLE).composite_score
        assert record.subscores["structure"] == 20
        assert record.subscores["citations"] == 30
        assert record.subscores["freshness"] == 50
        assert "Add publication or modification dates to your content" in record.recommendations
        assert service.history(url="https://example.com/guide")[0].subscores["structure"] == 20

    @pytest.mark.asyncio
    async def test_empty_content_not_persisted(self, content_repo, fast_policy):
        extractor = FakeExtractor({"https://example.com/blank": "   \n\t  "})
        service = self._service(content_repo, extractor, fast_policy)

        with pytest.raises(EmptyContentError):
            await service.score_url({"url": "https://example.com/blank"})

        assert extractor.calls == ["https://example.com/blank"]
        assert content_repo.count(domain="example.com") == 0

    @pytest.mark.asyncio
    async def test_invalid_url_not_extracted(self, content_repo, fast_policy):
        extractor = FakeExtractor(default=ARTICLE)
        service = self._service(content_repo, extractor, fast_policy)

        with pytest.raises(ValidationError):
            await service.score_url("ftp://example.com/file")

        assert extractor.calls == []

    @pytest.mark.asyncio
    async def test_extraction_retried_then_exhausted(self, content_repo, fast_policy):
        extractor = FakeExtractor({"https://example.com/down": timeout_error("extraction")})
        service = self._service(content_repo, extractor, fast_policy)

        with pytest.raises(PermanentFailure):
            await service.score_url("https://example.com/down")

        assert len(extractor.calls) == 3

    def test_history_string_pagination(self, content_repo, fast_policy):
        for i in range(15):
            content_repo.save(ContentScoreRecord(
                url=f"https://example.com/p{i}",
                composite_score=float(i),
                scored_at=T0 + timedelta(hours=i),
            ))
        service = self._service(content_repo, FakeExtractor(), fast_policy)

        page = service.history(domain="example.com", limit="10", offset="0")

        assert len(page) == 10
        assert [r.composite_score for r in page] == [float(i) for i in range(14, 4, -1)]
        assert len(service.history(domain="example.com", limit="500")) == 15

        with pytest.raises(ValidationError):
            service.history(domain="example.com", limit="ten")


class TestComparisonService:

    def _snapshot(self, run_id, brand_id, score, at, mentions=0, competitors=None):
        return VisibilitySnapshot(
            run_id=run_id,
            brand_id=brand_id,
            overall_score=score,
            total_mentions=mentions,
            competitor_data=competitors or {},
            created_at=at,
        )

    def test_compare_against_content_history(self, catalog, results, content_repo, brand):
        results.save_snapshot(self._snapshot("run-1", brand.id, 50, T0))
        results.save_snapshot(self._snapshot(
            "run-2", brand.id, 65, T0 + timedelta(days=1),
            mentions=3, competitors={"Rival Corp": {"mentions": 1}},
        ))
        results.record_run(
            "run-2", "example.com", "owner@example.com", "completed",
            brand_id=brand.id, expected_pairs=6, successful_pairs=4,
            missing_pairs=[MissingPair("p1", "perplexity", "timed out"), MissingPair("p2", "perplexity", "timed out")],
            submitted_at=T0 + timedelta(days=1),
        )
        content_repo.save(ContentScoreRecord(url="https://rivalcorp.com/", composite_score=70.0, scored_at=T0))

        result = ComparisonService(catalog, results, content_repo).compare(brand.id)

        assert result.brand.current_score == 65
        assert result.brand.trend == 15
        assert result.brand.rank == 2
        assert result.brand.share_of_voice == 75.0
        assert [e.name for e in result.ranking] == ["Rival Corp", "Example"]
        assert result.coverage == pytest.approx(0.6667)
        assert len(result.missing_pairs) == 2

    def test_tracked_competitor_uses_its_snapshots(self, catalog, results, content_repo, brand):
        rival = catalog.create_brand("Rival Corp", "rivalcorp.com")
        results.save_snapshot(self._snapshot("rival-1", rival.id, 40, T0))
        results.save_snapshot(self._snapshot("run-1", brand.id, 55, T0))

        result = ComparisonService(catalog, results, content_repo).compare(brand.id)

        by_name = {e.name: e for e in result.entities}
        assert by_name["Rival Corp"].current_score == 40
        assert by_name["Example"].rank == 1
        assert result.coverage == 1.0

    def test_brand_without_history(self, catalog, results, brand):
        result = ComparisonService(catalog, results).compare(brand.id)
        assert result.brand.current_score is None
        assert result.brand.rank is None
        assert result.ranking == []

    def test_unknown_brand(self, catalog, results):
        with pytest.raises(KeyError):
            ComparisonService(catalog, results).compare("missing")

    def test_history_most_recent_first(self, catalog, results, brand):
        for i in range(3):
            results.save_snapshot(self._snapshot(f"run-{i}", brand.id, 40 + i, T0 + timedelta(days=i)))

        page = ComparisonService(catalog, results).history(brand.id, limit="2")

        assert [s.run_id for s in page] == ["run-2", "run-1"]


class TestCli:

    def test_analyze_arguments(self):
        args = build_parser().parse_args(["--log-level", "DEBUG", "analyze", "example.com", "me@example.com"])
        assert args.command == "analyze"
        assert args.domain == "example.com"
        assert args.log_level == "DEBUG"

    def test_schedule_arguments(self):
        args = build_parser().parse_args(["schedule", "--email", "ops@example.com"])
        assert args.command == "schedule"
        assert args.email == "ops@example.com"
        assert build_parser().parse_args(["schedule"]).email is None

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestBuildServices:

    @pytest.mark.asyncio
    async def test_wiring_from_settings(self, db, tmp_path):
        settings = Settings(
            _env_file=None,
            ENGINES="openai,chatgpt,perplexity",
            OPENAI_API_KEY="sk-test",
            PERPLEXITY_API_KEY="pplx-test",
            SERPER_API_KEY=None,
            ANTHROPIC_API_KEY=None,
            FIRECRAWL_API_KEY=None,
            RUNS_PATH=str(tmp_path / "runs"),
        )

        services = build_services(settings, database=db)

        assert services.analyzer.engine_names == ["chatgpt", "perplexity"]
        assert services.content is None
        assert services.intake.runner is services.runner
        assert services.catalog_service.repository is services.catalog
        await services.analyzer.close()

    def test_missing_engine_key_rejected(self, db, tmp_path):
        settings = Settings(_env_file=None, ENGINES="claude", ANTHROPIC_API_KEY=None, RUNS_PATH=str(tmp_path))
        with pytest.raises(ValueError):
            build_services(settings, database=db)
