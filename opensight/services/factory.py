"""
Service construction from Settings.

Every collaborator is built here once and passed in explicitly; nothing
below this module reaches for global clients.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..analyzer.engine import EngineMentionAnalyzer
from ..analyzer.mentions import MatchPolicy
from ..database.repository import CatalogRepository, ContentRepository, ResultRepository
from ..database.session import Database, init_database
from ..delivery.email import EmailDelivery
from ..engines import create_engine_clients
from ..extraction.firecrawl import FirecrawlExtractor
from ..utils.config import Settings
from ..workflow.checkpoints import RunCheckpointStore
from ..workflow.orchestrator import AnalysisOrchestrator
from ..workflow.retry import RetryPolicy
from ..workflow.runner import AnalysisJobRunner
from .catalog import CatalogService
from .comparison import ComparisonService
from .content import ContentScoringService
from .intake import AnalysisIntake

logger = logging.getLogger(__name__)


@dataclass
class Services:
    database: Database
    catalog: CatalogRepository
    results: ResultRepository
    analyzer: EngineMentionAnalyzer
    orchestrator: AnalysisOrchestrator
    runner: AnalysisJobRunner
    intake: AnalysisIntake
    catalog_service: CatalogService
    comparison: ComparisonService
    content: Optional[ContentScoringService] = None
    extractor: Optional[FirecrawlExtractor] = None

    async def close(self):
        await self.analyzer.close()
        if self.extractor is not None:
            await self.extractor.close()
        self.database.dispose()


def _policy(settings: Settings, max_attempts: int) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=max_attempts,
        initial_delay=settings.RETRY_INITIAL_DELAY,
        max_delay=settings.RETRY_MAX_DELAY,
    )


def build_services(settings: Settings, database: Optional[Database] = None) -> Services:
    """
    Wire repositories, engine clients, notifier and workflow from settings.

    Raises:
        ValueError: A configured engine is unknown or lacks its API key
    """
    db = database or init_database(settings.DATABASE_URL)
    catalog = CatalogRepository(db)
    results = ResultRepository(db)
    content_repo = ContentRepository(db)

    analyzer = EngineMentionAnalyzer(
        create_engine_clients(settings),
        policy=MatchPolicy(settings.MENTION_POLICY),
        timeout=settings.ENGINE_TIMEOUT,
    )
    store = RunCheckpointStore(settings.RUNS_PATH)
    orchestrator = AnalysisOrchestrator(
        catalog=catalog,
        results=results,
        analyzer=analyzer,
        notifier=EmailDelivery(api_key=settings.RESEND_API_KEY, from_email=settings.FROM_EMAIL),
        store=store,
        analysis_policy=_policy(settings, settings.ANALYSIS_MAX_ATTEMPTS),
        persist_policy=_policy(settings, settings.PERSIST_MAX_ATTEMPTS),
        notify_policy=_policy(settings, settings.NOTIFY_MAX_ATTEMPTS),
        concurrency=settings.ENGINE_CONCURRENCY,
        notify_timeout=settings.NOTIFY_TIMEOUT,
    )
    runner = AnalysisJobRunner(orchestrator)

    extractor = None
    content = None
    if settings.FIRECRAWL_API_KEY:
        extractor = FirecrawlExtractor(settings.FIRECRAWL_API_KEY, timeout=settings.EXTRACTION_TIMEOUT)
        content = ContentScoringService(
            extractor,
            content_repo,
            extraction_policy=_policy(settings, settings.ANALYSIS_MAX_ATTEMPTS),
            persist_policy=_policy(settings, settings.PERSIST_MAX_ATTEMPTS),
            timeout=settings.EXTRACTION_TIMEOUT,
            default_limit=settings.HISTORY_DEFAULT_LIMIT,
            max_limit=settings.HISTORY_MAX_LIMIT,
        )
    else:
        logger.warning("FIRECRAWL_API_KEY not set - content scoring disabled")

    logger.info(f"Services ready: engines={analyzer.engine_names}")

    return Services(
        database=db,
        catalog=catalog,
        results=results,
        analyzer=analyzer,
        orchestrator=orchestrator,
        runner=runner,
        intake=AnalysisIntake(store, runner),
        catalog_service=CatalogService(
            catalog,
            default_limit=settings.HISTORY_DEFAULT_LIMIT,
            max_limit=settings.HISTORY_MAX_LIMIT,
        ),
        comparison=ComparisonService(
            catalog,
            results,
            content_repo,
            window=settings.TREND_WINDOW,
            default_limit=settings.HISTORY_DEFAULT_LIMIT,
            max_limit=settings.HISTORY_MAX_LIMIT,
        ),
        content=content,
        extractor=extractor,
    )
