"""
Content Scoring Service

url -> extraction -> ContentScorer (text plus page signals) ->
ContentRepository, plus the paginated score history.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from ..database.repository import ContentRepository
from ..extraction.firecrawl import ExtractedPage
from ..errors import TransientExternalError
from ..history.pagination import DEFAULT_LIMIT, MAX_LIMIT, coerce_page
from ..scoring.content import ContentScorer, ContentScoreRecord
from ..scoring.page import extract_signals
from ..validation import validate_content_submission
from ..workflow.retry import RetryPolicy, retry_async

logger = logging.getLogger(__name__)


class ContentScoringService:
    """
    Usage:
        service = ContentScoringService(FirecrawlExtractor(key), ContentRepository(db))
        record = await service.score_url("https://example.com/blog/post")
        latest = service.history(domain="example.com", limit="10", offset="0")
    """

    def __init__(
        self,
        extractor,
        repository: ContentRepository,
        scorer: Optional[ContentScorer] = None,
        extraction_policy: Optional[RetryPolicy] = None,
        persist_policy: Optional[RetryPolicy] = None,
        timeout: float = 60.0,
        default_limit: int = DEFAULT_LIMIT,
        max_limit: int = MAX_LIMIT,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        """
        Args:
            extractor: Object with ``async extract_page(url) -> ExtractedPage``
            repository: Content score store
            scorer: Content scorer (default weights when omitted)
            extraction_policy: Retry budget for extraction
            persist_policy: Retry budget for the write
            timeout: Per-call extraction timeout in seconds
            default_limit: History page size when none is given
            max_limit: Largest history page
            sleep: Awaitable sleep used between retries (tests)
        """
        self.extractor = extractor
        self.repository = repository
        self.scorer = scorer or ContentScorer()
        self.extraction_policy = extraction_policy or RetryPolicy(max_attempts=3)
        self.persist_policy = persist_policy or RetryPolicy(max_attempts=5)
        self.timeout = timeout
        self.default_limit = default_limit
        self.max_limit = max_limit
        self.sleep = sleep

    async def _extract(self, url: str) -> ExtractedPage:
        try:
            return await asyncio.wait_for(self.extractor.extract_page(url), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise TransientExternalError(f"Extraction of {url} timed out", service="extraction") from e

    async def score_url(self, payload: Union[str, Any]) -> ContentScoreRecord:
        """
        Score the content at a URL and store the record.

        Raises:
            ValidationError: Not an absolute http(s) URL
            PermanentFailure: Extraction or the write kept failing
            ExtractionError: The page could not be scraped
            EmptyContentError: The page has no text; nothing is stored
        """
        if isinstance(payload, str):
            payload = {"url": payload}
        url = validate_content_submission(payload).url

        page = await retry_async(
            f"extract {url}",
            lambda: self._extract(url),
            self.extraction_policy,
            sleep=self.sleep,
        )

        signals = extract_signals(page.markdown, page.metadata, page.raw_html)
        record = self.scorer.score(page.text, url=url, page=signals)

        async def save():
            return self.repository.save(record)

        stored = await retry_async(
            f"store content score {url}",
            save,
            self.persist_policy,
            (SQLAlchemyError, TransientExternalError),
            self.sleep,
        )
        logger.info(f"Scored {url}: {stored.composite_score}")
        return stored

    def history(
        self,
        url: Optional[str] = None,
        domain: Optional[str] = None,
        limit: Any = None,
        offset: Any = None,
    ) -> List[ContentScoreRecord]:
        """
        Stored scores, most recent first.

        ``limit``/``offset`` may be string-encoded; limit defaults to
        ``default_limit`` and is capped at ``max_limit``.
        """
        limit, offset = coerce_page(limit, offset, self.default_limit, self.max_limit)
        return self.repository.history(url=url, domain=domain, limit=limit, offset=offset)
