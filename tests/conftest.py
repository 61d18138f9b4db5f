"""
Pytest Configuration and Shared Fixtures

Provides an in-memory database, repositories, a checkpoint store and fake
external collaborators (engines, notifier, extractor) for all test modules.
"""

from typing import Callable, Dict, List, Optional, Union

import pytest

from opensight.database import CatalogRepository, ContentRepository, Database, ResultRepository
from opensight.delivery.email import EmailResult
from opensight.engines.base import EngineClient, EngineQuery, EngineResponse
from opensight.extraction import ExtractedPage
from opensight.errors import TransientExternalError
from opensight.workflow import RetryPolicy, RunCheckpointStore


# ============================================================================
# Fake Collaborators
# ============================================================================

class FakeEngine(EngineClient):
    """
    Engine that answers from a function of the prompt text.

    ``fail_on`` maps prompt text -> exception raised on every call for it.
    """

    def __init__(
        self,
        name: str,
        answer: Union[str, Callable[[str], str]] = "",
        fail_on: Optional[Dict[str, Exception]] = None,
    ):
        self.name = name
        self.answer = answer
        self.fail_on = fail_on or {}
        self.calls: List[str] = []
        self.closed = False

    async def query(self, query: EngineQuery) -> EngineResponse:
        self.calls.append(query.prompt)
        if query.prompt in self.fail_on:
            raise self.fail_on[query.prompt]
        text = self.answer(query.prompt) if callable(self.answer) else self.answer
        return EngineResponse(engine=self.name, response_text=text)

    async def close(self):
        self.closed = True


class FakeNotifier:
    """
    Notifier that fails ``failures`` times, then delivers.

    Like the provider, a send repeating an already delivered idempotency key
    returns the original message id without delivering again.
    """

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.sent: List[tuple] = []
        self.errors_sent: List[tuple] = []
        self.delivered: Dict[str, str] = {}
        self.attempts = 0

    async def send_analysis_summary(self, to_email: str, summary: dict, idempotency_key: Optional[str] = None) -> EmailResult:
        self.attempts += 1
        if self.attempts <= self.failures:
            return EmailResult(success=False, error="mailbox unavailable")
        if idempotency_key in self.delivered:
            return EmailResult(success=True, message_id=self.delivered[idempotency_key])
        self.sent.append((to_email, summary))
        message_id = f"msg-{len(self.sent)}"
        if idempotency_key:
            self.delivered[idempotency_key] = message_id
        return EmailResult(success=True, message_id=message_id)

    async def send_error_notification(self, to_email: str, domain: str, error_message: str,
                                      idempotency_key: Optional[str] = None) -> EmailResult:
        self.errors_sent.append((to_email, domain, error_message, idempotency_key))
        return EmailResult(success=True, message_id=f"err-{len(self.errors_sent)}")


class FakeExtractor:
    """Extractor returning a fixed page (or plain text used as its markdown) per URL."""

    def __init__(self, pages: Optional[Dict[str, Union[str, ExtractedPage, Exception]]] = None, default: str = ""):
        self.pages = pages or {}
        self.default = default
        self.calls: List[str] = []

    async def extract_page(self, url: str) -> ExtractedPage:
        self.calls.append(url)
        value = self.pages.get(url, self.default)
        if isinstance(value, Exception):
            raise value
        if isinstance(value, ExtractedPage):
            return value
        return ExtractedPage(url=url, text=value, markdown=value)


async def no_sleep(_delay: float):
    return None


def timeout_error(engine: str = "perplexity") -> TransientExternalError:
    return TransientExternalError(f"{engine} timed out", service=engine)


# ============================================================================
# Persistence Fixtures
# ============================================================================

@pytest.fixture
def db():
    """Fresh in-memory SQLite database (StaticPool) per test."""
    database = Database("sqlite://")
    database.create_all()
    yield database
    database.dispose()


@pytest.fixture
def catalog(db) -> CatalogRepository:
    return CatalogRepository(db)


@pytest.fixture
def results(db) -> ResultRepository:
    return ResultRepository(db)


@pytest.fixture
def content_repo(db) -> ContentRepository:
    return ContentRepository(db)


@pytest.fixture
def store(tmp_path) -> RunCheckpointStore:
    return RunCheckpointStore(str(tmp_path / "runs"))


@pytest.fixture
def fast_policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, initial_delay=0.0, max_delay=0.0)


# ============================================================================
# Domain Fixtures
# ============================================================================

BRAND_ANSWER = (
    "Example is a great choice for small teams. "
    "Many reviewers love how easy example.com is to set up. "
    "Rival Corp is another option."
)


@pytest.fixture
def brand(catalog):
    """example.com with three active prompts and one inactive prompt."""
    brand = catalog.create_brand("Example", "example.com")
    for text in ("best crm tools", "crm for startups", "simple sales software"):
        catalog.create_prompt(brand.id, text, tags=["crm"])
    inactive = catalog.create_prompt(brand.id, "legacy prompt")
    catalog.update_prompt(inactive.id, is_active=False)
    catalog.add_competitor(brand.id, "Rival Corp", "https://rivalcorp.com")
    return brand
