"""
Firecrawl Content Extraction

Fetches a page through Firecrawl (JavaScript rendering, main-content
markdown plus the raw HTML) and reduces the markdown to plain text for
scoring. The raw HTML and page metadata feed the page signal subscores.

API: https://firecrawl.dev
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from ..errors import ExtractionError, TransientExternalError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = (429, 500, 502, 503, 504)


# ============================================================================
# MARKDOWN -> TEXT
# ============================================================================

_CODE_FENCE = re.compile(r"```.*?```", re.DOTALL)
_INLINE_CODE = re.compile(r"`([^`]*)`")
_IMAGE = re.compile(r"!\[[^\]]*\]\([^)]*\)")
_LINK = re.compile(r"\[([^\]]*)\]\([^)]*\)")
_REFERENCE_DEF = re.compile(r"^\s*\[[^\]]+\]:\s*\S+.*$", re.MULTILINE)
_HEADING = re.compile(r"^\s{0,3}#{1,6}\s*", re.MULTILINE)
_BLOCKQUOTE = re.compile(r"^\s*>\s?", re.MULTILINE)
_LIST_MARKER = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+", re.MULTILINE)
_HR = re.compile(r"^\s*(?:[-*_]\s*){3,}$", re.MULTILINE)
_EMPHASIS = re.compile(r"(\*{1,3}|_{1,3}|~~)(\S(?:.*?\S)?)\1")
_HTML_TAG = re.compile(r"<[^>]+>")
_TABLE_PIPE = re.compile(r"\s*\|\s*")
_BLANK_LINES = re.compile(r"\n{3,}")


def markdown_to_text(markdown: str) -> str:
    """
    Reduce markdown to plain text.

    Links keep their label; images, code fences, headings, emphasis and list
    markers are removed. Paragraph breaks are kept as blank lines.
    """
    if not markdown:
        return ""

    text = _CODE_FENCE.sub(" ", markdown)
    text = _IMAGE.sub("", text)
    text = _LINK.sub(r"\1", text)
    text = _REFERENCE_DEF.sub("", text)
    text = _INLINE_CODE.sub(r"\1", text)
    text = _HR.sub("", text)
    text = _HEADING.sub("", text)
    text = _BLOCKQUOTE.sub("", text)
    text = _LIST_MARKER.sub("", text)
    text = _EMPHASIS.sub(r"\2", text)
    text = _HTML_TAG.sub(" ", text)
    text = "\n".join(_TABLE_PIPE.sub(" ", line).strip() for line in text.splitlines())
    text = _BLANK_LINES.sub("\n\n", text)
    return text.strip()


# ============================================================================
# CLIENT
# ============================================================================


@dataclass
class ExtractedPage:
    """One scraped page: the text to score and the markup it came from."""

    url: str
    text: str
    markdown: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)
    raw_html: str = ""


class FirecrawlExtractor:
    """
    Content extraction collaborator backed by Firecrawl.

    Makes one attempt per call; the content service decides about retries.

    Usage:
        async with FirecrawlExtractor(api_key="fc-...") as extractor:
            text = await extractor.extract("https://example.com/blog/post")
    """

    BASE_URL = "https://api.firecrawl.dev/v1"

    def __init__(
        self,
        api_key: str,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            api_key: Firecrawl API key
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        if not api_key:
            raise ValueError("FIRECRAWL_API_KEY is required for content extraction")

        self._client = httpx.AsyncClient(
            base_url=self.BASE_URL,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )
        self._closed = False

    async def scrape(self, url: str) -> Dict[str, Any]:
        """Raw Firecrawl scrape response for a URL."""
        if self._closed:
            raise ExtractionError("Client has been closed", url=url)

        payload = {
            "url": url,
            "formats": ["markdown", "rawHtml"],
            "onlyMainContent": True,
        }

        try:
            response = await self._client.post("/scrape", json=payload)
        except httpx.TimeoutException as e:
            raise TransientExternalError(f"Firecrawl request timed out: {e}", service="firecrawl") from e
        except httpx.RequestError as e:
            raise TransientExternalError(f"Firecrawl request failed: {e}", service="firecrawl") from e

        if response.status_code >= 400:
            try:
                error_data = response.json() if response.content else {}
            except ValueError:
                error_data = {}

            if response.status_code in RETRYABLE_STATUS_CODES:
                raise TransientExternalError(
                    f"Firecrawl API error: {response.status_code}",
                    service="firecrawl",
                    status_code=response.status_code,
                )
            raise ExtractionError(
                f"Firecrawl API error: {error_data.get('error', response.status_code)}",
                url=url,
                status_code=response.status_code,
            )

        return response.json()

    async def extract_page(self, url: str) -> ExtractedPage:
        """
        Scrape a page into scoring text plus its markdown, metadata and raw HTML.

        Raises:
            TransientExternalError: Timeout or retryable status
            ExtractionError: Scrape rejected or reported unsuccessful
        """
        result = await self.scrape(url)
        if not result.get("success", False):
            raise ExtractionError(f"Firecrawl could not scrape {url}: {result.get('error', 'unknown error')}", url=url)

        data = result.get("data") or {}
        markdown = data.get("markdown") or ""
        page = ExtractedPage(
            url=url,
            text=markdown_to_text(markdown),
            markdown=markdown,
            metadata=data.get("metadata") or {},
            raw_html=data.get("rawHtml") or "",
        )
        logger.info(f"Extracted {len(page.text)} chars from {url}")
        return page

    async def extract(self, url: str) -> str:
        """Plain text of a page's main content."""
        return (await self.extract_page(url)).text

    async def close(self):
        """Close the HTTP client."""
        if not self._closed:
            await self._client.aclose()
            self._closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
