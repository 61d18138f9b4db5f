"""Content extraction collaborators."""

from .firecrawl import ExtractedPage, FirecrawlExtractor, markdown_to_text

__all__ = ["ExtractedPage", "FirecrawlExtractor", "markdown_to_text"]
