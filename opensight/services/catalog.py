"""
Catalog Service

Validated brand, prompt and competitor management on top of
CatalogRepository. Payloads are plain dicts as they arrive from outside.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from ..database.repository import CatalogRepository
from ..history.pagination import DEFAULT_LIMIT, MAX_LIMIT, coerce_page
from ..models import Brand, Competitor, Prompt
from ..validation import BrandInput, CompetitorInput, PromptInput, PromptUpdate, validate

logger = logging.getLogger(__name__)


class CatalogService:
    """
    Usage:
        service = CatalogService(CatalogRepository(db))
        brand = service.create_brand({"name": "Acme", "domain": "acme.io"})
        service.create_prompt(brand.id, {"text": "best crm tools", "tags": ["crm"]})
    """

    def __init__(
        self,
        repository: CatalogRepository,
        default_limit: int = DEFAULT_LIMIT,
        max_limit: int = MAX_LIMIT,
    ):
        self.repository = repository
        self.default_limit = default_limit
        self.max_limit = max_limit

    def _require_brand(self, brand_id: str) -> Brand:
        brand = self.repository.get_brand(brand_id)
        if brand is None:
            raise KeyError(f"Unknown brand: {brand_id}")
        return brand

    # --- brands --------------------------------------------------------------

    def create_brand(self, payload: Dict[str, Any]) -> Brand:
        data = validate(BrandInput, payload)
        return self.repository.create_brand(data.name, data.domain, data.industry, data.aliases)

    # --- prompts -------------------------------------------------------------

    def create_prompt(self, brand_id: str, payload: Dict[str, Any]) -> Prompt:
        """
        Raises:
            ValidationError: Malformed text or tags
            KeyError: Unknown brand
            PersistenceConflictError: The brand already has this prompt text
        """
        data = validate(PromptInput, payload)
        self._require_brand(brand_id)
        return self.repository.create_prompt(brand_id, data.text, data.tags)

    def bulk_create_prompts(self, brand_id: str, payloads: Sequence[Dict[str, Any]]) -> List[Prompt]:
        """All payloads are validated before any prompt is created."""
        items = [validate(PromptInput, p) for p in payloads]
        self._require_brand(brand_id)
        return self.repository.bulk_create_prompts(
            brand_id, [{"text": item.text, "tags": item.tags} for item in items]
        )

    def update_prompt(self, prompt_id: str, payload: Dict[str, Any]) -> Optional[Prompt]:
        data = validate(PromptUpdate, payload)
        text = data.text.strip() if data.text is not None else None
        return self.repository.update_prompt(prompt_id, text=text, tags=data.tags, is_active=data.is_active)

    def list_prompts(
        self,
        brand_id: str,
        tag: Optional[str] = None,
        limit: Any = None,
        offset: Any = None,
    ) -> List[Prompt]:
        limit, offset = coerce_page(limit, offset, self.default_limit, self.max_limit)
        return self.repository.list_prompts(brand_id, tag=tag, limit=limit, offset=offset)

    # --- competitors ---------------------------------------------------------

    def add_competitor(self, brand_id: str, payload: Dict[str, Any]) -> Competitor:
        """
        Raises:
            ValidationError: Malformed name, URL or industry
            KeyError: Unknown brand
            PersistenceConflictError: The brand already tracks this URL
        """
        data = validate(CompetitorInput, payload)
        self._require_brand(brand_id)
        competitor = self.repository.add_competitor(brand_id, data.name, data.url, data.industry)
        logger.info(f"Brand {brand_id} now tracks competitor {competitor.name}")
        return competitor

    def remove_competitor(self, brand_id: str, competitor_id: str) -> bool:
        return self.repository.remove_competitor(brand_id, competitor_id)

    def list_competitors(self, brand_id: str) -> List[Competitor]:
        return self.repository.list_competitors(brand_id)
