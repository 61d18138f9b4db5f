"""
Services that wire the pipeline components to the outside world.

- AnalysisIntake: validate + queue domain analyses
- CatalogService: validated brand/prompt/competitor management
- ContentScoringService: score a URL, paginated score history
- ComparisonService: brand vs. competitors, brand score history
- build_services: construct everything from Settings
"""

from .intake import AnalysisIntake
from .catalog import CatalogService
from .content import ContentScoringService
from .comparison import ComparisonService
from .factory import Services, build_services

__all__ = [
    "AnalysisIntake",
    "CatalogService",
    "ContentScoringService",
    "ComparisonService",
    "Services",
    "build_services",
]
