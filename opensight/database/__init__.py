"""
Database package: SQLAlchemy models, session management and repositories.

Usage:
    from opensight.database import init_database, CatalogRepository

    db = init_database(settings.DATABASE_URL)
    catalog = CatalogRepository(db)
"""

from .models import (
    Base,
    BrandRow,
    CompetitorRow,
    PromptRow,
    PromptResultRow,
    ContentScoreRow,
    AnalysisRunRow,
    VisibilitySnapshotRow,
)
from .session import Database, create_db_engine, get_database_url, init_database
from .repository import CatalogRepository, ContentRepository, ResultRepository

__all__ = [
    "Base",
    "BrandRow",
    "CompetitorRow",
    "PromptRow",
    "PromptResultRow",
    "ContentScoreRow",
    "AnalysisRunRow",
    "VisibilitySnapshotRow",
    "Database",
    "create_db_engine",
    "get_database_url",
    "init_database",
    "CatalogRepository",
    "ContentRepository",
    "ResultRepository",
]
