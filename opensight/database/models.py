"""
SQLAlchemy Models for OpenSight

Design Principles:
1. Append-only observations (prompt results, content scores, snapshots)
2. Idempotency keys as unique constraints, so retried writes are safe
3. Portable column types (string ids, JSON) for PostgreSQL and SQLite
4. Timestamps stored as naive UTC
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    Column, String, Integer, Float, Boolean, DateTime, Text,
    ForeignKey, Index, CheckConstraint, UniqueConstraint, JSON,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _uuid() -> str:
    return str(uuid4())


def utcnow_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_db_time(value: Optional[datetime]) -> Optional[datetime]:
    """Aware datetime -> naive UTC for storage."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def from_db_time(value: Optional[datetime]) -> Optional[datetime]:
    """Stored naive UTC -> aware datetime."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# =============================================================================
# TRACKED ENTITIES
# =============================================================================

class BrandRow(Base):
    """A tracked brand."""
    __tablename__ = "brands"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    domain = Column(String(255), nullable=False, unique=True)
    industry = Column(String(20), nullable=False, default="other")
    aliases = Column(JSON, default=list)

    created_at = Column(DateTime, default=utcnow_naive)
    updated_at = Column(DateTime, default=utcnow_naive, onupdate=utcnow_naive)

    competitors = relationship("CompetitorRow", back_populates="brand", cascade="all, delete-orphan")
    prompts = relationship("PromptRow", back_populates="brand", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint(
            "industry IN ('saas', 'ecommerce', 'finance', 'healthcare', 'other')",
            name="check_brand_industry",
        ),
    )


class CompetitorRow(Base):
    """A competitor of a brand. Weak reference: may also be a tracked brand."""
    __tablename__ = "competitors"

    id = Column(String(36), primary_key=True, default=_uuid)
    brand_id = Column(String(36), ForeignKey("brands.id"), nullable=False)
    name = Column(String(255), nullable=False)
    url = Column(String(2048), nullable=False)
    domain = Column(String(255), nullable=False)
    industry = Column(String(20), nullable=False, default="other")

    created_at = Column(DateTime, default=utcnow_naive)

    brand = relationship("BrandRow", back_populates="competitors")

    __table_args__ = (
        UniqueConstraint("brand_id", "url", name="uq_competitor_brand_url"),
        Index("idx_competitor_brand", "brand_id"),
        Index("idx_competitor_domain", "domain"),
    )


class PromptRow(Base):
    """A monitoring prompt owned by one brand."""
    __tablename__ = "prompts"

    id = Column(String(36), primary_key=True, default=_uuid)
    brand_id = Column(String(36), ForeignKey("brands.id"), nullable=False)
    text = Column(String(1000), nullable=False)
    tags = Column(JSON, default=list)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=utcnow_naive)
    updated_at = Column(DateTime, default=utcnow_naive, onupdate=utcnow_naive)

    brand = relationship("BrandRow", back_populates="prompts")

    __table_args__ = (
        UniqueConstraint("brand_id", "text", name="uq_prompt_brand_text"),
        Index("idx_prompt_brand_active", "brand_id", "is_active"),
    )


# =============================================================================
# OBSERVATIONS (append-only)
# =============================================================================

class PromptResultRow(Base):
    """One (prompt, engine) outcome of one run. Never updated."""
    __tablename__ = "prompt_results"

    id = Column(String(36), primary_key=True, default=_uuid)
    run_id = Column(String(36), nullable=False)
    prompt_id = Column(String(36), ForeignKey("prompts.id"), nullable=False)
    brand_id = Column(String(36), ForeignKey("brands.id"), nullable=False)
    engine = Column(String(50), nullable=False)

    # Summary
    score = Column(Float, nullable=False)
    sentiment = Column(String(10), nullable=False)
    sentiment_compound = Column(Float, nullable=False, default=0.0)
    mentioned = Column(Boolean, nullable=False)

    # Details
    mention_position = Column(Integer)
    mention_count = Column(Integer, default=0)
    citation_urls = Column(JSON, default=list)
    competitor_mentions = Column(JSON, default=list)
    response_text = Column(Text)
    visibility_score = Column(Integer, default=0)

    queried_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow_naive)

    __table_args__ = (
        UniqueConstraint("run_id", "prompt_id", "engine", name="uq_result_run_prompt_engine"),
        CheckConstraint("score >= 0 AND score <= 100", name="check_result_score"),
        Index("idx_result_brand_time", "brand_id", "created_at"),
        Index("idx_result_prompt", "prompt_id", "engine"),
    )


class ContentScoreRow(Base):
    """One content scoring invocation."""
    __tablename__ = "content_scores"

    id = Column(String(36), primary_key=True, default=_uuid)
    url = Column(String(2048), nullable=False)
    domain = Column(String(255), nullable=False, default="")
    composite_score = Column(Float, nullable=False)
    subscores = Column(JSON, default=dict)
    recommendations = Column(JSON, default=list)
    scored_at = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("url", "scored_at", name="uq_content_url_scored_at"),
        CheckConstraint("composite_score >= 0 AND composite_score <= 100", name="check_content_score"),
        Index("idx_content_domain_time", "domain", "scored_at"),
    )


class AnalysisRunRow(Base):
    """Outcome record of one orchestrator run."""
    __tablename__ = "analysis_runs"

    run_id = Column(String(36), primary_key=True)
    brand_id = Column(String(36), ForeignKey("brands.id"))
    domain = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)

    status = Column(String(20), nullable=False)
    failed_step = Column(String(20))
    expected_pairs = Column(Integer, default=0)
    successful_pairs = Column(Integer, default=0)
    missing_pairs = Column(JSON, default=list)
    notification_status = Column(String(20))

    submitted_at = Column(DateTime)
    completed_at = Column(DateTime)
    error_message = Column(Text)

    __table_args__ = (
        Index("idx_run_brand_time", "brand_id", "submitted_at"),
    )


class VisibilitySnapshotRow(Base):
    """Brand-level aggregate of one run."""
    __tablename__ = "visibility_snapshots"

    id = Column(String(36), primary_key=True, default=_uuid)
    run_id = Column(String(36), nullable=False, unique=True)
    brand_id = Column(String(36), ForeignKey("brands.id"), nullable=False)

    overall_score = Column(Float)
    engine_scores = Column(JSON, default=dict)
    sentiment_distribution = Column(JSON, default=dict)
    total_mentions = Column(Integer, default=0)
    total_prompts_checked = Column(Integer, default=0)
    competitor_data = Column(JSON, default=dict)
    coverage = Column(Float, default=1.0)
    alerts = Column(JSON, default=list)

    created_at = Column(DateTime, default=utcnow_naive)

    __table_args__ = (
        Index("idx_snapshot_brand_time", "brand_id", "created_at"),
    )
