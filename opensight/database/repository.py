"""
Repository Layer - Clean Interface for Data Operations

Converts between ORM rows and the pipeline's dataclasses and owns the
idempotent writes:

- prompt results keyed by (run_id, prompt_id, engine)
- content scores keyed by (url, scored_at)
- snapshots and run records keyed by run_id

A duplicate key is a PersistenceConflictError internally and counts as a
successful write for the caller.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import PersistenceConflictError
from ..history.snapshots import Alert, VisibilitySnapshot
from ..models import (
    Brand,
    Competitor,
    Industry,
    MissingPair,
    Prompt,
    PromptAnalysis,
    PromptResultSummary,
    CompetitorMention,
    SentimentLabel,
)
from ..scoring.content import ContentScoreRecord
from ..utils.domains import brand_name_from_domain, normalize_domain
from .models import (
    AnalysisRunRow,
    BrandRow,
    CompetitorRow,
    ContentScoreRow,
    PromptResultRow,
    PromptRow,
    VisibilitySnapshotRow,
    from_db_time,
    to_db_time,
    utcnow_naive,
)
from .session import Database

logger = logging.getLogger(__name__)


# =============================================================================
# ROW CONVERSION
# =============================================================================

def _brand(row: BrandRow) -> Brand:
    return Brand(
        id=row.id,
        name=row.name,
        domain=row.domain,
        industry=Industry(row.industry),
        aliases=list(row.aliases or []),
    )


def _competitor(row: CompetitorRow) -> Competitor:
    return Competitor(
        id=row.id,
        brand_id=row.brand_id,
        name=row.name,
        url=row.url,
        industry=Industry(row.industry),
    )


def _prompt(row: PromptRow) -> Prompt:
    return Prompt(
        id=row.id,
        brand_id=row.brand_id,
        text=row.text,
        tags=set(row.tags or []),
        is_active=bool(row.is_active),
        created_at=from_db_time(row.created_at),
        updated_at=from_db_time(row.updated_at),
    )


def _analysis(row: PromptResultRow) -> PromptAnalysis:
    return PromptAnalysis(
        prompt_id=row.prompt_id,
        summary=PromptResultSummary(
            engine=row.engine,
            score=row.score,
            sentiment=SentimentLabel(row.sentiment),
            mentioned=bool(row.mentioned),
            sentiment_compound=row.sentiment_compound or 0.0,
        ),
        mention_position=row.mention_position,
        mention_count=row.mention_count or 0,
        citation_urls=list(row.citation_urls or []),
        competitor_mentions=[CompetitorMention.from_dict(m) for m in row.competitor_mentions or []],
        response_text=row.response_text or "",
        visibility_score=row.visibility_score or 0,
        queried_at=from_db_time(row.queried_at) or from_db_time(row.created_at),
    )


def _content(row: ContentScoreRow) -> ContentScoreRecord:
    return ContentScoreRecord(
        id=row.id,
        url=row.url,
        composite_score=row.composite_score,
        subscores=dict(row.subscores or {}),
        recommendations=list(row.recommendations or []),
        scored_at=from_db_time(row.scored_at),
    )


def _snapshot(row: VisibilitySnapshotRow) -> VisibilitySnapshot:
    return VisibilitySnapshot(
        run_id=row.run_id,
        brand_id=row.brand_id,
        overall_score=None if row.overall_score is None else round(row.overall_score),
        engine_scores=dict(row.engine_scores or {}),
        sentiment_distribution=dict(row.sentiment_distribution or {}),
        total_mentions=row.total_mentions or 0,
        total_prompts_checked=row.total_prompts_checked or 0,
        competitor_data=dict(row.competitor_data or {}),
        coverage=1.0 if row.coverage is None else row.coverage,
        alerts=[Alert.from_dict(a) for a in row.alerts or []],
        created_at=from_db_time(row.created_at),
    )


# =============================================================================
# BRANDS, COMPETITORS, PROMPTS
# =============================================================================

class CatalogRepository:
    """Brands, their competitors and their prompts."""

    def __init__(self, database: Database):
        self.db = database

    # --- brands --------------------------------------------------------------

    def create_brand(
        self,
        name: str,
        domain: str,
        industry: Industry = Industry.OTHER,
        aliases: Sequence[str] = (),
    ) -> Brand:
        domain = normalize_domain(domain)
        try:
            with self.db.session_scope() as session:
                row = BrandRow(name=name, domain=domain, industry=Industry(industry).value, aliases=list(aliases))
                session.add(row)
                session.flush()
                brand = _brand(row)
        except IntegrityError as e:
            raise PersistenceConflictError(("brands", domain)) from e

        logger.info(f"Registered brand {brand.name} ({brand.domain})")
        return brand

    def get_brand(self, brand_id: str) -> Optional[Brand]:
        with self.db.session_scope() as session:
            row = session.get(BrandRow, brand_id)
            return _brand(row) if row else None

    def get_brand_by_domain(self, domain: str) -> Optional[Brand]:
        domain = normalize_domain(domain)
        with self.db.session_scope() as session:
            row = session.query(BrandRow).filter(BrandRow.domain == domain).first()
            return _brand(row) if row else None

    def list_brands(self) -> List[Brand]:
        with self.db.session_scope() as session:
            return [_brand(r) for r in session.query(BrandRow).order_by(BrandRow.created_at).all()]

    def get_or_create_brand(self, domain: str) -> Tuple[Brand, bool]:
        """
        Tracked brand for a domain, registering one if needed.

        New brands are named from the domain label and filed under "other".
        """
        existing = self.get_brand_by_domain(domain)
        if existing:
            return existing, False
        try:
            return self.create_brand(brand_name_from_domain(domain), domain), True
        except PersistenceConflictError:
            # Registered concurrently
            return self.get_brand_by_domain(domain), False

    # --- competitors ---------------------------------------------------------

    def add_competitor(
        self,
        brand_id: str,
        name: str,
        url: str,
        industry: Industry = Industry.OTHER,
    ) -> Competitor:
        """
        Raises:
            PersistenceConflictError: The brand already tracks this URL
        """
        try:
            with self.db.session_scope() as session:
                row = CompetitorRow(
                    brand_id=brand_id,
                    name=name,
                    url=url,
                    domain=normalize_domain(url),
                    industry=Industry(industry).value,
                )
                session.add(row)
                session.flush()
                return _competitor(row)
        except IntegrityError as e:
            raise PersistenceConflictError((brand_id, url), f"Competitor {url} already exists for brand") from e

    def remove_competitor(self, brand_id: str, competitor_id: str) -> bool:
        with self.db.session_scope() as session:
            deleted = (
                session.query(CompetitorRow)
                .filter(CompetitorRow.brand_id == brand_id, CompetitorRow.id == competitor_id)
                .delete()
            )
        return deleted > 0

    def list_competitors(self, brand_id: str) -> List[Competitor]:
        with self.db.session_scope() as session:
            rows = (
                session.query(CompetitorRow)
                .filter(CompetitorRow.brand_id == brand_id)
                .order_by(CompetitorRow.created_at, CompetitorRow.name)
                .all()
            )
            return [_competitor(r) for r in rows]

    # --- prompts -------------------------------------------------------------

    def create_prompt(self, brand_id: str, text: str, tags: Iterable[str] = ()) -> Prompt:
        """
        Raises:
            PersistenceConflictError: The brand already has a prompt with this text
        """
        try:
            with self.db.session_scope() as session:
                row = PromptRow(brand_id=brand_id, text=text, tags=sorted(set(tags)), is_active=True)
                session.add(row)
                session.flush()
                return _prompt(row)
        except IntegrityError as e:
            raise PersistenceConflictError((brand_id, text), "Prompt already exists for brand") from e

    def bulk_create_prompts(self, brand_id: str, items: Sequence[Dict[str, Any]]) -> List[Prompt]:
        """Create prompts, skipping texts the brand already has."""
        with self.db.session_scope() as session:
            existing = {
                text for (text,) in session.query(PromptRow.text).filter(PromptRow.brand_id == brand_id)
            }
            rows = []
            for item in items:
                text = item["text"]
                if text in existing:
                    continue
                existing.add(text)
                row = PromptRow(brand_id=brand_id, text=text, tags=sorted(set(item.get("tags") or [])), is_active=True)
                session.add(row)
                rows.append(row)
            session.flush()
            created = [_prompt(r) for r in rows]

        logger.info(f"Created {len(created)} of {len(items)} prompts for brand {brand_id}")
        return created

    def update_prompt(
        self,
        prompt_id: str,
        text: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
        is_active: Optional[bool] = None,
    ) -> Optional[Prompt]:
        try:
            with self.db.session_scope() as session:
                row = session.get(PromptRow, prompt_id)
                if row is None:
                    return None
                if text is not None:
                    row.text = text
                if tags is not None:
                    row.tags = sorted(set(tags))
                if is_active is not None:
                    row.is_active = is_active
                row.updated_at = utcnow_naive()
                session.flush()
                return _prompt(row)
        except IntegrityError as e:
            raise PersistenceConflictError((prompt_id, text), "Prompt already exists for brand") from e

    def get_prompt(self, prompt_id: str) -> Optional[Prompt]:
        with self.db.session_scope() as session:
            row = session.get(PromptRow, prompt_id)
            return _prompt(row) if row else None

    def list_prompts(
        self,
        brand_id: str,
        tag: Optional[str] = None,
        active_only: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Prompt]:
        with self.db.session_scope() as session:
            query = session.query(PromptRow).filter(PromptRow.brand_id == brand_id)
            if active_only:
                query = query.filter(PromptRow.is_active.is_(True))
            rows = query.order_by(PromptRow.created_at, PromptRow.id).all()
            prompts = [_prompt(r) for r in rows]

        # Tags live in a JSON column; filter in Python for portability
        if tag:
            prompts = [p for p in prompts if tag in p.tags]
        if limit is not None:
            return prompts[offset:offset + limit]
        return prompts[offset:]

    def active_prompts(self, brand_id: str) -> List[Prompt]:
        return self.list_prompts(brand_id, active_only=True)


# =============================================================================
# RUN RESULTS, SNAPSHOTS, RUN RECORDS
# =============================================================================

class ResultRepository:
    """Append-only per-run observations."""

    def __init__(self, database: Database):
        self.db = database

    def existing_keys(self, run_id: str) -> Set[Tuple[str, str]]:
        with self.db.session_scope() as session:
            rows = session.query(PromptResultRow.prompt_id, PromptResultRow.engine).filter(
                PromptResultRow.run_id == run_id
            )
            return {(prompt_id, engine) for prompt_id, engine in rows}

    def insert_result(self, run_id: str, brand_id: str, analysis: PromptAnalysis):
        """
        Insert one result row.

        Raises:
            PersistenceConflictError: (run_id, prompt_id, engine) already stored
        """
        summary = analysis.summary
        key = (run_id, analysis.prompt_id, summary.engine)
        try:
            with self.db.session_scope() as session:
                session.add(PromptResultRow(
                    run_id=run_id,
                    prompt_id=analysis.prompt_id,
                    brand_id=brand_id,
                    engine=summary.engine,
                    score=summary.score,
                    sentiment=summary.sentiment.value,
                    sentiment_compound=summary.sentiment_compound,
                    mentioned=summary.mentioned,
                    mention_position=analysis.mention_position,
                    mention_count=analysis.mention_count,
                    citation_urls=list(analysis.citation_urls),
                    competitor_mentions=[m.to_dict() for m in analysis.competitor_mentions],
                    response_text=analysis.response_text,
                    visibility_score=analysis.visibility_score,
                    queried_at=to_db_time(analysis.queried_at),
                ))
        except IntegrityError as e:
            raise PersistenceConflictError(key) from e

    def save_results(self, run_id: str, brand_id: str, analyses: Sequence[PromptAnalysis]) -> int:
        """
        Idempotently store a run's results.

        Returns:
            Number of rows newly inserted (0 when everything was already stored)
        """
        stored = self.existing_keys(run_id)
        inserted = 0
        for analysis in analyses:
            if analysis.key in stored:
                continue
            try:
                self.insert_result(run_id, brand_id, analysis)
                inserted += 1
            except PersistenceConflictError as e:
                # A concurrent or earlier attempt already wrote it
                logger.debug(f"Result already stored: {e.key}")
            stored.add(analysis.key)

        logger.info(f"Run {run_id}: stored {inserted} new results ({len(analyses)} total)")
        return inserted

    def list_results(self, run_id: str) -> List[PromptAnalysis]:
        with self.db.session_scope() as session:
            rows = (
                session.query(PromptResultRow)
                .filter(PromptResultRow.run_id == run_id)
                .order_by(PromptResultRow.prompt_id, PromptResultRow.engine)
                .all()
            )
            return [_analysis(r) for r in rows]

    def count_results(self, run_id: str) -> int:
        with self.db.session_scope() as session:
            return session.query(func.count(PromptResultRow.id)).filter(PromptResultRow.run_id == run_id).scalar()

    def prompt_history(self, prompt_id: str, engine: Optional[str] = None, limit: int = 10, offset: int = 0) -> List[PromptAnalysis]:
        """Results of one prompt, most recent first."""
        with self.db.session_scope() as session:
            query = session.query(PromptResultRow).filter(PromptResultRow.prompt_id == prompt_id)
            if engine:
                query = query.filter(PromptResultRow.engine == engine)
            rows = (
                query.order_by(PromptResultRow.created_at.desc(), PromptResultRow.id.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
            return [_analysis(r) for r in rows]

    # --- snapshots -----------------------------------------------------------

    def save_snapshot(self, snapshot: VisibilitySnapshot) -> bool:
        """
        Store a snapshot once per run.

        Returns:
            True if inserted, False if the run already had one
        """
        try:
            with self.db.session_scope() as session:
                session.add(VisibilitySnapshotRow(
                    run_id=snapshot.run_id,
                    brand_id=snapshot.brand_id,
                    overall_score=snapshot.overall_score,
                    engine_scores=dict(snapshot.engine_scores),
                    sentiment_distribution=dict(snapshot.sentiment_distribution),
                    total_mentions=snapshot.total_mentions,
                    total_prompts_checked=snapshot.total_prompts_checked,
                    competitor_data=snapshot.competitor_data,
                    coverage=snapshot.coverage,
                    alerts=[a.to_dict() for a in snapshot.alerts],
                    created_at=to_db_time(snapshot.created_at),
                ))
        except IntegrityError:
            logger.debug(f"Snapshot for run {snapshot.run_id} already stored")
            return False
        return True

    def get_snapshot(self, run_id: str) -> Optional[VisibilitySnapshot]:
        with self.db.session_scope() as session:
            row = session.query(VisibilitySnapshotRow).filter(VisibilitySnapshotRow.run_id == run_id).first()
            return _snapshot(row) if row else None

    def previous_snapshot(self, brand_id: str, run_id: str) -> Optional[VisibilitySnapshot]:
        """The brand's most recent snapshot other than ``run_id``'s."""
        with self.db.session_scope() as session:
            query = session.query(VisibilitySnapshotRow).filter(
                VisibilitySnapshotRow.brand_id == brand_id,
                VisibilitySnapshotRow.run_id != run_id,
            )
            current = session.query(VisibilitySnapshotRow).filter(VisibilitySnapshotRow.run_id == run_id).first()
            if current is not None:
                query = query.filter(VisibilitySnapshotRow.created_at <= current.created_at)
            row = query.order_by(VisibilitySnapshotRow.created_at.desc(), VisibilitySnapshotRow.id.desc()).first()
            return _snapshot(row) if row else None

    def snapshot_history(self, brand_id: str, limit: int = 10, offset: int = 0) -> List[VisibilitySnapshot]:
        """A brand's snapshots, most recent first."""
        with self.db.session_scope() as session:
            rows = (
                session.query(VisibilitySnapshotRow)
                .filter(VisibilitySnapshotRow.brand_id == brand_id)
                .order_by(VisibilitySnapshotRow.created_at.desc(), VisibilitySnapshotRow.id.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
            return [_snapshot(r) for r in rows]

    def all_snapshots(self, brand_id: str) -> List[VisibilitySnapshot]:
        with self.db.session_scope() as session:
            rows = (
                session.query(VisibilitySnapshotRow)
                .filter(VisibilitySnapshotRow.brand_id == brand_id)
                .order_by(VisibilitySnapshotRow.created_at)
                .all()
            )
            return [_snapshot(r) for r in rows]

    # --- run records ---------------------------------------------------------

    def record_run(
        self,
        run_id: str,
        domain: str,
        email: str,
        status: str,
        brand_id: Optional[str] = None,
        failed_step: Optional[str] = None,
        expected_pairs: int = 0,
        successful_pairs: int = 0,
        missing_pairs: Sequence[MissingPair] = (),
        notification_status: Optional[str] = None,
        submitted_at=None,
        completed_at=None,
        error_message: Optional[str] = None,
    ):
        """Insert or refresh the outcome record of a run."""
        with self.db.session_scope() as session:
            row = session.get(AnalysisRunRow, run_id)
            if row is None:
                row = AnalysisRunRow(run_id=run_id, domain=domain, email=email)
                session.add(row)
            row.status = status
            row.brand_id = brand_id
            row.failed_step = failed_step
            row.expected_pairs = expected_pairs
            row.successful_pairs = successful_pairs
            row.missing_pairs = [m.to_dict() for m in missing_pairs]
            row.notification_status = notification_status
            row.submitted_at = to_db_time(submitted_at)
            row.completed_at = to_db_time(completed_at)
            row.error_message = error_message

    def get_run(self, run_id: str) -> Optional[Dict[str, Any]]:
        with self.db.session_scope() as session:
            row = session.get(AnalysisRunRow, run_id)
            if row is None:
                return None
            return {
                "run_id": row.run_id,
                "brand_id": row.brand_id,
                "domain": row.domain,
                "email": row.email,
                "status": row.status,
                "failed_step": row.failed_step,
                "expected_pairs": row.expected_pairs,
                "successful_pairs": row.successful_pairs,
                "missing_pairs": [MissingPair.from_dict(m) for m in row.missing_pairs or []],
                "notification_status": row.notification_status,
                "submitted_at": from_db_time(row.submitted_at),
                "completed_at": from_db_time(row.completed_at),
                "error_message": row.error_message,
            }

    def latest_run(self, brand_id: str) -> Optional[Dict[str, Any]]:
        """The brand's most recently submitted run that reached Completed."""
        with self.db.session_scope() as session:
            row = (
                session.query(AnalysisRunRow)
                .filter(AnalysisRunRow.brand_id == brand_id, AnalysisRunRow.status == "completed")
                .order_by(AnalysisRunRow.submitted_at.desc())
                .first()
            )
            run_id = row.run_id if row else None
        return self.get_run(run_id) if run_id else None


# =============================================================================
# CONTENT SCORES
# =============================================================================

class ContentRepository:
    """Append-only content score history."""

    def __init__(self, database: Database):
        self.db = database

    def save(self, record: ContentScoreRecord) -> ContentScoreRecord:
        """
        Store a score once per (url, scored_at).

        Returns:
            The stored record (the existing one on a repeated write)
        """
        scored_at = to_db_time(record.scored_at)
        try:
            with self.db.session_scope() as session:
                row = ContentScoreRow(
                    url=record.url,
                    domain=normalize_domain(record.url),
                    composite_score=record.composite_score,
                    subscores=dict(record.subscores),
                    recommendations=list(record.recommendations),
                    scored_at=scored_at,
                )
                session.add(row)
                session.flush()
                return _content(row)
        except IntegrityError:
            logger.debug(f"Content score already stored: ({record.url}, {record.scored_at})")
            with self.db.session_scope() as session:
                row = (
                    session.query(ContentScoreRow)
                    .filter(ContentScoreRow.url == record.url, ContentScoreRow.scored_at == scored_at)
                    .one()
                )
                return _content(row)

    def history(
        self,
        url: Optional[str] = None,
        domain: Optional[str] = None,
        limit: int = 10,
        offset: int = 0,
    ) -> List[ContentScoreRecord]:
        """Scores most recent first, optionally for one URL or one domain."""
        with self.db.session_scope() as session:
            query = session.query(ContentScoreRow)
            if url:
                query = query.filter(ContentScoreRow.url == url)
            if domain:
                query = query.filter(ContentScoreRow.domain == normalize_domain(domain))
            rows = (
                query.order_by(ContentScoreRow.scored_at.desc(), ContentScoreRow.id.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
            return [_content(r) for r in rows]

    def count(self, url: Optional[str] = None, domain: Optional[str] = None) -> int:
        with self.db.session_scope() as session:
            query = session.query(func.count(ContentScoreRow.id))
            if url:
                query = query.filter(ContentScoreRow.url == url)
            if domain:
                query = query.filter(ContentScoreRow.domain == normalize_domain(domain))
            return query.scalar()

    def latest_for_domain(self, domain: str) -> Optional[ContentScoreRecord]:
        records = self.history(domain=domain, limit=1)
        return records[0] if records else None
