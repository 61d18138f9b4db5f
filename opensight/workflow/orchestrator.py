"""
Analysis Job Orchestrator

Drives one AnalysisRequest through

    Queued -> Analyzing -> Persisting -> Notifying -> Completed

with Failed(step) reachable from any non-terminal state once a step has
exhausted its retries, and Cancelled reachable at any step boundary.

Properties the implementation keeps:
- Steps of one run execute strictly one after another.
- Every step is idempotent: re-running it with the same run id never
  duplicates result rows, snapshots or delivered notifications.
- The checkpoint is saved after every transition (and after every analyzed
  pair), so a restart resumes at the first unfinished step.
- Per-(prompt, engine) failures are recorded as missing pairs; they never
  fail the run.
- Notification failure degrades the run, it never fails it. The summary is
  sent with the run id as idempotency key, so a resumed run never delivers
  it twice.
- A Failed run triggers one best-effort failure email.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from sqlalchemy.exc import SQLAlchemyError

from ..analyzer.engine import EngineMentionAnalyzer
from ..database.repository import CatalogRepository, ResultRepository
from ..errors import OpenSightError, PermanentFailure, TransientExternalError
from ..history.snapshots import build_snapshot, detect_alerts
from ..models import Brand, Competitor, MissingPair, Prompt
from .checkpoints import NotificationStatus, RunCheckpoint, RunCheckpointStore, RunState
from .retry import RetryPolicy, retry_async

logger = logging.getLogger(__name__)

PERSISTENCE_ERRORS = (SQLAlchemyError, TransientExternalError)

STEP_ORDER = {
    RunState.QUEUED: RunState.ANALYZING,
    RunState.ANALYZING: RunState.PERSISTING,
    RunState.PERSISTING: RunState.NOTIFYING,
    RunState.NOTIFYING: RunState.COMPLETED,
}


class AnalysisOrchestrator:
    """
    Durable, step-wise runner for analysis requests.

    Usage:
        orchestrator = AnalysisOrchestrator(catalog, results, analyzer, notifier, store)
        checkpoint = store.create(AnalysisRequest("example.com", "me@example.com"))
        final = await orchestrator.run(checkpoint.run_id)
        final.state  # RunState.COMPLETED
    """

    def __init__(
        self,
        catalog: CatalogRepository,
        results: ResultRepository,
        analyzer: EngineMentionAnalyzer,
        notifier,
        store: RunCheckpointStore,
        analysis_policy: Optional[RetryPolicy] = None,
        persist_policy: Optional[RetryPolicy] = None,
        notify_policy: Optional[RetryPolicy] = None,
        concurrency: int = 4,
        notify_timeout: float = 30.0,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        """
        Args:
            catalog: Brand/prompt/competitor repository
            results: Result/snapshot/run repository
            analyzer: Engine mention analyzer holding the configured engines
            notifier: Object with ``async send_analysis_summary(email, summary, idempotency_key)``
                      and ``async send_error_notification(email, domain, message, idempotency_key)``,
                      both returning a result with ``success``/``message_id``/``error``
            store: Checkpoint store
            analysis_policy: Retry budget per (prompt, engine) pair
            persist_policy: Retry budget for persistence writes
            notify_policy: Retry budget for the notification
            concurrency: Maximum concurrent engine calls within a run
            notify_timeout: Per-call timeout for the notification
            sleep: Awaitable sleep used between retries (tests)
        """
        self.catalog = catalog
        self.results = results
        self.analyzer = analyzer
        self.notifier = notifier
        self.store = store
        self.analysis_policy = analysis_policy or RetryPolicy(max_attempts=3)
        self.persist_policy = persist_policy or RetryPolicy(max_attempts=5)
        self.notify_policy = notify_policy or RetryPolicy(max_attempts=3)
        self.concurrency = max(1, concurrency)
        self.notify_timeout = notify_timeout
        self.sleep = sleep

        self._cancel_requested: Set[str] = set()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def request_cancel(self, run_id: str):
        """Ask a run to stop at its next step boundary."""
        self._cancel_requested.add(run_id)

    async def run(self, run_id: str) -> RunCheckpoint:
        """
        Run (or resume) a run until it reaches a terminal state.

        Raises:
            KeyError: No checkpoint exists for run_id
        """
        checkpoint = self.store.load(run_id)
        if checkpoint is None:
            raise KeyError(f"Unknown run: {run_id}")

        if checkpoint.state.is_terminal:
            logger.info(f"Run {run_id} already {checkpoint.state.value}")
            return checkpoint

        logger.info(f"Run {run_id} starting at {checkpoint.state.value} for {checkpoint.request.domain}")

        while not checkpoint.state.is_terminal:
            if checkpoint.cancel_requested or run_id in self._cancel_requested:
                self._cancel(checkpoint)
                break

            state = checkpoint.state
            try:
                await self._execute(state, checkpoint)
            except PermanentFailure as e:
                self._fail(checkpoint, state, e)
                break
            except Exception as e:
                logger.exception(f"Run {run_id}: unexpected error in {state.value}")
                self._fail(checkpoint, state, PermanentFailure(state.value, 1, e))
                break

            checkpoint.mark_step(state.value)
            self._transition(checkpoint, STEP_ORDER[state])

        self._cancel_requested.discard(run_id)
        await self.record_outcome(checkpoint)
        if checkpoint.state == RunState.FAILED:
            await self._notify_failure(checkpoint)
        return checkpoint

    async def cancel_pending(self, run_id: str) -> bool:
        """
        Cancel a run that is not executing right now.

        Returns:
            False if the run is unknown or already terminal
        """
        checkpoint = self.store.load(run_id)
        if checkpoint is None or checkpoint.state.is_terminal:
            return False
        self._cancel(checkpoint)
        await self.record_outcome(checkpoint)
        return True

    async def _execute(self, state: RunState, checkpoint: RunCheckpoint):
        if state == RunState.QUEUED:
            return
        if state == RunState.ANALYZING:
            await self.analyze_step(checkpoint)
        elif state == RunState.PERSISTING:
            await self.persist_step(checkpoint)
        elif state == RunState.NOTIFYING:
            await self.notify_step(checkpoint)

    def _transition(self, checkpoint: RunCheckpoint, state: RunState):
        previous = checkpoint.state
        checkpoint.state = state
        if state == RunState.COMPLETED:
            checkpoint.completed_at = datetime.now(timezone.utc)
        self.store.save(checkpoint)

        suffix = " (notification degraded)" if state == RunState.COMPLETED and checkpoint.degraded else ""
        logger.info(f"Run {checkpoint.run_id}: {previous.value} -> {state.value}{suffix}")

    def _fail(self, checkpoint: RunCheckpoint, state: RunState, error: PermanentFailure):
        checkpoint.failed_step = state.value
        checkpoint.error_message = str(error)
        checkpoint.completed_at = datetime.now(timezone.utc)
        logger.error(f"Run {checkpoint.run_id} failed in {state.value}: {error}")
        self._transition(checkpoint, RunState.FAILED)

    def _cancel(self, checkpoint: RunCheckpoint):
        # Results gathered before the boundary are discarded
        if not checkpoint.step_done(RunState.PERSISTING.value):
            checkpoint.results = []
            checkpoint.missing = []
        checkpoint.cancel_requested = True
        checkpoint.completed_at = datetime.now(timezone.utc)
        self._transition(checkpoint, RunState.CANCELLED)

    async def _notify_failure(self, checkpoint: RunCheckpoint):
        """Best-effort failure email; the run stays Failed either way."""
        try:
            result = await asyncio.wait_for(
                self.notifier.send_error_notification(
                    checkpoint.request.email,
                    checkpoint.request.domain,
                    f"The analysis stopped while {checkpoint.failed_step} and will not be retried automatically.",
                    idempotency_key=f"{checkpoint.run_id}-failed",
                ),
                timeout=self.notify_timeout,
            )
        except Exception as e:
            logger.warning(f"Run {checkpoint.run_id}: failure notification not sent: {e}")
            return

        if not result.success:
            logger.warning(f"Run {checkpoint.run_id}: failure notification not sent: {result.error}")

    async def record_outcome(self, checkpoint: RunCheckpoint):
        """Mirror the final state into the analysis_runs table."""

        async def write():
            self.results.record_run(
                run_id=checkpoint.run_id,
                domain=checkpoint.request.domain,
                email=checkpoint.request.email,
                status=checkpoint.state.value,
                brand_id=checkpoint.brand_id,
                failed_step=checkpoint.failed_step,
                expected_pairs=checkpoint.expected_pairs,
                successful_pairs=len(checkpoint.results),
                missing_pairs=checkpoint.missing,
                notification_status=checkpoint.notification.value,
                submitted_at=checkpoint.request.submitted_at,
                completed_at=checkpoint.completed_at,
                error_message=checkpoint.error_message,
            )

        try:
            await retry_async("record run", write, self.persist_policy, PERSISTENCE_ERRORS, self.sleep)
        except PermanentFailure as e:
            # The checkpoint remains the source of truth for this run
            logger.error(f"Run {checkpoint.run_id}: could not record outcome: {e}")

    # =========================================================================
    # ANALYZING
    # =========================================================================

    async def _load_targets(self, checkpoint: RunCheckpoint) -> Tuple[Brand, List[Prompt], List[Competitor]]:
        async def load():
            brand, created = self.catalog.get_or_create_brand(checkpoint.request.domain)
            if created:
                logger.info(f"Run {checkpoint.run_id}: registered brand {brand.name} for {brand.domain}")
            return brand, self.catalog.active_prompts(brand.id), self.catalog.list_competitors(brand.id)

        return await retry_async("analyzing: load brand", load, self.persist_policy, PERSISTENCE_ERRORS, self.sleep)

    async def analyze_step(self, checkpoint: RunCheckpoint):
        """
        Fan out one analysis per (active prompt x engine) pair.

        Pairs already analyzed by an interrupted attempt are kept; pairs that
        were recorded missing get another chance.
        """
        brand, prompts, competitors = await self._load_targets(checkpoint)
        engines = self.analyzer.engine_names

        checkpoint.brand_id = brand.id
        checkpoint.engines = list(engines)
        checkpoint.expected_pairs = len(prompts) * len(engines)
        checkpoint.missing = []

        # Prompts deactivated since an interrupted attempt no longer count
        wanted = {(p.id, e) for p in prompts for e in engines}
        stale = [r for r in checkpoint.results if r.key not in wanted]
        if stale:
            logger.info(f"Run {checkpoint.run_id}: dropping {len(stale)} results for pairs no longer analyzed")
            checkpoint.results = [r for r in checkpoint.results if r.key in wanted]

        done = {r.key for r in checkpoint.results}
        pairs = [(p, e) for p in prompts for e in engines if (p.id, e) not in done]
        self.store.save(checkpoint)

        logger.info(
            f"Run {checkpoint.run_id}: analyzing {len(pairs)} pairs "
            f"({len(prompts)} prompts x {len(engines)} engines, {len(done)} already done)"
        )

        semaphore = asyncio.Semaphore(self.concurrency)

        async def analyze_pair(prompt: Prompt, engine: str):
            async with semaphore:
                try:
                    analysis = await retry_async(
                        f"analyze {prompt.id}/{engine}",
                        lambda: self.analyzer.analyze(prompt, engine, brand, competitors),
                        self.analysis_policy,
                        sleep=self.sleep,
                    )
                except PermanentFailure as e:
                    self._record_missing(checkpoint, prompt, engine, e.last_error or e)
                    return
                except Exception as e:
                    # Non-retryable failure of this pair only
                    self._record_missing(checkpoint, prompt, engine, e)
                    return

            checkpoint.results.append(analysis)
            self.store.save(checkpoint)

        await asyncio.gather(*(analyze_pair(p, e) for p, e in pairs))

        logger.info(
            f"Run {checkpoint.run_id}: {len(checkpoint.results)}/{checkpoint.expected_pairs} pairs analyzed, "
            f"{len(checkpoint.missing)} missing"
        )

    def _record_missing(self, checkpoint: RunCheckpoint, prompt: Prompt, engine: str, error: BaseException):
        level = logging.WARNING if isinstance(error, OpenSightError) else logging.ERROR
        logger.log(level, f"Run {checkpoint.run_id}: pair {prompt.id}/{engine} missing: {error}")
        checkpoint.missing.append(MissingPair(prompt_id=prompt.id, engine=engine, error=str(error)))
        self.store.save(checkpoint)

    # =========================================================================
    # PERSISTING
    # =========================================================================

    async def persist_step(self, checkpoint: RunCheckpoint):
        """Write results, snapshot and alerts; safe to repeat."""

        async def persist():
            self.results.save_results(checkpoint.run_id, checkpoint.brand_id, checkpoint.results)

            snapshot = self.results.get_snapshot(checkpoint.run_id)
            if snapshot is None:
                snapshot = build_snapshot(
                    checkpoint.run_id,
                    checkpoint.brand_id,
                    checkpoint.results,
                    engines=checkpoint.engines,
                    expected_pairs=checkpoint.expected_pairs,
                )
                previous = self.results.previous_snapshot(checkpoint.brand_id, checkpoint.run_id)
                snapshot.alerts = detect_alerts(snapshot, previous)
                if not self.results.save_snapshot(snapshot):
                    snapshot = self.results.get_snapshot(checkpoint.run_id)
            return snapshot

        snapshot = await retry_async("persisting", persist, self.persist_policy, PERSISTENCE_ERRORS, self.sleep)

        checkpoint.summary = self.build_summary(checkpoint, snapshot.to_dict())
        self.store.save(checkpoint)

    def build_summary(self, checkpoint: RunCheckpoint, snapshot: Dict[str, Any]) -> Dict[str, Any]:
        """Notification payload for a run."""
        return {
            "run_id": checkpoint.run_id,
            "domain": checkpoint.request.domain,
            "brand_id": checkpoint.brand_id,
            "overall_score": snapshot.get("overall_score"),
            "engine_scores": snapshot.get("engine_scores", {}),
            "sentiment_distribution": snapshot.get("sentiment_distribution", {}),
            "total_mentions": snapshot.get("total_mentions", 0),
            "total_prompts_checked": snapshot.get("total_prompts_checked", 0),
            "competitor_data": snapshot.get("competitor_data", {}),
            "coverage": checkpoint.coverage,
            "missing_pairs": [m.to_dict() for m in checkpoint.missing],
            "alerts": snapshot.get("alerts", []),
        }

    # =========================================================================
    # NOTIFYING
    # =========================================================================

    async def notify_step(self, checkpoint: RunCheckpoint):
        """Send the summary once; exhaustion degrades the run instead of failing it."""
        if checkpoint.notification == NotificationStatus.DELIVERED:
            logger.info(f"Run {checkpoint.run_id}: notification already delivered")
            return

        # The run id makes the provider drop a send repeated after a crash
        async def send():
            try:
                result = await asyncio.wait_for(
                    self.notifier.send_analysis_summary(
                        checkpoint.request.email,
                        checkpoint.summary,
                        idempotency_key=checkpoint.run_id,
                    ),
                    timeout=self.notify_timeout,
                )
            except asyncio.TimeoutError as e:
                raise TransientExternalError("Notification timed out", service="notification") from e
            if not result.success:
                raise TransientExternalError(result.error or "Notification failed", service="notification")
            return result

        try:
            result = await retry_async("notifying", send, self.notify_policy, sleep=self.sleep)
        except PermanentFailure as e:
            logger.warning(f"Run {checkpoint.run_id}: notification not delivered, completing degraded: {e}")
            checkpoint.notification = NotificationStatus.DEGRADED
            self.store.save(checkpoint)
            return

        checkpoint.notification = NotificationStatus.DELIVERED
        checkpoint.notification_id = result.message_id
        self.store.save(checkpoint)
