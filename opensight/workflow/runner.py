"""
Analysis Job Runner

Schedules orchestrator runs as independent asyncio tasks. Each run owns
its own task; nothing mutable is shared between runs apart from the
collaborators the orchestrator was built with. Finished tasks are
forgotten; the checkpoint store keeps every run's final state.
"""

import asyncio
import logging
from typing import Dict, List, Optional

from ..models import AnalysisRequest
from .checkpoints import RunCheckpoint
from .orchestrator import AnalysisOrchestrator

logger = logging.getLogger(__name__)


class AnalysisJobRunner:
    """
    Usage:
        runner = AnalysisJobRunner(orchestrator)
        runner.schedule(run_id)
        checkpoint = await runner.wait(run_id)
    """

    def __init__(self, orchestrator: AnalysisOrchestrator):
        self.orchestrator = orchestrator
        self.store = orchestrator.store
        self._tasks: Dict[str, asyncio.Task] = {}

    def schedule(self, run_id: str) -> asyncio.Task:
        """Start (or return the already running) task for a run."""
        task = self._tasks.get(run_id)
        if task is not None and not task.done():
            return task

        task = asyncio.create_task(self.orchestrator.run(run_id), name=f"run-{run_id}")
        self._tasks[run_id] = task
        task.add_done_callback(lambda t: self._on_done(run_id, t))
        logger.info(f"Scheduled run {run_id}")
        return task

    def _on_done(self, run_id: str, task: asyncio.Task):
        if self._tasks.get(run_id) is task:
            del self._tasks[run_id]

        if task.cancelled():
            logger.warning(f"Run {run_id} task was cancelled before finishing")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Run {run_id} task crashed: {error}")

    def is_running(self, run_id: str) -> bool:
        task = self._tasks.get(run_id)
        return task is not None and not task.done()

    @property
    def running(self) -> List[str]:
        return [run_id for run_id in self._tasks if self.is_running(run_id)]

    async def wait(self, run_id: str) -> Optional[RunCheckpoint]:
        """Wait for a run if it is executing, then return its latest checkpoint."""
        task = self._tasks.get(run_id)
        if task is not None:
            await asyncio.shield(task)
        return self.store.load(run_id)

    async def wait_all(self) -> List[RunCheckpoint]:
        """Wait for every run executing now."""
        run_ids = list(self._tasks)
        return [c for c in [await self.wait(r) for r in run_ids] if c is not None]

    async def cancel(self, run_id: str) -> bool:
        """
        Cancel a run at its next step boundary.

        A run that is not currently executing is moved to Cancelled directly.

        Returns:
            False if the run is unknown or already terminal
        """
        if self.is_running(run_id):
            self.orchestrator.request_cancel(run_id)
            logger.info(f"Cancellation requested for run {run_id}")
            return True
        return await self.orchestrator.cancel_pending(run_id)

    def resume_incomplete(self) -> List[str]:
        """Reschedule every run whose checkpoint is not terminal."""
        run_ids = []
        for checkpoint in self.store.list_incomplete():
            logger.info(f"Resuming run {checkpoint.run_id} from {checkpoint.state.value}")
            self.schedule(checkpoint.run_id)
            run_ids.append(checkpoint.run_id)
        return run_ids

    def schedule_tracked_brands(self, default_email: Optional[str] = None) -> List[str]:
        """
        Queue one run per tracked brand (the periodic job that builds score history).

        The summary goes to the requester of the brand's latest completed run,
        else to ``default_email``; brands with neither are skipped.
        """
        catalog = self.orchestrator.catalog
        results = self.orchestrator.results

        run_ids = []
        for brand in catalog.list_brands():
            latest = results.latest_run(brand.id)
            email = latest["email"] if latest else default_email
            if not email:
                logger.warning(f"Skipping brand {brand.name}: no recipient for its summary")
                continue

            checkpoint = self.store.create(AnalysisRequest(domain=brand.domain, email=email))
            self.schedule(checkpoint.run_id)
            run_ids.append(checkpoint.run_id)

        logger.info(f"Queued {len(run_ids)} scheduled runs")
        return run_ids
