"""
Analysis workflow: durable run state machine, retries and scheduling.

Usage:
    from opensight.workflow import AnalysisOrchestrator, AnalysisJobRunner

    runner = AnalysisJobRunner(orchestrator)
    runner.schedule(store.create(request).run_id)
"""

from .checkpoints import NotificationStatus, RunCheckpoint, RunCheckpointStore, RunState
from .orchestrator import AnalysisOrchestrator
from .retry import RetryPolicy, retry_async
from .runner import AnalysisJobRunner

__all__ = [
    "NotificationStatus",
    "RunCheckpoint",
    "RunCheckpointStore",
    "RunState",
    "AnalysisOrchestrator",
    "RetryPolicy",
    "retry_async",
    "AnalysisJobRunner",
]
