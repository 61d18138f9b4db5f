"""
Run Checkpoints

One JSON document per run, holding the run's state and the output of every
completed step, so a restarted process resumes at the first unfinished step
instead of re-running the whole pipeline.
"""

import json
import logging
import os
import tempfile
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..models import AnalysisRequest, MissingPair, PromptAnalysis

logger = logging.getLogger(__name__)


class RunState(Enum):
    """Run states, in pipeline order."""
    QUEUED = "queued"
    ANALYZING = "analyzing"
    PERSISTING = "persisting"
    NOTIFYING = "notifying"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.COMPLETED, RunState.FAILED, RunState.CANCELLED)


class NotificationStatus(Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    DEGRADED = "degraded"  # retries exhausted; run still completes


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RunCheckpoint:
    """Durable state of one run."""
    run_id: str
    request: AnalysisRequest
    state: RunState = RunState.QUEUED
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    # Analyzing
    brand_id: Optional[str] = None
    engines: List[str] = field(default_factory=list)
    expected_pairs: int = 0
    results: List[PromptAnalysis] = field(default_factory=list)
    missing: List[MissingPair] = field(default_factory=list)

    # Persisting
    summary: Dict[str, Any] = field(default_factory=dict)

    # Notifying
    notification: NotificationStatus = NotificationStatus.PENDING
    notification_id: Optional[str] = None

    # Outcome
    completed_steps: List[str] = field(default_factory=list)
    failed_step: Optional[str] = None
    error_message: Optional[str] = None
    cancel_requested: bool = False
    completed_at: Optional[datetime] = None

    @classmethod
    def new(cls, request: AnalysisRequest, run_id: Optional[str] = None) -> "RunCheckpoint":
        return cls(run_id=run_id or str(uuid.uuid4()), request=request)

    @property
    def degraded(self) -> bool:
        return self.notification == NotificationStatus.DEGRADED

    @property
    def coverage(self) -> float:
        if not self.expected_pairs:
            return 1.0
        return round(len(self.results) / self.expected_pairs, 4)

    def step_done(self, step: str) -> bool:
        return step in self.completed_steps

    def mark_step(self, step: str):
        if step not in self.completed_steps:
            self.completed_steps.append(step)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "request": self.request.to_dict(),
            "state": self.state.value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "brand_id": self.brand_id,
            "engines": list(self.engines),
            "expected_pairs": self.expected_pairs,
            "results": [r.to_dict() for r in self.results],
            "missing": [m.to_dict() for m in self.missing],
            "summary": self.summary,
            "notification": self.notification.value,
            "notification_id": self.notification_id,
            "completed_steps": list(self.completed_steps),
            "failed_step": self.failed_step,
            "error_message": self.error_message,
            "cancel_requested": self.cancel_requested,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RunCheckpoint":
        return cls(
            run_id=data["run_id"],
            request=AnalysisRequest.from_dict(data["request"]),
            state=RunState(data["state"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            brand_id=data.get("brand_id"),
            engines=list(data.get("engines") or []),
            expected_pairs=int(data.get("expected_pairs", 0)),
            results=[PromptAnalysis.from_dict(r) for r in data.get("results") or []],
            missing=[MissingPair.from_dict(m) for m in data.get("missing") or []],
            summary=dict(data.get("summary") or {}),
            notification=NotificationStatus(data.get("notification", "pending")),
            notification_id=data.get("notification_id"),
            completed_steps=list(data.get("completed_steps") or []),
            failed_step=data.get("failed_step"),
            error_message=data.get("error_message"),
            cancel_requested=bool(data.get("cancel_requested", False)),
            completed_at=datetime.fromisoformat(data["completed_at"]) if data.get("completed_at") else None,
        )


class RunCheckpointStore:
    """
    Directory of run checkpoints, one ``<run_id>.json`` per run.

    Writes go to a temp file in the same directory and are renamed into
    place, so a crash never leaves a half-written checkpoint.
    """

    def __init__(self, storage_path: Optional[str] = None):
        """
        Args:
            storage_path: Directory for checkpoints. Defaults to ~/.opensight/runs/
        """
        if storage_path is None:
            storage_path = str(Path.home() / ".opensight" / "runs")

        self.storage_path = Path(storage_path)
        self.storage_path.mkdir(parents=True, exist_ok=True)

    def _path(self, run_id: str) -> Path:
        return self.storage_path / f"{run_id}.json"

    def save(self, checkpoint: RunCheckpoint) -> RunCheckpoint:
        checkpoint.updated_at = _now()
        fd, tmp_path = tempfile.mkstemp(dir=self.storage_path, prefix=f".{checkpoint.run_id}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(checkpoint.to_dict(), f, indent=2)
            os.replace(tmp_path, self._path(checkpoint.run_id))
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        return checkpoint

    def load(self, run_id: str) -> Optional[RunCheckpoint]:
        path = self._path(run_id)
        if not path.exists():
            return None
        with open(path, "r") as f:
            return RunCheckpoint.from_dict(json.load(f))

    def create(self, request: AnalysisRequest, run_id: Optional[str] = None) -> RunCheckpoint:
        checkpoint = RunCheckpoint.new(request, run_id)
        self.save(checkpoint)
        logger.info(f"Created run {checkpoint.run_id} for {request.domain}")
        return checkpoint

    def list_runs(self) -> List[RunCheckpoint]:
        checkpoints = []
        for file_path in self.storage_path.glob("*.json"):
            try:
                with open(file_path, "r") as f:
                    checkpoints.append(RunCheckpoint.from_dict(json.load(f)))
            except (OSError, ValueError, KeyError) as e:
                logger.warning(f"Failed to load checkpoint from {file_path}: {e}")
        checkpoints.sort(key=lambda c: c.created_at)
        return checkpoints

    def list_incomplete(self) -> List[RunCheckpoint]:
        """Runs not yet in a terminal state, oldest first."""
        return [c for c in self.list_runs() if not c.state.is_terminal]
