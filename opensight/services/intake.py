"""
Analysis Intake

Validates submissions synchronously, creates the run checkpoint in Queued
and hands the run to the job runner.
"""

import logging
from typing import Any, Dict, Optional

from ..models import AnalysisRequest
from ..validation import validate_analysis_submission
from ..workflow.checkpoints import RunCheckpointStore
from ..workflow.runner import AnalysisJobRunner

logger = logging.getLogger(__name__)


class AnalysisIntake:
    """
    Usage:
        intake = AnalysisIntake(store, runner)
        accepted = await intake.submit({"domain": "example.com", "email": "me@example.com"})
        # {"queued": True, "domain": "example.com", "email": "me@example.com", "run_id": "..."}
    """

    def __init__(self, store: RunCheckpointStore, runner: Optional[AnalysisJobRunner] = None):
        self.store = store
        self.runner = runner

    async def submit(self, payload: Any) -> Dict[str, Any]:
        """
        Accept a {domain, email} submission.

        Raises:
            ValidationError: Malformed domain or email; nothing is queued
        """
        submission = validate_analysis_submission(payload)
        request = AnalysisRequest(domain=submission.domain, email=str(submission.email))

        checkpoint = self.store.create(request)
        if self.runner is not None:
            self.runner.schedule(checkpoint.run_id)

        logger.info(f"Queued analysis of {request.domain} for {request.email} (run {checkpoint.run_id})")
        return {
            "queued": True,
            "domain": request.domain,
            "email": request.email,
            "run_id": checkpoint.run_id,
        }
