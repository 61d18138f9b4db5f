"""
Error Taxonomy

Every failure the pipeline distinguishes between:

- ValidationError: malformed input, rejected before entering the pipeline
- TransientExternalError: timeouts/unavailability of an external service (retryable)
- EngineError / ExtractionError: permanent external failures (not retried)
- EmptyContentError: no analyzable text (surfaced, not retried)
- PersistenceConflictError: idempotency key already stored (a safe retry)
- PermanentFailure: a step exhausted its retry budget
"""

from typing import Any, Dict, List, Optional, Tuple


class OpenSightError(Exception):
    """Base class for all OpenSight errors."""


class ValidationError(OpenSightError):
    """Input failed validation."""

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []

    def to_dict(self) -> Dict[str, Any]:
        return {"error": str(self), "details": self.errors}


class TransientExternalError(OpenSightError):
    """An external collaborator timed out or was temporarily unavailable."""

    def __init__(self, message: str, service: str = "external", status_code: int = None):
        super().__init__(message)
        self.service = service
        self.status_code = status_code


class EngineError(OpenSightError):
    """An AI engine rejected the request (auth, bad request, refusal)."""

    def __init__(self, message: str, engine: str = "", status_code: int = None, response: dict = None):
        super().__init__(message)
        self.engine = engine
        self.status_code = status_code
        self.response = response


class ExtractionError(OpenSightError):
    """Content could not be fetched or parsed."""

    def __init__(self, message: str, url: str = "", status_code: int = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class EmptyContentError(OpenSightError):
    """Scoring input has no analyzable text."""

    def __init__(self, message: str = "No analyzable text content", url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class PersistenceConflictError(OpenSightError):
    """A row with the same idempotency key already exists."""

    def __init__(self, key: Tuple, message: Optional[str] = None):
        super().__init__(message or f"Duplicate idempotency key: {key}")
        self.key = key


class PermanentFailure(OpenSightError):
    """A workflow step exhausted its retry budget."""

    def __init__(self, step: str, attempts: int, last_error: Optional[BaseException] = None):
        detail = f": {last_error}" if last_error else ""
        super().__init__(f"Step '{step}' failed after {attempts} attempts{detail}")
        self.step = step
        self.attempts = attempts
        self.last_error = last_error
