"""
Step Retry

Bounded attempts with exponential backoff for one workflow step (or one
unit of work inside a step). Only exceptions listed as retryable are
retried; anything else propagates immediately.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from ..errors import PermanentFailure, TransientExternalError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    def delay_for(self, attempt: int) -> float:
        """Delay after the given 1-based failed attempt."""
        return min(self.initial_delay * (self.exponential_base ** (attempt - 1)), self.max_delay)


async def retry_async(
    step: str,
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    retryable: Tuple[Type[BaseException], ...] = (TransientExternalError,),
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
) -> T:
    """
    Run ``operation`` until it succeeds or the attempts run out.

    Args:
        step: Name used in logs and in PermanentFailure
        operation: Zero-argument coroutine factory
        policy: Attempt budget and backoff
        retryable: Exception types worth another attempt
        sleep: Awaitable sleep (injectable for tests)

    Raises:
        PermanentFailure: Every attempt failed with a retryable error
    """
    sleep = sleep or asyncio.sleep
    last_error: Optional[BaseException] = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await operation()
        except retryable as e:
            last_error = e
            if attempt < policy.max_attempts:
                delay = policy.delay_for(attempt)
                logger.warning(
                    f"{step} failed, retrying in {delay:.1f}s "
                    f"(attempt {attempt}/{policy.max_attempts}): {e}"
                )
                await sleep(delay)

    logger.error(f"{step} failed after {policy.max_attempts} attempts: {last_error}")
    raise PermanentFailure(step, policy.max_attempts, last_error)
