"""
Conflict Retry Controller.

Re-runs a whole transactional operation when the store reports a write
conflict, with exponential backoff between attempts. Any other failure is
returned to the caller on the first attempt.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar
from settings import logger, settings
from .errors import WriteConflictError


T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 5
    base_delay: float = 0.2  # seconds

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(max_attempts=settings.move_max_attempts, base_delay=settings.move_base_delay_seconds)

    def delay_for(self, attempt: int) -> float:
        """Backoff slept after the failed ``attempt`` (1-based)."""
        return self.base_delay * (2 ** (attempt - 1))

    def total_backoff(self) -> float:
        return sum(self.delay_for(attempt) for attempt in range(1, self.max_attempts))


async def run_with_conflict_retry(
    operation: Callable[[], T],
    policy: Optional[RetryPolicy] = None,
    *,
    name: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` until it succeeds, fails with a non-conflict error, or attempts run out.

    ``operation`` must open and finish its own transaction so that every attempt
    re-reads current state.
    """
    policy = policy or RetryPolicy.from_settings()

    for attempt in range(1, policy.max_attempts + 1):
        try:
            result = operation()
        except WriteConflictError as exc:
            if attempt == policy.max_attempts:
                logger.error("Write conflict persisted, giving up", extra={
                    "operation": name,
                    "total_attempts": attempt,
                    "entity": exc.entity,
                    "entity_id": exc.entity_id,
                })
                raise WriteConflictError(
                    f"{name} kept conflicting with concurrent writes after {attempt} attempts",
                    attempts=attempt,
                    entity=exc.entity,
                    entity_id=exc.entity_id,
                ) from exc

            delay = policy.delay_for(attempt)
            logger.warning("Write conflict, retrying", extra={
                "operation": name,
                "attempt": attempt,
                "max_attempts": policy.max_attempts,
                "sleep_seconds": delay,
            })
            await sleep(delay)
            continue

        if attempt > 1:
            logger.info("Operation succeeded after retry", extra={"operation": name, "attempt": attempt})
        return result

    # max_attempts < 1 is rejected by settings validation
    raise ValueError("RetryPolicy.max_attempts must be at least 1")
