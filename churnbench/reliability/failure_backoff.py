"""
Failure backoff for worker loops and setup polling.

One policy object owns the escalation arithmetic so call sites only
count attempts:

- LINEAR: delay = min(cap, base * count), used by workers once
  consecutive failures reach the threshold
- EXPONENTIAL: delay = min(cap, base * 2^count), used when polling
  the ledger for a funded fee handle

A worker's backoff never affects its siblings: each worker owns its
own FailureBackoff instance.
"""

from dataclasses import dataclass
from enum import Enum


class BackoffGrowth(Enum):
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


@dataclass(slots=True, frozen=True)
class BackoffPolicy:
    """Configuration for backoff escalation."""

    base_delay: float = 0.5  # seconds
    max_delay: float | None = 5.0  # cap, None = uncapped
    threshold: int = 10  # count at which delays begin
    growth: BackoffGrowth = BackoffGrowth.LINEAR

    def delay_for(self, count: int) -> float:
        """
        Delay in seconds for the given failure or attempt count.

        Returns 0 below the threshold.
        """
        if count < self.threshold or count < 1:
            return 0.0

        if self.growth == BackoffGrowth.EXPONENTIAL:
            delay = self.base_delay * (2**count)

        else:
            delay = self.base_delay * count

        if self.max_delay is not None:
            delay = min(delay, self.max_delay)

        return delay


WORKER_FAILURE_POLICY = BackoffPolicy()

FEE_HANDLE_POLL_POLICY = BackoffPolicy(
    base_delay=0.5,
    max_delay=None,
    threshold=1,
    growth=BackoffGrowth.EXPONENTIAL,
)


class FailureBackoff:
    """
    Consecutive-failure counter for a single worker.

    Example usage:
        backoff = FailureBackoff()

        backoff.record_failure()
        await asyncio.sleep(backoff.delay)

        backoff.record_success()  # resets
    """

    __slots__ = ("_policy", "_consecutive_failures")

    def __init__(self, policy: BackoffPolicy | None = None) -> None:
        self._policy = policy or WORKER_FAILURE_POLICY
        self._consecutive_failures: int = 0

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def escalated(self) -> bool:
        return self._consecutive_failures >= self._policy.threshold

    @property
    def delay(self) -> float:
        return self._policy.delay_for(self._consecutive_failures)

    def record_success(self) -> None:
        self._consecutive_failures = 0

    def record_failure(self) -> float:
        """Count a failure and return the delay now owed before the next attempt."""
        self._consecutive_failures += 1
        return self.delay
