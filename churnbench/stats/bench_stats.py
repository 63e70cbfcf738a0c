import time
from typing import Any, Callable, Dict

import msgspec


class StatsSnapshot(msgspec.Struct, frozen=True, kw_only=True):
    elapsed: float
    submitted: int
    succeeded: int
    failed: int
    created: int
    updated: int

    @property
    def tps(self) -> float:
        return self.succeeded / self.elapsed if self.elapsed > 0 else 0.0

    @property
    def ops_per_sec(self) -> float:
        return (self.created + self.updated) / self.elapsed if self.elapsed > 0 else 0.0

    @property
    def failure_rate(self) -> float:
        return self.failed / self.submitted if self.submitted > 0 else 0.0


class BenchStats:
    """
    Process-wide counters shared by every worker.

    All mutation happens on the event loop thread and no method awaits,
    so each record call lands as one uninterrupted update. Counters only
    ever grow, and ``submitted`` is bumped in the same call as its
    outcome counter, so ``submitted >= succeeded + failed`` holds at every
    observation point.
    """

    __slots__ = (
        "_clock",
        "start_time",
        "submitted",
        "succeeded",
        "failed",
        "created",
        "updated",
    )

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self.start_time = clock()
        self.submitted = 0
        self.succeeded = 0
        self.failed = 0
        self.created = 0
        self.updated = 0

    def record_success(self, created: int = 0, updated: int = 0) -> None:
        self.submitted += 1
        self.succeeded += 1
        self.created += created
        self.updated += updated

    def record_failure(self) -> None:
        self.submitted += 1
        self.failed += 1

    @property
    def elapsed(self) -> float:
        return self._clock() - self.start_time

    def snapshot(self) -> StatsSnapshot:
        return StatsSnapshot(
            elapsed=self.elapsed,
            submitted=self.submitted,
            succeeded=self.succeeded,
            failed=self.failed,
            created=self.created,
            updated=self.updated,
        )

    def report(self) -> str:
        snapshot = self.snapshot()
        return (
            f"Elapsed: {snapshot.elapsed:.1f}s | "
            f"TX: {snapshot.submitted} submitted, {snapshot.succeeded} success, {snapshot.failed} failed | "
            f"TPS: {snapshot.tps:.1f} | "
            f"Objects: {snapshot.created} created, {snapshot.updated} updated | "
            f"Ops/s: {snapshot.ops_per_sec:.1f}"
        )

    def to_summary(self, config: Dict[str, Any]) -> Dict[str, Any]:
        snapshot = self.snapshot()
        return {
            "duration_secs": snapshot.elapsed,
            "tx_submitted": snapshot.submitted,
            "tx_success": snapshot.succeeded,
            "tx_failed": snapshot.failed,
            "objects_created": snapshot.created,
            "objects_updated": snapshot.updated,
            "tps": snapshot.tps,
            "ops_per_sec": snapshot.ops_per_sec,
            "config": config,
        }
