"""
Per-worker operation loop.

Each iteration walks the same states:

RUNNING -> THROTTLE_CHECK -> RATE_CHECK -> ADMIT -> EXECUTE -> RECORD
        -> RATE_LIMIT -> RUNNING

and moves to STOPPED once the shared stop event is set or the deadline
passes, checked at the head of every iteration. No error raised while
executing an iteration escapes the loop: submission failures are counted
and feed the worker's backoff, and anything else is logged before the
next iteration. Logging is best effort.

Throttling delays from memory pressure, the failure-rate controller and
the failure backoff add up within one iteration, since each models an
independent cause.
"""

import asyncio
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from churnbench.ledger import LedgerClient
from churnbench.logging import Entry, Logger
from churnbench.logging.churnbench_logging_models import (
    FailureRateWarning,
    WorkerDebug,
    WorkerError,
    WorkerWarning,
)
from churnbench.models import CreateN, Operation, UpdateBatch
from churnbench.monitoring import PressureCell, PressureLevel, throttle_policy
from churnbench.reliability import (
    AdaptiveRateController,
    ConcurrencyGate,
    FailureBackoff,
)
from churnbench.stats import BenchStats

from .worker_state import WorkerState


class WorkerPhase(Enum):
    RUNNING = "running"
    THROTTLE_CHECK = "throttle_check"
    RATE_CHECK = "rate_check"
    ADMIT = "admit"
    EXECUTE = "execute"
    RECORD = "record"
    RATE_LIMIT = "rate_limit"
    STOPPED = "stopped"


@dataclass(slots=True, frozen=True)
class WorkerSettings:
    batch_size: int = 50
    create_pct: int = 5
    target_tps: int = 0
    worker_count: int = 1
    empty_pool_delay: float = 1.0  # seconds, emergency with nothing to update
    error_delay: float = 0.1  # seconds, after an iteration raised

    @property
    def pacing_interval(self) -> float:
        if self.target_tps <= 0:
            return 0.0

        return self.worker_count / self.target_tps


class Worker:
    def __init__(
        self,
        state: WorkerState,
        ledger_client: LedgerClient,
        stats: BenchStats,
        gate: ConcurrencyGate,
        pressure: PressureCell,
        rate_controller: AdaptiveRateController,
        settings: WorkerSettings,
        stop: asyncio.Event,
        deadline: float,
        backoff: FailureBackoff | None = None,
        rng: random.Random | None = None,
        logger: Logger | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._state = state
        self._ledger_client = ledger_client
        self._stats = stats
        self._gate = gate
        self._pressure = pressure
        self._rate_controller = rate_controller
        self._settings = settings
        self._stop = stop
        self._deadline = deadline
        self._backoff = backoff or FailureBackoff()
        self._rng = rng or random.Random()
        self._logger = logger or Logger()
        self._clock = clock

        self._logger_name = f"worker_{state.worker_id}"
        self._phase = WorkerPhase.RUNNING
        self.iterations = 0
        self.creates_issued = 0
        self.updates_issued = 0

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def phase(self) -> WorkerPhase:
        return self._phase

    @property
    def backoff(self) -> FailureBackoff:
        return self._backoff

    def should_stop(self) -> bool:
        return self._stop.is_set() or self._clock() >= self._deadline

    async def run(self):
        while not self.should_stop():
            self._phase = WorkerPhase.RUNNING

            try:
                await self.run_iteration()

            except Exception as err:
                await self._log(
                    WorkerError(
                        message=f"Iteration failed: {err!r}",
                        worker_id=self._state.worker_id,
                    )
                )
                await self._pause(self._settings.error_delay)

        self._phase = WorkerPhase.STOPPED

    async def run_iteration(self) -> bool:
        """Run one pass of the loop. Returns True if a batch was submitted."""
        self.iterations += 1

        self._phase = WorkerPhase.THROTTLE_CHECK
        level = self._pressure.load()
        updates_only = False

        if level > PressureLevel.NORMAL:
            policy = throttle_policy(level)

            if policy.eviction_fraction > 0:
                async with self._state.lock.write():
                    before = len(self._state.tracker)
                    dropped = self._state.tracker.evict(policy.eviction_fraction)

                if dropped > 0:
                    await self._log(
                        WorkerDebug(
                            message=f"Pressure {level.name}: dropped {dropped} objects (keeping {before - dropped})",
                            worker_id=self._state.worker_id,
                        )
                    )

            await self._pause(policy.delay)

            if policy.suppress_creates:
                if len(self._state.tracker) < 1:
                    await self._pause(self._settings.empty_pool_delay)
                    return False

                updates_only = True

        if not updates_only:
            self._phase = WorkerPhase.RATE_CHECK
            decision = self._rate_controller.evaluate(self._stats.snapshot())

            if decision.announce:
                await self._log(
                    FailureRateWarning(
                        message=(
                            f"Critical failure rate ({decision.failure_rate:.1%}) - "
                            f"pausing {decision.delay:.1f}s"
                        ),
                        failure_rate=decision.failure_rate,
                        pause_seconds=decision.delay,
                    )
                )

            await self._pause(decision.delay + self._backoff.delay)

        self._phase = WorkerPhase.ADMIT
        async with await self._gate.acquire():
            self._phase = WorkerPhase.EXECUTE
            await self._execute(updates_only)

        if self._settings.pacing_interval > 0:
            self._phase = WorkerPhase.RATE_LIMIT
            await self._pause(self._settings.pacing_interval)

        return True

    def choose_operation(self, updates_only: bool = False) -> Operation:
        tracker = self._state.tracker

        if updates_only:
            do_create = False

        elif len(tracker) < 1:
            do_create = True

        else:
            do_create = self._rng.randrange(100) < self._settings.create_pct

        if do_create:
            return CreateN(count=self._settings.batch_size)

        return UpdateBatch(
            resources=tracker.select_batch(self._settings.batch_size, self._rng)
        )

    async def _execute(self, updates_only: bool):
        state = self._state
        error: Exception | None = None

        async with state.lock.write():
            operation = self.choose_operation(updates_only)
            if isinstance(operation, CreateN):
                self.creates_issued += 1

            else:
                self.updates_issued += 1

            try:
                result = await self._ledger_client.submit_batch(
                    state.identity,
                    state.fee_handle,
                    operation,
                )

            except Exception as err:
                error = err

            self._phase = WorkerPhase.RECORD
            if error is None:
                state.fee_handle = result.new_fee_handle
                created = state.tracker.apply_create_results(result.effects)
                updated = state.tracker.apply_update_results(result.effects)

                self._stats.record_success(created=created, updated=updated)
                self._backoff.record_success()
                return

        self._stats.record_failure()
        delay = self._backoff.record_failure()

        await self._log(
            WorkerDebug(
                message=f"Transaction failed: {error!r}",
                worker_id=state.worker_id,
            )
        )

        if self._backoff.escalated:
            await self._log(
                WorkerWarning(
                    message=(
                        f"Worker {state.worker_id}: {self._backoff.consecutive_failures} "
                        f"consecutive failures, backing off {delay:.1f}s"
                    ),
                    worker_id=state.worker_id,
                )
            )

    async def _pause(self, delay: float):
        """Sleep up to ``delay`` seconds, waking early on stop or deadline."""
        remaining = min(delay, self._deadline - self._clock())
        if remaining <= 0 or self._stop.is_set():
            return

        try:
            await asyncio.wait_for(self._stop.wait(), timeout=remaining)

        except asyncio.TimeoutError:
            pass

    async def _log(self, entry: Entry):
        try:
            async with self._logger.context(
                name=self._logger_name,
                nested=True,
            ) as ctx:
                await ctx.log(entry)

        except Exception:
            # A broken log sink must not stop the workload.
            pass
