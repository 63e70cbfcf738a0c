"""
Worker loop scenarios against the in-memory ledger.

Deadlines are set in the past when driving ``run_iteration`` directly,
which turns every throttle pause into a no-op. ``RecordingWorker`` keeps
the requested delays for the pacing checks.
"""

import asyncio
import random
import time

import pytest

from churnbench.logging import Logger
from churnbench.models import CreateN, FeeHandle, UpdateBatch, WorkerIdentity
from churnbench.monitoring import PressureCell, PressureLevel
from churnbench.reliability import AdaptiveRateController, ConcurrencyGate
from churnbench.stats import BenchStats
from churnbench.tracking import ResourceTracker
from churnbench.workers import Worker, WorkerSettings, WorkerState
from tests.unit.fakes import BrokenLogger, FakeLedgerClient


async def seed_state(
    ledger_client: FakeLedgerClient,
    seed_objects: int,
    cap: int = 5000,
) -> WorkerState:
    identity = WorkerIdentity.generate()
    fee_handle = await ledger_client.get_fee_handle(identity.address)
    state = WorkerState(
        worker_id=0,
        identity=identity,
        fee_handle=fee_handle,
        tracker=ResourceTracker(cap=cap),
    )

    if seed_objects > 0:
        result = await ledger_client.submit_batch(
            identity,
            fee_handle,
            CreateN(count=seed_objects),
        )
        state.fee_handle = result.new_fee_handle
        state.tracker.apply_create_results(result.effects)

    ledger_client.submissions.clear()
    return state


def make_worker(
    state: WorkerState,
    ledger_client: FakeLedgerClient,
    stats: BenchStats | None = None,
    pressure: PressureCell | None = None,
    settings: WorkerSettings | None = None,
    deadline: float = 0.0,
    stop: asyncio.Event | None = None,
    logger: Logger | None = None,
    worker_class: type[Worker] = Worker,
) -> Worker:
    return worker_class(
        state,
        ledger_client,
        stats or BenchStats(),
        ConcurrencyGate(10),
        pressure or PressureCell(),
        AdaptiveRateController(),
        settings or WorkerSettings(batch_size=1, create_pct=5),
        stop or asyncio.Event(),
        deadline,
        rng=random.Random(42),
        logger=logger,
    )


class RecordingWorker(Worker):
    """Records every requested pause instead of sleeping."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.pauses: list[float] = []

    async def _pause(self, delay: float):
        self.pauses.append(delay)


class TestWorkerWorkload:
    @pytest.mark.asyncio
    async def test_create_update_mix(self, ledger_client: FakeLedgerClient) -> None:
        """1000 iterations at 5% creates over 500 seeded objects."""
        state = await seed_state(ledger_client, seed_objects=500)
        stats = BenchStats()
        worker = make_worker(state, ledger_client, stats=stats)

        for _ in range(1000):
            assert await worker.run_iteration() is True

        assert worker.creates_issued + worker.updates_issued == 1000
        assert 25 <= worker.creates_issued <= 80
        assert stats.created == worker.creates_issued
        assert stats.updated == worker.updates_issued
        assert len(state.tracker) == 500 + worker.creates_issued
        assert stats.succeeded == 1000
        assert stats.failed == 0

    @pytest.mark.asyncio
    async def test_versions_follow_updates(self, ledger_client: FakeLedgerClient) -> None:
        state = await seed_state(ledger_client, seed_objects=5)
        worker = make_worker(
            state,
            ledger_client,
            settings=WorkerSettings(batch_size=5, create_pct=0),
        )

        for _ in range(3):
            await worker.run_iteration()

        for resource in state.tracker:
            assert resource.version == ledger_client.objects[resource.handle].version == 4

    @pytest.mark.asyncio
    async def test_fee_handle_advances(self, ledger_client: FakeLedgerClient) -> None:
        state = await seed_state(ledger_client, seed_objects=10)
        before = state.fee_handle.version
        worker = make_worker(state, ledger_client)

        await worker.run_iteration()

        assert state.fee_handle.version == before + 1

    @pytest.mark.asyncio
    async def test_empty_pool_forces_create(self, ledger_client: FakeLedgerClient) -> None:
        state = await seed_state(ledger_client, seed_objects=0)
        worker = make_worker(
            state,
            ledger_client,
            settings=WorkerSettings(batch_size=3, create_pct=0),
        )

        await worker.run_iteration()

        assert ledger_client.submissions == [CreateN(count=3)]
        assert len(state.tracker) == 3


class TestWorkerPressure:
    @pytest.mark.asyncio
    async def test_emergency_issues_no_creates(self, ledger_client: FakeLedgerClient) -> None:
        state = await seed_state(ledger_client, seed_objects=400)
        worker = make_worker(
            state,
            ledger_client,
            pressure=PressureCell(PressureLevel.EMERGENCY),
            settings=WorkerSettings(batch_size=1, create_pct=100),
        )

        for _ in range(50):
            await worker.run_iteration()

        assert worker.creates_issued == 0
        assert all(isinstance(operation, UpdateBatch) for operation in ledger_client.submissions)

    @pytest.mark.asyncio
    async def test_emergency_evicts_down_to_floor(self, ledger_client: FakeLedgerClient) -> None:
        """Emergency eviction stops once the pool reaches the floor."""
        state = await seed_state(ledger_client, seed_objects=400)
        worker = make_worker(
            state,
            ledger_client,
            pressure=PressureCell(PressureLevel.EMERGENCY),
        )

        await worker.run_iteration()
        assert len(state.tracker) == 100

        for _ in range(10):
            await worker.run_iteration()

        assert 0 < len(state.tracker) <= 50

    @pytest.mark.asyncio
    async def test_emergency_with_empty_pool_submits_nothing(
        self,
        ledger_client: FakeLedgerClient,
    ) -> None:
        state = await seed_state(ledger_client, seed_objects=0)
        worker = make_worker(
            state,
            ledger_client,
            pressure=PressureCell(PressureLevel.EMERGENCY),
        )

        assert await worker.run_iteration() is False
        assert ledger_client.submissions == []

    @pytest.mark.asyncio
    async def test_light_pressure_trims_and_still_creates(
        self,
        ledger_client: FakeLedgerClient,
    ) -> None:
        state = await seed_state(ledger_client, seed_objects=200)
        worker = make_worker(
            state,
            ledger_client,
            pressure=PressureCell(PressureLevel.LIGHT),
            settings=WorkerSettings(batch_size=1, create_pct=100),
        )

        await worker.run_iteration()

        assert worker.creates_issued == 1
        assert len(state.tracker) == 151


class TestWorkerFailures:
    @pytest.mark.asyncio
    async def test_failures_are_counted_not_raised(
        self,
        ledger_client: FakeLedgerClient,
    ) -> None:
        state = await seed_state(ledger_client, seed_objects=10)
        stats = BenchStats()
        worker = make_worker(state, ledger_client, stats=stats)
        fee_handle = state.fee_handle
        tracked = state.tracker.snapshot()

        ledger_client.fail_next = 3
        for _ in range(3):
            await worker.run_iteration()

        assert stats.failed == 3
        assert stats.succeeded == 0
        assert worker.backoff.consecutive_failures == 3
        assert state.fee_handle == fee_handle
        assert state.tracker.snapshot() == tracked

    @pytest.mark.asyncio
    async def test_success_resets_backoff(self, ledger_client: FakeLedgerClient) -> None:
        state = await seed_state(ledger_client, seed_objects=10)
        worker = make_worker(state, ledger_client)

        ledger_client.fail_next = 12
        for _ in range(13):
            await worker.run_iteration()

        assert worker.backoff.consecutive_failures == 0


class TestWorkerPacing:
    @pytest.mark.asyncio
    async def test_failure_rate_and_backoff_pauses_add_up(
        self,
        ledger_client: FakeLedgerClient,
    ) -> None:
        """Twelve straight failures at an 11% global failure rate owe 0.2s + 5s."""
        state = await seed_state(ledger_client, seed_objects=10)
        stats = BenchStats()
        for _ in range(90):
            stats.record_success(updated=1)

        worker = make_worker(
            state,
            ledger_client,
            stats=stats,
            worker_class=RecordingWorker,
        )

        ledger_client.fail_next = 12
        for _ in range(12):
            await worker.run_iteration()

        assert worker.backoff.consecutive_failures == 12
        assert stats.snapshot().submitted == 102

        worker.pauses.clear()
        await worker.run_iteration()

        assert worker.pauses == [pytest.approx(5.2)]
        assert worker.backoff.consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_emergency_skips_rate_and_backoff_pauses(
        self,
        ledger_client: FakeLedgerClient,
    ) -> None:
        state = await seed_state(ledger_client, seed_objects=100)
        stats = BenchStats()
        for _ in range(60):
            stats.record_success(updated=1)
        for _ in range(60):
            stats.record_failure()

        worker = make_worker(
            state,
            ledger_client,
            stats=stats,
            pressure=PressureCell(PressureLevel.EMERGENCY),
            worker_class=RecordingWorker,
        )
        for _ in range(12):
            worker.backoff.record_failure()

        await worker.run_iteration()

        assert worker.pauses == [pytest.approx(2.0)]

    @pytest.mark.asyncio
    async def test_pressure_delay_and_pacing_are_additive(
        self,
        ledger_client: FakeLedgerClient,
    ) -> None:
        state = await seed_state(ledger_client, seed_objects=100)
        worker = make_worker(
            state,
            ledger_client,
            pressure=PressureCell(PressureLevel.LIGHT),
            settings=WorkerSettings(batch_size=1, target_tps=100, worker_count=2),
            worker_class=RecordingWorker,
        )

        await worker.run_iteration()

        assert worker.pauses == [
            pytest.approx(0.25),
            pytest.approx(0.0),
            pytest.approx(0.02),
        ]

    @pytest.mark.asyncio
    async def test_pause_waits_until_deadline(self, ledger_client: FakeLedgerClient) -> None:
        state = await seed_state(ledger_client, seed_objects=10)
        now = [100.0]
        worker = Worker(
            state,
            ledger_client,
            BenchStats(),
            ConcurrencyGate(10),
            PressureCell(),
            AdaptiveRateController(),
            WorkerSettings(batch_size=1),
            asyncio.Event(),
            deadline=100.05,
            clock=lambda: now[0],
        )

        loop = asyncio.get_running_loop()
        started = loop.time()
        await worker._pause(5.2)

        assert 0.04 <= loop.time() - started < 1.0


class TestWorkerLifecycle:
    @pytest.mark.asyncio
    async def test_run_stops_at_deadline(self, ledger_client: FakeLedgerClient) -> None:
        state = await seed_state(ledger_client, seed_objects=10)
        loop = asyncio.get_running_loop()
        worker = make_worker(
            state,
            ledger_client,
            settings=WorkerSettings(batch_size=1, target_tps=100),
            deadline=loop.time() + 0.2,
        )

        await asyncio.wait_for(worker.run(), timeout=2.0)

        assert worker.iterations > 0

    @pytest.mark.asyncio
    async def test_broken_log_sink_does_not_stop_worker(
        self,
        ledger_client: FakeLedgerClient,
    ) -> None:
        state = await seed_state(ledger_client, seed_objects=10)
        stats = BenchStats()
        logger = BrokenLogger()
        worker = make_worker(
            state,
            ledger_client,
            stats=stats,
            settings=WorkerSettings(batch_size=1, target_tps=100),
            deadline=time.monotonic() + 0.2,
            logger=logger,
        )

        ledger_client.fail_next = 1
        await asyncio.wait_for(worker.run(), timeout=2.0)

        assert logger.stream.attempts >= 1
        assert stats.failed == 1
        assert stats.succeeded > 0
        assert worker.phase.value == "stopped"

    @pytest.mark.asyncio
    async def test_stop_event_interrupts_pauses(self, ledger_client: FakeLedgerClient) -> None:
        state = await seed_state(ledger_client, seed_objects=100)
        stop = asyncio.Event()
        worker = make_worker(
            state,
            ledger_client,
            pressure=PressureCell(PressureLevel.HEAVY),
            deadline=float("inf"),
            stop=stop,
        )

        task = asyncio.ensure_future(worker.run())
        await asyncio.sleep(0.05)
        stop.set()

        await asyncio.wait_for(task, timeout=1.0)
        assert worker.phase.value == "stopped"


class TestWorkerSettings:
    def test_pacing_interval(self) -> None:
        assert WorkerSettings(target_tps=0).pacing_interval == 0.0
        assert WorkerSettings(target_tps=100, worker_count=4).pacing_interval == 0.04


def test_fee_handle_equality() -> None:
    assert FeeHandle(handle="0x1", version=1, fingerprint="a") == FeeHandle(
        handle="0x1",
        version=1,
        fingerprint="a",
    )
