import asyncio
import random
import time
from typing import Callable

from churnbench.checkpoint import CheckpointRecord, CheckpointStore
from churnbench.env import Env
from churnbench.errors import SetupFailure
from churnbench.ledger import FaucetClient, LedgerClient, parse_object_id
from churnbench.ledger.sui import SuiJsonRpcClient
from churnbench.logging import Logger
from churnbench.logging.churnbench_logging_models import (
    CheckpointInfo,
    PoolDebug,
    PoolError,
    PoolInfo,
    WorkerInfo,
)
from churnbench.models import CreateN, WorkerIdentity
from churnbench.monitoring import (
    MemoryPressureMonitor,
    MemoryThresholds,
    PressureCell,
)
from churnbench.reliability import AdaptiveRateController, ConcurrencyGate
from churnbench.stats import BenchStats, StatsReporter, StatsSnapshot
from churnbench.tracking import ResourceTracker

from .results import write_summary
from .worker import Worker, WorkerSettings
from .worker_state import WorkerState

FUNDING_CHUNK_SIZE = 8
SEED_BATCH_SIZE = 100


class WorkerPool:
    """
    Sets up worker identities, drives every worker loop until the deadline
    and persists results.

    Only setup can fail the run: ``SetupFailure`` propagates out of
    ``run()`` before any worker starts. Once the loops are running every
    error is absorbed into the stats, and the final report is always
    logged.
    """

    def __init__(
        self,
        env: Env,
        ledger_client: LedgerClient | None = None,
        faucet_client: FaucetClient | None = None,
        memory_sampler: Callable[[], float] | None = None,
        logger: Logger | None = None,
        seed: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._env = env
        self._ledger_client = ledger_client
        self._faucet_client = faucet_client
        self._memory_sampler = memory_sampler
        self._logger = logger or Logger()
        self._rng = random.Random(seed)
        self._clock = clock

        self._stop = asyncio.Event()
        self._pressure = PressureCell()
        self._states: list[WorkerState] = []
        self._workers: list[Worker] = []
        self._stats: BenchStats | None = None

    @property
    def states(self) -> list[WorkerState]:
        return self._states

    @property
    def workers(self) -> list[Worker]:
        return self._workers

    @property
    def stats(self) -> BenchStats | None:
        return self._stats

    @property
    def pressure(self) -> PressureCell:
        return self._pressure

    def request_stop(self):
        self._stop.set()

    async def run(self) -> StatsSnapshot:
        if self._ledger_client is None:
            self._ledger_client = SuiJsonRpcClient(
                rpc_url=self._env.CHURNBENCH_RPC_URL,
                package_id=parse_object_id(self._env.CHURNBENCH_PACKAGE_ID),
                module=self._env.CHURNBENCH_MODULE,
                gas_budget=self._env.CHURNBENCH_GAS_BUDGET,
                large_payload=self._env.CHURNBENCH_USE_LARGE_PAYLOAD,
                request_timeout=self._env.request_timeout_seconds,
            )

        if self._faucet_client is None:
            self._faucet_client = FaucetClient(
                self._env.CHURNBENCH_FAUCET_URL,
                self._ledger_client,
                request_timeout=self._env.request_timeout_seconds,
                logger=self._logger,
            )

        try:
            await self._ledger_client.connect()
            await self.setup()
            return await self._execute()

        finally:
            await self._ledger_client.close()

    async def setup(self) -> list[WorkerState]:
        async with self._logger.context(name="worker_pool") as ctx:
            try:
                reference_gas_price = await self._ledger_client.get_reference_gas_price()

            except Exception as err:
                raise SetupFailure(f"Failed to connect to ledger node: {err}") from err

            await ctx.log(
                PoolInfo(
                    message=f"Connected to {self._env.CHURNBENCH_RPC_URL} (reference gas price: {reference_gas_price})",
                    workers=self._env.CHURNBENCH_WORKERS,
                )
            )

            if self._env.CHURNBENCH_LOAD_PATH:
                self._states = await self._restore_workers(ctx)

            else:
                self._states = await self._create_workers(ctx)

        return self._states

    async def _create_workers(self, ctx) -> list[WorkerState]:
        worker_count = self._env.CHURNBENCH_WORKERS
        start = self._clock()

        await ctx.log(
            PoolInfo(
                message=f"Initializing {worker_count} workers in parallel",
                workers=worker_count,
            )
        )

        identities = [WorkerIdentity.generate() for _ in range(worker_count)]
        states: list[WorkerState] = []

        for chunk_start in range(0, worker_count, FUNDING_CHUNK_SIZE):
            chunk = identities[chunk_start:chunk_start + FUNDING_CHUNK_SIZE]
            tasks = [asyncio.ensure_future(self._fund(identity)) for identity in chunk]

            try:
                fee_handles = await asyncio.gather(*tasks)

            except BaseException:
                for task in tasks:
                    task.cancel()

                await asyncio.gather(*tasks, return_exceptions=True)
                raise

            for offset, (identity, fee_handle) in enumerate(zip(chunk, fee_handles)):
                worker_id = chunk_start + offset
                states.append(
                    WorkerState(
                        worker_id=worker_id,
                        identity=identity,
                        fee_handle=fee_handle,
                        tracker=ResourceTracker(
                            cap=self._env.CHURNBENCH_MAX_TRACKED_OBJECTS,
                        ),
                    )
                )

                await ctx.log(
                    WorkerInfo(
                        message=f"Worker {worker_id}: ready",
                        worker_id=worker_id,
                    )
                )

        await ctx.log(
            PoolInfo(
                message=f"Workers initialized in {self._clock() - start:.1f}s",
                workers=worker_count,
            )
        )

        seed_start = self._clock()
        await asyncio.gather(
            *[self._create_seed_resources(state) for state in states]
        )

        await ctx.log(
            PoolInfo(
                message=(
                    f"Seed objects ({self._env.CHURNBENCH_SEED_OBJECTS} per worker) "
                    f"created in {self._clock() - seed_start:.1f}s"
                ),
                workers=worker_count,
            )
        )

        return states

    async def _restore_workers(self, ctx) -> list[WorkerState]:
        store = CheckpointStore(self._env.CHURNBENCH_LOAD_PATH)
        record = await store.load()

        await ctx.log(
            PoolInfo(
                message=(
                    f"Found {len(record.workers)} saved workers with "
                    f"{record.total_objects} total objects in {store.path}"
                ),
                workers=len(record.workers),
            )
        )

        states: list[WorkerState] = []
        for saved in record.workers:
            identity = saved.restore_identity()
            fee_handle = await self._fund(identity)

            states.append(
                WorkerState(
                    worker_id=saved.worker_id,
                    identity=identity,
                    fee_handle=fee_handle,
                    tracker=ResourceTracker(
                        cap=self._env.CHURNBENCH_MAX_TRACKED_OBJECTS,
                        resources=saved.objects,
                    ),
                )
            )

            await ctx.log(
                WorkerInfo(
                    message=(
                        f"Worker {saved.worker_id}: restored with {len(saved.objects)} "
                        f"objects (address: {identity.address[:18]})"
                    ),
                    worker_id=saved.worker_id,
                )
            )

        refresh_start = self._clock()
        for state in states:
            async with state.lock.write():
                try:
                    before, after = await state.tracker.refresh(self._ledger_client)

                except Exception as err:
                    raise SetupFailure(
                        f"Failed to refresh objects for worker {state.worker_id}: {err}"
                    ) from err

            await ctx.log(
                WorkerInfo(
                    message=(
                        f"Worker {state.worker_id}: refreshed {after} objects"
                        + (f" ({before - after} no longer exist)" if after < before else "")
                    ),
                    worker_id=state.worker_id,
                )
            )

        await ctx.log(
            PoolInfo(
                message=f"Object versions refreshed in {self._clock() - refresh_start:.1f}s",
                workers=len(states),
            )
        )

        return states

    async def _fund(self, identity: WorkerIdentity):
        try:
            return await self._faucet_client.fund(identity)

        except SetupFailure:
            raise

        except Exception as err:
            raise SetupFailure(
                f"Failed to fund {identity.address}: {err}"
            ) from err

    async def _create_seed_resources(self, state: WorkerState):
        remaining = self._env.CHURNBENCH_SEED_OBJECTS
        batch_limit = SEED_BATCH_SIZE
        if self._env.CHURNBENCH_USE_LARGE_PAYLOAD:
            batch_limit = min(batch_limit, self._env.CHURNBENCH_LARGE_PAYLOAD_BATCH_CAP)

        while remaining > 0:
            batch = min(remaining, batch_limit)
            remaining -= batch

            async with state.lock.write():
                try:
                    result = await self._ledger_client.submit_batch(
                        state.identity,
                        state.fee_handle,
                        CreateN(count=batch),
                    )

                except Exception as err:
                    raise SetupFailure(
                        f"Failed to create seed objects for worker {state.worker_id}: {err}"
                    ) from err

                state.fee_handle = result.new_fee_handle
                state.tracker.apply_create_results(result.effects)

    async def _execute(self) -> StatsSnapshot:
        env = self._env
        stats = BenchStats(clock=self._clock)
        self._stats = stats

        reporter = StatsReporter(
            stats,
            env.stats_interval_seconds,
            logger=self._logger,
        )

        monitor = MemoryPressureMonitor(
            self._pressure,
            thresholds=MemoryThresholds(
                light=env.CHURNBENCH_MEMORY_THRESHOLD,
                critical=env.CHURNBENCH_MEMORY_CRITICAL,
                emergency=env.CHURNBENCH_MEMORY_EMERGENCY,
            ),
            sample_interval=env.memory_sample_interval_seconds,
            sampler=self._memory_sampler,
            logger=self._logger,
        )

        gate = ConcurrencyGate(env.CHURNBENCH_MAX_INFLIGHT)
        rate_controller = AdaptiveRateController()
        settings = WorkerSettings(
            batch_size=env.effective_batch_size,
            create_pct=env.CHURNBENCH_CREATE_PCT,
            target_tps=env.CHURNBENCH_TARGET_TPS,
            worker_count=len(self._states),
        )

        deadline = self._clock() + env.duration_seconds

        self._workers = [
            Worker(
                state,
                self._ledger_client,
                stats,
                gate,
                self._pressure,
                rate_controller,
                settings,
                self._stop,
                deadline,
                rng=random.Random(self._rng.getrandbits(64)),
                logger=self._logger,
                clock=self._clock,
            )
            for state in self._states
        ]

        async with self._logger.context(name="worker_pool") as ctx:
            await ctx.log(
                PoolInfo(
                    message=f"Benchmark started (duration: {env.CHURNBENCH_DURATION})",
                    workers=len(self._workers),
                )
            )

            await monitor.sample_once()
            monitor.start()
            reporter.start()

            try:
                results = await asyncio.gather(
                    *[worker.run() for worker in self._workers],
                    return_exceptions=True,
                )

                for worker, result in zip(self._workers, results):
                    if isinstance(result, Exception):
                        await ctx.log(
                            PoolError(
                                message=f"Worker {worker.state.worker_id} error: {result!r}",
                                workers=len(self._workers),
                            )
                        )

            finally:
                self._stop.set()
                stopped = await asyncio.gather(
                    reporter.stop(),
                    monitor.stop(),
                    return_exceptions=True,
                )

                for name, result in zip(("stats reporter", "memory monitor"), stopped):
                    if isinstance(result, Exception):
                        await ctx.log(
                            PoolError(
                                message=f"Stopping {name} failed: {result!r}",
                                workers=len(self._workers),
                            )
                        )

                await ctx.log(
                    PoolInfo(
                        message="Benchmark complete",
                        workers=len(self._workers),
                    )
                )
                await reporter.log_report()

            await self._persist(ctx)

        return stats.snapshot()

    async def _persist(self, ctx):
        env = self._env

        if env.CHURNBENCH_OUTPUT_PATH:
            path = await write_summary(
                env.CHURNBENCH_OUTPUT_PATH,
                self._stats.to_summary(
                    env.summary_config(workers=len(self._states)),
                ),
            )

            await ctx.log(
                PoolInfo(
                    message=f"Results written to {path}",
                    workers=len(self._states),
                )
            )

        if env.CHURNBENCH_SAVE_PATH:
            record = CheckpointRecord.from_workers(
                [await state.to_checkpoint() for state in self._states]
            )

            store = CheckpointStore(env.CHURNBENCH_SAVE_PATH)
            path = await store.save(record)

            await ctx.log(
                CheckpointInfo(
                    message=(
                        f"Saved {record.total_objects} objects and "
                        f"{len(record.workers)} worker keypairs to {path}"
                    ),
                    path=str(path),
                    workers=len(record.workers),
                    objects=record.total_objects,
                )
            )

        await ctx.log(
            PoolDebug(
                message=f"Pressure level at shutdown: {self._pressure.load().name}",
                workers=len(self._states),
            )
        )
