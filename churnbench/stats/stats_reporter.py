import asyncio

from churnbench.logging import Logger
from churnbench.logging.churnbench_logging_models import StatsInfo

from .bench_stats import BenchStats


class StatsReporter:
    def __init__(
        self,
        stats: BenchStats,
        interval: float,
        logger: Logger | None = None,
    ) -> None:
        self._stats = stats
        self._interval = interval
        self._logger = logger or Logger()
        self._stop = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        self._stop.clear()
        self._task = asyncio.ensure_future(self._run())

    async def _run(self):
        async with self._logger.context(name="stats") as ctx:
            while not self._stop.is_set():
                try:
                    await asyncio.wait_for(
                        self._stop.wait(),
                        timeout=self._interval,
                    )

                except asyncio.TimeoutError:
                    try:
                        await ctx.log(self._to_entry())

                    except Exception:
                        # Keep reporting on the next interval.
                        pass

    async def log_report(self):
        async with self._logger.context(name="stats") as ctx:
            await ctx.log(self._to_entry())

    async def stop(self):
        self._stop.set()

        if self._task is not None:
            await self._task
            self._task = None

    def _to_entry(self) -> StatsInfo:
        snapshot = self._stats.snapshot()
        return StatsInfo(
            message=self._stats.report(),
            elapsed=snapshot.elapsed,
            submitted=snapshot.submitted,
            succeeded=snapshot.succeeded,
            failed=snapshot.failed,
            created=snapshot.created,
            updated=snapshot.updated,
        )
