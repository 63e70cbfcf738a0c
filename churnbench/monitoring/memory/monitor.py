import asyncio
import time
from dataclasses import dataclass
from typing import Callable

import psutil

from churnbench.logging import Logger
from churnbench.logging.churnbench_logging_models import (
    PressureInfo,
    PressureWarning,
)

from .pressure_level import (
    PressureCell,
    PressureLevel,
    throttle_policy,
)


def host_memory_usage() -> float:
    memory = psutil.virtual_memory()
    if memory.total <= 0:
        return 0.0

    return (memory.total - memory.available) / memory.total


@dataclass(slots=True, frozen=True)
class MemoryThresholds:
    light: float = 0.75
    critical: float = 0.85
    emergency: float = 0.92

    def __post_init__(self) -> None:
        if not (0 <= self.light < self.critical < self.emergency <= 1):
            raise ValueError(
                "Memory thresholds must satisfy 0 <= light < critical < emergency <= 1"
            )


class MemoryPressureMonitor:
    """
    Samples host memory and publishes a discrete pressure level.

    Sampling failures read as zero usage, so a broken probe can never
    throttle or stop the benchmark. Transitions are logged immediately;
    an elevated level is re-logged at most every ``log_interval`` seconds.
    """

    def __init__(
        self,
        cell: PressureCell,
        thresholds: MemoryThresholds | None = None,
        sample_interval: float = 0.5,
        sampler: Callable[[], float] | None = None,
        logger: Logger | None = None,
        log_interval: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cell = cell
        self._thresholds = thresholds or MemoryThresholds()
        self._sample_interval = sample_interval
        self._sampler = sampler or host_memory_usage
        self._logger = logger or Logger()
        self._log_interval = log_interval
        self._clock = clock

        self._last_level = PressureLevel.NORMAL
        self._last_log_time = clock()
        self._last_usage = 0.0
        self._stop = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def level(self) -> PressureLevel:
        return self._cell.load()

    @property
    def last_usage(self) -> float:
        return self._last_usage

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def classify(self, usage: float) -> PressureLevel:
        if usage >= self._thresholds.emergency:
            return PressureLevel.EMERGENCY

        elif usage >= self._thresholds.critical:
            return PressureLevel.HEAVY

        elif usage >= self._thresholds.light:
            return PressureLevel.LIGHT

        return PressureLevel.NORMAL

    def _sample(self) -> float:
        try:
            usage = float(self._sampler())

        except Exception:
            return 0.0

        if usage != usage or usage < 0:
            return 0.0

        return min(usage, 1.0)

    async def sample_once(self) -> PressureLevel:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()

        usage = await self._loop.run_in_executor(None, self._sample)
        level = self.classify(usage)

        self._last_usage = usage
        await self._maybe_log(level, usage)

        self._cell.store(level)
        return level

    async def _maybe_log(self, level: PressureLevel, usage: float):
        now = self._clock()
        changed = level != self._last_level
        periodic = (
            level > PressureLevel.NORMAL
            and now - self._last_log_time > self._log_interval
        )

        if not changed and not periodic:
            return

        try:
            await self._log_level(level, usage)

        except Exception:
            # Logging failures never affect the published level.
            pass

        self._last_level = level
        self._last_log_time = now

    async def _log_level(self, level: PressureLevel, usage: float):
        async with self._logger.context(name="memory_monitor") as ctx:
            usage_pct = round(usage * 100, 1)

            if level > PressureLevel.NORMAL:
                policy = throttle_policy(level)
                await ctx.log(
                    PressureWarning(
                        message=(
                            f"{level.name} throttle at {usage_pct:.1f}% memory - "
                            f"{policy.delay:.2f}s delay, dropping {policy.eviction_fraction:.0%} of tracked objects"
                            + (", skipping creates" if policy.suppress_creates else "")
                        ),
                        pressure=level.name,
                        usage_pct=usage_pct,
                    )
                )

            elif self._last_level > PressureLevel.NORMAL:
                await ctx.log(
                    PressureInfo(
                        message=f"Memory recovered at {usage_pct:.1f}% - resuming normal operation",
                        pressure=level.name,
                        usage_pct=usage_pct,
                    )
                )

    def start(self):
        self._stop.clear()
        self._task = asyncio.ensure_future(self._run())

    async def _run(self):
        while not self._stop.is_set():
            await self.sample_once()

            try:
                await asyncio.wait_for(
                    self._stop.wait(),
                    timeout=self._sample_interval,
                )

            except asyncio.TimeoutError:
                pass

    async def stop(self):
        self._stop.set()

        if self._task is not None:
            await self._task
            self._task = None
