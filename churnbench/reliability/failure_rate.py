"""
Adaptive pacing from the global failure ratio.

Every worker consults the controller once per loop iteration. The
decision is a pure function of a stats snapshot:

- fewer than min_samples submissions: no delay, sample too small
- failure rate above critical_rate: long pause
- failure rate above high_rate: short pause
- otherwise: no delay

The controller only remembers whether the critical breach was already
announced, so a sustained excursion logs one warning instead of one per
worker iteration.
"""

from dataclasses import dataclass
from enum import IntEnum

from churnbench.stats import StatsSnapshot


class FailureRateState(IntEnum):
    HEALTHY = 0
    HIGH = 1
    CRITICAL = 2


@dataclass(slots=True, frozen=True)
class FailureRateConfig:
    min_samples: int = 100  # submissions required before acting
    high_rate: float = 0.10
    critical_rate: float = 0.30
    high_delay: float = 0.2  # seconds
    critical_delay: float = 5.0  # seconds


@dataclass(slots=True, frozen=True)
class FailureRateDecision:
    state: FailureRateState
    failure_rate: float
    delay: float
    announce: bool = False


class AdaptiveRateController:
    def __init__(self, config: FailureRateConfig | None = None) -> None:
        self._config = config or FailureRateConfig()
        self._breach_announced = False

    @property
    def config(self) -> FailureRateConfig:
        return self._config

    def classify(self, snapshot: StatsSnapshot) -> FailureRateState:
        if snapshot.submitted <= self._config.min_samples:
            return FailureRateState.HEALTHY

        failure_rate = snapshot.failed / snapshot.submitted
        if failure_rate > self._config.critical_rate:
            return FailureRateState.CRITICAL

        elif failure_rate > self._config.high_rate:
            return FailureRateState.HIGH

        return FailureRateState.HEALTHY

    def evaluate(self, snapshot: StatsSnapshot) -> FailureRateDecision:
        state = self.classify(snapshot)
        failure_rate = snapshot.failure_rate

        if state == FailureRateState.CRITICAL:
            announce = not self._breach_announced
            self._breach_announced = True

            return FailureRateDecision(
                state=state,
                failure_rate=failure_rate,
                delay=self._config.critical_delay,
                announce=announce,
            )

        self._breach_announced = False

        if state == FailureRateState.HIGH:
            return FailureRateDecision(
                state=state,
                failure_rate=failure_rate,
                delay=self._config.high_delay,
            )

        return FailureRateDecision(
            state=state,
            failure_rate=failure_rate,
            delay=0.0,
        )
