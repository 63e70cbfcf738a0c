from dataclasses import dataclass
from enum import IntEnum


class PressureLevel(IntEnum):
    """
    Host memory pressure levels.

    Each level only scales throttling, it never stops the benchmark:
    - NORMAL: no action
    - LIGHT: evict 25% of tracked resources, 250ms delay
    - HEAVY: evict 50%, 1s delay
    - EMERGENCY: evict 75%, 2s delay, updates only
    """

    NORMAL = 0
    LIGHT = 1
    HEAVY = 2
    EMERGENCY = 3


@dataclass(slots=True, frozen=True)
class ThrottlePolicy:
    eviction_fraction: float
    delay: float  # seconds
    suppress_creates: bool = False

    @property
    def active(self) -> bool:
        return self.eviction_fraction > 0 or self.delay > 0 or self.suppress_creates


THROTTLE_POLICIES: dict[PressureLevel, ThrottlePolicy] = {
    PressureLevel.NORMAL: ThrottlePolicy(eviction_fraction=0.0, delay=0.0),
    PressureLevel.LIGHT: ThrottlePolicy(eviction_fraction=0.25, delay=0.25),
    PressureLevel.HEAVY: ThrottlePolicy(eviction_fraction=0.50, delay=1.0),
    PressureLevel.EMERGENCY: ThrottlePolicy(
        eviction_fraction=0.75,
        delay=2.0,
        suppress_creates=True,
    ),
}


def throttle_policy(level: PressureLevel) -> ThrottlePolicy:
    return THROTTLE_POLICIES[level]


class PressureCell:
    """
    Single-writer, multi-reader holder for the current pressure level.

    Only the memory monitor writes. Workers read a value that may be one
    sampling period stale.
    """

    __slots__ = ("_level",)

    def __init__(self, level: PressureLevel = PressureLevel.NORMAL) -> None:
        self._level = level

    def load(self) -> PressureLevel:
        return self._level

    def store(self, level: PressureLevel) -> None:
        self._level = level
