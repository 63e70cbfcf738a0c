from .memory import (
    MemoryPressureMonitor as MemoryPressureMonitor,
    MemoryThresholds as MemoryThresholds,
    PressureCell as PressureCell,
    PressureLevel as PressureLevel,
    ThrottlePolicy as ThrottlePolicy,
    throttle_policy as throttle_policy,
)
