from .monitor import (
    MemoryPressureMonitor as MemoryPressureMonitor,
    MemoryThresholds as MemoryThresholds,
    host_memory_usage as host_memory_usage,
)
from .pressure_level import (
    PressureCell as PressureCell,
    PressureLevel as PressureLevel,
    THROTTLE_POLICIES as THROTTLE_POLICIES,
    ThrottlePolicy as ThrottlePolicy,
    throttle_policy as throttle_policy,
)
