from .resource_tracker import (
    DEFAULT_TRACKED_CAP as DEFAULT_TRACKED_CAP,
    EVICTION_FLOOR as EVICTION_FLOOR,
    ResourceTracker as ResourceTracker,
)
