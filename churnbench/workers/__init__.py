from .results import write_summary as write_summary
from .worker import (
    Worker as Worker,
    WorkerPhase as WorkerPhase,
    WorkerSettings as WorkerSettings,
)
from .worker_pool import WorkerPool as WorkerPool
from .worker_state import WorkerState as WorkerState
