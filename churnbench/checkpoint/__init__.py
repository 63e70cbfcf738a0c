from .checkpoint import (
    CheckpointRecord as CheckpointRecord,
    CheckpointStore as CheckpointStore,
    WorkerCheckpoint as WorkerCheckpoint,
)
