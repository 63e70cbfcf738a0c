from .operation import (
    CreateN as CreateN,
    Operation as Operation,
    UpdateBatch as UpdateBatch,
)
from .resource_change import (
    ChangeKind as ChangeKind,
    ResourceChange as ResourceChange,
    SubmitResult as SubmitResult,
)
from .tracked_resource import (
    FeeHandle as FeeHandle,
    TrackedResource as TrackedResource,
)
from .worker_identity import WorkerIdentity as WorkerIdentity
