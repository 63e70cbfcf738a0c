from churnbench.checkpoint import WorkerCheckpoint
from churnbench.models import FeeHandle, WorkerIdentity
from churnbench.reliability import RWLock
from churnbench.tracking import ResourceTracker


class WorkerState:
    """
    Everything one worker owns: identity, fee handle and tracked resources.

    The owning worker mutates it under the write side of ``lock``; the
    checkpoint pass reads it under the read side once workers have joined.
    """

    __slots__ = ("worker_id", "identity", "fee_handle", "tracker", "lock")

    def __init__(
        self,
        worker_id: int,
        identity: WorkerIdentity,
        fee_handle: FeeHandle,
        tracker: ResourceTracker,
    ) -> None:
        self.worker_id = worker_id
        self.identity = identity
        self.fee_handle = fee_handle
        self.tracker = tracker
        self.lock = RWLock()

    async def to_checkpoint(self) -> WorkerCheckpoint:
        async with self.lock.read():
            return WorkerCheckpoint(
                worker_id=self.worker_id,
                address=self.identity.address,
                keypair_base64=self.identity.to_base64(),
                objects=self.tracker.snapshot(),
            )
