from abc import ABC, abstractmethod
from typing import Sequence

from churnbench.models import (
    FeeHandle,
    Operation,
    SubmitResult,
    TrackedResource,
    WorkerIdentity,
)


class LedgerClient(ABC):
    """
    Remote ledger the benchmark drives.

    Any exception raised by ``submit_batch`` is treated as an opaque
    submission failure by the worker loop.
    """

    @abstractmethod
    async def connect(self) -> None:
        ...

    @abstractmethod
    async def close(self) -> None:
        ...

    @abstractmethod
    async def get_reference_gas_price(self) -> int:
        ...

    @abstractmethod
    async def get_fee_handle(self, address: str) -> FeeHandle | None:
        ...

    @abstractmethod
    async def submit_batch(
        self,
        identity: WorkerIdentity,
        fee_handle: FeeHandle,
        operation: Operation,
    ) -> SubmitResult:
        ...

    @abstractmethod
    async def query_resources(
        self,
        handles: Sequence[str],
    ) -> list[TrackedResource | None]:
        ...
