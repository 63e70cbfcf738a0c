from __future__ import annotations

import math
import random
from typing import TYPE_CHECKING, Iterable, Iterator

from churnbench.errors import EmptyPool
from churnbench.models import ResourceChange, TrackedResource

if TYPE_CHECKING:
    from churnbench.ledger import LedgerClient


DEFAULT_TRACKED_CAP = 5000
EVICTION_FLOOR = 50
REFRESH_CHUNK_SIZE = 50


class ResourceTracker:
    """
    Bounded set of remote resources owned by one worker.

    The cap is a plain size limit: once full, new resources are dropped
    rather than displacing old ones. Eviction keeps a front prefix, so
    the earliest-tracked resources survive memory pressure.
    """

    __slots__ = ("_cap", "_resources", "_index")

    def __init__(
        self,
        cap: int = DEFAULT_TRACKED_CAP,
        resources: Iterable[TrackedResource] | None = None,
    ) -> None:
        if cap < 0:
            raise ValueError("Tracked resource cap cannot be negative")

        self._cap = cap
        self._resources: list[TrackedResource] = []
        self._index: dict[str, TrackedResource] = {}

        for resource in resources or ():
            self.append(resource)

    @property
    def cap(self) -> int:
        return self._cap

    def __len__(self) -> int:
        return len(self._resources)

    def __iter__(self) -> Iterator[TrackedResource]:
        return iter(self._resources)

    def __bool__(self) -> bool:
        return len(self._resources) > 0

    def snapshot(self) -> list[TrackedResource]:
        return [
            TrackedResource(
                handle=resource.handle,
                version=resource.version,
                fingerprint=resource.fingerprint,
            )
            for resource in self._resources
        ]

    def append(self, resource: TrackedResource) -> bool:
        if len(self._resources) >= self._cap:
            return False

        self._resources.append(resource)
        self._index.setdefault(resource.handle, resource)
        return True

    def evict(self, fraction: float) -> int:
        size = len(self._resources)
        if size <= EVICTION_FLOOR or fraction <= 0:
            return 0

        keep = math.floor(size * (1 - min(fraction, 1.0)))
        dropped = self._resources[keep:]
        del self._resources[keep:]

        self._rebuild_index()
        return len(dropped)

    def select_batch(
        self,
        count: int,
        rng: random.Random | None = None,
    ) -> list[TrackedResource]:
        size = len(self._resources)
        if size == 0:
            raise EmptyPool("No tracked resources to update")

        rng = rng or random
        start = rng.randrange(size)

        return [
            self._resources[(start + offset) % size]
            for offset in range(min(count, size))
        ]

    def apply_create_results(self, changes: Iterable[ResourceChange]) -> int:
        created = 0
        for change in changes:
            if change.kind != "created":
                continue

            self.append(change.to_resource())
            created += 1

        return created

    def apply_update_results(self, changes: Iterable[ResourceChange]) -> int:
        applied = 0
        for change in changes:
            if change.kind != "mutated":
                continue

            resource = self._index.get(change.handle)
            if resource is None:
                continue

            resource.version = change.version
            resource.fingerprint = change.fingerprint
            applied += 1

        return applied

    async def refresh(
        self,
        ledger_client: LedgerClient,
        chunk_size: int = REFRESH_CHUNK_SIZE,
    ) -> tuple[int, int]:
        before = len(self._resources)
        refreshed: list[TrackedResource] = []

        for offset in range(0, before, chunk_size):
            chunk = self._resources[offset:offset + chunk_size]
            current = await ledger_client.query_resources(
                [resource.handle for resource in chunk]
            )

            refreshed.extend(
                resource for resource in current if resource is not None
            )

        self._resources = refreshed[:self._cap]
        self._rebuild_index()

        return before, len(self._resources)

    def _rebuild_index(self) -> None:
        self._index = {}
        for resource in self._resources:
            self._index.setdefault(resource.handle, resource)
