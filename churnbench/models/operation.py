from dataclasses import dataclass, field

from .tracked_resource import TrackedResource


@dataclass(slots=True, frozen=True)
class CreateN:
    count: int


@dataclass(slots=True, frozen=True)
class UpdateBatch:
    resources: list[TrackedResource] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.resources)


Operation = CreateN | UpdateBatch
