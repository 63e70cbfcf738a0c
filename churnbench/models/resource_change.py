from typing import Literal

import msgspec

from .tracked_resource import FeeHandle, TrackedResource

ChangeKind = Literal["created", "mutated"]


class ResourceChange(msgspec.Struct, frozen=True, kw_only=True):
    kind: ChangeKind
    handle: str
    version: int
    fingerprint: str

    def to_resource(self) -> TrackedResource:
        return TrackedResource(
            handle=self.handle,
            version=self.version,
            fingerprint=self.fingerprint,
        )


class SubmitResult(msgspec.Struct, frozen=True, kw_only=True):
    new_fee_handle: FeeHandle
    effects: list[ResourceChange] = msgspec.field(default_factory=list)

    @property
    def created(self) -> list[ResourceChange]:
        return [change for change in self.effects if change.kind == "created"]

    @property
    def mutated(self) -> list[ResourceChange]:
        return [change for change in self.effects if change.kind == "mutated"]
