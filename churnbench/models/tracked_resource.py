import msgspec


class TrackedResource(msgspec.Struct, kw_only=True):
    """
    A remote mutable object this worker believes it owns at a given version.

    Serialized with the ledger's own field names (``id``/``digest``) so
    checkpoint files stay readable by other tooling.
    """

    handle: str = msgspec.field(name="id")
    version: int
    fingerprint: str = msgspec.field(name="digest")


class FeeHandle(msgspec.Struct, frozen=True, kw_only=True):
    handle: str
    version: int
    fingerprint: str
