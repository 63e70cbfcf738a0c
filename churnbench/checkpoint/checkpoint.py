from __future__ import annotations

import asyncio
import os
import tempfile
from pathlib import Path

import msgspec

from churnbench.errors import CheckpointError
from churnbench.models import TrackedResource, WorkerIdentity


class WorkerCheckpoint(msgspec.Struct, kw_only=True):
    worker_id: int
    address: str
    keypair_base64: str
    objects: list[TrackedResource] = []

    def restore_identity(self) -> WorkerIdentity:
        try:
            identity = WorkerIdentity.from_base64(self.keypair_base64)

        except ValueError as err:
            raise CheckpointError(
                f"Failed to decode keypair for worker {self.worker_id}: {err}"
            ) from err

        if identity.address != self.address:
            raise CheckpointError(
                f"Keypair for worker {self.worker_id} derives {identity.address}, "
                f"checkpoint records {self.address}"
            )

        return identity


class CheckpointRecord(msgspec.Struct, kw_only=True):
    total_objects: int
    workers: list[WorkerCheckpoint] = []

    @classmethod
    def from_workers(cls, workers: list[WorkerCheckpoint]) -> CheckpointRecord:
        return cls(
            total_objects=sum(len(worker.objects) for worker in workers),
            workers=workers,
        )


class CheckpointStore:
    """
    Persists worker identities and tracked resources between runs.

    Files are pretty-printed JSON written atomically: the record goes to
    a temp file in the target directory, is fsynced, then renamed over
    the destination.
    """

    __slots__ = ("_path", "_loop")

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def path(self) -> Path:
        return self._path

    async def save(self, record: CheckpointRecord) -> Path:
        self._loop = asyncio.get_running_loop()
        return await self._loop.run_in_executor(
            None,
            self._save_sync,
            record,
        )

    async def load(self) -> CheckpointRecord:
        self._loop = asyncio.get_running_loop()
        return await self._loop.run_in_executor(
            None,
            self._load_sync,
        )

    def _save_sync(self, record: CheckpointRecord) -> Path:
        directory = self._path.parent
        directory.mkdir(parents=True, exist_ok=True)

        payload = msgspec.json.format(
            msgspec.json.encode(record),
            indent=2,
        )

        temp_fd, temp_path_str = tempfile.mkstemp(
            dir=directory,
            prefix=f".tmp_{self._path.name}_",
        )

        try:
            with os.fdopen(temp_fd, "wb") as file:
                file.write(payload)
                file.flush()
                os.fsync(file.fileno())

            os.replace(temp_path_str, self._path)
            return self._path

        except Exception:
            try:
                os.unlink(temp_path_str)
            except OSError:
                pass
            raise

    def _load_sync(self) -> CheckpointRecord:
        try:
            with open(self._path, "rb") as file:
                data = file.read()

        except OSError as err:
            raise CheckpointError(
                f"Failed to read objects file: {self._path}: {err}"
            ) from err

        try:
            return msgspec.json.decode(data, type=CheckpointRecord)

        except msgspec.DecodeError as err:
            raise CheckpointError(
                f"Failed to parse objects file {self._path}: {err}"
            ) from err
