import asyncio
import contextlib
from typing import AsyncIterator


class RWLock:
    """
    Writer-preferring reader/writer lock for asyncio tasks.

    Many readers may hold the lock at once; a writer holds it alone.
    Pending writers block new readers so a steady stream of readers
    cannot starve the owning worker.
    """

    __slots__ = ("_condition", "_readers", "_writer", "_pending_writers")

    def __init__(self) -> None:
        self._condition = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._pending_writers = 0

    @property
    def readers(self) -> int:
        return self._readers

    @property
    def write_locked(self) -> bool:
        return self._writer

    @contextlib.asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._condition:
            await self._condition.wait_for(
                lambda: not self._writer and self._pending_writers == 0
            )
            self._readers += 1

        try:
            yield

        finally:
            async with self._condition:
                self._readers -= 1
                self._condition.notify_all()

    @contextlib.asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        async with self._condition:
            self._pending_writers += 1
            try:
                await self._condition.wait_for(
                    lambda: not self._writer and self._readers == 0
                )

            finally:
                self._pending_writers -= 1

            self._writer = True

        try:
            yield

        finally:
            async with self._condition:
                self._writer = False
                self._condition.notify_all()
