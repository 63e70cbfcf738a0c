"""
Global admission control for in-flight remote operations.

The gate bounds how many submissions are outstanding across every
worker, so worker count and admission limit tune independently.
Waiting on the gate is the primary backpressure point of the pool.
"""

import asyncio

from churnbench.errors import GateClosed


class Permit:
    __slots__ = ("_gate", "_released")

    def __init__(self, gate: "ConcurrencyGate") -> None:
        self._gate = gate
        self._released = False

    def release(self) -> None:
        if not self._released:
            self._released = True
            self._gate._release()

    async def __aenter__(self) -> "Permit":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()


class ConcurrencyGate:
    """
    Bounded-concurrency gate handing out scoped permits.

    Example usage:
        gate = ConcurrencyGate(max_inflight=100)

        async with await gate.acquire():
            await client.submit_batch(...)
    """

    def __init__(self, max_inflight: int) -> None:
        if max_inflight < 1:
            raise ValueError("max_inflight must be at least 1")

        self._capacity = max_inflight
        self._semaphore = asyncio.Semaphore(max_inflight)
        self._in_flight = 0
        self._closed = False
        self._waiters: set[asyncio.Future] = set()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def closed(self) -> bool:
        return self._closed

    async def acquire(self) -> Permit:
        if self._closed:
            raise GateClosed("Admission gate is closed")

        waiter = asyncio.ensure_future(self._semaphore.acquire())
        self._waiters.add(waiter)

        try:
            await waiter

        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                self._semaphore.release()

            if self._closed:
                raise GateClosed("Admission gate closed while waiting") from None

            raise

        finally:
            self._waiters.discard(waiter)

        if self._closed:
            self._semaphore.release()
            raise GateClosed("Admission gate closed while waiting")

        self._in_flight += 1
        return Permit(self)

    def _release(self) -> None:
        self._in_flight -= 1
        self._semaphore.release()

    def close(self) -> None:
        self._closed = True

        for waiter in list(self._waiters):
            waiter.cancel()
