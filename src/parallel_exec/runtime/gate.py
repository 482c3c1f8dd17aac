"""Counting admission gate bounding how many commands run at once."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator

__all__ = ["ConcurrencyGate"]


class ConcurrencyGate:
    """Counting semaphore with a multi-permit acquire.

    A capacity of zero or less turns the gate into a no-op, which is how
    "unlimited concurrency" is expressed. Otherwise the number of outstanding
    permits never exceeds the capacity.

    Example:
        gate = ConcurrencyGate(4)
        async with gate.slot():
            await controller.run()
    """

    def __init__(self, capacity: int) -> None:
        self.capacity = capacity
        self._available = max(capacity, 0)
        self._cond = asyncio.Condition()

    @property
    def unlimited(self) -> bool:
        return self.capacity <= 0

    @property
    def in_use(self) -> int:
        """Permits currently held (always 0 for an unlimited gate)."""
        if self.unlimited:
            return 0
        return self.capacity - self._available

    async def acquire(self, n: int = 1) -> None:
        """Suspend until ``n`` permits are free, then take them.

        Raises:
            ValueError: If ``n`` is negative or larger than the capacity
        """
        if self.unlimited:
            return
        self._check(n)
        async with self._cond:
            await self._cond.wait_for(lambda: self._available >= n)
            self._available -= n

    async def release(self, n: int = 1) -> None:
        """Return ``n`` permits and wake waiting acquirers.

        Raises:
            ValueError: If more permits are returned than are outstanding
        """
        if self.unlimited:
            return
        self._check(n)
        async with self._cond:
            if self._available + n > self.capacity:
                raise ValueError(
                    f"release({n}) exceeds outstanding permits "
                    f"({self.capacity - self._available})"
                )
            self._available += n
            self._cond.notify_all()

    @contextlib.asynccontextmanager
    async def slot(self, n: int = 1) -> AsyncIterator[None]:
        """Hold ``n`` permits for the duration of the block."""
        await self.acquire(n)
        try:
            yield
        finally:
            await self.release(n)

    def _check(self, n: int) -> None:
        if n < 0:
            raise ValueError(f"permit count must be non-negative, got {n}")
        if n > self.capacity:
            raise ValueError(f"cannot acquire {n} permits from a gate of {self.capacity}")

    def __repr__(self) -> str:
        if self.unlimited:
            return "ConcurrencyGate(unlimited)"
        return f"ConcurrencyGate(capacity={self.capacity}, in_use={self.in_use})"
