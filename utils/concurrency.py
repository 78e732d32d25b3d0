"""Bounded-parallelism gate for independent async operations."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Iterable, List, Optional, TypeVar


T = TypeVar("T")


@dataclass
class Settled(Generic[T]):
    """Outcome of one admitted operation."""

    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ConcurrencyLimiter:
    """Admit at most ``width`` operations at a time, in submission order."""

    def __init__(self, width: int = 5) -> None:
        self.width = max(1, int(width))
        self._semaphore = asyncio.Semaphore(self.width)
        self._in_flight = 0
        self.peak_in_flight = 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Wait for a free slot, then run ``operation``. Errors propagate to this caller only."""
        async with self._semaphore:
            self._in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self._in_flight)
            try:
                return await operation()
            finally:
                self._in_flight -= 1

    async def _settle(self, operation: Callable[[], Awaitable[T]]) -> Settled[T]:
        try:
            return Settled(value=await self.run(operation))
        except Exception as exc:
            return Settled(error=exc)

    async def settle_all(self, operations: Iterable[Callable[[], Awaitable[T]]]) -> List[Settled[T]]:
        """Run every operation through the gate; one result per operation, same order."""
        tasks = [asyncio.ensure_future(self._settle(op)) for op in operations]
        if not tasks:
            return []
        return list(await asyncio.gather(*tasks))
