"""Liveness heartbeat scoped to one digest run."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, suppress
import logging
from typing import AsyncIterator, Optional, Protocol

import httpx


logger = logging.getLogger(__name__)


class Heartbeat(Protocol):
    def running(self):
        """Async context manager; beats while the block is active."""
        ...


class NoopHeartbeat:
    """For hosts that never suspend an idle process."""

    @asynccontextmanager
    async def running(self) -> AsyncIterator["NoopHeartbeat"]:
        yield self


class HttpHeartbeat:
    """
    Periodically GETs ``url`` while a run is active.

    The loop starts on entry and is cancelled on every exit path; a failed
    beat is logged and the loop keeps going.
    """

    def __init__(
        self,
        url: str,
        interval: float = 240.0,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url
        self.interval = max(0.01, float(interval))
        self.timeout = timeout
        self._transport = transport
        self.beats = 0
        self.active = 0

    async def _beat(self) -> None:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            await client.get(self.url)

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self._beat()
                self.beats += 1
                logger.debug("[Heartbeat] beat %d -> %s", self.beats, self.url)
            except httpx.HTTPError as exc:
                logger.warning("[Heartbeat] beat failed: %s", exc)

    @asynccontextmanager
    async def running(self) -> AsyncIterator["HttpHeartbeat"]:
        task = asyncio.create_task(self._loop())
        self.active += 1
        try:
            yield self
        finally:
            self.active -= 1
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task


def build_heartbeat(url: Optional[str], interval: float = 240.0) -> Heartbeat:
    if url:
        return HttpHeartbeat(url, interval=interval)
    return NoopHeartbeat()
