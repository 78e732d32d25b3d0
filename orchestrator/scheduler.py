"""In-process schedule: daily digest and weekly sweep in the anchor timezone."""

from __future__ import annotations

import asyncio
from contextlib import suppress
from datetime import datetime, time, timedelta
import logging
from typing import Awaitable, Callable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from utils.clock import ensure_utc, resolve_tz, utcnow


logger = logging.getLogger(__name__)


def _parse_run_at(run_at: str) -> Tuple[int, int]:
    text = str(run_at or "").strip()
    parts = text.split(":")
    if len(parts) != 2:
        return 8, 0
    try:
        hour = max(0, min(23, int(parts[0])))
        minute = max(0, min(59, int(parts[1])))
        return hour, minute
    except ValueError:
        return 8, 0


def next_run_after(now: datetime, run_at: str, tz: ZoneInfo, weekday: Optional[int] = None) -> datetime:
    """
    Next UTC instant strictly after ``now`` whose local wall time is ``run_at``.

    With ``weekday`` (0=Monday) the run is additionally pinned to that day.
    """
    hour, minute = _parse_run_at(run_at)
    local_now = ensure_utc(now).astimezone(tz)
    day = local_now.date()
    for _ in range(9):
        candidate = datetime.combine(day, time(hour, minute), tzinfo=tz)
        if candidate > local_now and (weekday is None or candidate.weekday() == weekday):
            return ensure_utc(candidate)
        day += timedelta(days=1)
    raise ValueError(f"no run time found for {run_at!r} weekday={weekday}")  # pragma: no cover


class DigestScheduler:
    """Two asyncio loops: daily digest at ``run_at`` and a weekly sweep at local midnight."""

    def __init__(
        self,
        orchestrator,
        *,
        run_at: str = "08:00",
        sweep_weekday: int = 6,
        timezone: str = "America/New_York",
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.orchestrator = orchestrator
        self.run_at = run_at
        self.sweep_weekday = sweep_weekday
        self.tz = resolve_tz(timezone)
        self._clock = clock
        self._sleep = sleep
        self._tasks: List[asyncio.Task] = []

    @property
    def started(self) -> bool:
        return bool(self._tasks)

    async def _wait_until(self, when: datetime) -> None:
        delay = (when - self._clock()).total_seconds()
        if delay > 0:
            await self._sleep(delay)

    async def _daily_loop(self) -> None:
        while True:
            when = next_run_after(self._clock(), self.run_at, self.tz)
            self.orchestrator.state.set_next_run(when)
            logger.info("[Scheduler] next digest at %s", when.astimezone(self.tz).isoformat())
            await self._wait_until(when)
            await self.orchestrator.run_digest()

    async def _sweep_loop(self) -> None:
        while True:
            when = next_run_after(self._clock(), "00:00", self.tz, weekday=self.sweep_weekday)
            await self._wait_until(when)
            try:
                await self.orchestrator.sweep()
            except Exception as exc:
                logger.error("[Scheduler] weekly sweep failed: %s", exc)

    def start(self) -> None:
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._daily_loop()),
            asyncio.create_task(self._sweep_loop()),
        ]
        logger.info("[Scheduler] daily digest at %s, weekly sweep on weekday %d (%s)", self.run_at, self.sweep_weekday, self.tz.key)

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task
        self.orchestrator.state.set_next_run(None)
