"""Process-lifetime run state, mutated only by the orchestrator."""

from __future__ import annotations

from datetime import datetime
from threading import Lock
from typing import Any, Dict, Optional

from core import DeliveryStatus, RunState


class RunStateTracker:
    """Thread-safe holder for RunState; readers get copies."""

    def __init__(self) -> None:
        self._state = RunState()
        self._active = 0
        self._lock = Lock()

    def snapshot(self) -> RunState:
        with self._lock:
            return self._state.model_copy(deep=True)

    def as_dict(self) -> Dict[str, Any]:
        return self.snapshot().model_dump(mode="json")

    def begin(self) -> None:
        with self._lock:
            self._active += 1
            self._state = self._state.model_copy(update={"running": True})

    def finish(
        self,
        *,
        finished_at: datetime,
        article_count: Optional[int],
        delivery: Optional[DeliveryStatus],
        error: Optional[str],
    ) -> None:
        """Close one run. A run that never got as far as counting or delivering keeps the previous values."""
        update: Dict[str, Any] = {"last_run_at": finished_at, "last_error": error}
        if article_count is not None:
            update["last_article_count"] = article_count
        if delivery is not None:
            update["last_delivery"] = delivery
        with self._lock:
            self._active = max(0, self._active - 1)
            update["running"] = self._active > 0
            self._state = self._state.model_copy(update=update)

    def set_next_run(self, next_run_at: Optional[datetime]) -> None:
        with self._lock:
            self._state = self._state.model_copy(update={"next_run_at": next_run_at})
