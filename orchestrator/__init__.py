"""Digest run orchestration, run state, heartbeat and schedule."""

from .heartbeat import Heartbeat, HttpHeartbeat, NoopHeartbeat, build_heartbeat
from .scheduler import DigestScheduler, next_run_after
from .service import DigestOrchestrator, TriggerResult
from .state import RunStateTracker

__all__ = [
    "DigestOrchestrator",
    "DigestScheduler",
    "Heartbeat",
    "HttpHeartbeat",
    "NoopHeartbeat",
    "RunStateTracker",
    "TriggerResult",
    "build_heartbeat",
    "next_run_after",
]
