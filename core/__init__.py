"""Core contracts and shared types for the digest pipeline."""

from .contracts import (
    Artifact,
    DeliveryStatus,
    Insight,
    Record,
    RecordKind,
    RecordQuery,
    RunState,
    Signal,
    WorthReading,
)

__all__ = [
    "Artifact",
    "DeliveryStatus",
    "Insight",
    "Record",
    "RecordKind",
    "RecordQuery",
    "RunState",
    "Signal",
    "WorthReading",
]
