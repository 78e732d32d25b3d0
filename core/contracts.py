"""Canonical data contracts for the ingestion/digest pipeline."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from utils.text import canonicalize_url


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return value


class RecordKind(str, Enum):
    """Content kind; media items are listed by title only when summarizing."""

    STANDARD = "standard"
    MEDIA = "youtube"


class Record(BaseModel):
    """Normalized content item. ``link`` is the canonical identity (dedup key)."""

    link: str
    title: str
    source: str = ""
    category: str = ""
    kind: RecordKind = RecordKind.STANDARD
    summary: str = ""
    content: str = ""
    image_url: Optional[str] = None
    published_at: datetime = Field(default_factory=_utcnow)
    first_seen_at: Optional[datetime] = None

    @field_validator("link", mode="before")
    @classmethod
    def _canonical_link(cls, value: Any) -> str:
        text = canonicalize_url(str(value or ""))
        if not text:
            raise ValueError("link is required")
        return text

    @field_validator("title", mode="before")
    @classmethod
    def _strip_title(cls, value: Any) -> str:
        return str(value or "").strip()

    @field_validator("published_at", "first_seen_at", mode="after")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)


class RecordQuery(BaseModel):
    """Simple filters over stored records."""

    source: Optional[str] = None
    category: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    keyword: Optional[str] = None
    limit: Optional[int] = None

    @field_validator("source", "category", "keyword", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> Optional[str]:
        text = str(value or "").strip()
        return text or None

    @field_validator("start", "end", mode="after")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)


class Insight(BaseModel):
    """Themed insight entry."""

    headline: str = ""
    explanation: str = ""
    connection: str = ""
    source: str = ""
    url: str = ""


class Signal(BaseModel):
    """Structured competitive signal."""

    competitor: str = ""
    signal: str = ""
    implication: str = ""
    url: str = ""


class WorthReading(BaseModel):
    """Link worth a few minutes of reading."""

    title: str = ""
    reason: str = ""
    url: str = ""


class Artifact(BaseModel):
    """Generated summary object, keyed by category."""

    id: Optional[int] = None
    category: str = "digest"
    tldr: List[str] = Field(default_factory=list)
    top_insights: List[Insight] = Field(default_factory=list)
    signals: List[Signal] = Field(default_factory=list)
    worth_reading: List[WorthReading] = Field(default_factory=list)
    weekly_summary: List[str] = Field(default_factory=list)
    nothing_notable: bool = False
    fallback: bool = False
    article_count: int = 0
    source_count: int = 0
    generated_at: datetime = Field(default_factory=_utcnow)
    date_range_start: Optional[datetime] = None
    date_range_end: Optional[datetime] = None

    @field_validator("generated_at", "date_range_start", "date_range_end", mode="after")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)

    @property
    def is_empty(self) -> bool:
        """No themes or signals: a degraded or nothing-notable generation."""
        return not (self.tldr or self.top_insights or self.signals)


DeliveryState = Literal["sent", "failed"]


class DeliveryStatus(BaseModel):
    """Outcome of one delivery; failures are values, not exceptions."""

    status: DeliveryState
    message_id: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def sent(cls, message_id: Optional[str] = None) -> "DeliveryStatus":
        return cls(status="sent", message_id=message_id)

    @classmethod
    def failed(cls, error: str) -> "DeliveryStatus":
        return cls(status="failed", error=str(error or "unknown error"))


class RunState(BaseModel):
    """Process-lifetime digest run state exposed by the status surface."""

    running: bool = False
    last_run_at: Optional[datetime] = None
    last_article_count: Optional[int] = None
    last_delivery: Optional[DeliveryStatus] = None
    next_run_at: Optional[datetime] = None
    last_error: Optional[str] = None
