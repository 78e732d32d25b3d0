"""Anchor-timezone calendar helpers.

Every "day" comparison in the pipeline goes through these helpers so a UTC
midnight crossing never splits one civil day in two.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .exceptions import ConfigurationError


DEFAULT_TIMEZONE = "America/New_York"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def resolve_tz(name: Optional[str]) -> ZoneInfo:
    key = str(name or "").strip() or DEFAULT_TIMEZONE
    try:
        return ZoneInfo(key)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigurationError(f"unknown timezone: {key}") from exc


def ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Fixed-width ISO-8601 UTC text; lexicographic order equals time order."""
    if value is None:
        return None
    return ensure_utc(value).isoformat(timespec="seconds")


def from_iso(value: Optional[str]) -> Optional[datetime]:
    text = str(value or "").strip()
    if not text:
        return None
    try:
        return ensure_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        return None


def civil_date(value: datetime, tz: ZoneInfo) -> date:
    return ensure_utc(value).astimezone(tz).date()


def start_of_civil_day(now: datetime, tz: ZoneInfo, *, days_back: int = 0) -> datetime:
    """UTC instant of local midnight ``days_back`` civil days before ``now``'s civil day."""
    day = civil_date(now, tz) - timedelta(days=max(0, int(days_back)))
    local_midnight = datetime.combine(day, time.min, tzinfo=tz)
    return local_midnight.astimezone(timezone.utc)


