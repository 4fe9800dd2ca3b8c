"""TTL cache entries with a clock-independent staleness check."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CacheEntry(BaseModel, Generic[T]):
    """A cached value and the moment it was captured."""

    value: T
    captured_at: datetime = Field(default_factory=utc_now)

    def age_seconds(self, now: datetime) -> float:
        return (now - self.captured_at).total_seconds()


def is_stale(
    entry: Optional[CacheEntry], max_age_seconds: float, now: datetime
) -> bool:
    """Return ``True`` when ``entry`` is missing or older than ``max_age_seconds``."""
    if entry is None:
        return True
    return entry.age_seconds(now) > max_age_seconds


def is_timestamp_stale(
    captured_at: Optional[datetime], max_age_seconds: float, now: datetime
) -> bool:
    if captured_at is None:
        return True
    return (now - captured_at).total_seconds() > max_age_seconds
