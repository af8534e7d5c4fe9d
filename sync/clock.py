"""Clocks used to timestamp sync runs."""
from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Clock pinned to a given instant, advanced manually."""

    def __init__(self, instant: datetime):
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self.instant = instant

    def now(self) -> datetime:
        return self.instant

    def advance(self, **kwargs) -> datetime:
        self.instant = self.instant + timedelta(**kwargs)
        return self.instant


def isoformat_utc(instant: datetime) -> str:
    """Fixed-width UTC timestamp so stored values compare lexicographically."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.%fZ')
