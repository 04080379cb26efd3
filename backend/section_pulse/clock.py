"""Injectable time source.

Every "now" used by the writer, reconciler and scheduler comes from a Clock so
tests can move time forward without sleeping. Timestamps are handled as naive
tenant-local wall time, which is how the collection rows store them.
"""

from datetime import datetime, timedelta, timezone, tzinfo
from typing import Protocol
from zoneinfo import ZoneInfo


def resolve_timezone(name: str) -> tzinfo:
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def to_local(value: datetime, tz: tzinfo) -> datetime:
    """Convert an aware datetime to naive local time; naive values pass through."""
    if value.tzinfo is None:
        return value
    return value.astimezone(tz).replace(tzinfo=None)


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock in the configured tenant timezone."""

    def __init__(self, tz_name: str = "UTC"):
        self._tz = resolve_timezone(tz_name)

    @property
    def tz(self) -> tzinfo:
        return self._tz

    def now(self) -> datetime:
        return datetime.now(self._tz).replace(tzinfo=None)


class FixedClock:
    """Manually driven clock for tests and replays."""

    def __init__(self, start: datetime):
        self._now = start

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value

    def advance(self, **kwargs: float) -> datetime:
        self._now = self._now + timedelta(**kwargs)
        return self._now
