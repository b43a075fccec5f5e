"""
mypts.clock — Injectable Wall Clock
=====================================

Cooldowns, daily caps and milestone timestamps all read "now" through a
:class:`Clock` so tests can pin time instead of sleeping.  Day
boundaries are UTC midnight.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Real UTC time."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class FixedClock:
    """A clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self._now = as_utc(start)

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs: float) -> datetime:
        """Move forward by ``timedelta(**kwargs)`` and return the new time."""
        self._now = self._now + timedelta(**kwargs)
        return self._now

    def set(self, moment: datetime) -> None:
        self._now = as_utc(moment)


def as_utc(moment: datetime) -> datetime:
    """Treat naive datetimes (SQLite round-trips) as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


def start_of_day(moment: datetime) -> datetime:
    """UTC midnight of the day containing *moment*."""
    return as_utc(moment).replace(hour=0, minute=0, second=0, microsecond=0)
