"""Clock — the single source of "now" for every engine component.

Components receive a clock matching the protocol:

    def now(self) -> datetime: ...

Two implementations are provided:

    SystemClock  — wall-clock UTC time.
    ManualClock  — a settable clock. Tests and the demo seeder use it to
                   simulate cooldowns and day gaps without sleeping.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock:
    """A clock that only moves when told to.

    Naive datetimes are taken to be UTC so comparisons with stored
    timestamps never mix aware and naive values.
    """

    def __init__(self, start: datetime | None = None) -> None:
        self._now = _aware(start or datetime.now(timezone.utc))

    def now(self) -> datetime:
        return self._now

    def set(self, when: datetime) -> None:
        self._now = _aware(when)

    def advance(self, delta: timedelta | None = None, **kwargs: float) -> datetime:
        """Move forward by `delta` or by timedelta keyword arguments."""
        self._now += delta if delta is not None else timedelta(**kwargs)
        return self._now


def _aware(when: datetime) -> datetime:
    if when.tzinfo is None:
        return when.replace(tzinfo=timezone.utc)
    return when
