"""
Purpose: Time handling for the core.
What it does:
- Every core function takes an explicit `now`; nothing reads the wall clock.
- Service-layer classes get a Clock injected (SystemClock in production,
  FixedClock in tests and simulations).
- All timestamps must be timezone-aware instants.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


def ensure_aware(value: Optional[datetime], name: str = "timestamp") -> Optional[datetime]:
    """
    Rejects naive datetimes. None passes through so optional fields can use it.
    """
    if value is None:
        return None
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        raise ValueError(f"{name} must be timezone-aware, got naive {value!r}")
    return value


class Clock:
    """Interface for anything that can tell the current instant."""

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """
    A clock that only moves when told to. Used by tests and the simulation
    script to replay scenarios deterministically.
    """

    def __init__(self, start: datetime):
        self._now = ensure_aware(start, "start")

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs) -> datetime:
        self._now = self._now + timedelta(**kwargs)
        return self._now

    def set(self, value: datetime) -> None:
        self._now = ensure_aware(value, "value")
