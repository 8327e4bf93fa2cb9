from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        """Return the current UTC time."""
        ...


class SystemClock:
    """Adapter clock (wall time, UTC)."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FakeClock:
    """Deterministic test clock."""

    def __init__(self, *, start: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc)) -> None:
        self._t = start

    def now(self) -> datetime:
        return self._t

    def advance(self, **delta: float) -> None:
        step = timedelta(**delta)
        if step < timedelta(0):
            raise ValueError("clock cannot move backwards")
        self._t += step

    def set(self, t: datetime) -> None:
        self._t = t


def parse_iso(value: str) -> datetime:
    """ISO-8601 timestamp as an aware UTC datetime; naive values are taken as UTC."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
