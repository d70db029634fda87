"""Clock adapters."""

from datetime import datetime, timedelta, timezone

from memora.domain.srs.ports import Clock
from memora.domain.srs.values import ensure_utc


class SystemClock(Clock):
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """
    Manually driven clock for tests and simulations.

    Naive datetimes are interpreted as UTC.
    """

    def __init__(self, initial: datetime):
        self._current = ensure_utc(initial)

    def now(self) -> datetime:
        return self._current

    def set(self, when: datetime) -> None:
        self._current = ensure_utc(when)

    def advance(self, **delta: float) -> datetime:
        """Move forward by ``timedelta(**delta)`` and return the new time."""
        self._current = self._current + timedelta(**delta)
        return self._current
