from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol

_TICK = timedelta(microseconds=1)


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """UTC wall clock that never repeats or goes back within one process.

    Messages sent through the same clock therefore get distinct, increasing
    ``created_at`` values even when the wall clock stalls or is adjusted.
    """

    def __init__(self) -> None:
        self._last: datetime | None = None

    def now(self) -> datetime:
        current = datetime.now(timezone.utc)
        if self._last is not None and current <= self._last:
            current = self._last + _TICK
        self._last = current
        return current
