"""Time sources for the strategy core.

Scoring never reads the system clock directly.  Engines receive a clock
object and ask it for ``now()`` so that active-hour boosts, the daily quota
reset and the rebalance notification throttle can be frozen in tests.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional, Protocol


class Clock(Protocol):
    """Anything exposing a naive local ``now()``."""

    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall-clock time in the host's local timezone."""

    def now(self) -> datetime:
        return datetime.now()


class FrozenClock:
    """A manually driven clock for deterministic replays."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self._now = start or datetime(2024, 1, 1, 12, 0, 0)

    def now(self) -> datetime:
        return self._now

    def set(self, moment: datetime) -> None:
        self._now = moment

    def advance(self, **kwargs: float) -> datetime:
        """Move forward by a :class:`datetime.timedelta` built from ``kwargs``."""

        self._now = self._now + timedelta(**kwargs)
        return self._now


def epoch_seconds(clock: Clock) -> float:
    return clock.now().timestamp()


__all__ = ["Clock", "FrozenClock", "SystemClock", "epoch_seconds"]
