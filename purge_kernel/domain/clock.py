"""
Injectable time source for purge jobs.

Job start and end stamps, the soft-delete ``deleted_at`` value and the
status-record timestamps are all read from one Clock passed down from the
orchestrator, so a test can pin them with DeterministicClock.
"""

from datetime import datetime, timedelta, timezone
from typing import Protocol, runtime_checkable

_DEFAULT_START = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


@runtime_checkable
class Clock(Protocol):
    """Anything with a ``now()`` returning an aware UTC datetime."""

    def now(self) -> datetime: ...


class SystemClock:
    """Wall-clock UTC time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock:
    """
    Clock that only moves when told to.

    ``now()`` is stable across calls; nothing in the job code advances it,
    so every stamp taken during one test step is identical.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = fixed_time or _DEFAULT_START

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = time

    def advance(self, seconds: float | timedelta = 1) -> None:
        step = seconds if isinstance(seconds, timedelta) else timedelta(seconds=seconds)
        if step < timedelta(0):
            raise ValueError(f"Cannot move clock backwards by {step}")
        self._current += step

    def tick(self) -> datetime:
        """Move forward one second and return the new time."""
        self.advance(1)
        return self._current
