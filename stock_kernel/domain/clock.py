"""
Clock -- Deterministic time abstraction.

Responsibility:
    Provides an injectable clock interface so that ledger, engine, and
    service code never call ``datetime.now()`` or ``date.today()`` directly.
    Expiry classification, future-date checks, trend windows and the
    disposal countdown all read time from here.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O (except SystemClock
    and SimulatedClock, the sanctioned I/O boundary for wall time).

Invariants enforced:
    - "Today" is always derived from one Clock instance per service graph,
      so every expiry comparison in a request uses the same calendar day.

Failure modes:
    - DeterministicClock / SimulatedClock reject naive datetimes.

Audit relevance:
    Disposal timestamps and usage ``recorded_at`` values are traceable to
    an injected Clock.  Operators can pin a simulated date so that expiry
    reports are reproducible.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, time, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Contract:
        All services that need current time must receive a Clock instance
        via constructor injection.

    Guarantees:
        - ``now()`` returns a timezone-aware ``datetime``.
        - ``now_utc()`` returns a UTC-normalized ``datetime``.
        - ``today()`` is the calendar date of ``now()``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...

    def now_utc(self) -> datetime:
        """Get the current UTC time."""
        return self.now().astimezone(timezone.utc)

    def today(self) -> date:
        """Calendar day used for every date-only comparison."""
        return self.now().date()


class SystemClock(Clock):
    """
    Production clock that returns actual system time.

    Non-goals:
        Not suitable for deterministic replay or testing.
    """

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def _require_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        raise ValueError(f"Clock times must be timezone-aware, got {value!r}")
    return value


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value on repeated calls until
          ``advance()`` or ``set_time()`` is called.
        - ``tick()`` advances by exactly 1 second and returns the new time.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = _require_aware(
            fixed_time or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        )
        self._advance_seconds: float = 0

    def now(self) -> datetime:
        return self._fixed_time + timedelta(seconds=self._advance_seconds)

    def set_time(self, value: datetime) -> None:
        """Set the clock to a specific time."""
        self._fixed_time = _require_aware(value)
        self._advance_seconds = 0

    def set_date(self, day: date) -> None:
        """Move to noon UTC of ``day``."""
        self.set_time(datetime.combine(day, time(12, 0), tzinfo=timezone.utc))

    def advance(self, seconds: float = 1) -> None:
        """Advance the clock by the specified seconds."""
        self._advance_seconds += seconds

    def tick(self) -> datetime:
        """Advance by 1 second and return new time."""
        self.advance(1)
        return self.now()


class SimulatedClock(Clock):
    """
    Operator-facing clock pinned to a simulated calendar date.

    Contract:
        ``now()`` is the base clock shifted by a fixed whole-day offset that
        lands the base clock's current date on ``simulated_date``.  Lets
        staff preview expiry reports "as of" another day without touching
        ledger data.

    Guarantees:
        - ``today()`` always equals ``simulated_date``.
        - ``now()`` advances exactly as the base clock does, across
          midnight included.
    """

    def __init__(self, simulated_date: date, base: Clock | None = None):
        self.simulated_date = simulated_date
        self._base = base or SystemClock()
        self._offset = simulated_date - self._base.now().date()

    def now(self) -> datetime:
        return self._base.now() + self._offset

    def today(self) -> date:
        return self.simulated_date
