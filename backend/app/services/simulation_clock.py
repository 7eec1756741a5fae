"""
Clock helpers.

Real timestamps drive scheduling and gating. The simulated clock maps real
time onto an accelerated calendar (one simulated day every
``simulation_day_seconds`` of real time) and is only ever written to the
``*_simulated`` columns used for replay.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from backend.app.core.config import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from databases without tz support."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SimulationClock:
    """Accelerated calendar anchored at process start."""

    def __init__(
        self,
        start: datetime = None,
        day_seconds: int = None,
        anchor: datetime = None,
    ):
        self.start = as_utc(start or settings.simulation_start)
        self.day_seconds = day_seconds or settings.simulation_day_seconds
        self.anchor = as_utc(anchor) or utcnow()

    def to_simulated(self, real: datetime) -> datetime:
        """Map a real timestamp onto the simulated calendar."""
        elapsed = (as_utc(real) - self.anchor).total_seconds()
        simulated_days = elapsed / self.day_seconds
        return self.start + timedelta(days=simulated_days)

    def now(self) -> datetime:
        return self.to_simulated(utcnow())


def next_collection_day(moment: datetime) -> datetime:
    """Collection is scheduled for midnight UTC of the following day."""
    moment = as_utc(moment)
    return (moment + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)


simulation_clock = SimulationClock()
