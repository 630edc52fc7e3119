from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from mentorhub.core import config


@dataclass(frozen=True)
class SchedulingPolicy:
    slot_granularity_minutes: int = 30
    day_open_time: time = time(9, 0)
    last_start_time: time = time(17, 30)
    cancellation_cutoff: timedelta = timedelta(hours=24)
    booking_horizon_days: int = 7
    lock_timeout_seconds: float = 5.0
    max_notes_length: int = 600

    @classmethod
    def from_config(cls) -> 'SchedulingPolicy':
        return cls(
            slot_granularity_minutes=config.SLOT_GRANULARITY_MINUTES,
            day_open_time=config.DAY_OPEN_TIME,
            last_start_time=config.LAST_START_TIME,
            cancellation_cutoff=timedelta(hours=config.CANCELLATION_CUTOFF_HOURS),
            booking_horizon_days=config.BOOKING_HORIZON_DAYS,
            lock_timeout_seconds=float(config.LEDGER_LOCK_TIMEOUT_SECONDS),
            max_notes_length=config.MAX_SESSION_NOTES_LENGTH,
        )

    def is_on_grid(self, start_time: time) -> bool:
        if start_time.second or start_time.microsecond:
            return False
        minutes = start_time.hour * 60 + start_time.minute
        return minutes % self.slot_granularity_minutes == 0

    def is_within_hours(self, start_time: time) -> bool:
        return self.day_open_time <= start_time <= self.last_start_time

    def slot_grid(self) -> list[time]:
        """Every start time a mentor may offer, in order."""
        slots: list[time] = []
        granularity = self.slot_granularity_minutes
        current = datetime.combine(date.min, self.day_open_time).replace(second=0, microsecond=0)
        last = datetime.combine(date.min, self.last_start_time)

        if current.minute % granularity != 0:
            current += timedelta(minutes=granularity - (current.minute % granularity))

        while current <= last:
            slots.append(current.time())
            current += timedelta(minutes=granularity)

        return slots

    def cancellation_deadline(self, session_start: datetime) -> datetime:
        return session_start - self.cancellation_cutoff


def session_start(session_date: date, start_time: time) -> datetime:
    return datetime.combine(session_date, start_time)


def session_end(session_date: date, start_time: time, duration_minutes: int) -> datetime:
    return session_start(session_date, start_time) + timedelta(minutes=duration_minutes)
