import logging
from datetime import date, datetime, time, timedelta
from typing import Iterable, Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from mentorhub.models.availability import WEEKDAYS, WeekdaySlot
from mentorhub.scheduling.clock import Clock
from mentorhub.scheduling.errors import InvalidTimeGranularity, LedgerUnavailable
from mentorhub.scheduling.ledger import BookingLedger
from mentorhub.scheduling.locks import KeyedLockRegistry
from mentorhub.scheduling.policy import SchedulingPolicy, session_start

logger = logging.getLogger(__name__)


def normalize_weekday(weekday: str | int) -> str:
    if isinstance(weekday, int):
        if 0 <= weekday < len(WEEKDAYS):
            return WEEKDAYS[weekday]
        raise ValueError(f'Weekday index must be between 0 and 6, got {weekday}.')

    normalized = weekday.strip().lower()
    if normalized not in WEEKDAYS:
        raise ValueError(f'Unknown weekday: {weekday!r}.')
    return normalized


def weekday_of(session_date: date) -> str:
    return WEEKDAYS[session_date.weekday()]


def format_slot_time(slot_time: time) -> str:
    """Render a start time the way mentors see it, e.g. ``9:30 AM``."""
    hour = slot_time.hour % 12 or 12
    period = 'PM' if slot_time.hour >= 12 else 'AM'
    if slot_time.second:
        return f'{hour}:{slot_time.minute:02d}:{slot_time.second:02d} {period}'
    return f'{hour}:{slot_time.minute:02d} {period}'


class OpenCells:
    """Bookable (date, start time) pairs for one mentor over a date range.

    Nothing is read until iteration starts, and every new iteration reads the
    template and the ledger afresh.
    """

    def __init__(self, calendar: 'SlotCalendar', mentor_id: int, from_date: date, to_date: date) -> None:
        self._calendar = calendar
        self.mentor_id = mentor_id
        self.from_date = from_date
        self.to_date = to_date

    def __iter__(self) -> Iterator[tuple[date, time]]:
        return self._calendar._iter_open_cells(self.mentor_id, self.from_date, self.to_date)


class SlotCalendar:
    """Weekly availability templates, one set of start times per mentor and weekday."""

    def __init__(
        self,
        session_factory: sessionmaker,
        ledger: BookingLedger,
        clock: Clock,
        policy: SchedulingPolicy,
    ) -> None:
        self._session_factory = session_factory
        self._ledger = ledger
        self._clock = clock
        self._policy = policy
        self._template_locks = KeyedLockRegistry()

    def validate_slots(self, slots: Iterable[time]) -> set[time]:
        validated: set[time] = set()
        for slot_time in slots:
            if not self._policy.is_on_grid(slot_time):
                raise InvalidTimeGranularity(
                    f'{format_slot_time(slot_time)} is not on a '
                    f'{self._policy.slot_granularity_minutes}-minute boundary.'
                )
            if not self._policy.is_within_hours(slot_time):
                raise InvalidTimeGranularity(
                    f'Availability must start between {format_slot_time(self._policy.day_open_time)} '
                    f'and {format_slot_time(self._policy.last_start_time)}.'
                )
            validated.add(slot_time)
        return validated

    def set_availability(self, mentor_id: int, weekday: str | int, slots: Iterable[time]) -> list[time]:
        """Replace the mentor's start times for one weekday.

        Returns the start times that were removed. Requests already made for
        removed slots are left untouched.
        """
        weekday = normalize_weekday(weekday)
        requested = self.validate_slots(slots)

        with self._template_locks.hold((mentor_id, weekday), self._policy.lock_timeout_seconds):
            db = self._session_factory()
            try:
                existing = db.query(WeekdaySlot).filter(
                    WeekdaySlot.mentor_id == mentor_id,
                    WeekdaySlot.weekday == weekday,
                ).all()
                existing_times = {slot.start_time for slot in existing}

                removed = sorted(existing_times - requested)
                for slot in existing:
                    if slot.start_time not in requested:
                        db.delete(slot)

                for slot_time in sorted(requested - existing_times):
                    db.add(
                        WeekdaySlot(
                            mentor_id=mentor_id,
                            weekday=weekday,
                            start_time=slot_time,
                            duration_minutes=self._policy.slot_granularity_minutes,
                        )
                    )

                db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                logger.exception('Failed to save availability for mentor %s', mentor_id)
                raise LedgerUnavailable('Availability could not be saved. Please try again shortly.') from exc
            finally:
                db.close()

        logger.info(
            'Mentor %s %s availability set to %d slot(s), %d removed',
            mentor_id,
            weekday,
            len(requested),
            len(removed),
        )
        return removed

    def get_availability(self, mentor_id: int) -> dict[str, list[time]]:
        db = self._session_factory()
        try:
            rows = db.query(WeekdaySlot.weekday, WeekdaySlot.start_time).filter(
                WeekdaySlot.mentor_id == mentor_id,
            ).all()
        except SQLAlchemyError as exc:
            logger.exception('Failed to load availability for mentor %s', mentor_id)
            raise LedgerUnavailable('Availability could not be loaded. Please try again shortly.') from exc
        finally:
            db.close()

        template: dict[str, list[time]] = {weekday: [] for weekday in WEEKDAYS}
        for weekday, start_time in rows:
            template[weekday].append(start_time)
        for start_times in template.values():
            start_times.sort()
        return template

    def copy_availability(self, mentor_id: int, source_weekday: str | int, target_weekday: str | int) -> list[time]:
        source_weekday = normalize_weekday(source_weekday)
        template = self.get_availability(mentor_id)
        return self.set_availability(mentor_id, target_weekday, template[source_weekday])

    def is_available(self, mentor_id: int, weekday: str | int, start_time: time) -> bool:
        weekday = normalize_weekday(weekday)
        db = self._session_factory()
        try:
            match = db.query(WeekdaySlot.id).filter(
                WeekdaySlot.mentor_id == mentor_id,
                WeekdaySlot.weekday == weekday,
                WeekdaySlot.start_time == start_time,
            ).first()
        except SQLAlchemyError as exc:
            logger.exception('Failed to check availability for mentor %s', mentor_id)
            raise LedgerUnavailable('Availability could not be loaded. Please try again shortly.') from exc
        finally:
            db.close()
        return match is not None

    def list_available(self, mentor_id: int, from_date: date, to_date: date) -> OpenCells:
        return OpenCells(self, mentor_id, from_date, to_date)

    def _iter_open_cells(self, mentor_id: int, from_date: date, to_date: date) -> Iterator[tuple[date, time]]:
        if to_date < from_date:
            return

        template = self.get_availability(mentor_id)
        occupied = self._ledger.occupied_cells(mentor_id, from_date, to_date)
        now: datetime = self._clock.now()

        current_day = from_date
        while current_day <= to_date:
            for start_time in template[weekday_of(current_day)]:
                if session_start(current_day, start_time) <= now:
                    continue
                if (current_day, start_time) in occupied:
                    continue
                yield current_day, start_time
            current_day += timedelta(days=1)
