"""Booking state machine and the single entry point for mentors and mentees.

    pending --approve--> confirmed --(session over)--> completed
    pending --decline--> declined
    pending | confirmed --cancel--> cancelled

declined, cancelled and completed are terminal.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, time, timedelta
from typing import Iterable, Protocol

from sqlalchemy.orm import sessionmaker

from mentorhub.models.booking import (
    SESSION_DURATIONS,
    SESSION_TYPES,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_CONFIRMED,
    STATUS_DECLINED,
    STATUS_PENDING,
    BookingRequest,
)
from mentorhub.models.availability import WEEKDAYS
from mentorhub.models.user import ROLE_MENTOR
from mentorhub.scheduling.clock import Clock, SystemClock
from mentorhub.scheduling.errors import (
    CancellationWindowClosed,
    InvalidSessionRequest,
    InvalidTransition,
    SlotConflict,
    SlotUnavailable,
    Unauthorized,
)
from mentorhub.scheduling.ledger import BookingLedger
from mentorhub.scheduling.notifications import LoggingNotificationSink, NotificationSink, TransitionEvent
from mentorhub.scheduling.policy import SchedulingPolicy, session_end, session_start
from mentorhub.scheduling.slot_calendar import (
    OpenCells,
    SlotCalendar,
    format_slot_time,
    normalize_weekday,
    weekday_of,
)

logger = logging.getLogger(__name__)

SESSION_VIEWS = {
    'upcoming': (STATUS_CONFIRMED,),
    'pending': (STATUS_PENDING,),
    'past': (STATUS_COMPLETED, STATUS_CANCELLED, STATUS_DECLINED),
}


class IdentityProvider(Protocol):
    def role_of(self, user_id: int) -> str | None: ...


@dataclass
class AvailabilityChange:
    weekday: str
    slots: list[time]
    removed: list[time] = field(default_factory=list)
    orphaned_request_ids: list[int] = field(default_factory=list)


class BookingArbiter:
    def __init__(
        self,
        session_factory: sessionmaker,
        identity: IdentityProvider,
        *,
        clock: Clock | None = None,
        notifier: NotificationSink | None = None,
        policy: SchedulingPolicy | None = None,
    ) -> None:
        self.policy = policy or SchedulingPolicy.from_config()
        self.clock = clock or SystemClock()
        self.identity = identity
        self.notifier = notifier or LoggingNotificationSink()
        self.ledger = BookingLedger(session_factory, lock_timeout_seconds=self.policy.lock_timeout_seconds)
        self.calendar = SlotCalendar(session_factory, self.ledger, self.clock, self.policy)

    # Availability

    def set_availability(self, mentor_id: int, weekday: str | int, slots: Iterable[time]) -> AvailabilityChange:
        weekday = normalize_weekday(weekday)
        removed = self.calendar.set_availability(mentor_id, weekday, slots)
        return self._describe_change(mentor_id, weekday, removed)

    def copy_availability(
        self,
        mentor_id: int,
        source_weekday: str | int,
        target_weekday: str | int,
    ) -> AvailabilityChange:
        target_weekday = normalize_weekday(target_weekday)
        removed = self.calendar.copy_availability(mentor_id, source_weekday, target_weekday)
        return self._describe_change(mentor_id, target_weekday, removed)

    def _describe_change(self, mentor_id: int, weekday: str, removed: list[time]) -> AvailabilityChange:
        change = AvailabilityChange(
            weekday=weekday,
            slots=self.calendar.get_availability(mentor_id)[weekday],
            removed=removed,
        )
        if not removed:
            return change

        orphaned = self.ledger.active_on_slots(
            mentor_id,
            normalize_weekday_index(weekday),
            removed,
            on_or_after=self.clock.now().date(),
        )
        change.orphaned_request_ids = [booking.id for booking in orphaned]
        if orphaned:
            logger.warning(
                'Mentor %s removed %s slot(s) that still carry %d active request(s): %s',
                mentor_id,
                weekday,
                len(orphaned),
                change.orphaned_request_ids,
            )
        return change

    def get_availability(self, mentor_id: int) -> dict[str, list[time]]:
        return self.calendar.get_availability(mentor_id)

    def list_available(self, mentor_id: int, from_date: date, to_date: date) -> OpenCells:
        return self.calendar.list_available(mentor_id, from_date, to_date)

    # Requests

    def request_session(
        self,
        mentor_id: int,
        mentee_id: int,
        session_date: date,
        start_time: time,
        duration_minutes: int,
        session_type: str,
        notes: str | None = None,
    ) -> int:
        session_type = self._validate_session_type(session_type)
        notes = self._validate_notes(notes)
        if duration_minutes not in SESSION_DURATIONS:
            allowed = ', '.join(str(minutes) for minutes in SESSION_DURATIONS)
            raise InvalidSessionRequest(f'Sessions can be {allowed} minutes long.')
        if mentor_id == mentee_id:
            raise InvalidSessionRequest('You cannot book a session with yourself.')

        # Start times are wall-clock times in the mentor's calendar.
        start_time = start_time.replace(tzinfo=None)
        now = self.clock.now()
        start = session_start(session_date, start_time)
        if start <= now:
            raise SlotUnavailable('Sessions must be scheduled in the future.')
        if session_date > now.date() + timedelta(days=self.policy.booking_horizon_days - 1):
            raise SlotUnavailable(
                f'Sessions can only be booked within the next {self.policy.booking_horizon_days} days.'
            )
        if not self.calendar.is_available(mentor_id, weekday_of(session_date), start_time):
            raise SlotUnavailable(
                f'This mentor is not available on {weekday_of(session_date).capitalize()} '
                f'at {format_slot_time(start_time)}. Please pick another time.'
            )

        booking = BookingRequest(
            mentor_id=mentor_id,
            mentee_id=mentee_id,
            date=session_date,
            start_time=start_time,
            duration_minutes=duration_minutes,
            session_type=session_type,
            notes=notes,
            status=STATUS_PENDING,
            created_at=now,
            updated_at=now,
        )
        # Only the start cell is held. A 45 or 60 minute session does not
        # block the cells after it, so the mentor's later starts stay bookable.
        if not self.ledger.try_reserve(booking):
            raise SlotConflict('This time was just requested by someone else. Please pick a different time.')

        logger.info(
            'Session request %s created: mentor=%s mentee=%s %s %s',
            booking.id,
            mentor_id,
            mentee_id,
            session_date.isoformat(),
            start_time.strftime('%H:%M'),
        )
        self._emit(booking, previous_status=None, actor_id=mentee_id)
        return booking.id

    def approve(self, request_id: int, caller_id: int) -> BookingRequest:
        booking = self.ledger.get(request_id)
        self._require_mentor(booking, caller_id, 'approve')
        return self._transition(booking, STATUS_CONFIRMED, {STATUS_PENDING}, 'approved', caller_id)

    def decline(self, request_id: int, caller_id: int) -> BookingRequest:
        booking = self.ledger.get(request_id)
        self._require_mentor(booking, caller_id, 'decline')
        return self._transition(booking, STATUS_DECLINED, {STATUS_PENDING}, 'declined', caller_id)

    def cancel(self, request_id: int, caller_id: int) -> BookingRequest:
        booking = self._settle(self.ledger.get(request_id))
        if caller_id not in (booking.mentor_id, booking.mentee_id):
            raise Unauthorized('Only the mentor or mentee on this session can cancel it.')

        allowed_from = {STATUS_PENDING, STATUS_CONFIRMED}
        if booking.status not in allowed_from:
            self._reject_transition(booking, booking.status, 'cancelled')

        deadline = self.policy.cancellation_deadline(session_start(booking.date, booking.start_time))
        if self.clock.now() > deadline:
            cutoff_hours = int(self.policy.cancellation_cutoff.total_seconds() // 3600)
            raise CancellationWindowClosed(
                f'Sessions can only be cancelled at least {cutoff_hours} hours before they start.'
            )

        return self._transition(booking, STATUS_CANCELLED, allowed_from, 'cancelled', caller_id)

    def get_status(self, request_id: int) -> str:
        return self.get_request(request_id).status

    def get_request(self, request_id: int) -> BookingRequest:
        return self._settle(self.ledger.get(request_id))

    def list_sessions(self, user_id: int, view: str = 'upcoming', session_type: str | None = None) -> list[BookingRequest]:
        if view not in SESSION_VIEWS:
            raise InvalidSessionRequest(f'Unknown session view: {view}.')
        if session_type is not None:
            session_type = self._validate_session_type(session_type)

        self.complete_elapsed_sessions()
        return self.ledger.list_for_user(user_id, statuses=SESSION_VIEWS[view], session_type=session_type)

    def complete_elapsed_sessions(self) -> list[int]:
        now = self.clock.now()
        completed: list[int] = []
        for booking in self.ledger.elapsed_confirmed(now):
            try:
                self._transition(booking, STATUS_COMPLETED, {STATUS_CONFIRMED}, 'completed', None)
            except InvalidTransition:
                continue
            completed.append(booking.id)
        return completed

    # Internals

    def _settle(self, booking: BookingRequest) -> BookingRequest:
        if booking.status != STATUS_CONFIRMED:
            return booking
        if session_end(booking.date, booking.start_time, booking.duration_minutes) > self.clock.now():
            return booking

        try:
            return self._transition(booking, STATUS_COMPLETED, {STATUS_CONFIRMED}, 'completed', None)
        except InvalidTransition:
            return self.ledger.get(booking.id)

    def _require_mentor(self, booking: BookingRequest, caller_id: int, verb: str) -> None:
        if caller_id != booking.mentor_id or self.identity.role_of(caller_id) != ROLE_MENTOR:
            raise Unauthorized(f'Only the mentor for this session can {verb} it.')

    def _transition(
        self,
        booking: BookingRequest,
        new_status: str,
        allowed_from: set[str],
        action: str,
        actor_id: int | None,
    ) -> BookingRequest:
        try:
            previous_status, updated = self.ledger.transition(
                booking.id,
                new_status,
                allowed_from,
                action=action,
                at=self.clock.now(),
                actor_id=actor_id,
            )
        except InvalidTransition:
            logger.warning('Rejected %s transition for session request %s', new_status, booking.id)
            raise

        logger.info('Session request %s %s -> %s', updated.id, previous_status, new_status)
        self._emit(updated, previous_status=previous_status, actor_id=actor_id)
        return updated

    def _reject_transition(self, booking: BookingRequest, current_status: str, action: str) -> None:
        logger.warning('Rejected %s on session request %s in status %s', action, booking.id, current_status)
        raise InvalidTransition(f'This session request is already {current_status} and cannot be {action}.')

    def _emit(self, booking: BookingRequest, previous_status: str | None, actor_id: int | None) -> None:
        event = TransitionEvent(
            request_id=booking.id,
            mentor_id=booking.mentor_id,
            mentee_id=booking.mentee_id,
            session_date=booking.date,
            start_time=booking.start_time,
            previous_status=previous_status,
            status=booking.status,
            actor_id=actor_id,
            occurred_at=self.clock.now(),
        )
        try:
            self.notifier.notify(event)
        except Exception:
            logger.exception('Notification failed for session request %s (%s)', booking.id, booking.status)

    @staticmethod
    def _validate_session_type(session_type: str) -> str:
        normalized = (session_type or '').strip().lower()
        if normalized not in SESSION_TYPES:
            raise InvalidSessionRequest('Session type must be one of: career, code, technical.')
        return normalized

    def _validate_notes(self, notes: str | None) -> str | None:
        if notes is None:
            return None

        normalized = notes.strip()
        if not normalized:
            return None

        if len(normalized) > self.policy.max_notes_length:
            raise InvalidSessionRequest(f'Notes must be {self.policy.max_notes_length} characters or fewer.')

        return normalized


def normalize_weekday_index(weekday: str | int) -> int:
    return WEEKDAYS.index(normalize_weekday(weekday))
