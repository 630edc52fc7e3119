"""Authoritative store of session requests and active cell occupancy.

A cell is one (mentor, date, start time) instance. While a request is
pending or confirmed it owns a ``LedgerCell`` row for its cell; the unique
constraint on that table is what makes a second active booking impossible,
even across processes. Within a process every write to a cell also runs
under that cell's lock, so reserve and transition calls on one cell are
applied one at a time.
"""

import logging
from contextlib import contextmanager
from datetime import date, datetime, time
from typing import Iterable, Iterator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from mentorhub.models.booking import (
    ACTIVE_STATUSES,
    STATUS_CANCELLED,
    STATUS_CONFIRMED,
    STATUS_PENDING,
    BookingRequest,
    LedgerCell,
)
from mentorhub.scheduling.errors import InvalidTransition, LedgerUnavailable, NotFound
from mentorhub.scheduling.locks import KeyedLockRegistry
from mentorhub.scheduling.policy import session_end

logger = logging.getLogger(__name__)

CellKey = tuple[int, date, time]


def cell_key(booking: BookingRequest) -> CellKey:
    return booking.mentor_id, booking.date, booking.start_time


class BookingLedger:
    def __init__(self, session_factory: sessionmaker, lock_timeout_seconds: float = 5.0) -> None:
        self._session_factory = session_factory
        self._lock_timeout_seconds = lock_timeout_seconds
        self._cell_locks = KeyedLockRegistry()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception('Booking ledger storage error')
            raise LedgerUnavailable('Booking storage is unavailable. Please try again shortly.') from exc
        finally:
            db.close()

    def try_reserve(self, booking: BookingRequest) -> bool:
        """Store ``booking`` as pending and claim its cell.

        Returns False, storing nothing, when the cell already has a pending
        or confirmed request.
        """
        key = cell_key(booking)

        with self._cell_locks.hold(key, self._lock_timeout_seconds):
            with self._session() as db:
                if self._active_request_id(db, *key) is not None:
                    return False

                booking.status = STATUS_PENDING
                db.add(booking)
                try:
                    db.flush()
                    db.add(
                        LedgerCell(
                            mentor_id=booking.mentor_id,
                            date=booking.date,
                            start_time=booking.start_time,
                            request_id=booking.id,
                        )
                    )
                    db.commit()
                except IntegrityError:
                    db.rollback()
                    logger.info('Cell %s already claimed by another writer', key)
                    return False

        return True

    def transition(
        self,
        request_id: int,
        new_status: str,
        allowed_from: Iterable[str],
        *,
        action: str,
        at: datetime,
        actor_id: int | None = None,
    ) -> tuple[str, BookingRequest]:
        """Compare-and-set the status of a request.

        Leaving the active statuses frees the cell in the same transaction.
        Returns the previous status and the updated request.
        """
        allowed_from = frozenset(allowed_from)
        key = cell_key(self.get(request_id))

        with self._cell_locks.hold(key, self._lock_timeout_seconds):
            with self._session() as db:
                booking = db.get(BookingRequest, request_id)
                if booking is None:
                    raise NotFound('Session request not found.')

                previous_status = booking.status
                if previous_status not in allowed_from:
                    raise InvalidTransition(
                        f'This session request is already {previous_status} and cannot be {action}.'
                    )

                booking.status = new_status
                booking.updated_at = at
                if new_status == STATUS_CANCELLED:
                    booking.cancelled_by = actor_id

                if new_status not in ACTIVE_STATUSES:
                    db.query(LedgerCell).filter(
                        LedgerCell.request_id == request_id,
                    ).delete(synchronize_session=False)

                db.commit()

        return previous_status, booking

    def get(self, request_id: int) -> BookingRequest:
        with self._session() as db:
            booking = db.get(BookingRequest, request_id)
        if booking is None:
            raise NotFound('Session request not found.')
        return booking

    def get_active(self, mentor_id: int, session_date: date, start_time: time) -> int | None:
        with self._session() as db:
            return self._active_request_id(db, mentor_id, session_date, start_time)

    @staticmethod
    def _active_request_id(db: Session, mentor_id: int, session_date: date, start_time: time) -> int | None:
        row = db.query(LedgerCell.request_id).filter(
            LedgerCell.mentor_id == mentor_id,
            LedgerCell.date == session_date,
            LedgerCell.start_time == start_time,
        ).first()
        return row[0] if row else None

    def occupied_cells(self, mentor_id: int, from_date: date, to_date: date) -> set[tuple[date, time]]:
        with self._session() as db:
            rows = db.query(LedgerCell.date, LedgerCell.start_time).filter(
                LedgerCell.mentor_id == mentor_id,
                LedgerCell.date >= from_date,
                LedgerCell.date <= to_date,
            ).all()
        return {(cell_date, cell_time) for cell_date, cell_time in rows}

    def active_on_slots(
        self,
        mentor_id: int,
        weekday_index: int,
        start_times: Iterable[time],
        on_or_after: date,
    ) -> list[BookingRequest]:
        start_times = list(start_times)
        if not start_times:
            return []

        with self._session() as db:
            candidates = db.query(BookingRequest).join(
                LedgerCell, LedgerCell.request_id == BookingRequest.id,
            ).filter(
                BookingRequest.mentor_id == mentor_id,
                BookingRequest.date >= on_or_after,
                BookingRequest.start_time.in_(start_times),
            ).order_by(BookingRequest.date.asc(), BookingRequest.start_time.asc()).all()

        return [booking for booking in candidates if booking.date.weekday() == weekday_index]

    def list_for_user(
        self,
        user_id: int,
        statuses: Iterable[str] | None = None,
        session_type: str | None = None,
    ) -> list[BookingRequest]:
        with self._session() as db:
            query = db.query(BookingRequest).filter(
                (BookingRequest.mentor_id == user_id) | (BookingRequest.mentee_id == user_id),
            )
            if statuses is not None:
                query = query.filter(BookingRequest.status.in_(list(statuses)))
            if session_type is not None:
                query = query.filter(BookingRequest.session_type == session_type)
            return query.order_by(BookingRequest.date.asc(), BookingRequest.start_time.asc()).all()

    def elapsed_confirmed(self, now: datetime) -> list[BookingRequest]:
        with self._session() as db:
            candidates = db.query(BookingRequest).filter(
                BookingRequest.status == STATUS_CONFIRMED,
                BookingRequest.date <= now.date(),
            ).all()

        return [
            booking
            for booking in candidates
            if session_end(booking.date, booking.start_time, booking.duration_minutes) <= now
        ]
