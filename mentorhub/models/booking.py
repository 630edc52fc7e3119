"""Booking request and occupancy model definitions."""

from sqlalchemy import Column, Date, DateTime, Integer, String, Time, UniqueConstraint
from mentorhub.database import Base

STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"
STATUS_DECLINED = "declined"
STATUS_CANCELLED = "cancelled"
STATUS_COMPLETED = "completed"

ACTIVE_STATUSES = frozenset({STATUS_PENDING, STATUS_CONFIRMED})
TERMINAL_STATUSES = frozenset({STATUS_DECLINED, STATUS_CANCELLED, STATUS_COMPLETED})

SESSION_TYPES = {
    "career": "Career Advice",
    "code": "Code Review",
    "technical": "Technical Guidance",
}
SESSION_DURATIONS = (30, 45, 60)


class BookingRequest(Base):
    """A mentee's request for one concrete session with a mentor."""
    __tablename__ = "booking_requests"

    id = Column(Integer, primary_key=True)
    mentor_id = Column(Integer, nullable=False)
    mentee_id = Column(Integer, nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    session_type = Column(String, nullable=False)
    notes = Column(String)
    status = Column(String, nullable=False, default=STATUS_PENDING)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime)
    cancelled_by = Column(Integer)


class LedgerCell(Base):
    """Active occupancy of a (mentor, date, start time) cell.

    A row exists only while the referenced request is pending or confirmed.
    The unique constraint is what rejects a second active booking.
    """
    __tablename__ = "ledger_cells"
    __table_args__ = (
        UniqueConstraint("mentor_id", "date", "start_time", name="uq_ledger_cell"),
    )

    id = Column(Integer, primary_key=True)
    mentor_id = Column(Integer, nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    request_id = Column(Integer, nullable=False, unique=True)
