"""Availability model definitions."""

from sqlalchemy import Column, Integer, String, Time, UniqueConstraint
from mentorhub.database import Base

WEEKDAYS = ('monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday')


class WeekdaySlot(Base):
    """A recurring weekly start time a mentor accepts bookings for."""
    __tablename__ = "availability_slots"
    __table_args__ = (
        UniqueConstraint("mentor_id", "weekday", "start_time", name="uq_availability_slot"),
    )

    id = Column(Integer, primary_key=True)
    mentor_id = Column(Integer, index=True, nullable=False)
    weekday = Column(String, nullable=False)
    start_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
