from datetime import date, datetime, time, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator

from mentorhub.auth.dependencies import get_current_user
from mentorhub.models.availability import WEEKDAYS
from mentorhub.models.user import ROLE_MENTOR, User
from mentorhub.scheduling.arbiter import AvailabilityChange, BookingArbiter
from mentorhub.scheduling.errors import BookingError
from mentorhub.scheduling.policy import session_start
from mentorhub.scheduling.service import get_arbiter
from mentorhub.scheduling.slot_calendar import format_slot_time, normalize_weekday

router = APIRouter(tags=['availability'])


class SetAvailabilityRequest(BaseModel):
    slots: list[time]

    @field_validator('slots')
    @classmethod
    def validate_slots(cls, value: list[time]) -> list[time]:
        return sorted({slot.replace(tzinfo=None) for slot in value})


class CopyAvailabilityRequest(BaseModel):
    source_weekday: str

    @field_validator('source_weekday')
    @classmethod
    def validate_source_weekday(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in WEEKDAYS:
            raise ValueError('Invalid weekday.')
        return normalized


class SlotTimeResponse(BaseModel):
    time: time
    label: str


class WeeklyAvailabilityResponse(BaseModel):
    mentor_id: int
    weekdays: dict[str, list[time]]


class AvailabilityChangeResponse(BaseModel):
    mentor_id: int
    weekday: str
    slots: list[time]
    removed: list[time]
    orphaned_request_ids: list[int]
    warning: str | None = None


class OpenSlotResponse(BaseModel):
    date: date
    time: time
    label: str
    start_time: datetime
    end_time: datetime


def require_weekday(weekday: str) -> str:
    try:
        return normalize_weekday(weekday)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Weekday must be one of Monday through Sunday.',
        ) from exc


def require_mentor_owner(mentor_id: int, current_user: User) -> None:
    if current_user.role != ROLE_MENTOR or current_user.id != mentor_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only the mentor can change their own availability.',
        )


def to_change_response(mentor_id: int, change: AvailabilityChange) -> AvailabilityChangeResponse:
    warning = None
    if change.orphaned_request_ids:
        warning = (
            f'{len(change.orphaned_request_ids)} existing session request(s) fall on removed times '
            'and were kept. Cancel them individually if you cannot attend.'
        )

    return AvailabilityChangeResponse(
        mentor_id=mentor_id,
        weekday=change.weekday,
        slots=change.slots,
        removed=change.removed,
        orphaned_request_ids=change.orphaned_request_ids,
        warning=warning,
    )


@router.get('/grid', response_model=list[SlotTimeResponse])
def list_slot_grid(arbiter: BookingArbiter = Depends(get_arbiter)):
    return [
        SlotTimeResponse(time=slot_time, label=format_slot_time(slot_time))
        for slot_time in arbiter.policy.slot_grid()
    ]


@router.get('/{mentor_id}', response_model=WeeklyAvailabilityResponse)
def get_weekly_availability(mentor_id: int, arbiter: BookingArbiter = Depends(get_arbiter)):
    try:
        return WeeklyAvailabilityResponse(mentor_id=mentor_id, weekdays=arbiter.get_availability(mentor_id))
    except BookingError as exc:
        raise exc.to_http_exception() from exc


@router.put('/{mentor_id}/{weekday}', response_model=AvailabilityChangeResponse)
def set_weekday_availability(
    mentor_id: int,
    weekday: str,
    data: SetAvailabilityRequest,
    current_user: User = Depends(get_current_user),
    arbiter: BookingArbiter = Depends(get_arbiter),
):
    normalized_weekday = require_weekday(weekday)
    require_mentor_owner(mentor_id, current_user)

    try:
        change = arbiter.set_availability(mentor_id, normalized_weekday, data.slots)
    except BookingError as exc:
        raise exc.to_http_exception() from exc

    return to_change_response(mentor_id, change)


@router.post('/{mentor_id}/{weekday}/copy', response_model=AvailabilityChangeResponse)
def copy_weekday_availability(
    mentor_id: int,
    weekday: str,
    data: CopyAvailabilityRequest,
    current_user: User = Depends(get_current_user),
    arbiter: BookingArbiter = Depends(get_arbiter),
):
    normalized_weekday = require_weekday(weekday)
    require_mentor_owner(mentor_id, current_user)

    try:
        change = arbiter.copy_availability(mentor_id, data.source_weekday, normalized_weekday)
    except BookingError as exc:
        raise exc.to_http_exception() from exc

    return to_change_response(mentor_id, change)


@router.get('/{mentor_id}/open', response_model=list[OpenSlotResponse])
def list_open_slots(
    mentor_id: int,
    from_date: date | None = Query(default=None),
    to_date: date | None = Query(default=None),
    arbiter: BookingArbiter = Depends(get_arbiter),
):
    horizon_days = arbiter.policy.booking_horizon_days
    today = arbiter.clock.now().date()
    last_bookable = today + timedelta(days=horizon_days - 1)
    from_date = from_date or today
    to_date = to_date or last_bookable

    if to_date < from_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='to_date must not be earlier than from_date.',
        )

    if to_date > last_bookable:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'Open slots can only be listed within the next {horizon_days} days.',
        )

    # Past days never hold open cells.
    from_date = max(from_date, today)

    granularity = timedelta(minutes=arbiter.policy.slot_granularity_minutes)
    try:
        return [
            OpenSlotResponse(
                date=slot_date,
                time=slot_time,
                label=format_slot_time(slot_time),
                start_time=session_start(slot_date, slot_time),
                end_time=session_start(slot_date, slot_time) + granularity,
            )
            for slot_date, slot_time in arbiter.list_available(mentor_id, from_date, to_date)
        ]
    except BookingError as exc:
        raise exc.to_http_exception() from exc
