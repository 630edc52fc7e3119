from datetime import date, datetime, time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator

from mentorhub.auth.dependencies import get_current_user, require_role
from mentorhub.core import config
from mentorhub.models.booking import SESSION_DURATIONS, SESSION_TYPES, BookingRequest
from mentorhub.models.user import ROLE_MENTEE, User
from mentorhub.scheduling.arbiter import SESSION_VIEWS, BookingArbiter
from mentorhub.scheduling.errors import BookingError
from mentorhub.scheduling.policy import session_end, session_start
from mentorhub.scheduling.service import get_arbiter

router = APIRouter(tags=['sessions'])


class CreateSessionRequest(BaseModel):
    mentor_id: int
    date: date
    time: time
    duration_minutes: int = SESSION_DURATIONS[0]
    session_type: str
    notes: str | None = None

    @field_validator('time')
    @classmethod
    def validate_time(cls, value: time) -> time:
        return value.replace(tzinfo=None)

    @field_validator('session_type')
    @classmethod
    def validate_session_type(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in SESSION_TYPES:
            raise ValueError('Invalid session type.')
        return normalized

    @field_validator('duration_minutes')
    @classmethod
    def validate_duration_minutes(cls, value: int) -> int:
        if value not in SESSION_DURATIONS:
            raise ValueError('Invalid session duration.')
        return value

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > config.MAX_SESSION_NOTES_LENGTH:
            raise ValueError(f'Notes must be {config.MAX_SESSION_NOTES_LENGTH} characters or fewer.')

        return normalized


class SessionTypeOptionResponse(BaseModel):
    session_type: str
    label: str
    durations: list[int]


class SessionResponse(BaseModel):
    id: int
    mentor_id: int
    mentee_id: int
    date: date
    time: time
    duration_minutes: int
    session_type: str
    session_label: str
    status: str
    notes: str | None = None
    start_time: datetime
    end_time: datetime
    created_at: datetime


class SessionStatusResponse(BaseModel):
    id: int
    status: str


def to_session_response(booking: BookingRequest) -> SessionResponse:
    return SessionResponse(
        id=booking.id,
        mentor_id=booking.mentor_id,
        mentee_id=booking.mentee_id,
        date=booking.date,
        time=booking.start_time,
        duration_minutes=booking.duration_minutes,
        session_type=booking.session_type,
        session_label=SESSION_TYPES.get(booking.session_type, booking.session_type),
        status=booking.status,
        notes=booking.notes,
        start_time=session_start(booking.date, booking.start_time),
        end_time=session_end(booking.date, booking.start_time, booking.duration_minutes),
        created_at=booking.created_at,
    )


@router.get('/types', response_model=list[SessionTypeOptionResponse])
def list_session_types():
    return [
        SessionTypeOptionResponse(session_type=session_type, label=label, durations=list(SESSION_DURATIONS))
        for session_type, label in SESSION_TYPES.items()
    ]


@router.post('', response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
def request_session(
    data: CreateSessionRequest,
    current_user: User = Depends(require_role(ROLE_MENTEE)),
    arbiter: BookingArbiter = Depends(get_arbiter),
):
    try:
        request_id = arbiter.request_session(
            mentor_id=data.mentor_id,
            mentee_id=current_user.id,
            session_date=data.date,
            start_time=data.time,
            duration_minutes=data.duration_minutes,
            session_type=data.session_type,
            notes=data.notes,
        )
        return to_session_response(arbiter.get_request(request_id))
    except BookingError as exc:
        raise exc.to_http_exception() from exc


@router.get('', response_model=list[SessionResponse])
def list_my_sessions(
    view: str = Query(default='upcoming'),
    session_type: str | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    arbiter: BookingArbiter = Depends(get_arbiter),
):
    normalized_view = view.strip().lower()
    if normalized_view not in SESSION_VIEWS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='View must be one of: upcoming, pending, past.',
        )

    try:
        sessions = arbiter.list_sessions(current_user.id, normalized_view, session_type)
    except BookingError as exc:
        raise exc.to_http_exception() from exc

    return [to_session_response(booking) for booking in sessions]


@router.get('/{request_id}', response_model=SessionResponse)
def get_session(
    request_id: int,
    current_user: User = Depends(get_current_user),
    arbiter: BookingArbiter = Depends(get_arbiter),
):
    try:
        booking = arbiter.get_request(request_id)
    except BookingError as exc:
        raise exc.to_http_exception() from exc

    if current_user.id not in (booking.mentor_id, booking.mentee_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only the mentor or mentee on this session can view it.',
        )

    return to_session_response(booking)


@router.get('/{request_id}/status', response_model=SessionStatusResponse)
def get_session_status(request_id: int, arbiter: BookingArbiter = Depends(get_arbiter)):
    try:
        return SessionStatusResponse(id=request_id, status=arbiter.get_status(request_id))
    except BookingError as exc:
        raise exc.to_http_exception() from exc


@router.post('/{request_id}/approve', response_model=SessionResponse)
def approve_session(
    request_id: int,
    current_user: User = Depends(get_current_user),
    arbiter: BookingArbiter = Depends(get_arbiter),
):
    try:
        return to_session_response(arbiter.approve(request_id, current_user.id))
    except BookingError as exc:
        raise exc.to_http_exception() from exc


@router.post('/{request_id}/decline', response_model=SessionResponse)
def decline_session(
    request_id: int,
    current_user: User = Depends(get_current_user),
    arbiter: BookingArbiter = Depends(get_arbiter),
):
    try:
        return to_session_response(arbiter.decline(request_id, current_user.id))
    except BookingError as exc:
        raise exc.to_http_exception() from exc


@router.post('/{request_id}/cancel', response_model=SessionResponse)
def cancel_session(
    request_id: int,
    current_user: User = Depends(get_current_user),
    arbiter: BookingArbiter = Depends(get_arbiter),
):
    try:
        return to_session_response(arbiter.cancel(request_id, current_user.id))
    except BookingError as exc:
        raise exc.to_http_exception() from exc
