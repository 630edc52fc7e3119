"""Errors raised by the booking core.

Each error carries a user-facing message and the HTTP status the transport
layer answers with.
"""

from fastapi import HTTPException, status


class BookingError(Exception):
    """Base class for every booking rule or lookup failure."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str) -> None:
        self.message = message
        self.code = self.__class__.__name__
        super().__init__(message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={'message': self.message, 'code': self.code},
        )


class SlotUnavailable(BookingError):
    """The requested cell is not offered by the mentor."""


class SlotConflict(BookingError):
    """Another request already holds the cell."""

    status_code = status.HTTP_409_CONFLICT


class NotFound(BookingError):
    status_code = status.HTTP_404_NOT_FOUND


class InvalidTransition(BookingError):
    """The request's current status does not allow the operation."""

    status_code = status.HTTP_409_CONFLICT


class Unauthorized(BookingError):
    status_code = status.HTTP_403_FORBIDDEN


class CancellationWindowClosed(BookingError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class InvalidTimeGranularity(BookingError):
    """An availability start time is off-grid or outside opening hours."""


class InvalidSessionRequest(BookingError):
    """Session type, duration, participants or notes are not acceptable."""


class LedgerUnavailable(BookingError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
