import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Protocol

from mentorhub.models.booking import (
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_CONFIRMED,
    STATUS_DECLINED,
    STATUS_PENDING,
)

logger = logging.getLogger(__name__)

TRANSITION_MESSAGES = {
    STATUS_PENDING: 'Session request sent successfully',
    STATUS_CONFIRMED: 'Session request approved',
    STATUS_DECLINED: 'Session request declined',
    STATUS_CANCELLED: 'Session cancelled',
    STATUS_COMPLETED: 'Session completed',
}


@dataclass(frozen=True)
class TransitionEvent:
    request_id: int
    mentor_id: int
    mentee_id: int
    session_date: date
    start_time: time
    previous_status: str | None
    status: str
    actor_id: int | None
    occurred_at: datetime

    @property
    def message(self) -> str:
        return TRANSITION_MESSAGES[self.status]


class NotificationSink(Protocol):
    def notify(self, event: TransitionEvent) -> None: ...


class LoggingNotificationSink:
    """Default sink: records each transition in the application log."""

    def notify(self, event: TransitionEvent) -> None:
        logger.info(
            '%s (request=%s mentor=%s mentee=%s %s %s)',
            event.message,
            event.request_id,
            event.mentor_id,
            event.mentee_id,
            event.session_date.isoformat(),
            event.start_time.strftime('%H:%M'),
        )

