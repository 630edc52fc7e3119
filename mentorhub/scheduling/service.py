from fastapi import Request
from sqlalchemy.orm import sessionmaker

from mentorhub.auth.directory import UserDirectory
from mentorhub.database import SessionLocal
from mentorhub.scheduling.arbiter import BookingArbiter
from mentorhub.scheduling.clock import Clock
from mentorhub.scheduling.notifications import NotificationSink
from mentorhub.scheduling.policy import SchedulingPolicy


def build_arbiter(
    session_factory: sessionmaker | None = None,
    *,
    clock: Clock | None = None,
    notifier: NotificationSink | None = None,
    policy: SchedulingPolicy | None = None,
) -> BookingArbiter:
    session_factory = session_factory or SessionLocal
    return BookingArbiter(
        session_factory,
        UserDirectory(session_factory),
        clock=clock,
        notifier=notifier,
        policy=policy or SchedulingPolicy.from_config(),
    )


def get_arbiter(request: Request) -> BookingArbiter:
    return request.app.state.arbiter
