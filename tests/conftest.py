from datetime import date, datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from mentorhub.auth.dependencies import get_db
from mentorhub.auth.jwt_handler import create_access_token
from mentorhub.database import Base, build_engine, build_session_factory
from mentorhub.main import app
from mentorhub.models import availability, booking  # noqa: F401
from mentorhub.models.user import User
from mentorhub.scheduling.arbiter import BookingArbiter
from mentorhub.scheduling.notifications import TransitionEvent
from mentorhub.scheduling.policy import SchedulingPolicy
from mentorhub.scheduling.service import build_arbiter

# Wednesday morning; the following Monday is inside the 7-day booking horizon.
NOW = datetime(2026, 1, 7, 10, 0)
NEXT_MONDAY = date(2026, 1, 12)
TOMORROW = date(2026, 1, 8)

MENTOR_ID = 1
MENTEE_A = 2
MENTEE_B = 3
MENTEE_C = 4
OTHER_MENTOR_ID = 5

USERS = {
    MENTOR_ID: ('mentor@example.com', 'mentor'),
    MENTEE_A: ('alex@example.com', 'mentee'),
    MENTEE_B: ('blair@example.com', 'mentee'),
    MENTEE_C: ('casey@example.com', 'mentee'),
    OTHER_MENTOR_ID: ('other.mentor@example.com', 'mentor'),
}


class FixedClock:
    """A clock that only moves when told to."""

    def __init__(self, current: datetime) -> None:
        self.current = current

    def now(self) -> datetime:
        return self.current

    def advance(self, **delta: float) -> None:
        self.current += timedelta(**delta)


class RecordingNotificationSink:
    def __init__(self) -> None:
        self.events: list[TransitionEvent] = []

    def notify(self, event: TransitionEvent) -> None:
        self.events.append(event)

    @property
    def statuses(self) -> list[str]:
        return [event.status for event in self.events]


class StaticIdentity:
    def __init__(self, roles: dict[int, str]) -> None:
        self.roles = roles

    def role_of(self, user_id: int) -> str | None:
        return self.roles.get(user_id)


def auth_headers(user_id: int) -> dict[str, str]:
    email = USERS[user_id][0]
    return {'Authorization': f'Bearer {create_access_token(email)}'}


@pytest.fixture
def session_factory(tmp_path):
    # A file database so worker threads each get their own connection.
    engine = build_engine(f'sqlite:///{tmp_path / "mentorhub-test.db"}')
    Base.metadata.create_all(bind=engine)
    try:
        yield build_session_factory(engine)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def notifier() -> RecordingNotificationSink:
    return RecordingNotificationSink()


@pytest.fixture
def policy() -> SchedulingPolicy:
    return SchedulingPolicy()


@pytest.fixture
def identity() -> StaticIdentity:
    return StaticIdentity({user_id: role for user_id, (_email, role) in USERS.items()})


@pytest.fixture
def arbiter(session_factory, identity, clock, notifier, policy) -> BookingArbiter:
    return BookingArbiter(session_factory, identity, clock=clock, notifier=notifier, policy=policy)


@pytest.fixture
def api_arbiter(session_factory, clock, notifier, policy) -> BookingArbiter:
    db = session_factory()
    try:
        db.add_all([
            User(id=user_id, email=email, hashed_password='', role=role)
            for user_id, (email, role) in USERS.items()
        ])
        db.commit()
    finally:
        db.close()

    return build_arbiter(session_factory, clock=clock, notifier=notifier, policy=policy)


@pytest.fixture
def client(session_factory, api_arbiter):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.state.arbiter = api_arbiter
    app.dependency_overrides[get_db] = override_get_db
    try:
        # Not entered as a context manager, so startup hooks stay off the real database.
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        del app.state.arbiter
