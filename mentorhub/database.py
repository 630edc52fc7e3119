from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from mentorhub.core import config


def build_engine(database_url: str) -> Engine:
    connect_args = {}
    if database_url.startswith("sqlite"):
        # Sync endpoints run in a threadpool.
        connect_args["check_same_thread"] = False
    return create_engine(database_url, echo=config.SQL_ECHO, connect_args=connect_args)


def build_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=bind,
    )


engine = build_engine(config.DATABASE_URL)

SessionLocal = build_session_factory(engine)

Base = declarative_base()

_schema_lock = Lock()
_booking_schema_checked = False


def ensure_booking_schema(bind: Engine | None = None) -> None:
    global _booking_schema_checked

    if _booking_schema_checked:
        return

    bind = bind or engine

    with _schema_lock:
        if _booking_schema_checked:
            return

        inspector = inspect(bind)

        if 'booking_requests' not in inspector.get_table_names():
            _booking_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('booking_requests')}
        migration_steps = [
            ('notes', 'ALTER TABLE booking_requests ADD COLUMN notes VARCHAR'),
            ('updated_at', 'ALTER TABLE booking_requests ADD COLUMN updated_at TIMESTAMP'),
            ('cancelled_by', 'ALTER TABLE booking_requests ADD COLUMN cancelled_by INTEGER'),
        ]

        with bind.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_booking_requests_mentor_date '
                    'ON booking_requests(mentor_id, date, start_time)'
                )
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_booking_requests_mentee ON booking_requests(mentee_id, status)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_booking_requests_status_date ON booking_requests(status, date)')
            )

        _booking_schema_checked = True
