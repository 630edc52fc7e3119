import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from mentorhub.core import config
from mentorhub.database import Base, engine, ensure_booking_schema
from mentorhub.models import availability, booking, user  # noqa: F401
from mentorhub.routes import auth_routes, availability_routes, session_routes
from mentorhub.scheduling.errors import BookingError
from mentorhub.scheduling.service import build_arbiter

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
)

app = FastAPI(title='MentorHub Scheduling API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()

    if getattr(app.state, 'arbiter', None) is None:
        app.state.arbiter = build_arbiter()

    try:
        Base.metadata.create_all(bind=engine)
        ensure_booking_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')
        return

    try:
        completed = app.state.arbiter.complete_elapsed_sessions()
    except BookingError:
        logger.exception('Could not settle elapsed sessions at startup.')
    else:
        if completed:
            logger.info('Marked %d elapsed session(s) as completed', len(completed))


@app.get('/')
def root():
    return {'status': 'MentorHub Scheduling API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(availability_routes.router, prefix='/availability')
app.include_router(session_routes.router, prefix='/sessions')
