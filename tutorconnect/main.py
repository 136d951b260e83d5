import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from tutorconnect.core import config
from tutorconnect.database import Base, engine, ensure_appointment_schema, ensure_user_schema
from tutorconnect.models import appointment, chat, post, user  # noqa: F401
from tutorconnect.routes import appointment_routes, auth_routes, chat_routes, post_routes, profile_routes
from tutorconnect.scheduler import create_scheduler

app = FastAPI(title='TutorConnect API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)

scheduler = None


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        Base.metadata.create_all(bind=engine)
        ensure_user_schema()
        ensure_appointment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.on_event('startup')
def start_scheduler() -> None:
    global scheduler
    if not config.APPOINTMENT_SWEEP_ENABLED:
        logger.info('Appointment expiry sweep is disabled')
        return

    scheduler = create_scheduler()
    scheduler.start()
    logger.info('Appointment expiry sweep scheduled every %s seconds', config.APPOINTMENT_SWEEP_INTERVAL_SECONDS)


@app.on_event('shutdown')
def stop_scheduler() -> None:
    global scheduler
    if scheduler is not None:
        scheduler.shutdown(wait=False)
        scheduler = None
        logger.info('Appointment expiry sweep stopped')


@app.get('/')
def root():
    return {'status': 'TutorConnect API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(profile_routes.router, prefix='/profile')
app.include_router(post_routes.router, prefix='/posts')
app.include_router(chat_routes.router, prefix='/chats')
app.include_router(appointment_routes.chat_router, prefix='/chats')
app.include_router(appointment_routes.router, prefix='/appointments')
