import logging

from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.exc import SQLAlchemyError

from tutorconnect.core import config
from tutorconnect.database import SessionLocal
from tutorconnect.services.appointment_lifecycle import update_expired_appointments

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = 'appointments.expiry_sweep'


def run_appointment_sweep(session_factory=SessionLocal) -> int:
    db = session_factory()
    try:
        transitioned = update_expired_appointments(db)
    except SQLAlchemyError:
        db.rollback()
        logger.exception('Appointment expiry sweep failed')
        return 0
    finally:
        db.close()

    if transitioned:
        logger.info('Appointment expiry sweep moved %s appointment(s)', transitioned)
    return transitioned


def create_scheduler() -> BackgroundScheduler:
    scheduler = BackgroundScheduler()
    scheduler.add_job(
        run_appointment_sweep,
        trigger='interval',
        seconds=config.APPOINTMENT_SWEEP_INTERVAL_SECONDS,
        id=SWEEP_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    return scheduler
