from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from tutorconnect import scheduler as scheduler_module
from tutorconnect.models.appointment import AppointmentStatus


def test_create_scheduler_registers_sweep_job(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('tutorconnect.core.config.APPOINTMENT_SWEEP_INTERVAL_SECONDS', 60)

    scheduler = scheduler_module.create_scheduler()

    job = scheduler.get_job(scheduler_module.SWEEP_JOB_ID)
    assert job is not None
    assert job.trigger.interval == timedelta(seconds=60)
    assert job.max_instances == 1


def test_run_appointment_sweep_uses_fresh_session(db, make_user, make_chat, make_appointment, monkeypatch) -> None:
    monkeypatch.setattr('tutorconnect.services.email_service.send_appointment_completion_email', lambda *args: True)
    chat = make_chat(make_user(), make_user())
    appointment = make_appointment(chat, datetime.now() - timedelta(hours=2), duration=30)

    class SharedSession:
        closed = False

        def __getattr__(self, name):
            return getattr(db, name)

        def close(self):
            SharedSession.closed = True

    transitioned = scheduler_module.run_appointment_sweep(session_factory=SharedSession)

    assert transitioned == 1
    assert SharedSession.closed is True
    db.refresh(appointment)
    assert appointment.status == AppointmentStatus.WAITING_TO_COMPLETE.value


def test_run_appointment_sweep_swallows_database_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    class FailingSession:
        rolled_back = False

        def rollback(self):
            FailingSession.rolled_back = True

        def close(self):
            pass

    def failing_sweep(_db):
        raise OperationalError('SELECT 1', {}, Exception('database is locked'))

    monkeypatch.setattr(scheduler_module, 'update_expired_appointments', failing_sweep)

    assert scheduler_module.run_appointment_sweep(session_factory=FailingSession) == 0
    assert FailingSession.rolled_back is True
