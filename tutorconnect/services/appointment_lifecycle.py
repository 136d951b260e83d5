"""Appointment state transitions.

Status flow::

    PENDING -> CONFIRMED -> WAITING_TO_COMPLETE -> COMPLETED
       |           |
       +-----------+--> CANCELLED

Functions here add changes to the given session and commit them. Transitions
accept ``commit=False`` to only flush, so a caller can add related rows (such
as the chat message announcing the change) and commit once. Callers are
responsible for rolling back on ``SQLAlchemyError``. State-rule violations are
raised as ``AppointmentError`` subclasses so that callers can map them to
their own error responses.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import func
from sqlalchemy.orm import Session

from tutorconnect.models.appointment import Appointment, AppointmentStatus
from tutorconnect.models.chat import Chat, ChatParticipant
from tutorconnect.models.post import get_subject_label
from tutorconnect.models.user import User
from tutorconnect.services import email_service

logger = logging.getLogger(__name__)

TEACHER = 'teacher'
STUDENT = 'student'

CANCELLABLE_STATUSES = (AppointmentStatus.PENDING.value, AppointmentStatus.CONFIRMED.value)

CompletionNotifier = Callable[..., bool]


class AppointmentError(Exception):
    pass


class NotParticipantError(AppointmentError):
    pass


class InvalidTransitionError(AppointmentError):
    pass


def is_active_participant(db: Session, chat_id: int, user_id: int) -> bool:
    return db.query(ChatParticipant.id).filter(
        ChatParticipant.chat_id == chat_id,
        ChatParticipant.user_id == user_id,
        ChatParticipant.is_active.is_(True),
    ).first() is not None


def get_participant_role(chat: Chat, user_id: int) -> str | None:
    if chat.teacher_id == user_id:
        return TEACHER
    if chat.student_id == user_id:
        return STUDENT
    return None


def require_participant_role(db: Session, appointment: Appointment, user_id: int) -> str:
    role = get_participant_role(appointment.chat, user_id)
    if role is None or not is_active_participant(db, appointment.chat_id, user_id):
        raise NotParticipantError('You do not have access to this appointment.')
    return role


def _save(db: Session, appointment: Appointment, commit: bool) -> None:
    if commit:
        db.commit()
    else:
        db.flush()
    db.refresh(appointment)


def _ready_column(role: str):
    return Appointment.teacher_ready if role == TEACHER else Appointment.student_ready


def update_expired_appointments(
    db: Session,
    chat_id: int | None = None,
    now: datetime | None = None,
    notifier: CompletionNotifier | None = None,
) -> int:
    """Move confirmed appointments whose end time has passed to WAITING_TO_COMPLETE.

    The status change is committed before any reminder is sent. Reminders are
    guarded by ``completion_reminder_sent_at`` so each appointment notifies its
    participants at most once, even when sweeps overlap.

    Returns the number of appointments this call transitioned.
    """
    now = now or datetime.now()

    # date_time <= now narrows the candidates; the end-time check needs duration.
    query = db.query(Appointment).filter(
        Appointment.status == AppointmentStatus.CONFIRMED.value,
        Appointment.date_time <= now,
    )
    if chat_id is not None:
        query = query.filter(Appointment.chat_id == chat_id)

    expired_ids = [appointment.id for appointment in query.all() if appointment.end_time <= now]
    if not expired_ids:
        return 0

    transitioned = db.query(Appointment).filter(
        Appointment.id.in_(expired_ids),
        Appointment.status == AppointmentStatus.CONFIRMED.value,
    ).update(
        {
            Appointment.status: AppointmentStatus.WAITING_TO_COMPLETE.value,
            Appointment.teacher_ready: False,
            Appointment.student_ready: False,
            Appointment.both_completed: False,
            Appointment.updated_at: now,
        },
        synchronize_session=False,
    )
    db.commit()

    logger.info('Moved %s expired appointment(s) to WAITING_TO_COMPLETE', transitioned)

    for appointment_id in expired_ids:
        send_completion_reminders(db, appointment_id, now=now, notifier=notifier)

    return transitioned


def send_completion_reminders(
    db: Session,
    appointment_id: int,
    now: datetime | None = None,
    notifier: CompletionNotifier | None = None,
) -> int:
    """Notify both participants that an appointment is waiting for completion.

    Returns the number of reminders sent. Returns 0 without sending when the
    reminder marker was already claimed.
    """
    now = now or datetime.now()
    notifier = notifier or email_service.send_appointment_completion_email

    claimed = db.query(Appointment).filter(
        Appointment.id == appointment_id,
        Appointment.status == AppointmentStatus.WAITING_TO_COMPLETE.value,
        Appointment.completion_reminder_sent_at.is_(None),
    ).update({Appointment.completion_reminder_sent_at: now}, synchronize_session=False)
    db.commit()

    if not claimed:
        return 0

    appointment = db.get(Appointment, appointment_id)
    chat = appointment.chat
    teacher, student = chat.teacher, chat.student
    subject = chat.related_post.subject if chat.related_post else None

    sent = 0
    for recipient, counterpart, fallback_name in ((teacher, student, 'Elev'), (student, teacher, 'Lærer')):
        if recipient is None or not recipient.email_appointment_complete or not recipient.is_active:
            continue

        try:
            delivered = notifier(
                recipient.email,
                recipient.name,
                counterpart.name if counterpart else fallback_name,
                appointment.date_time,
                appointment.duration,
                get_subject_label(subject),
                chat.id,
            )
        except Exception:
            logger.exception('Completion reminder for appointment %s to user %s failed', appointment.id, recipient.id)
            continue

        if delivered:
            sent += 1
            logger.info('Sent completion reminder for appointment %s to user %s', appointment.id, recipient.id)
        else:
            logger.warning('Completion reminder for appointment %s to user %s was not delivered', appointment.id, recipient.id)

    return sent


def respond_to_appointment(
    db: Session,
    appointment: Appointment,
    user_id: int,
    accepted: bool,
    commit: bool = True,
) -> Appointment:
    require_participant_role(db, appointment, user_id)

    if appointment.status != AppointmentStatus.PENDING.value:
        raise InvalidTransitionError('This appointment has already been answered.')
    if appointment.proposed_by_id == user_id:
        raise InvalidTransitionError('You cannot respond to your own appointment request.')

    if accepted:
        appointment.status = AppointmentStatus.CONFIRMED.value
    else:
        appointment.status = AppointmentStatus.CANCELLED.value
        appointment.cancellation_reason = 'Declined by participant'

    _save(db, appointment, commit)
    return appointment


def confirm_pending_appointment(
    db: Session,
    appointment: Appointment,
    user_id: int,
    confirmed: bool,
    notes: str | None = None,
    commit: bool = True,
) -> Appointment:
    """Record one participant's answer to a pending appointment.

    Declining cancels the appointment. Confirming sets the caller's readiness
    flag, and the appointment becomes CONFIRMED once both flags are set.
    """
    role = require_participant_role(db, appointment, user_id)

    if appointment.status != AppointmentStatus.PENDING.value:
        raise InvalidTransitionError(f'Appointment is already {appointment.status.lower()}.')

    if not confirmed:
        appointment.status = AppointmentStatus.CANCELLED.value
        appointment.cancellation_reason = notes or f'Declined by {role}'
        _save(db, appointment, commit)
        return appointment

    if role == TEACHER:
        appointment.teacher_ready = True
    else:
        appointment.student_ready = True

    if notes:
        appointment.notes = f'{appointment.notes or ""}\n\nConfirmation notes: {notes}'.strip()

    if appointment.teacher_ready and appointment.student_ready:
        appointment.status = AppointmentStatus.CONFIRMED.value

    _save(db, appointment, commit)
    return appointment


def set_completion_readiness(
    db: Session,
    appointment: Appointment,
    user_id: int,
    completed: bool = True,
    now: datetime | None = None,
    commit: bool = True,
) -> bool:
    """Set or withdraw the caller's readiness flag on a finished appointment.

    When both flags are set the appointment is completed and the statistics
    rollup runs in the same transaction. Returns True only for the call that
    performed the completion.
    """
    role = require_participant_role(db, appointment, user_id)

    update_expired_appointments(db, chat_id=appointment.chat_id, now=now)
    db.refresh(appointment)

    if completed and appointment.status == AppointmentStatus.COMPLETED.value:
        return False
    if appointment.status != AppointmentStatus.WAITING_TO_COMPLETE.value:
        raise InvalidTransitionError('This appointment is not waiting for completion.')

    ready_column = _ready_column(role)
    updated = db.query(Appointment).filter(
        Appointment.id == appointment.id,
        Appointment.status == AppointmentStatus.WAITING_TO_COMPLETE.value,
    ).update({ready_column: completed}, synchronize_session=False)
    if not updated:
        db.rollback()
        raise InvalidTransitionError('This appointment is not waiting for completion.')

    completed_now = False
    if completed:
        completed_now = bool(
            db.query(Appointment).filter(
                Appointment.id == appointment.id,
                Appointment.status == AppointmentStatus.WAITING_TO_COMPLETE.value,
                Appointment.teacher_ready.is_(True),
                Appointment.student_ready.is_(True),
            ).update(
                {
                    Appointment.status: AppointmentStatus.COMPLETED.value,
                    Appointment.both_completed: True,
                },
                synchronize_session=False,
            )
        )
        if completed_now:
            apply_completion_statistics(db, appointment)

    _save(db, appointment, commit)
    return completed_now


def apply_completion_statistics(db: Session, appointment: Appointment) -> bool:
    """Increment both users' session counters for a completed appointment.

    Does not commit. Returns True when this was the pair's first completed
    session, in which case the unique-partner counters were incremented too.
    """
    chat = appointment.chat
    teacher_id, student_id = chat.teacher_id, chat.student_id
    if teacher_id is None or student_id is None:
        return False

    previous_completions = db.query(func.count(Appointment.id)).join(Chat, Appointment.chat_id == Chat.id).filter(
        Appointment.status == AppointmentStatus.COMPLETED.value,
        Appointment.id != appointment.id,
        Chat.teacher_id == teacher_id,
        Chat.student_id == student_id,
    ).scalar()
    is_first_session = previous_completions == 0

    teacher_values = {User.teacher_sessions: User.teacher_sessions + 1}
    student_values = {User.student_sessions: User.student_sessions + 1}
    if is_first_session:
        teacher_values[User.teacher_students] = User.teacher_students + 1
        student_values[User.student_teachers] = User.student_teachers + 1

    db.query(User).filter(User.id == teacher_id).update(teacher_values, synchronize_session=False)
    db.query(User).filter(User.id == student_id).update(student_values, synchronize_session=False)

    return is_first_session


def cancel_appointment(
    db: Session,
    appointment: Appointment,
    user_id: int,
    reason: str | None = None,
    commit: bool = True,
) -> Appointment:
    require_participant_role(db, appointment, user_id)

    if appointment.status not in CANCELLABLE_STATUSES:
        raise InvalidTransitionError(f'A {appointment.status.lower()} appointment cannot be cancelled.')

    appointment.status = AppointmentStatus.CANCELLED.value
    appointment.cancellation_reason = reason or 'Cancelled by user'
    _save(db, appointment, commit)
    return appointment


def reschedule_appointment(
    db: Session,
    appointment: Appointment,
    user_id: int,
    date_time: datetime | None = None,
    duration: int | None = None,
    location: str | None = None,
    notes: str | None = None,
    commit: bool = True,
) -> Appointment:
    """Update appointment details; a new time or duration needs a new answer."""
    require_participant_role(db, appointment, user_id)

    if appointment.status not in CANCELLABLE_STATUSES:
        raise InvalidTransitionError(f'A {appointment.status.lower()} appointment cannot be changed.')

    time_changed = (
        (date_time is not None and date_time != appointment.date_time)
        or (duration is not None and duration != appointment.duration)
    )

    if date_time is not None:
        appointment.date_time = date_time
    if duration is not None:
        appointment.duration = duration
    if location is not None:
        appointment.location = location
    if notes is not None:
        appointment.notes = notes

    if time_changed:
        appointment.status = AppointmentStatus.PENDING.value
        appointment.teacher_ready = False
        appointment.student_ready = False
        appointment.both_completed = False
        appointment.completion_reminder_sent_at = None
        appointment.proposed_by_id = user_id

    _save(db, appointment, commit)
    return appointment


def has_scheduling_conflict(
    db: Session,
    user_id: int,
    date_time: datetime,
    duration: int,
    exclude_appointment_id: int | None = None,
) -> bool:
    """Whether the user has a pending or confirmed appointment overlapping the slot."""
    end_time = date_time + timedelta(minutes=duration)

    query = db.query(Appointment).join(Chat, Appointment.chat_id == Chat.id).filter(
        (Chat.teacher_id == user_id) | (Chat.student_id == user_id),
        Appointment.status.in_(CANCELLABLE_STATUSES),
        Appointment.date_time < end_time,
    )
    if exclude_appointment_id is not None:
        query = query.filter(Appointment.id != exclude_appointment_id)

    return any(existing.end_time > date_time for existing in query.all())


def can_modify(appointment: Appointment, now: datetime | None = None) -> bool:
    now = now or datetime.now()
    if appointment.status not in CANCELLABLE_STATUSES:
        return False
    if appointment.status == AppointmentStatus.CONFIRMED.value and appointment.date_time < now + timedelta(hours=2):
        return False
    return True


def can_cancel(appointment: Appointment) -> bool:
    return appointment.status in CANCELLABLE_STATUSES
