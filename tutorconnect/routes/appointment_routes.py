import logging
import math
from datetime import date, datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tutorconnect.auth.dependencies import get_current_user
from tutorconnect.database import get_db
from tutorconnect.models.appointment import Appointment, AppointmentStatus
from tutorconnect.models.chat import Chat, ChatParticipant, Message, MessageType
from tutorconnect.models.user import User
from tutorconnect.routes.chat_routes import get_chat_for_participant
from tutorconnect.services import appointment_lifecycle
from tutorconnect.services.appointment_lifecycle import (
    AppointmentError,
    InvalidTransitionError,
    NotParticipantError,
    can_cancel,
    can_modify,
    has_scheduling_conflict,
    update_expired_appointments,
)
from tutorconnect.services.messaging import add_chat_message

router = APIRouter(tags=['appointments'])
chat_router = APIRouter(tags=['appointments'])

logger = logging.getLogger(__name__)

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'
MIN_DURATION_MINUTES = 15
MAX_DURATION_MINUTES = 480
DEFAULT_DURATION_MINUTES = 60
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def normalize_appointment_datetime(value: datetime) -> datetime:
    """Store local naive datetimes at minute precision."""
    if value.tzinfo is not None:
        value = value.astimezone().replace(tzinfo=None)
    return value.replace(second=0, microsecond=0)


def _validate_duration(value: int) -> int:
    if not MIN_DURATION_MINUTES <= value <= MAX_DURATION_MINUTES:
        raise ValueError(f'Duration must be between {MIN_DURATION_MINUTES} and {MAX_DURATION_MINUTES} minutes.')
    return value


def _validate_location(value: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValueError('Location is required.')
    if len(normalized) > 200:
        raise ValueError('Location cannot exceed 200 characters.')
    return normalized


def _validate_notes(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    if len(normalized) > 1000:
        raise ValueError('Notes cannot exceed 1000 characters.')
    return normalized or None


class CreateAppointmentRequest(BaseModel):
    chat_id: int
    date_time: datetime
    duration: int = DEFAULT_DURATION_MINUTES
    location: str
    notes: str | None = None

    @field_validator('date_time')
    @classmethod
    def validate_date_time(cls, value: datetime) -> datetime:
        return normalize_appointment_datetime(value)

    @field_validator('duration')
    @classmethod
    def validate_duration(cls, value: int) -> int:
        return _validate_duration(value)

    @field_validator('location')
    @classmethod
    def validate_location(cls, value: str) -> str:
        return _validate_location(value)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _validate_notes(value)


class UpdateAppointmentRequest(BaseModel):
    date_time: datetime | None = None
    duration: int | None = None
    location: str | None = None
    notes: str | None = None

    @field_validator('date_time')
    @classmethod
    def validate_date_time(cls, value: datetime | None) -> datetime | None:
        return normalize_appointment_datetime(value) if value is not None else None

    @field_validator('duration')
    @classmethod
    def validate_duration(cls, value: int | None) -> int | None:
        return _validate_duration(value) if value is not None else None

    @field_validator('location')
    @classmethod
    def validate_location(cls, value: str | None) -> str | None:
        return _validate_location(value) if value is not None else None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _validate_notes(value)


class RespondAppointmentRequest(BaseModel):
    accepted: bool


class ConfirmAppointmentRequest(BaseModel):
    confirmed: bool
    notes: str | None = None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _validate_notes(value)


class CompleteAppointmentRequest(BaseModel):
    completed: bool = True


class CancelAppointmentRequest(BaseModel):
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        if len(normalized) > 500:
            raise ValueError('Reason cannot exceed 500 characters.')
        return normalized or None


class AppointmentResponse(BaseModel):
    id: int
    chat_id: int
    proposed_by_id: int | None = None
    date_time: datetime
    duration: int
    location: str
    status: str
    teacher_ready: bool
    student_ready: bool
    both_completed: bool
    cancellation_reason: str | None = None
    notes: str | None = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class AppointmentDetailResponse(AppointmentResponse):
    role: str
    can_modify: bool
    can_cancel: bool


def map_appointment_error(exc: AppointmentError) -> HTTPException:
    if isinstance(exc, NotParticipantError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def get_appointment_or_404(db: Session, appointment_id: int) -> Appointment:
    appointment = db.get(Appointment, appointment_id)
    if appointment is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Appointment not found.',
        )
    return appointment


def format_appointment_time(value: datetime) -> str:
    return value.strftime('%d.%m.%Y at %H:%M')


def add_system_message(
    db: Session,
    appointment: Appointment,
    sender: User,
    content: str,
    message_type: MessageType = MessageType.APPOINTMENT_RESPONSE,
) -> None:
    add_chat_message(db, appointment.chat, sender.id, content, message_type, appointment_id=appointment.id)


def build_detail(db: Session, appointment: Appointment, user: User) -> AppointmentDetailResponse:
    role = appointment_lifecycle.require_participant_role(db, appointment, user.id)
    return AppointmentDetailResponse(
        **AppointmentResponse.model_validate(appointment).model_dump(),
        role=role,
        can_modify=can_modify(appointment),
        can_cancel=can_cancel(appointment),
    )


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if data.date_time <= datetime.now():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Appointments must be scheduled in the future.',
        )

    try:
        chat = get_chat_for_participant(db, data.chat_id, current_user.id)

        for user_id in (chat.teacher_id, chat.student_id):
            if has_scheduling_conflict(db, user_id, data.date_time, data.duration):
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail='This time overlaps with another appointment.',
                )

        appointment = Appointment(
            chat_id=chat.id,
            proposed_by_id=current_user.id,
            date_time=data.date_time,
            duration=data.duration,
            location=data.location,
            notes=data.notes,
            status=AppointmentStatus.PENDING.value,
        )
        db.add(appointment)
        db.flush()

        add_chat_message(
            db,
            chat,
            current_user.id,
            f'{current_user.name} has requested an appointment for '
            f'{format_appointment_time(appointment.date_time)} in {appointment.location}.',
            MessageType.APPOINTMENT_REQUEST,
            appointment_id=appointment.id,
        )
        db.commit()
        db.refresh(appointment)
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    logger.info('User %s requested appointment %s in chat %s', current_user.id, appointment.id, chat.id)
    return appointment


@router.get('')
def list_my_appointments(
    status_filter: AppointmentStatus | None = Query(default=None, alias='status'),
    chat_id: int | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        query = db.query(Appointment).join(Chat, Appointment.chat_id == Chat.id).join(
            ChatParticipant, ChatParticipant.chat_id == Chat.id
        ).filter(
            ChatParticipant.user_id == current_user.id,
            ChatParticipant.is_active.is_(True),
        )
        if status_filter is not None:
            query = query.filter(Appointment.status == status_filter.value)
        if chat_id is not None:
            query = query.filter(Appointment.chat_id == chat_id)

        total = query.count()
        appointments = query.order_by(Appointment.date_time.asc(), Appointment.id.asc()).offset(
            (page - 1) * limit
        ).limit(limit).all()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    total_pages = math.ceil(total / limit) if total else 0
    return {
        'items': [AppointmentResponse.model_validate(appointment) for appointment in appointments],
        'pagination': {
            'page': page,
            'limit': limit,
            'total': total,
            'total_pages': total_pages,
            'has_next': page < total_pages,
            'has_prev': page > 1,
        },
    }


@chat_router.get('/{chat_id}/appointments', response_model=list[AppointmentResponse])
def list_chat_appointments(
    chat_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        get_chat_for_participant(db, chat_id, current_user.id)
        update_expired_appointments(db, chat_id=chat_id)

        return db.query(Appointment).filter(Appointment.chat_id == chat_id).order_by(
            Appointment.date_time.asc(), Appointment.id.asc()
        ).all()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@chat_router.get('/{chat_id}/appointments/check')
def check_chat_appointment_on_date(
    chat_id: int,
    day: date = Query(..., alias='date'),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    day_start = datetime.combine(day, datetime.min.time())
    day_end = day_start + timedelta(days=1)

    try:
        get_chat_for_participant(db, chat_id, current_user.id)
        appointment = db.query(Appointment).filter(
            Appointment.chat_id == chat_id,
            Appointment.status != AppointmentStatus.CANCELLED.value,
            Appointment.date_time >= day_start,
            Appointment.date_time < day_end,
        ).order_by(Appointment.date_time.asc()).first()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    return {
        'has_appointment': appointment is not None,
        'appointment': AppointmentResponse.model_validate(appointment) if appointment else None,
    }


@router.get('/{appointment_id}', response_model=AppointmentDetailResponse)
def get_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        appointment = get_appointment_or_404(db, appointment_id)
        return build_detail(db, appointment, current_user)
    except AppointmentError as exc:
        raise map_appointment_error(exc) from exc
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.post('/{appointment_id}/respond', response_model=AppointmentDetailResponse)
def respond_to_appointment(
    appointment_id: int,
    data: RespondAppointmentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        appointment = get_appointment_or_404(db, appointment_id)
        appointment_lifecycle.respond_to_appointment(db, appointment, current_user.id, data.accepted, commit=False)

        action = 'accepted' if data.accepted else 'declined'
        add_system_message(db, appointment, current_user, f'{current_user.name} has {action} the appointment request.')

        db.commit()
        return build_detail(db, appointment, current_user)
    except AppointmentError as exc:
        raise map_appointment_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.post('/{appointment_id}/confirm', response_model=AppointmentDetailResponse)
def confirm_appointment(
    appointment_id: int,
    data: ConfirmAppointmentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        appointment = get_appointment_or_404(db, appointment_id)
        appointment_lifecycle.confirm_pending_appointment(
            db, appointment, current_user.id, data.confirmed, notes=data.notes, commit=False,
        )

        if not data.confirmed:
            content = f'{current_user.name} has declined the appointment.'
        elif appointment.status == AppointmentStatus.CONFIRMED.value:
            content = 'Both participants have confirmed the appointment.'
        else:
            content = f'{current_user.name} has confirmed the appointment.'
        add_system_message(db, appointment, current_user, content)

        db.commit()
        return build_detail(db, appointment, current_user)
    except AppointmentError as exc:
        raise map_appointment_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.post('/{appointment_id}/complete', response_model=AppointmentDetailResponse)
def complete_appointment(
    appointment_id: int,
    data: CompleteAppointmentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        appointment = get_appointment_or_404(db, appointment_id)
        completed_now = appointment_lifecycle.set_completion_readiness(
            db, appointment, current_user.id, completed=data.completed, commit=False,
        )

        if completed_now:
            logger.info('Appointment %s completed', appointment.id)
            add_system_message(
                db, appointment, current_user,
                'Both participants have marked the session as completed.',
                MessageType.SYSTEM_MESSAGE,
            )

        db.commit()
        return build_detail(db, appointment, current_user)
    except AppointmentError as exc:
        raise map_appointment_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.post('/{appointment_id}/cancel', response_model=AppointmentDetailResponse)
def cancel_appointment(
    appointment_id: int,
    data: CancelAppointmentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        appointment = get_appointment_or_404(db, appointment_id)
        appointment_lifecycle.cancel_appointment(db, appointment, current_user.id, reason=data.reason, commit=False)

        content = f'{current_user.name} has cancelled the appointment.'
        if data.reason:
            content = f'{content} Reason: {data.reason}'
        add_system_message(db, appointment, current_user, content, MessageType.SYSTEM_MESSAGE)

        db.commit()
        return build_detail(db, appointment, current_user)
    except AppointmentError as exc:
        raise map_appointment_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.patch('/{appointment_id}', response_model=AppointmentDetailResponse)
def update_appointment(
    appointment_id: int,
    data: UpdateAppointmentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        appointment = get_appointment_or_404(db, appointment_id)
        appointment_lifecycle.require_participant_role(db, appointment, current_user.id)

        if not can_modify(appointment):
            raise InvalidTransitionError('This appointment can no longer be changed.')

        new_start = data.date_time or appointment.date_time
        new_duration = data.duration or appointment.duration
        if data.date_time is not None and new_start <= datetime.now():
            raise InvalidTransitionError('Appointments must be scheduled in the future.')

        if data.date_time is not None or data.duration is not None:
            chat = appointment.chat
            for user_id in (chat.teacher_id, chat.student_id):
                if has_scheduling_conflict(db, user_id, new_start, new_duration, exclude_appointment_id=appointment.id):
                    raise HTTPException(
                        status_code=status.HTTP_409_CONFLICT,
                        detail='This time overlaps with another appointment.',
                    )

        previous_status = appointment.status
        appointment_lifecycle.reschedule_appointment(
            db,
            appointment,
            current_user.id,
            date_time=data.date_time,
            duration=data.duration,
            location=data.location,
            notes=data.notes,
            commit=False,
        )

        if previous_status != appointment.status:
            add_system_message(
                db, appointment, current_user,
                f'{current_user.name} has proposed a new time: {format_appointment_time(appointment.date_time)}.',
                MessageType.APPOINTMENT_REQUEST,
            )

        db.commit()
        return build_detail(db, appointment, current_user)
    except AppointmentError as exc:
        raise map_appointment_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.delete('/{appointment_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        appointment = get_appointment_or_404(db, appointment_id)
        appointment_lifecycle.require_participant_role(db, appointment, current_user.id)

        db.query(Message).filter(Message.appointment_id == appointment.id).update(
            {Message.appointment_id: None},
            synchronize_session=False,
        )
        db.delete(appointment)
        db.commit()
    except AppointmentError as exc:
        raise map_appointment_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    logger.info('User %s deleted appointment %s', current_user.id, appointment_id)
