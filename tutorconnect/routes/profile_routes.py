import logging
import re
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tutorconnect.auth.dependencies import get_current_user
from tutorconnect.database import get_db
from tutorconnect.models.post import NORWEGIAN_REGIONS
from tutorconnect.models.user import PrivacySetting, User
from tutorconnect.services.badges import get_student_badge, get_teacher_badge
from tutorconnect.services.gdpr import anonymize_user_data, generate_user_data_export
from tutorconnect.services.privacy import apply_privacy_settings, shares_chat

router = APIRouter(tags=['profile'])

logger = logging.getLogger(__name__)

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'
POSTAL_CODE_PATTERN = re.compile(r'^\d{4}$')
GENDERS = ('MALE', 'FEMALE', 'OTHER')
MIN_BIRTH_YEAR = 1900

PROFILE_FIELDS = (
    'id', 'email', 'name', 'region', 'postal_code', 'gender', 'birth_year', 'bio', 'school', 'degree',
    'certifications', 'created_at', 'last_active',
    'teacher_sessions', 'teacher_students', 'student_sessions', 'student_teachers',
    'privacy_gender', 'privacy_age', 'privacy_documents', 'privacy_contact',
    'email_new_chat', 'email_new_message', 'email_appointment_confirm', 'email_appointment_complete',
)


class UpdateProfileRequest(BaseModel):
    name: str | None = None
    region: str | None = None
    postal_code: str | None = None
    gender: str | None = None
    birth_year: int | None = None
    bio: str | None = None
    school: str | None = None
    degree: str | None = None
    certifications: str | None = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        if not 2 <= len(normalized) <= 100:
            raise ValueError('Name must be between 2 and 100 characters.')
        return normalized

    @field_validator('region')
    @classmethod
    def validate_region(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().upper()
        if normalized not in NORWEGIAN_REGIONS:
            raise ValueError('Invalid region.')
        return normalized

    @field_validator('postal_code')
    @classmethod
    def validate_postal_code(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        if not POSTAL_CODE_PATTERN.match(normalized):
            raise ValueError('Postal code must be 4 digits.')
        return normalized

    @field_validator('gender')
    @classmethod
    def validate_gender(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().upper()
        if normalized not in GENDERS:
            raise ValueError('Invalid gender.')
        return normalized

    @field_validator('birth_year')
    @classmethod
    def validate_birth_year(cls, value: int | None) -> int | None:
        if value is None:
            return None
        if not MIN_BIRTH_YEAR <= value <= datetime.now().year:
            raise ValueError('Invalid birth year.')
        return value

    @field_validator('bio')
    @classmethod
    def validate_bio(cls, value: str | None) -> str | None:
        if value is not None and len(value) > 1000:
            raise ValueError('Bio cannot exceed 1000 characters.')
        return value


class UpdatePrivacyRequest(BaseModel):
    privacy_gender: PrivacySetting | None = None
    privacy_age: PrivacySetting | None = None
    privacy_documents: PrivacySetting | None = None
    privacy_contact: PrivacySetting | None = None


class UpdateEmailNotificationsRequest(BaseModel):
    email_new_chat: bool | None = None
    email_new_message: bool | None = None
    email_appointment_confirm: bool | None = None
    email_appointment_complete: bool | None = None


class GdprRequest(BaseModel):
    action: str
    confirm_email: str | None = None

    @field_validator('action')
    @classmethod
    def validate_action(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized != 'delete':
            raise ValueError('Unsupported GDPR action.')
        return normalized


def serialize_profile(user: User) -> dict:
    profile = {}
    for field_name in PROFILE_FIELDS:
        value = getattr(user, field_name)
        profile[field_name] = value.isoformat() if isinstance(value, datetime) else value

    profile['badges'] = {
        'teacher': get_teacher_badge(user.teacher_sessions, user.teacher_students),
        'student': get_student_badge(user.student_sessions, user.student_teachers),
    }
    return profile


def update_user_fields(db: Session, user: User, values: dict) -> dict:
    try:
        for field_name, value in values.items():
            setattr(user, field_name, value.value if isinstance(value, PrivacySetting) else value)
        db.commit()
        db.refresh(user)
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    return serialize_profile(user)


@router.get('')
def get_my_profile(current_user: User = Depends(get_current_user)):
    return serialize_profile(current_user)


@router.patch('')
def update_my_profile(
    data: UpdateProfileRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    values = {key: value for key, value in data.model_dump(exclude_unset=True).items() if value is not None}
    return update_user_fields(db, current_user, values)


@router.patch('/privacy')
def update_privacy_settings(
    data: UpdatePrivacyRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    values = {key: value for key, value in data.model_dump(exclude_unset=True).items() if value is not None}
    return update_user_fields(db, current_user, values)


@router.patch('/email-notifications')
def update_email_notifications(
    data: UpdateEmailNotificationsRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    values = {key: value for key, value in data.model_dump(exclude_unset=True).items() if value is not None}
    return update_user_fields(db, current_user, values)


@router.get('/gdpr')
def export_my_data(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        return generate_user_data_export(db, current_user)
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.post('/gdpr')
def handle_gdpr_request(
    data: GdprRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    confirm_email = (data.confirm_email or '').strip().lower()
    if confirm_email != current_user.email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Email confirmation does not match your account.',
        )

    try:
        return anonymize_user_data(db, current_user)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('GDPR erasure for user %s failed', current_user.id)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.get('/{user_id}')
def get_public_profile(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        user = db.query(User).filter(User.id == user_id, User.is_active.is_(True)).first()
        if user is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='User not found.',
            )

        is_owner = user.id == current_user.id
        has_request_permission = is_owner or shares_chat(db, current_user.id, user.id)
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    return apply_privacy_settings(serialize_profile(user), user, is_owner, has_request_permission)
