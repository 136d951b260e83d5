from sqlalchemy.orm import Session, aliased

from tutorconnect.models.chat import ChatParticipant
from tutorconnect.models.user import PrivacySetting, User

# Privacy setting attribute -> profile fields it guards.
PRIVACY_FIELDS = {
    'privacy_gender': ('gender',),
    'privacy_age': ('birth_year',),
    'privacy_documents': ('school', 'degree', 'certifications'),
    'privacy_contact': ('email', 'postal_code'),
}

OWNER_ONLY_FIELDS = (
    'privacy_gender',
    'privacy_age',
    'privacy_documents',
    'privacy_contact',
    'email_new_chat',
    'email_new_message',
    'email_appointment_confirm',
    'email_appointment_complete',
)


def shares_chat(db: Session, user_id: int, other_user_id: int) -> bool:
    other = aliased(ChatParticipant)
    return db.query(ChatParticipant.id).join(
        other,
        other.chat_id == ChatParticipant.chat_id,
    ).filter(
        ChatParticipant.user_id == user_id,
        other.user_id == other_user_id,
    ).first() is not None


def is_visible(setting: str | None, has_request_permission: bool) -> bool:
    if setting == PrivacySetting.PRIVATE.value:
        return False
    if setting == PrivacySetting.ON_REQUEST.value:
        return has_request_permission
    return True


def apply_privacy_settings(profile: dict, user: User, is_owner: bool, has_request_permission: bool = False) -> dict:
    if is_owner:
        return profile

    filtered = dict(profile)
    for setting_name, fields in PRIVACY_FIELDS.items():
        if not is_visible(getattr(user, setting_name), has_request_permission):
            for field in fields:
                filtered[field] = None

    for field in OWNER_ONLY_FIELDS:
        filtered.pop(field, None)

    return filtered
