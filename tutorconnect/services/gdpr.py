"""GDPR data subject requests: export (Article 20) and erasure (Article 17).

Erasure anonymizes rather than deletes so that chats, appointments and the
counterpart's statistics stay consistent.
"""

import json
import logging
import secrets
from datetime import datetime

from sqlalchemy.orm import Session

from tutorconnect.models.appointment import Appointment, AppointmentStatus
from tutorconnect.models.chat import Chat, ChatParticipant, Message
from tutorconnect.models.post import Post
from tutorconnect.models.user import User

logger = logging.getLogger(__name__)

DATA_CONTROLLER = 'TutorConnect AS'
LEGAL_BASIS = 'consent'

# Days.
DATA_RETENTION_PERIODS = {
    'personal_identity': 2555,
    'contact_information': 1095,
    'demographic': 1095,
    'educational': 2190,
    'behavioral': 730,
    'technical': 365,
}

ANONYMIZED_FIELDS = [
    'email', 'name', 'postal_code', 'bio', 'school', 'degree', 'certifications', 'messages', 'posts',
]
RETAINED_FIELDS = ['region', 'gender', 'birth_year', 'session_statistics', 'appointments']


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def generate_user_data_export(db: Session, user: User) -> dict:
    posts = db.query(Post).filter(Post.user_id == user.id).order_by(Post.created_at.asc()).all()
    messages = db.query(Message).filter(Message.sender_id == user.id).order_by(Message.sent_at.asc()).all()
    chats = db.query(Chat).join(ChatParticipant, ChatParticipant.chat_id == Chat.id).filter(
        ChatParticipant.user_id == user.id,
    ).order_by(Chat.created_at.asc()).all()
    chat_ids = [chat.id for chat in chats]
    appointments = db.query(Appointment).filter(Appointment.chat_id.in_(chat_ids)).order_by(
        Appointment.date_time.asc()
    ).all() if chat_ids else []

    export = {
        'export_metadata': {
            'user_id': user.id,
            'generated_at': datetime.now().isoformat(),
            'data_controller': DATA_CONTROLLER,
            'legal_basis': LEGAL_BASIS,
            'retention_policy': DATA_RETENTION_PERIODS,
        },
        'personal_identity': {
            'id': user.id,
            'email': user.email,
            'name': user.name,
            'created_at': _isoformat(user.created_at),
        },
        'contact_information': {
            'region': user.region,
            'postal_code': user.postal_code,
        },
        'demographic_data': {
            'gender': user.gender,
            'birth_year': user.birth_year,
        },
        'profile_data': {
            'bio': user.bio,
            'school': user.school,
            'degree': user.degree,
            'certifications': user.certifications,
        },
        'privacy_settings': {
            'privacy_gender': user.privacy_gender,
            'privacy_age': user.privacy_age,
            'privacy_documents': user.privacy_documents,
            'privacy_contact': user.privacy_contact,
        },
        'activity_data': {
            'last_active': _isoformat(user.last_active),
            'is_active': user.is_active,
            'teacher_sessions': user.teacher_sessions,
            'teacher_students': user.teacher_students,
            'student_sessions': user.student_sessions,
            'student_teachers': user.student_teachers,
        },
        'posts': [
            {
                'id': post.id,
                'type': post.type,
                'subject': post.subject,
                'title': post.title,
                'description': post.description,
                'location': post.location,
                'hourly_rate': post.hourly_rate,
                'created_at': _isoformat(post.created_at),
                'is_active': post.is_active,
            }
            for post in posts
        ],
        'messages': [
            {
                'id': message.id,
                'chat_id': message.chat_id,
                'content': message.content,
                'type': message.type,
                'sent_at': _isoformat(message.sent_at),
                'is_edited': message.is_edited,
            }
            for message in messages
        ],
        'chats': [
            {
                'id': chat.id,
                'related_post_id': chat.related_post_id,
                'created_at': _isoformat(chat.created_at),
            }
            for chat in chats
        ],
        'appointments': [
            {
                'id': appointment.id,
                'chat_id': appointment.chat_id,
                'date_time': _isoformat(appointment.date_time),
                'duration': appointment.duration,
                'location': appointment.location,
                'status': appointment.status,
            }
            for appointment in appointments
        ],
    }

    return {
        'personal_data': export,
        'export_size': len(json.dumps(export)),
        'generated_at': datetime.now().isoformat(),
    }


def anonymize_user_data(db: Session, user: User, reason: str = 'User requested deletion') -> dict:
    """Anonymize the user's personal data in a single transaction."""
    anonymous_id = f'anon_{secrets.token_hex(8)}'
    user_id = user.id

    user.email = f'{anonymous_id}@anonymized.tutorconnect.no'
    user.name = 'Anonymized User'
    user.hashed_password = ''
    user.postal_code = None
    user.bio = None
    user.school = None
    user.degree = None
    user.certifications = None
    user.is_active = False

    db.query(Message).filter(Message.sender_id == user_id).update(
        {Message.content: '[Message anonymized]'},
        synchronize_session=False,
    )
    db.query(Post).filter(Post.user_id == user_id).update(
        {
            Post.title: '[Post anonymized]',
            Post.description: '[Description anonymized]',
            Post.is_active: False,
        },
        synchronize_session=False,
    )
    db.query(ChatParticipant).filter(ChatParticipant.user_id == user_id).update(
        {ChatParticipant.is_active: False},
        synchronize_session=False,
    )

    chat_ids = [
        chat_id for (chat_id,) in db.query(Chat.id).filter((Chat.teacher_id == user_id) | (Chat.student_id == user_id))
    ]
    if chat_ids:
        db.query(Appointment).filter(
            Appointment.chat_id.in_(chat_ids),
            Appointment.status.in_([AppointmentStatus.PENDING.value, AppointmentStatus.CONFIRMED.value]),
        ).update(
            {
                Appointment.status: AppointmentStatus.CANCELLED.value,
                Appointment.cancellation_reason: 'Participant account deleted',
            },
            synchronize_session=False,
        )

    db.commit()

    logger.info('User %s anonymized as %s: %s', user_id, anonymous_id, reason)

    return {
        'success': True,
        'anonymized_fields': ANONYMIZED_FIELDS,
        'retained_data': RETAINED_FIELDS,
    }
