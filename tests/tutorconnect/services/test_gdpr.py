from datetime import datetime

from tutorconnect.models.appointment import AppointmentStatus
from tutorconnect.models.chat import ChatParticipant
from tutorconnect.services.gdpr import ANONYMIZED_FIELDS, anonymize_user_data, generate_user_data_export


def test_export_includes_chats_and_appointments(db, make_user, make_chat, make_appointment) -> None:
    user = make_user()
    chat = make_chat(user, make_user())
    make_appointment(chat, datetime(2030, 1, 1, 10, 0))

    export = generate_user_data_export(db, user)['personal_data']

    assert [item['id'] for item in export['chats']] == [chat.id]
    assert export['appointments'][0]['date_time'] == '2030-01-01T10:00:00'
    assert export['activity_data']['teacher_sessions'] == 0


def test_anonymize_deactivates_posts_and_participations(db, make_user, make_post, make_chat) -> None:
    user = make_user(bio='Om meg', school='UiO')
    post = make_post(user)
    chat = make_chat(user, make_user())

    result = anonymize_user_data(db, user)

    db.refresh(user)
    db.refresh(post)
    participant = db.query(ChatParticipant).filter(
        ChatParticipant.chat_id == chat.id,
        ChatParticipant.user_id == user.id,
    ).one()
    db.refresh(participant)

    assert result['anonymized_fields'] == ANONYMIZED_FIELDS
    assert user.bio is None
    assert user.school is None
    assert user.hashed_password == ''
    assert post.is_active is False
    assert post.title == '[Post anonymized]'
    assert participant.is_active is False


def test_anonymize_cancels_open_appointments_only(db, make_user, make_chat, make_appointment) -> None:
    user = make_user()
    chat = make_chat(user, make_user())
    pending = make_appointment(chat, datetime(2030, 1, 1, 10), status=AppointmentStatus.PENDING)
    confirmed = make_appointment(chat, datetime(2030, 1, 2, 10))
    completed = make_appointment(chat, datetime(2024, 1, 2, 10), status=AppointmentStatus.COMPLETED)

    anonymize_user_data(db, user)

    for appointment in (pending, confirmed, completed):
        db.refresh(appointment)
    assert pending.status == AppointmentStatus.CANCELLED.value
    assert confirmed.cancellation_reason == 'Participant account deleted'
    assert completed.status == AppointmentStatus.COMPLETED.value


def test_anonymize_keeps_session_statistics(db, make_user) -> None:
    user = make_user(teacher_sessions=4, teacher_students=2)

    anonymize_user_data(db, user)

    db.refresh(user)
    assert (user.teacher_sessions, user.teacher_students) == (4, 2)
