import itertools
import os
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')
os.environ.setdefault('APPOINTMENT_SWEEP_ENABLED', 'false')

from tutorconnect.database import Base  # noqa: E402
from tutorconnect.models.appointment import Appointment, AppointmentStatus  # noqa: E402
from tutorconnect.models.chat import Chat, ChatParticipant  # noqa: E402
from tutorconnect.models.post import Post, PostType  # noqa: E402
from tutorconnect.models.user import User  # noqa: E402


@pytest.fixture
def db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make_user(db):
    counter = itertools.count(1)

    def _make_user(name: str | None = None, **overrides) -> User:
        index = next(counter)
        values = {
            'email': f'user{index}@example.no',
            'hashed_password': '',
            'name': name or f'Bruker {index}',
            'region': 'OSLO',
        }
        values.update(overrides)
        user = User(**values)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_post(db):
    def _make_post(owner: User, post_type: PostType = PostType.TEACHER, **overrides) -> Post:
        values = {
            'user_id': owner.id,
            'type': post_type.value,
            'subject': 'math',
            'age_groups': ['SECONDARY'],
            'title': 'Matematikk for videregående',
            'description': 'Erfaren lærer tilbyr hjelp med matematikk på alle nivåer.',
            'available_days': ['MONDAY', 'WEDNESDAY'],
            'available_times': ['16:00', '18:00'],
            'location': 'OSLO',
            'hourly_rate': 400,
        }
        values.update(overrides)
        post = Post(**values)
        db.add(post)
        db.commit()
        db.refresh(post)
        return post

    return _make_post


@pytest.fixture
def make_chat(db):
    def _make_chat(teacher: User, student: User, post: Post | None = None) -> Chat:
        chat = Chat(teacher_id=teacher.id, student_id=student.id, related_post_id=post.id if post else None)
        db.add(chat)
        db.flush()
        db.add_all([
            ChatParticipant(chat_id=chat.id, user_id=teacher.id),
            ChatParticipant(chat_id=chat.id, user_id=student.id),
        ])
        db.commit()
        db.refresh(chat)
        return chat

    return _make_chat


@pytest.fixture
def make_appointment(db):
    def _make_appointment(
        chat: Chat,
        date_time: datetime,
        duration: int = 60,
        status: AppointmentStatus = AppointmentStatus.CONFIRMED,
        **overrides,
    ) -> Appointment:
        values = {
            'chat_id': chat.id,
            'proposed_by_id': chat.student_id,
            'date_time': date_time,
            'duration': duration,
            'location': 'Deichman Bjørvika',
            'status': status.value,
        }
        values.update(overrides)
        appointment = Appointment(**values)
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    return _make_appointment
