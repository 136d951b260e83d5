"""User model definitions."""

import enum
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from tutorconnect.database import Base


class PrivacySetting(str, enum.Enum):
    PUBLIC = 'PUBLIC'
    ON_REQUEST = 'ON_REQUEST'
    PRIVATE = 'PRIVATE'


class User(Base):
    """Represents a tutor, a student, or both."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    name = Column(String, nullable=False)
    region = Column(String, nullable=False)
    postal_code = Column(String)
    gender = Column(String)
    birth_year = Column(Integer)
    bio = Column(Text)
    school = Column(String)
    degree = Column(String)
    certifications = Column(Text)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.now, nullable=False)
    last_active = Column(DateTime, default=datetime.now)

    privacy_gender = Column(String, default=PrivacySetting.PUBLIC.value, nullable=False)
    privacy_age = Column(String, default=PrivacySetting.PUBLIC.value, nullable=False)
    privacy_documents = Column(String, default=PrivacySetting.ON_REQUEST.value, nullable=False)
    privacy_contact = Column(String, default=PrivacySetting.ON_REQUEST.value, nullable=False)

    email_new_chat = Column(Boolean, default=True, nullable=False)
    email_new_message = Column(Boolean, default=False, nullable=False)
    email_appointment_confirm = Column(Boolean, default=True, nullable=False)
    email_appointment_complete = Column(Boolean, default=True, nullable=False)

    # Only the completion statistics rollup writes these.
    teacher_sessions = Column(Integer, default=0, nullable=False)
    teacher_students = Column(Integer, default=0, nullable=False)
    student_sessions = Column(Integer, default=0, nullable=False)
    student_teachers = Column(Integer, default=0, nullable=False)
