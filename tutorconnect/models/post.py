"""Post model definitions."""

import enum
from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from tutorconnect.database import Base


class PostType(str, enum.Enum):
    TEACHER = 'TEACHER'
    STUDENT = 'STUDENT'


class PostStatus(str, enum.Enum):
    AKTIV = 'AKTIV'
    PAUSET = 'PAUSET'


SUBJECT_LABELS = {
    'math': 'Matematikk',
    'english': 'Engelsk',
    'norwegian': 'Norsk',
    'science': 'Naturfag',
    'programming': 'Programmering',
    'sports': 'Sport',
    'art': 'Kunst',
    'music': 'Musikk',
    'childcare': 'Barnepass og aktiviteter',
    'other': 'Annet',
}

AGE_GROUPS = ('PRESCHOOL', 'PRIMARY_LOWER', 'PRIMARY_UPPER', 'MIDDLE', 'SECONDARY', 'ADULTS')

NORWEGIAN_REGIONS = (
    'OSLO', 'BERGEN', 'TRONDHEIM', 'STAVANGER', 'KRISTIANSAND', 'FREDRIKSTAD', 'SANDNES',
    'TROMSOE', 'DRAMMEN', 'ASKER', 'BAERUM', 'AKERSHUS', 'OESTFOLD', 'BUSKERUD', 'VESTFOLD',
    'TELEMARK', 'AUST_AGDER', 'VEST_AGDER', 'ROGALAND', 'HORDALAND', 'SOGN_OG_FJORDANE',
    'MOERE_OG_ROMSDAL', 'NORD_TROENDELAG', 'SOER_TROENDELAG', 'NORDLAND', 'TROMS', 'FINNMARK',
)


def get_subject_label(subject: str | None) -> str:
    return SUBJECT_LABELS.get(subject or '', 'Annet')


class Post(Base):
    """Represents a teacher or student listing."""
    __tablename__ = "posts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String, nullable=False)
    subject = Column(String, nullable=False)
    age_groups = Column(JSON, default=list, nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    available_days = Column(JSON, default=list, nullable=False)
    available_times = Column(JSON, default=list, nullable=False)
    location = Column(String, nullable=False)
    specific_location = Column(String)
    hourly_rate = Column(Integer)
    hourly_rate_min = Column(Integer)
    hourly_rate_max = Column(Integer)
    status = Column(String, default=PostStatus.AKTIV.value, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.now, nullable=False)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)

    user = relationship("User")
