"""Appointment model definitions."""

import enum
from datetime import datetime, timedelta

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from tutorconnect.database import Base


class AppointmentStatus(str, enum.Enum):
    PENDING = 'PENDING'
    CONFIRMED = 'CONFIRMED'
    WAITING_TO_COMPLETE = 'WAITING_TO_COMPLETE'
    COMPLETED = 'COMPLETED'
    CANCELLED = 'CANCELLED'


class Appointment(Base):
    """Represents a scheduled tutoring session inside a chat."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    chat_id = Column(Integer, ForeignKey("chats.id"), nullable=False, index=True)
    proposed_by_id = Column(Integer, ForeignKey("users.id"))
    date_time = Column(DateTime, nullable=False)
    duration = Column(Integer, default=60, nullable=False)
    location = Column(String, nullable=False)
    status = Column(String, default=AppointmentStatus.PENDING.value, nullable=False)
    teacher_ready = Column(Boolean, default=False, nullable=False)
    student_ready = Column(Boolean, default=False, nullable=False)
    both_completed = Column(Boolean, default=False, nullable=False)
    cancellation_reason = Column(String)
    notes = Column(Text)
    completion_reminder_sent_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.now, nullable=False)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)

    chat = relationship("Chat", back_populates="appointments")

    @property
    def end_time(self) -> datetime:
        return self.date_time + timedelta(minutes=self.duration or 0)
