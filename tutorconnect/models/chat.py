"""Chat, message and typing indicator model definitions."""

import enum
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from tutorconnect.database import Base


class MessageType(str, enum.Enum):
    TEXT = 'TEXT'
    APPOINTMENT_REQUEST = 'APPOINTMENT_REQUEST'
    APPOINTMENT_RESPONSE = 'APPOINTMENT_RESPONSE'
    SYSTEM_MESSAGE = 'SYSTEM_MESSAGE'


class Chat(Base):
    """A conversation between a teacher and a student, usually about a post."""
    __tablename__ = "chats"

    id = Column(Integer, primary_key=True, index=True)
    related_post_id = Column(Integer, ForeignKey("posts.id"), index=True)
    teacher_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.now, nullable=False)
    last_message_at = Column(DateTime, default=datetime.now)

    related_post = relationship("Post")
    teacher = relationship("User", foreign_keys=[teacher_id])
    student = relationship("User", foreign_keys=[student_id])
    participants = relationship("ChatParticipant", back_populates="chat", cascade="all, delete-orphan")
    messages = relationship("Message", back_populates="chat", cascade="all, delete-orphan")
    appointments = relationship("Appointment", back_populates="chat", cascade="all, delete-orphan")


class ChatParticipant(Base):
    __tablename__ = "chat_participants"
    __table_args__ = (UniqueConstraint('chat_id', 'user_id', name='uq_chat_participant'),)

    id = Column(Integer, primary_key=True)
    chat_id = Column(Integer, ForeignKey("chats.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    unread_count = Column(Integer, default=0, nullable=False)
    joined_at = Column(DateTime, default=datetime.now, nullable=False)
    last_read_at = Column(DateTime)

    chat = relationship("Chat", back_populates="participants")
    user = relationship("User")


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True)
    chat_id = Column(Integer, ForeignKey("chats.id"), nullable=False, index=True)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    type = Column(String, default=MessageType.TEXT.value, nullable=False)
    appointment_id = Column(Integer, ForeignKey("appointments.id"))
    sent_at = Column(DateTime, default=datetime.now, nullable=False)
    is_edited = Column(Boolean, default=False, nullable=False)

    chat = relationship("Chat", back_populates="messages")
    sender = relationship("User")


class TypingIndicator(Base):
    """A participant's typing state, valid until ``expires_at``."""
    __tablename__ = "typing_indicators"
    __table_args__ = (UniqueConstraint('chat_id', 'user_id', name='uq_typing_chat_user'),)

    id = Column(Integer, primary_key=True)
    chat_id = Column(Integer, ForeignKey("chats.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    expires_at = Column(DateTime, nullable=False)

    user = relationship("User")
