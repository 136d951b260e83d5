from datetime import datetime

from sqlalchemy.orm import Session

from tutorconnect.models.chat import Chat, ChatParticipant, Message, MessageType


def add_chat_message(
    db: Session,
    chat: Chat,
    sender_id: int,
    content: str,
    message_type: MessageType = MessageType.TEXT,
    appointment_id: int | None = None,
) -> Message:
    """Add a message to the session, bump the chat and the other participants' unread counts.

    Does not commit.
    """
    now = datetime.now()
    message = Message(
        chat_id=chat.id,
        sender_id=sender_id,
        content=content,
        type=message_type.value,
        appointment_id=appointment_id,
        sent_at=now,
    )
    db.add(message)

    chat.last_message_at = now

    db.query(ChatParticipant).filter(
        ChatParticipant.chat_id == chat.id,
        ChatParticipant.user_id != sender_id,
        ChatParticipant.is_active.is_(True),
    ).update(
        {ChatParticipant.unread_count: ChatParticipant.unread_count + 1},
        synchronize_session=False,
    )

    return message


def mark_chat_read(db: Session, chat_id: int, user_id: int) -> None:
    db.query(ChatParticipant).filter(
        ChatParticipant.chat_id == chat_id,
        ChatParticipant.user_id == user_id,
    ).update(
        {ChatParticipant.unread_count: 0, ChatParticipant.last_read_at: datetime.now()},
        synchronize_session=False,
    )
