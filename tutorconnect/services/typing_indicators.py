"""Typing state stored per chat with an explicit expiry timestamp."""

from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from tutorconnect.core import config
from tutorconnect.models.chat import TypingIndicator


def set_typing(db: Session, chat_id: int, user_id: int, is_typing: bool, now: datetime | None = None) -> None:
    """Start or stop typing. Does not commit."""
    now = now or datetime.now()
    indicator = db.query(TypingIndicator).filter(
        TypingIndicator.chat_id == chat_id,
        TypingIndicator.user_id == user_id,
    ).first()

    if not is_typing:
        if indicator is not None:
            db.delete(indicator)
        return

    expires_at = now + timedelta(seconds=config.TYPING_INDICATOR_TTL_SECONDS)
    if indicator is None:
        db.add(TypingIndicator(chat_id=chat_id, user_id=user_id, expires_at=expires_at))
    else:
        indicator.expires_at = expires_at


def get_typing_users(db: Session, chat_id: int, exclude_user_id: int, now: datetime | None = None) -> list[TypingIndicator]:
    """Unexpired indicators of other users. Prunes the chat's expired rows; does not commit."""
    now = now or datetime.now()

    db.query(TypingIndicator).filter(
        TypingIndicator.chat_id == chat_id,
        TypingIndicator.expires_at <= now,
    ).delete(synchronize_session=False)

    return db.query(TypingIndicator).filter(
        TypingIndicator.chat_id == chat_id,
        TypingIndicator.user_id != exclude_user_id,
        TypingIndicator.expires_at > now,
    ).order_by(TypingIndicator.expires_at.asc()).all()
