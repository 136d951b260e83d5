import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tutorconnect.auth.dependencies import get_current_user
from tutorconnect.database import get_db
from tutorconnect.models.chat import Chat, ChatParticipant, Message
from tutorconnect.models.post import Post, PostType
from tutorconnect.models.user import User
from tutorconnect.services.appointment_lifecycle import is_active_participant
from tutorconnect.services.messaging import add_chat_message, mark_chat_read
from tutorconnect.services.typing_indicators import get_typing_users, set_typing

router = APIRouter(tags=['chats'])

logger = logging.getLogger(__name__)

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'
MAX_MESSAGE_LENGTH = 5000
DEFAULT_MESSAGE_PAGE_SIZE = 50


def _validate_content(value: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValueError('Message cannot be empty.')
    if len(normalized) > MAX_MESSAGE_LENGTH:
        raise ValueError(f'Message cannot exceed {MAX_MESSAGE_LENGTH} characters.')
    return normalized


class CreateChatRequest(BaseModel):
    post_id: int
    message: str | None = None

    @field_validator('message')
    @classmethod
    def validate_message(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return _validate_content(value)


class SendMessageRequest(BaseModel):
    content: str

    @field_validator('content')
    @classmethod
    def validate_content(cls, value: str) -> str:
        return _validate_content(value)


class TypingRequest(BaseModel):
    is_typing: bool


def serialize_message(message: Message) -> dict:
    return {
        'id': message.id,
        'chat_id': message.chat_id,
        'sender_id': message.sender_id,
        'sender_name': message.sender.name if message.sender else None,
        'content': message.content,
        'type': message.type,
        'appointment_id': message.appointment_id,
        'sent_at': message.sent_at.isoformat(),
        'is_edited': message.is_edited,
    }


def serialize_chat(db: Session, chat: Chat, user_id: int) -> dict:
    participant = next((item for item in chat.participants if item.user_id == user_id), None)
    last_message = db.query(Message).filter(Message.chat_id == chat.id).order_by(
        Message.sent_at.desc(), Message.id.desc()
    ).first()
    post = chat.related_post

    return {
        'id': chat.id,
        'teacher': {'id': chat.teacher.id, 'name': chat.teacher.name} if chat.teacher else None,
        'student': {'id': chat.student.id, 'name': chat.student.name} if chat.student else None,
        'related_post': {'id': post.id, 'title': post.title, 'subject': post.subject} if post else None,
        'participants': [
            {'user_id': item.user_id, 'name': item.user.name, 'is_active': item.is_active}
            for item in chat.participants
        ],
        'unread_count': participant.unread_count if participant else 0,
        'last_message': serialize_message(last_message) if last_message else None,
        'created_at': chat.created_at.isoformat(),
        'last_message_at': chat.last_message_at.isoformat() if chat.last_message_at else None,
    }


def get_chat_for_participant(db: Session, chat_id: int, user_id: int) -> Chat:
    chat = db.get(Chat, chat_id)
    if chat is None or not chat.is_active:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Chat not found.',
        )
    if not is_active_participant(db, chat.id, user_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='You do not have access to this chat.',
        )
    return chat


@router.post('', status_code=status.HTTP_201_CREATED)
def create_chat(
    data: CreateChatRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        post = db.query(Post).filter(Post.id == data.post_id, Post.is_active.is_(True)).first()
        if post is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Post not found.',
            )
        if post.user_id == current_user.id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='You cannot start a chat about your own post.',
            )

        if post.type == PostType.TEACHER.value:
            teacher_id, student_id = post.user_id, current_user.id
        else:
            teacher_id, student_id = current_user.id, post.user_id

        chat = db.query(Chat).filter(
            Chat.related_post_id == post.id,
            Chat.teacher_id == teacher_id,
            Chat.student_id == student_id,
        ).first()

        if chat is None:
            chat = Chat(related_post_id=post.id, teacher_id=teacher_id, student_id=student_id)
            db.add(chat)
            db.flush()
            db.add_all([
                ChatParticipant(chat_id=chat.id, user_id=teacher_id),
                ChatParticipant(chat_id=chat.id, user_id=student_id),
            ])
            db.flush()
            logger.info('User %s started chat %s about post %s', current_user.id, chat.id, post.id)
        elif not chat.is_active:
            chat.is_active = True

        if data.message:
            add_chat_message(db, chat, current_user.id, data.message)

        db.commit()
        db.refresh(chat)

        return serialize_chat(db, chat, current_user.id)
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.get('')
def list_my_chats(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        chats = db.query(Chat).join(ChatParticipant, ChatParticipant.chat_id == Chat.id).filter(
            ChatParticipant.user_id == current_user.id,
            ChatParticipant.is_active.is_(True),
            Chat.is_active.is_(True),
        ).order_by(Chat.last_message_at.desc(), Chat.id.desc()).all()

        return [serialize_chat(db, chat, current_user.id) for chat in chats]
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.get('/{chat_id}')
def get_chat(
    chat_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        chat = get_chat_for_participant(db, chat_id, current_user.id)
        return serialize_chat(db, chat, current_user.id)
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.get('/{chat_id}/messages')
def list_messages(
    chat_id: int,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_MESSAGE_PAGE_SIZE, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        get_chat_for_participant(db, chat_id, current_user.id)

        query = db.query(Message).filter(Message.chat_id == chat_id)
        total = query.count()
        # Newest page first, then oldest-to-newest within the page.
        messages = query.order_by(Message.sent_at.desc(), Message.id.desc()).offset(
            (page - 1) * limit
        ).limit(limit).all()
        messages.reverse()

        mark_chat_read(db, chat_id, current_user.id)
        db.commit()

        return {
            'items': [serialize_message(message) for message in messages],
            'page': page,
            'limit': limit,
            'total': total,
            'has_more': page * limit < total,
        }
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.post('/{chat_id}/messages', status_code=status.HTTP_201_CREATED)
def send_message(
    chat_id: int,
    data: SendMessageRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        chat = get_chat_for_participant(db, chat_id, current_user.id)
        message = add_chat_message(db, chat, current_user.id, data.content)
        set_typing(db, chat.id, current_user.id, False)
        db.commit()
        db.refresh(message)

        return serialize_message(message)
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.post('/{chat_id}/typing')
def update_typing(
    chat_id: int,
    data: TypingRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        get_chat_for_participant(db, chat_id, current_user.id)
        set_typing(db, chat_id, current_user.id, data.is_typing)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    return {'success': True, 'is_typing': data.is_typing}


@router.get('/{chat_id}/typing')
def list_typing_users(
    chat_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        get_chat_for_participant(db, chat_id, current_user.id)
        indicators = get_typing_users(db, chat_id, exclude_user_id=current_user.id)
        result = [
            {'user_id': indicator.user_id, 'name': indicator.user.name if indicator.user else None}
            for indicator in indicators
        ]
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    return {'typing_users': result}
