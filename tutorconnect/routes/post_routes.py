import math
import re
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy import String, and_, cast, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tutorconnect.auth.dependencies import get_current_user
from tutorconnect.database import get_db
from tutorconnect.models.post import AGE_GROUPS, NORWEGIAN_REGIONS, SUBJECT_LABELS, Post, PostStatus, PostType
from tutorconnect.models.user import User

router = APIRouter(tags=['posts'])

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'
WEEKDAYS = ('MONDAY', 'TUESDAY', 'WEDNESDAY', 'THURSDAY', 'FRIDAY', 'SATURDAY', 'SUNDAY')
TIME_SLOT_PATTERN = re.compile(r'^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$')
MAX_HOURLY_RATE = 10000
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
SORT_COLUMNS = {
    'created_at': Post.created_at,
    'updated_at': Post.updated_at,
    'hourly_rate': Post.hourly_rate,
    'title': Post.title,
}


def _validate_choice(value: str, choices, message: str) -> str:
    if value not in choices:
        raise ValueError(message)
    return value


def _validate_rate(value: int | None) -> int | None:
    if value is not None and not 0 <= value <= MAX_HOURLY_RATE:
        raise ValueError(f'Hourly rate must be between 0 and {MAX_HOURLY_RATE} NOK.')
    return value


class PostFields(BaseModel):
    """Validators shared by create and update requests. ``None`` means not provided."""

    subject: str | None = None
    age_groups: list[str] | None = None
    title: str | None = None
    description: str | None = None
    available_days: list[str] | None = None
    available_times: list[str] | None = None
    location: str | None = None
    specific_location: str | None = None
    hourly_rate: int | None = None
    hourly_rate_min: int | None = None
    hourly_rate_max: int | None = None

    @field_validator('subject')
    @classmethod
    def validate_subject(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return _validate_choice(value.strip().lower(), SUBJECT_LABELS, 'Invalid subject.')

    @field_validator('age_groups')
    @classmethod
    def validate_age_groups(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        normalized = [_validate_choice(item.strip().upper(), AGE_GROUPS, 'Invalid age group.') for item in value]
        if not 1 <= len(normalized) <= 4:
            raise ValueError('Select between 1 and 4 age groups.')
        return list(dict.fromkeys(normalized))

    @field_validator('title')
    @classmethod
    def validate_title(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        if not 5 <= len(normalized) <= 100:
            raise ValueError('Title must be between 5 and 100 characters.')
        return normalized

    @field_validator('description')
    @classmethod
    def validate_description(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        if not 20 <= len(normalized) <= 2000:
            raise ValueError('Description must be between 20 and 2000 characters.')
        return normalized

    @field_validator('available_days')
    @classmethod
    def validate_available_days(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        normalized = [_validate_choice(item.strip().upper(), WEEKDAYS, 'Invalid weekday.') for item in value]
        if not normalized:
            raise ValueError('At least one day must be selected.')
        return list(dict.fromkeys(normalized))

    @field_validator('available_times')
    @classmethod
    def validate_available_times(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        if not 1 <= len(value) <= 10:
            raise ValueError('Provide between 1 and 10 time slots.')
        for item in value:
            if not TIME_SLOT_PATTERN.match(item.strip()):
                raise ValueError('Time must be in HH:MM format (24-hour).')
        return [item.strip() for item in value]

    @field_validator('location')
    @classmethod
    def validate_location(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return _validate_choice(value.strip().upper(), NORWEGIAN_REGIONS, 'Invalid region.')

    @field_validator('specific_location')
    @classmethod
    def validate_specific_location(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        if len(normalized) > 200:
            raise ValueError('Specific location cannot exceed 200 characters.')
        return normalized or None

    @field_validator('hourly_rate', 'hourly_rate_min', 'hourly_rate_max')
    @classmethod
    def validate_rates(cls, value: int | None) -> int | None:
        return _validate_rate(value)

    @model_validator(mode='after')
    def validate_rate_range(self):
        if self.hourly_rate_min is not None and self.hourly_rate_max is not None:
            if self.hourly_rate_min > self.hourly_rate_max:
                raise ValueError('Minimum hourly rate cannot exceed maximum hourly rate.')
        return self


class CreatePostRequest(PostFields):
    type: str
    subject: str
    age_groups: list[str]
    title: str
    description: str
    available_days: list[str]
    available_times: list[str]
    location: str

    @field_validator('type')
    @classmethod
    def validate_type(cls, value: str) -> str:
        return _validate_choice(value.strip().upper(), {post_type.value for post_type in PostType}, 'Invalid post type.')

    @model_validator(mode='after')
    def validate_pricing(self):
        has_range = self.hourly_rate_min is not None and self.hourly_rate_max is not None
        if self.hourly_rate is None and not has_range:
            raise ValueError('Provide an hourly rate or both a minimum and maximum hourly rate.')
        return self


class UpdatePostRequest(PostFields):
    pass


class UpdatePostStatusRequest(BaseModel):
    status: str

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str) -> str:
        return _validate_choice(value.strip().upper(), {post_status.value for post_status in PostStatus}, 'Invalid post status.')


class PostAuthorResponse(BaseModel):
    id: int
    name: str
    region: str
    teacher_sessions: int
    teacher_students: int
    student_sessions: int
    student_teachers: int

    class Config:
        from_attributes = True


class PostResponse(BaseModel):
    id: int
    type: str
    subject: str
    age_groups: list[str]
    title: str
    description: str
    available_days: list[str]
    available_times: list[str]
    location: str
    specific_location: str | None = None
    hourly_rate: int | None = None
    hourly_rate_min: int | None = None
    hourly_rate_max: int | None = None
    status: str
    created_at: datetime
    updated_at: datetime
    user: PostAuthorResponse

    class Config:
        from_attributes = True


class PaginationResponse(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class PostListResponse(BaseModel):
    items: list[PostResponse]
    pagination: PaginationResponse


def get_active_post(post_id: int, db: Session) -> Post:
    post = db.query(Post).filter(Post.id == post_id, Post.is_active.is_(True)).first()
    if post is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Post not found.',
        )
    return post


def get_owned_post(post_id: int, current_user: User, db: Session) -> Post:
    post = get_active_post(post_id, db)
    if post.user_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only the owner can change this post.',
        )
    return post


def build_rate_filter(min_rate: int | None, max_rate: int | None):
    """Match fixed rates inside the bounds and rate ranges overlapping them."""
    fixed_conditions = [Post.hourly_rate.is_not(None)]
    range_conditions = [Post.hourly_rate.is_(None), Post.hourly_rate_min.is_not(None), Post.hourly_rate_max.is_not(None)]

    if min_rate is not None:
        fixed_conditions.append(Post.hourly_rate >= min_rate)
        range_conditions.append(Post.hourly_rate_max >= min_rate)
    if max_rate is not None:
        fixed_conditions.append(Post.hourly_rate <= max_rate)
        range_conditions.append(Post.hourly_rate_min <= max_rate)

    return or_(and_(*fixed_conditions), and_(*range_conditions))


@router.post('', response_model=PostResponse, status_code=status.HTTP_201_CREATED)
def create_post(
    data: CreatePostRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        post = Post(
            user_id=current_user.id,
            type=data.type,
            subject=data.subject,
            age_groups=data.age_groups,
            title=data.title,
            description=data.description,
            available_days=data.available_days,
            available_times=data.available_times,
            location=data.location,
            specific_location=data.specific_location,
            hourly_rate=data.hourly_rate,
            hourly_rate_min=data.hourly_rate_min,
            hourly_rate_max=data.hourly_rate_max,
            status=PostStatus.AKTIV.value,
        )
        db.add(post)
        db.commit()
        db.refresh(post)

        return post
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.get('', response_model=PostListResponse)
def list_posts(
    q: str | None = Query(default=None, max_length=100),
    type: str | None = Query(default=None),
    subject: str | None = Query(default=None),
    location: str | None = Query(default=None),
    age_group: str | None = Query(default=None),
    min_rate: int | None = Query(default=None, ge=0),
    max_rate: int | None = Query(default=None, ge=0),
    include_paused: bool = Query(default=False),
    sort_by: str = Query(default='created_at'),
    sort_order: str = Query(default='desc'),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
):
    if sort_by not in SORT_COLUMNS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Invalid sort field.',
        )
    if sort_order not in ('asc', 'desc'):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Sort order must be asc or desc.',
        )
    if min_rate is not None and max_rate is not None and min_rate > max_rate:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Minimum rate cannot exceed maximum rate.',
        )

    try:
        query = db.query(Post).filter(Post.is_active.is_(True))

        if not include_paused:
            query = query.filter(Post.status == PostStatus.AKTIV.value)
        if q and q.strip():
            pattern = f'%{q.strip()}%'
            query = query.filter(or_(Post.title.ilike(pattern), Post.description.ilike(pattern)))
        if type:
            query = query.filter(Post.type == type.strip().upper())
        if subject:
            query = query.filter(Post.subject == subject.strip().lower())
        if location:
            query = query.filter(Post.location == location.strip().upper())
        if age_group:
            query = query.filter(cast(Post.age_groups, String).like(f'%"{age_group.strip().upper()}"%'))
        if min_rate is not None or max_rate is not None:
            query = query.filter(build_rate_filter(min_rate, max_rate))

        total = query.count()

        sort_column = SORT_COLUMNS[sort_by]
        order = sort_column.asc() if sort_order == 'asc' else sort_column.desc()
        posts = query.order_by(order, Post.id.desc()).offset((page - 1) * limit).limit(limit).all()

        total_pages = math.ceil(total / limit) if total else 0
        return PostListResponse(
            items=[PostResponse.model_validate(post) for post in posts],
            pagination=PaginationResponse(
                page=page,
                limit=limit,
                total=total,
                total_pages=total_pages,
                has_next=page < total_pages,
                has_prev=page > 1,
            ),
        )
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.get('/{post_id}', response_model=PostResponse)
def get_post(post_id: int, db: Session = Depends(get_db)):
    try:
        return get_active_post(post_id, db)
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.patch('/{post_id}', response_model=PostResponse)
def update_post(
    post_id: int,
    data: UpdatePostRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        post = get_owned_post(post_id, current_user, db)

        for field_name, value in data.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(post, field_name, value)

        if post.hourly_rate_min is not None and post.hourly_rate_max is not None:
            if post.hourly_rate_min > post.hourly_rate_max:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail='Minimum hourly rate cannot exceed maximum hourly rate.',
                )

        db.commit()
        db.refresh(post)
        return post
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.patch('/{post_id}/status', response_model=PostResponse)
def update_post_status(
    post_id: int,
    data: UpdatePostStatusRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        post = get_owned_post(post_id, current_user, db)
        post.status = data.status
        db.commit()
        db.refresh(post)
        return post
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.delete('/{post_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_post(
    post_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        post = get_owned_post(post_id, current_user, db)
        post.is_active = False
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc
