import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from tutorconnect.models.post import PostStatus, PostType
from tutorconnect.routes.post_routes import (
    CreatePostRequest,
    UpdatePostRequest,
    UpdatePostStatusRequest,
    create_post,
    delete_post,
    get_post,
    list_posts,
    update_post,
    update_post_status,
)

VALID_POST = {
    'type': 'teacher',
    'subject': 'Math',
    'age_groups': ['secondary', 'ADULTS'],
    'title': 'Matematikk R1 og R2',
    'description': 'Jeg har fem års erfaring med undervisning i matematikk.',
    'available_days': ['monday', 'friday'],
    'available_times': ['16:00', '9:30'],
    'location': 'oslo',
    'hourly_rate': 450,
}


def _list_posts(db, **filters):
    params = {
        'q': None,
        'type': None,
        'subject': None,
        'location': None,
        'age_group': None,
        'min_rate': None,
        'max_rate': None,
        'include_paused': False,
        'sort_by': 'created_at',
        'sort_order': 'desc',
        'page': 1,
        'limit': 20,
    }
    params.update(filters)
    return list_posts(db=db, **params)


def test_create_post_request_normalizes_fields() -> None:
    request = CreatePostRequest(**VALID_POST)

    assert request.type == 'TEACHER'
    assert request.subject == 'math'
    assert request.age_groups == ['SECONDARY', 'ADULTS']
    assert request.available_days == ['MONDAY', 'FRIDAY']
    assert request.location == 'OSLO'


@pytest.mark.parametrize(
    'overrides',
    [
        {'title': 'Kort'},
        {'description': 'For kort'},
        {'age_groups': []},
        {'available_times': ['25:00']},
        {'available_days': ['FUNDAY']},
        {'hourly_rate': 20000},
        {'hourly_rate': None},
        {'hourly_rate': None, 'hourly_rate_min': 500, 'hourly_rate_max': 300},
        {'subject': 'astrology'},
    ],
)
def test_create_post_request_rejects_invalid_fields(overrides: dict) -> None:
    values = dict(VALID_POST)
    values.update(overrides)

    with pytest.raises(ValidationError):
        CreatePostRequest(**values)


def test_create_post_request_description_length_boundary() -> None:
    accepted = CreatePostRequest(**dict(VALID_POST, description='x' * 20))

    assert len(accepted.description) == 20
    with pytest.raises(ValidationError):
        CreatePostRequest(**dict(VALID_POST, description='x' * 19))


def test_create_post_request_accepts_rate_range() -> None:
    values = dict(VALID_POST, hourly_rate=None, hourly_rate_min=300, hourly_rate_max=500)

    request = CreatePostRequest(**values)

    assert (request.hourly_rate_min, request.hourly_rate_max) == (300, 500)


def test_create_post_stores_active_post(db, make_user) -> None:
    owner = make_user()

    post = create_post(CreatePostRequest(**VALID_POST), current_user=owner, db=db)

    assert post.user_id == owner.id
    assert post.status == PostStatus.AKTIV.value
    assert post.is_active is True


def test_list_posts_hides_paused_and_deleted_posts(db, make_user, make_post) -> None:
    owner = make_user()
    visible = make_post(owner)
    make_post(owner, status=PostStatus.PAUSET.value)
    make_post(owner, is_active=False)

    response = _list_posts(db)

    assert [item.id for item in response.items] == [visible.id]
    assert response.pagination.total == 1

    with_paused = _list_posts(db, include_paused=True)
    assert with_paused.pagination.total == 2


def test_list_posts_filters_by_type_age_group_and_text(db, make_user, make_post) -> None:
    owner = make_user()
    match = make_post(owner, age_groups=['PRIMARY_LOWER', 'MIDDLE'], title='Lesehjelp for barn')
    make_post(owner, post_type=PostType.STUDENT, age_groups=['MIDDLE'])
    make_post(owner, age_groups=['ADULTS'])

    response = _list_posts(db, type='teacher', age_group='middle', q='lesehjelp')

    assert [item.id for item in response.items] == [match.id]


def test_list_posts_rate_filter_matches_fixed_and_overlapping_ranges(db, make_user, make_post) -> None:
    owner = make_user()
    fixed_inside = make_post(owner, hourly_rate=350)
    make_post(owner, hourly_rate=800)
    overlapping_range = make_post(owner, hourly_rate=None, hourly_rate_min=450, hourly_rate_max=700)
    make_post(owner, hourly_rate=None, hourly_rate_min=600, hourly_rate_max=900)

    response = _list_posts(db, min_rate=300, max_rate=500, sort_by='title', sort_order='asc')

    assert {item.id for item in response.items} == {fixed_inside.id, overlapping_range.id}


def test_list_posts_paginates(db, make_user, make_post) -> None:
    owner = make_user()
    for _ in range(3):
        make_post(owner)

    response = _list_posts(db, page=2, limit=2)

    assert len(response.items) == 1
    assert response.pagination.total_pages == 2
    assert response.pagination.has_prev is True
    assert response.pagination.has_next is False


def test_list_posts_rejects_unknown_sort_field(db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        _list_posts(db, sort_by='popularity')

    assert exception_info.value.status_code == 400


def test_update_post_requires_owner(db, make_user, make_post) -> None:
    post = make_post(make_user())

    with pytest.raises(HTTPException) as exception_info:
        update_post(post.id, UpdatePostRequest(title='Ny og bedre tittel'), current_user=make_user(), db=db)

    assert exception_info.value.status_code == 403


def test_update_post_rejects_inverted_range_against_stored_value(db, make_user, make_post) -> None:
    owner = make_user()
    post = make_post(owner, hourly_rate=None, hourly_rate_min=300, hourly_rate_max=500)

    with pytest.raises(HTTPException) as exception_info:
        update_post(post.id, UpdatePostRequest(hourly_rate_min=600), current_user=owner, db=db)

    assert exception_info.value.status_code == 400


def test_update_post_status_pauses_post(db, make_user, make_post) -> None:
    owner = make_user()
    post = make_post(owner)

    updated = update_post_status(post.id, UpdatePostStatusRequest(status='pauset'), current_user=owner, db=db)

    assert updated.status == PostStatus.PAUSET.value


def test_delete_post_is_soft_delete(db, make_user, make_post) -> None:
    owner = make_user()
    post = make_post(owner)

    delete_post(post.id, current_user=owner, db=db)

    db.refresh(post)
    assert post.is_active is False
    with pytest.raises(HTTPException) as exception_info:
        get_post(post.id, db=db)
    assert exception_info.value.status_code == 404
