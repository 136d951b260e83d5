from tutorconnect.models.user import PrivacySetting
from tutorconnect.services.privacy import apply_privacy_settings, is_visible, shares_chat


def test_is_visible_by_setting() -> None:
    assert is_visible('PUBLIC', False) is True
    assert is_visible('ON_REQUEST', False) is False
    assert is_visible('ON_REQUEST', True) is True
    assert is_visible('PRIVATE', True) is False


def test_apply_privacy_settings_returns_owner_profile_unchanged(make_user) -> None:
    owner = make_user(privacy_gender=PrivacySetting.PRIVATE.value)
    profile = {'gender': 'MALE', 'privacy_gender': 'PRIVATE'}

    assert apply_privacy_settings(profile, owner, is_owner=True) == profile


def test_apply_privacy_settings_filters_for_other_users(make_user) -> None:
    user = make_user(privacy_gender=PrivacySetting.PRIVATE.value)
    profile = {'gender': 'MALE', 'email': 'kari@example.no', 'privacy_gender': 'PRIVATE', 'email_new_chat': True}

    filtered = apply_privacy_settings(profile, user, is_owner=False, has_request_permission=True)

    assert filtered['gender'] is None
    assert filtered['email'] == 'kari@example.no'
    assert 'privacy_gender' not in filtered
    assert 'email_new_chat' not in filtered


def test_shares_chat_only_for_chat_partners(db, make_user, make_chat) -> None:
    teacher, student, stranger = make_user(), make_user(), make_user()
    make_chat(teacher, student)

    assert shares_chat(db, student.id, teacher.id) is True
    assert shares_chat(db, stranger.id, teacher.id) is False
