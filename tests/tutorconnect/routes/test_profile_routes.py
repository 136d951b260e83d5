import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from tutorconnect.models.chat import Message
from tutorconnect.models.user import PrivacySetting
from tutorconnect.routes.profile_routes import (
    GdprRequest,
    UpdateEmailNotificationsRequest,
    UpdatePrivacyRequest,
    UpdateProfileRequest,
    export_my_data,
    get_my_profile,
    get_public_profile,
    handle_gdpr_request,
    update_email_notifications,
    update_my_profile,
    update_privacy_settings,
)
from tutorconnect.services.messaging import add_chat_message


@pytest.fixture
def owner(make_user):
    return make_user(
        name='Kari Nordmann',
        gender='FEMALE',
        birth_year=1990,
        school='NTNU',
        postal_code='0150',
        teacher_sessions=12,
        teacher_students=3,
    )


def test_update_profile_request_validates_postal_code() -> None:
    with pytest.raises(ValidationError):
        UpdateProfileRequest(postal_code='12345')

    assert UpdateProfileRequest(postal_code=' 0150 ').postal_code == '0150'


def test_get_my_profile_includes_badges_and_settings(owner) -> None:
    profile = get_my_profile(current_user=owner)

    assert profile['badges'] == {'teacher': 'Sølv', 'student': None}
    assert profile['privacy_contact'] == PrivacySetting.ON_REQUEST.value
    assert profile['email_appointment_complete'] is True


def test_update_my_profile_only_changes_given_fields(db, owner) -> None:
    profile = update_my_profile(UpdateProfileRequest(bio='Lærer i matte', region='bergen'), current_user=owner, db=db)

    assert profile['bio'] == 'Lærer i matte'
    assert profile['region'] == 'BERGEN'
    assert profile['school'] == 'NTNU'


def test_update_my_profile_ignores_explicit_nulls(db, owner) -> None:
    request = UpdateProfileRequest.model_validate({'name': None, 'region': None, 'bio': 'Ny bio'})

    profile = update_my_profile(request, current_user=owner, db=db)

    assert profile['name'] == 'Kari Nordmann'
    assert profile['region'] == 'OSLO'
    assert profile['bio'] == 'Ny bio'


def test_update_privacy_settings_stores_enum_values(db, owner) -> None:
    profile = update_privacy_settings(
        UpdatePrivacyRequest(privacy_gender=PrivacySetting.PRIVATE), current_user=owner, db=db,
    )

    assert profile['privacy_gender'] == 'PRIVATE'
    assert profile['privacy_age'] == PrivacySetting.PUBLIC.value


def test_update_email_notifications(db, owner) -> None:
    profile = update_email_notifications(
        UpdateEmailNotificationsRequest(email_appointment_complete=False), current_user=owner, db=db,
    )

    assert profile['email_appointment_complete'] is False
    assert profile['email_new_chat'] is True


def test_public_profile_hides_on_request_fields_from_strangers(db, owner, make_user) -> None:
    profile = get_public_profile(owner.id, current_user=make_user(), db=db)

    assert profile['gender'] == 'FEMALE'
    assert profile['email'] is None
    assert profile['school'] is None
    assert 'privacy_gender' not in profile
    assert 'email_new_chat' not in profile
    assert profile['badges']['teacher'] == 'Sølv'


def test_public_profile_shows_on_request_fields_to_chat_partner(db, owner, make_user, make_chat) -> None:
    partner = make_user()
    make_chat(owner, partner)

    profile = get_public_profile(owner.id, current_user=partner, db=db)

    assert profile['email'] == owner.email
    assert profile['school'] == 'NTNU'


def test_public_profile_never_shows_private_fields(db, owner, make_user, make_chat) -> None:
    owner.privacy_age = PrivacySetting.PRIVATE.value
    db.commit()
    partner = make_user()
    make_chat(owner, partner)

    profile = get_public_profile(owner.id, current_user=partner, db=db)

    assert profile['birth_year'] is None


def test_public_profile_unknown_user_is_404(db, owner) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_public_profile(999, current_user=owner, db=db)

    assert exception_info.value.status_code == 404


def test_export_my_data_contains_sections(db, owner, make_post) -> None:
    make_post(owner)

    export = export_my_data(current_user=owner, db=db)

    personal_data = export['personal_data']
    assert personal_data['personal_identity']['email'] == owner.email
    assert personal_data['export_metadata']['data_controller'] == 'TutorConnect AS'
    assert len(personal_data['posts']) == 1
    assert export['export_size'] > 0


def test_gdpr_request_rejects_unknown_action() -> None:
    with pytest.raises(ValidationError):
        GdprRequest(action='archive')


def test_gdpr_delete_requires_matching_email(db, owner) -> None:
    with pytest.raises(HTTPException) as exception_info:
        handle_gdpr_request(GdprRequest(action='delete', confirm_email='feil@example.no'), current_user=owner, db=db)

    assert exception_info.value.status_code == 400
    db.refresh(owner)
    assert owner.is_active is True


def test_gdpr_delete_anonymizes_account(db, owner, make_user, make_chat) -> None:
    chat = make_chat(owner, make_user())
    add_chat_message(db, chat, owner.id, 'Hei, jeg heter Kari')
    db.commit()

    result = handle_gdpr_request(
        GdprRequest(action='DELETE', confirm_email=f' {owner.email.upper()} '), current_user=owner, db=db,
    )

    assert result['success'] is True
    db.refresh(owner)
    assert owner.is_active is False
    assert owner.name == 'Anonymized User'
    assert owner.email.endswith('@anonymized.tutorconnect.no')
    assert db.query(Message).one().content == '[Message anonymized]'
