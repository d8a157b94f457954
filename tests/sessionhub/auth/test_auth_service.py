from datetime import timedelta

import pytest

from sessionhub.auth import jwt_handler, tickets
from sessionhub.auth.notifications import NotificationKind
from sessionhub.auth.oauth import OAuthProfile
from sessionhub.auth.password import verify_password
from sessionhub.auth.service import AuthService
from sessionhub.core import config
from sessionhub.core.exceptions import (
    DuplicateIdentityError,
    IdentityNotFoundError,
    InvalidCredentialsError,
    InvalidOrExpiredTokenError,
    MissingCredentialsError,
    UpstreamNotificationError,
    ValidationError,
)
from sessionhub.models.user import Role, User, utcnow


class FailingNotifier:
    def __init__(self):
        self.attempts = 0

    def send(self, kind, recipient, token):
        self.attempts += 1
        raise UpstreamNotificationError('smtp down')


@pytest.fixture
def service(db_session, notifier):
    return AuthService(db_session, notifier)


def register_alice(service, password='Secret123!'):
    return service.register(email='alice@example.com', password=password, full_name='Alice')


def test_register_creates_student_and_returns_token(service) -> None:
    token, user = register_alice(service)

    assert jwt_handler.verify_access_token(token) == user.id
    assert user.role == Role.STUDENT
    assert user.hashed_password != 'Secret123!'
    assert verify_password('Secret123!', user.hashed_password)


def test_register_sends_verification_ticket_when_auto_verify_is_off(service, notifier, monkeypatch) -> None:
    monkeypatch.setattr(config, 'AUTO_VERIFY_NEW_USERS', False)

    _token, user = register_alice(service)

    assert user.is_email_verified is False
    raw_token = notifier.last_token(NotificationKind.EMAIL_VERIFICATION)
    assert user.email_verification_token == tickets.hash_ticket(raw_token)


def test_register_marks_verified_when_auto_verify_is_on(service, notifier, monkeypatch) -> None:
    monkeypatch.setattr(config, 'AUTO_VERIFY_NEW_USERS', True)

    _token, user = register_alice(service)

    assert user.is_email_verified is True
    assert user.email_verification_token is None
    assert notifier.sent == []


def test_register_duplicate_email_leaves_existing_record_untouched(service, db_session) -> None:
    _token, original = register_alice(service)
    original_hash = original.hashed_password

    with pytest.raises(DuplicateIdentityError):
        service.register(email='alice@example.com', password='Another456!', full_name='Impostor')

    stored = db_session.query(User).filter(User.email == 'alice@example.com').all()
    assert len(stored) == 1
    assert stored[0].hashed_password == original_hash
    assert stored[0].full_name == 'Alice'


def test_email_lookup_is_case_sensitive(service) -> None:
    register_alice(service)

    _token, other = service.register(email='Alice@example.com', password='Secret123!')

    assert other.email == 'Alice@example.com'


@pytest.mark.parametrize(('email', 'password'), [(None, 'x'), ('alice@example.com', None), ('', ''), (None, None)])
def test_login_requires_email_and_password(service, email, password) -> None:
    with pytest.raises(MissingCredentialsError) as exc_info:
        service.login(email, password)

    assert isinstance(exc_info.value, ValidationError)


def test_login_does_not_reveal_which_credential_was_wrong(service) -> None:
    register_alice(service)

    with pytest.raises(InvalidCredentialsError) as wrong_password:
        service.login('alice@example.com', 'not-the-password')
    with pytest.raises(InvalidCredentialsError) as unknown_email:
        service.login('nobody@example.com', 'Secret123!')

    assert wrong_password.value.message == unknown_email.value.message
    assert wrong_password.value.status_code == unknown_email.value.status_code


def test_login_returns_token_for_correct_credentials(service) -> None:
    _token, user = register_alice(service)

    token, logged_in = service.login('alice@example.com', 'Secret123!')

    assert logged_in.id == user.id
    assert jwt_handler.verify_access_token(token) == user.id


def test_forgot_password_for_unknown_email_fails(service) -> None:
    with pytest.raises(IdentityNotFoundError):
        service.forgot_password('nobody@example.com')


def test_reset_ticket_is_single_use(service, notifier) -> None:
    register_alice(service)
    service.forgot_password('alice@example.com')
    raw_token = notifier.last_token(NotificationKind.PASSWORD_RESET)

    user = service.reset_password(raw_token, 'NewSecret456!')

    assert user.password_reset_token is None
    assert user.password_reset_expires is None
    assert verify_password('NewSecret456!', user.hashed_password)
    with pytest.raises(InvalidOrExpiredTokenError):
        service.reset_password(raw_token, 'ThirdSecret789!')


def test_expired_reset_ticket_is_rejected(service, notifier, db_session) -> None:
    _token, user = register_alice(service)
    service.forgot_password('alice@example.com')
    raw_token = notifier.last_token(NotificationKind.PASSWORD_RESET)
    user.password_reset_expires = utcnow() - timedelta(seconds=1)
    db_session.commit()

    with pytest.raises(InvalidOrExpiredTokenError):
        service.reset_password(raw_token, 'NewSecret456!')

    db_session.refresh(user)
    assert verify_password('Secret123!', user.hashed_password)


def test_new_reset_request_invalidates_the_previous_ticket(service, notifier) -> None:
    register_alice(service)
    service.forgot_password('alice@example.com')
    first = notifier.last_token(NotificationKind.PASSWORD_RESET)
    service.forgot_password('alice@example.com')

    with pytest.raises(InvalidOrExpiredTokenError):
        service.reset_password(first, 'NewSecret456!')


def test_verify_email_flips_flag_and_clears_ticket(service, notifier, monkeypatch) -> None:
    monkeypatch.setattr(config, 'AUTO_VERIFY_NEW_USERS', False)
    register_alice(service)
    raw_token = notifier.last_token(NotificationKind.EMAIL_VERIFICATION)

    user = service.verify_email(raw_token)

    assert user.is_email_verified is True
    assert user.email_verification_token is None
    with pytest.raises(InvalidOrExpiredTokenError):
        service.verify_email(raw_token)


def test_resend_verification_rejects_verified_user(service, monkeypatch) -> None:
    monkeypatch.setattr(config, 'AUTO_VERIFY_NEW_USERS', True)
    _token, user = register_alice(service)

    with pytest.raises(ValidationError):
        service.resend_verification(user)


def test_notification_failure_does_not_roll_back_ticket(db_session) -> None:
    failing = FailingNotifier()
    service = AuthService(db_session, failing)
    register_alice(service)

    service.forgot_password('alice@example.com')

    user = db_session.query(User).filter(User.email == 'alice@example.com').one()
    assert failing.attempts >= 1
    assert user.password_reset_token is not None


def test_update_password_checks_current_password(service) -> None:
    _token, user = register_alice(service)

    with pytest.raises(InvalidCredentialsError):
        service.update_password(user, 'wrong', 'NewSecret456!')

    new_token = service.update_password(user, 'Secret123!', 'NewSecret456!')
    assert jwt_handler.verify_access_token(new_token) == user.id
    assert verify_password('NewSecret456!', user.hashed_password)


def test_oauth_login_creates_preverified_user_without_password(service, oauth_profile) -> None:
    token, user = service.oauth_login(oauth_profile)

    assert jwt_handler.verify_access_token(token) == user.id
    assert user.google_id == 'google-123'
    assert user.hashed_password is None
    assert user.is_email_verified is True
    assert user.role == Role.STUDENT


def test_oauth_login_reuses_existing_identity(service, oauth_profile, db_session) -> None:
    _first_token, first = service.oauth_login(oauth_profile)
    _second_token, second = service.oauth_login(oauth_profile)

    assert first.id == second.id
    assert db_session.query(User).count() == 1


def test_oauth_login_links_verified_account_and_keeps_its_password(service, db_session, monkeypatch) -> None:
    monkeypatch.setattr(config, 'AUTO_VERIFY_NEW_USERS', True)
    _token, registered = register_alice(service)
    profile = OAuthProfile(provider_id='google-999', email='alice@example.com', full_name='Alice G')

    _oauth_token, user = service.oauth_login(profile)

    assert user.id == registered.id
    assert user.google_id == 'google-999'
    assert verify_password('Secret123!', user.hashed_password)
    assert db_session.query(User).count() == 1


def test_oauth_login_discards_credentials_of_unverified_account(service, notifier, monkeypatch) -> None:
    monkeypatch.setattr(config, 'AUTO_VERIFY_NEW_USERS', False)
    service.register(email='victim@example.com', password='AttackerPw1!')
    service.forgot_password('victim@example.com')
    pending_reset = notifier.last_token(NotificationKind.PASSWORD_RESET)
    pending_verification = notifier.last_token(NotificationKind.EMAIL_VERIFICATION)

    _token, user = service.oauth_login(OAuthProfile(provider_id='g-victim', email='victim@example.com'))

    assert user.google_id == 'g-victim'
    assert user.is_email_verified is True
    assert user.hashed_password is None
    assert user.password_reset_token is None
    assert user.email_verification_token is None
    with pytest.raises(InvalidCredentialsError):
        service.login('victim@example.com', 'AttackerPw1!')
    with pytest.raises(InvalidOrExpiredTokenError):
        service.reset_password(pending_reset, 'Takeover123!')
    with pytest.raises(InvalidOrExpiredTokenError):
        service.verify_email(pending_verification)


def test_oauth_only_account_cannot_log_in_with_password(service, oauth_profile) -> None:
    service.oauth_login(oauth_profile)

    with pytest.raises(InvalidCredentialsError):
        service.login(oauth_profile.email, 'anything-at-all')
