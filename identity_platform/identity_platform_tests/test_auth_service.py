"""AuthService wired by hand with a recording sink, no HTTP layer."""
from datetime import timedelta

import pytest

from identity_platform.identity_platform.identity_service.auth import PasswordHasher, TokenIssuer
from identity_platform.identity_platform.identity_service.authentication import AuthService
from identity_platform.identity_platform.identity_service.errors import (
    AuthenticationError,
    DeliveryError,
    NotFoundError,
    PendingVerificationError,
)
from identity_platform.identity_platform.identity_service.otp import OtpManager, OtpPurpose
from identity_platform.identity_platform.identity_service.repository import UserRepository
from identity_platform.identity_platform.identity_service.schemas import UserCreate
from identity_platform.identity_platform.identity_service.users import UserService

from .conftest import RecordingSink


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def recording_sink():
    return RecordingSink()


@pytest.fixture
def services(db, recording_sink):
    users = UserRepository(db)
    hasher = PasswordHasher()
    otp = OtpManager(users, recording_sink, length=4, ttl=timedelta(minutes=15))
    auth = AuthService(users, hasher, TokenIssuer("secret"), otp)
    return auth, UserService(users, hasher, otp), users


@pytest.fixture
def registered(services):
    _, user_service, _ = services
    return user_service.create(UserCreate(email="a@x.com", name="Alice", password="Password1!"))


def test_unverified_sign_in_raises_and_resends_code(services, registered, recording_sink):
    auth, _, users = services
    assert len(recording_sink.sent) == 1

    with pytest.raises(PendingVerificationError):
        auth.sign_in("a@x.com", "Password1!")

    assert len(recording_sink.sent) == 2
    user = users.get_by_email("a@x.com")
    assert user.otp_code == recording_sink.last_code("a@x.com")
    assert len(user.otp_code) == 4
    assert user.is_verified is False


def test_pending_verification_is_an_authentication_error():
    assert issubclass(PendingVerificationError, AuthenticationError)
    assert PendingVerificationError.status_code == 401


def test_unverified_sign_in_with_failed_delivery_surfaces_delivery_error(services, registered, recording_sink):
    auth, _, users = services
    delivered = recording_sink.last_code("a@x.com")
    recording_sink.fail = True

    with pytest.raises(DeliveryError):
        auth.sign_in("a@x.com", "Password1!")
    assert users.get_by_email("a@x.com").otp_code == delivered


def test_only_verify_otp_flips_verified(services, registered, recording_sink):
    auth, _, users = services

    auth.resend_otp("a@x.com")
    assert users.get_by_email("a@x.com").is_verified is False

    auth.forget_password("a@x.com")
    result = auth.verify_otp("a@x.com", recording_sink.last_code("a@x.com"), OtpPurpose.RESET)
    assert "resetToken" in result
    assert users.get_by_email("a@x.com").is_verified is False

    auth.resend_otp("a@x.com")
    result = auth.verify_otp("a@x.com", recording_sink.last_code("a@x.com"), OtpPurpose.VERIFY)
    assert {"token", "refreshToken"} <= set(result)
    assert users.get_by_email("a@x.com").is_verified is True

    tokens = auth.sign_in("a@x.com", "Password1!")
    assert set(tokens) == {"token", "refreshToken"}


def test_verify_otp_accepts_purpose_strings(services, registered, recording_sink):
    auth, _, _ = services
    result = auth.verify_otp("a@x.com", recording_sink.last_code("a@x.com"), "verify")
    assert result["message"] == "Email verified successfully"


def test_refresh_token_echoes_refresh_token(services, registered, recording_sink):
    auth, _, _ = services
    tokens = auth.verify_otp("a@x.com", recording_sink.last_code("a@x.com"))

    refreshed = auth.refresh_token(tokens["refreshToken"])
    assert refreshed["refreshToken"] == tokens["refreshToken"]
    assert refreshed["token"]

    with pytest.raises(AuthenticationError):
        auth.refresh_token("garbage")


def test_missing_accounts(services):
    auth, _, _ = services
    with pytest.raises(NotFoundError):
        auth.resend_otp("nobody@x.com")
    with pytest.raises(NotFoundError):
        auth.forget_password("nobody@x.com")
    with pytest.raises(AuthenticationError):
        auth.sign_in("nobody@x.com", "Password1!")
