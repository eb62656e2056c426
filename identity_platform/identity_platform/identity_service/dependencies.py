"""
Request-scoped wiring of the services.

Long-lived collaborators (settings, hasher, token issuer, notification sink,
file storage) live on app.state and are created once in create_app. The
repository, OTP manager and services are built per request around that
request's database session.
"""
from datetime import timedelta
from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from .auth import ACCESS, PasswordHasher, TokenIssuer
from .authentication import AuthService
from .config import Settings
from .db import get_db
from .errors import AuthenticationError
from .models import User
from .otp import OtpManager
from .repository import UserRepository
from .users import UserService
from .utils.event_logger import AuthEventRecorder
from .utils.file_storage import FileStorage
from .utils.mailer import NotificationSink


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_hasher(request: Request) -> PasswordHasher:
    return request.app.state.hasher


def get_token_issuer(request: Request) -> TokenIssuer:
    return request.app.state.token_issuer


def get_notification_sink(request: Request) -> NotificationSink:
    return request.app.state.notification_sink


def get_file_storage(request: Request) -> FileStorage:
    return request.app.state.file_storage


def get_user_repository(db: Session = Depends(get_db)) -> UserRepository:
    return UserRepository(db)


def get_otp_manager(
    users: UserRepository = Depends(get_user_repository),
    sink: NotificationSink = Depends(get_notification_sink),
    settings: Settings = Depends(get_settings),
) -> OtpManager:
    return OtpManager(
        users,
        sink,
        length=settings.OTP_LENGTH,
        ttl=timedelta(minutes=settings.OTP_EXPIRE_MINUTES),
    )


def get_auth_service(
    request: Request,
    users: UserRepository = Depends(get_user_repository),
    hasher: PasswordHasher = Depends(get_hasher),
    tokens: TokenIssuer = Depends(get_token_issuer),
    otp: OtpManager = Depends(get_otp_manager),
    settings: Settings = Depends(get_settings),
) -> AuthService:
    return AuthService(
        users,
        hasher,
        tokens,
        otp,
        events=AuthEventRecorder(users.db, request),
        max_failed_attempts=settings.OTP_MAX_FAILED_ATTEMPTS,
        attempt_window_minutes=settings.OTP_ATTEMPT_WINDOW_MINUTES,
    )


def get_user_service(
    users: UserRepository = Depends(get_user_repository),
    hasher: PasswordHasher = Depends(get_hasher),
    otp: OtpManager = Depends(get_otp_manager),
) -> UserService:
    return UserService(users, hasher, otp)


def get_current_user(
    users: UserRepository = Depends(get_user_repository),
    tokens: TokenIssuer = Depends(get_token_issuer),
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> User:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise AuthenticationError("Not authenticated")
    token = authorization.split(" ", 1)[1].strip()

    claims = tokens.verify(token, ACCESS)
    user = users.get_by_id(claims["sub"])
    if user is None:
        raise AuthenticationError("User not found")
    return user
