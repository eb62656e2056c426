"""
User registration and CRUD.

Per-entity behavior is layered over the generic repository with small
decorators instead of subclass overrides: passwords are hashed on the way in
and pending one-time codes are dropped on profile updates.
"""
import functools
import logging
from typing import List

from .auth import PasswordHasher
from .errors import ConflictError
from .models import User
from .otp import OtpManager, OtpPurpose
from .repository import UserRepository, as_values
from .schemas import UserCreate, UserUpdate

logger = logging.getLogger(__name__)


def hashes_password(method):
    """Replace a plaintext ``password`` value with ``password_hash`` before the call."""

    @functools.wraps(method)
    def wrapper(self, *args):
        *head, values = args
        values = dict(values)
        password = values.pop("password", None)
        if password is not None:
            values["password_hash"] = self.hasher.hash(password)
        return method(self, *head, values)

    return wrapper


def clears_pending_otp(method):
    """Drop any outstanding one-time code as part of the same write."""

    @functools.wraps(method)
    def wrapper(self, *args):
        *head, values = args
        values = dict(values, otp_code=None, otp_expires_at=None)
        return method(self, *head, values)

    return wrapper


class UserService:
    def __init__(self, users: UserRepository, hasher: PasswordHasher, otp: OtpManager):
        self.users = users
        self.hasher = hasher
        self.otp = otp

    def create(self, payload: UserCreate) -> User:
        """
        Register an unverified account and email it a verification code.

        Raises:
            ConflictError: an account with this email already exists
            DeliveryError: the verification email could not be sent; the
                account is kept and the client can ask for a new code
        """
        if self.users.get_by_email(payload.email) is not None:
            raise ConflictError("User with this email already exists")

        values = as_values(payload)
        values["is_verified"] = False
        user = self._insert(values)
        logger.info("User registered: user_id=%s", user.id)

        self.otp.issue(user.email, OtpPurpose.VERIFY)
        return user

    def find_all(self) -> List[User]:
        return self.users.find_all()

    def find_one(self, user_id: str) -> User:
        return self.users.find_one(user_id)

    def update(self, user_id: str, payload: UserUpdate) -> User:
        # Only image may be cleared explicitly
        values = {
            field: value
            for field, value in as_values(payload, partial=True).items()
            if value is not None or field == "image"
        }
        email_changed = False
        if values.get("email") is not None:
            existing = self.users.get_by_email(values["email"])
            if existing is not None and existing.id != user_id:
                raise ConflictError("User with this email already exists")
            email_changed = existing is None
            if email_changed:
                # A new address is unverified until its own code comes back
                values["is_verified"] = False

        user = self._apply(user_id, values)
        if email_changed:
            logger.info("User email changed, verification required: user_id=%s", user_id)
            self.otp.issue(user.email, OtpPurpose.VERIFY)
        return user

    def remove(self, user_id: str) -> User:
        user = self.users.remove(user_id)
        logger.info("User removed: user_id=%s", user_id)
        return user

    @hashes_password
    def _insert(self, values: dict) -> User:
        return self.users.create(values)

    @hashes_password
    @clears_pending_otp
    def _apply(self, user_id: str, values: dict) -> User:
        return self.users.update(user_id, values)
