"""
One-time code lifecycle.

Codes are bound to an account's email, stored on the user row together with
their expiry, delivered through the notification sink, and cleared after a
single successful validation.
"""
import hmac
import logging
import secrets
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable

from .errors import DeliveryError, ExpiredOtpError, InvalidOtpError, NotFoundError
from .models import User, utcnow
from .repository import UserRepository
from .utils.mailer import (
    RESET_PASSWORD_SUBJECT,
    RESET_PASSWORD_TEMPLATE,
    VERIFY_ACCOUNT_SUBJECT,
    VERIFY_ACCOUNT_TEMPLATE,
    NotificationSink,
)

logger = logging.getLogger(__name__)


class OtpPurpose(str, Enum):
    VERIFY = "verify"
    RESET = "reset"


EMAIL_OPTIONS = {
    OtpPurpose.VERIFY: (VERIFY_ACCOUNT_TEMPLATE, VERIFY_ACCOUNT_SUBJECT),
    OtpPurpose.RESET: (RESET_PASSWORD_TEMPLATE, RESET_PASSWORD_SUBJECT),
}


def generate_otp(length: int) -> str:
    """Zero-padded numeric code from the OS CSPRNG."""
    return f"{secrets.randbelow(10 ** length):0{length}d}"


class OtpManager:
    def __init__(
        self,
        users: UserRepository,
        sink: NotificationSink,
        length: int = 6,
        ttl: timedelta = timedelta(minutes=15),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.users = users
        self.sink = sink
        self.length = length
        self.ttl = ttl
        self.clock = clock

    def issue(self, email: str, purpose: OtpPurpose) -> User:
        """
        Store a fresh code on the account and email it.

        If delivery fails the previous code and expiry are put back before
        the DeliveryError propagates, so no code exists that nobody received
        and a code delivered earlier stays usable.

        Raises:
            NotFoundError: no account with this email
            DeliveryError: the notification sink failed
        """
        purpose = OtpPurpose(purpose)
        current = self.users.get_by_email(email)
        if current is None:
            raise NotFoundError("User not found")
        previous = {"otp_code": current.otp_code, "otp_expires_at": current.otp_expires_at}

        code = generate_otp(self.length)
        expires_at = self.clock() + self.ttl
        user = self.users.update_by_email(email, otp_code=code, otp_expires_at=expires_at)

        template_id, subject = EMAIL_OPTIONS[purpose]
        context = {
            "otp_code": code,
            "name": user.name,
            "expires_in_minutes": int(self.ttl.total_seconds() // 60),
        }
        try:
            self.sink.send(user.email, subject, template_id, context)
        except DeliveryError:
            logger.error("OTP delivery failed, restoring previous code: user_id=%s purpose=%s", user.id, purpose.value)
            self.users.update_by_email(email, **previous)
            raise

        logger.info("OTP issued: user_id=%s purpose=%s expires_at=%s", user.id, purpose.value, expires_at.isoformat())
        return user

    def validate(self, email: str, submitted_code: str) -> User:
        """
        Consume the outstanding code for an account.

        Raises:
            NotFoundError: no account with this email
            InvalidOtpError: no code outstanding, or the code does not match
            ExpiredOtpError: the code matches but its expiry has passed
        """
        user = self.users.get_by_email(email)
        if user is None:
            raise NotFoundError("User not found")

        if not user.otp_code or not hmac.compare_digest(user.otp_code.encode(), str(submitted_code).encode()):
            raise InvalidOtpError("Invalid OTP")

        if user.otp_expires_at is None or user.otp_expires_at < self.clock():
            raise ExpiredOtpError("OTP has expired. Please request a new one.")

        return self.users.update_by_email(email, otp_code=None, otp_expires_at=None)
