"""
Authentication flows: sign-in, email verification, token refresh and
password reset.

Account states:

    Unverified --issue OTP--> Unverified (code pending) --verify OTP--> Verified

A verified account can hold a transient reset code (forget_password) without
leaving the Verified state. is_verified only ever flips inside verify_otp.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from .auth import RESET, REFRESH, PasswordHasher, TokenIssuer, check_rate_limit, password_fingerprint, record_otp_attempt
from .errors import AppError, AuthenticationError, NotFoundError, PendingVerificationError, RateLimitError
from .otp import OtpManager, OtpPurpose
from .repository import UserRepository
from .utils.event_logger import AuthEventRecorder

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(
        self,
        users: UserRepository,
        hasher: PasswordHasher,
        tokens: TokenIssuer,
        otp: OtpManager,
        events: Optional[AuthEventRecorder] = None,
        max_failed_attempts: int = 5,
        attempt_window_minutes: int = 15,
    ):
        self.users = users
        self.hasher = hasher
        self.tokens = tokens
        self.otp = otp
        self.events = events
        self.max_failed_attempts = max_failed_attempts
        self.attempt_window_minutes = attempt_window_minutes

    @property
    def db(self) -> Session:
        return self.users.db

    def _record(self, event_type: str, user, metadata: Optional[dict] = None) -> None:
        if self.events is not None:
            self.events.record(event_type, user, metadata)

    def sign_in(self, email: str, password: str) -> dict:
        """
        Exchange credentials for an access/refresh token pair.

        Raises:
            AuthenticationError: unknown email or wrong password
            PendingVerificationError: credentials are valid but the email is
                unverified; a new verification code has been sent
        """
        user = self.users.get_by_email(email)
        if user is None or not self.hasher.verify(password, user.password_hash):
            if user is not None:
                self._record("sign_in_failure", user)
            raise AuthenticationError("Invalid credentials")

        if not user.is_verified:
            self.otp.issue(user.email, OtpPurpose.VERIFY)
            self._record("sign_in_unverified", user)
            raise PendingVerificationError("User not verified, check your email for a verification code")

        self._record("sign_in_success", user)
        return self.tokens.issue_pair(user.token_claims())

    def verify_otp(self, email: str, code: str, purpose: OtpPurpose = OtpPurpose.VERIFY) -> dict:
        """
        Consume a one-time code.

        For ``verify`` the account becomes verified and a token pair is
        returned. For ``reset`` a short-lived reset ticket is returned that
        reset_password requires.

        Raises:
            NotFoundError, InvalidOtpError, ExpiredOtpError: see OtpManager.validate
            RateLimitError: too many failed submissions for this account
        """
        purpose = OtpPurpose(purpose)
        user = self.users.get_by_email(email)
        if user is None:
            raise NotFoundError("User not found")

        is_limited, minutes = check_rate_limit(
            user.id, self.db, self.max_failed_attempts, self.attempt_window_minutes
        )
        if is_limited:
            raise RateLimitError(
                f"Too many failed attempts. Try again in {minutes} minute{'s' if minutes != 1 else ''}"
            )

        try:
            user = self.otp.validate(email, code)
        except AppError as exc:
            record_otp_attempt(user.id, False, self.db)
            self._record("otp_failure", user, {"purpose": purpose.value, "reason": exc.error_code})
            raise

        record_otp_attempt(user.id, True, self.db)
        self._record("otp_success", user, {"purpose": purpose.value})

        if purpose is OtpPurpose.RESET:
            ticket = self.tokens.issue(
                {
                    "sub": user.id,
                    "email": user.email,
                    "fgp": password_fingerprint(user.password_hash),
                },
                RESET,
            )
            return {
                "message": "OTP verified successfully, proceed with password reset",
                "resetToken": ticket,
            }

        if not user.is_verified:
            user = self.users.update_by_email(user.email, is_verified=True)
            logger.info("Email verified: user_id=%s", user.id)
        return {"message": "Email verified successfully", **self.tokens.issue_pair(user.token_claims())}

    def resend_otp(self, email: str) -> dict:
        """Issue a new verification code, whatever the account's state."""
        user = self.users.get_by_email(email)
        if user is None:
            raise NotFoundError("User not found")

        self.otp.issue(user.email, OtpPurpose.VERIFY)
        return {"success": True, "message": "OTP sent successfully"}

    def refresh_token(self, refresh_token: str) -> dict:
        """
        Issue a new access token. The refresh token is echoed back, not rotated.

        Raises:
            AuthenticationError: invalid or expired refresh token, or its
                subject no longer exists
        """
        try:
            claims = self.tokens.verify(refresh_token, REFRESH)
        except AuthenticationError as exc:
            logger.info("Refresh token rejected: %s", exc.message)
            raise AuthenticationError("Invalid refresh token") from exc

        user = self.users.get_by_id(claims["sub"])
        if user is None:
            raise AuthenticationError("User not found")

        self._record("token_refreshed", user)
        pair = self.tokens.issue_pair(user.token_claims())
        return {"token": pair["token"], "refreshToken": refresh_token}

    def forget_password(self, email: str) -> dict:
        user = self.users.get_by_email(email)
        if user is None:
            raise NotFoundError("User not found")

        self.otp.issue(user.email, OtpPurpose.RESET)
        return {"message": "Password reset code sent"}

    def reset_password(self, email: str, new_password: str, reset_token: str) -> dict:
        """
        Replace the password of an account holding a valid reset ticket.

        The ticket is bound to the email and to the password hash it was
        issued against, so it stops working once the password changes.

        Raises:
            AuthenticationError: missing, expired, foreign or spent ticket
            NotFoundError: the account no longer exists
        """
        try:
            claims = self.tokens.verify(reset_token, RESET)
        except AuthenticationError as exc:
            raise AuthenticationError("Invalid or expired reset token") from exc

        user = self.users.get_by_email(email)
        if user is None:
            raise NotFoundError("User not found")

        if claims.get("sub") != user.id or claims.get("email") != user.email:
            raise AuthenticationError("Invalid or expired reset token")
        if claims.get("fgp") != password_fingerprint(user.password_hash):
            raise AuthenticationError("Reset token has already been used")

        user = self.users.update_by_email(user.email, password_hash=self.hasher.hash(new_password))
        self._record("password_reset", user)
        logger.info("Password reset: user_id=%s", user.id)
        return {"message": "Password reset successfully"}
