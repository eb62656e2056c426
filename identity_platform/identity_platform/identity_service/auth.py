from passlib.context import CryptContext
from datetime import datetime, timedelta, timezone
from typing import Optional
import hashlib
import logging
import jwt
from sqlalchemy.orm import Session

from .config import Settings
from .errors import AuthenticationError
from .models import OtpAttempt, utcnow

logger = logging.getLogger(__name__)

ACCESS = "access"
REFRESH = "refresh"
RESET = "reset"


class PasswordHasher:
    # Use pbkdf2_sha256 to avoid external bcrypt backend issues in some environments
    def __init__(self, schemes: Optional[list] = None):
        self._context = CryptContext(schemes=schemes or ["pbkdf2_sha256"], deprecated="auto")

    def hash(self, password: str) -> str:
        return self._context.hash(password)

    def verify(self, plain_password: str, hashed_password: Optional[str]) -> bool:
        if not hashed_password:
            return False
        try:
            return self._context.verify(plain_password, hashed_password)
        except ValueError:
            # Malformed or unknown hash format
            return False


def password_fingerprint(password_hash: str) -> str:
    """Short digest of a stored hash; changes whenever the password does."""
    return hashlib.sha256(password_hash.encode("utf-8")).hexdigest()[:16]


class TokenIssuer:
    """Signs and verifies the service's bearer tokens."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
        reset_ttl: timedelta = timedelta(minutes=10),
    ):
        self._secret = secret
        self._algorithm = algorithm
        self.ttls = {ACCESS: access_ttl, REFRESH: refresh_ttl, RESET: reset_ttl}

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenIssuer":
        return cls(
            secret=settings.JWT_SECRET,
            algorithm=settings.JWT_ALGORITHM,
            access_ttl=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
            refresh_ttl=timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
            reset_ttl=timedelta(minutes=settings.RESET_TOKEN_EXPIRE_MINUTES),
        )

    def issue(self, claims: dict, token_type: str, ttl: Optional[timedelta] = None) -> str:
        now = datetime.now(timezone.utc)
        payload = dict(claims)
        payload["type"] = token_type
        payload["iat"] = now
        payload["exp"] = now + (ttl if ttl is not None else self.ttls[token_type])
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify(self, token: str, token_type: str) -> dict:
        """
        Decode a token and check its type.

        Raises:
            AuthenticationError: bad signature, expired, malformed, or a token
                of another type
        """
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise AuthenticationError("Token has expired") from exc
        except jwt.InvalidTokenError as exc:
            raise AuthenticationError("Invalid token") from exc

        if claims.get("type") != token_type:
            raise AuthenticationError("Invalid token")
        return claims

    def issue_pair(self, claims: dict) -> dict:
        return {
            "token": self.issue(claims, ACCESS),
            "refreshToken": self.issue(claims, REFRESH),
        }


def check_rate_limit(user_id: str, db: Session, max_failures: int = 5, window_minutes: int = 15) -> tuple[bool, int]:
    """
    Check if user has exceeded the OTP verification rate limit.

    Args:
        user_id: The user's ID
        db: Database session
        max_failures: Failed attempts allowed inside the window
        window_minutes: Length of the sliding window

    Returns:
        Tuple of (is_rate_limited, minutes_until_reset)
        - is_rate_limited: True if the user has max_failures failed attempts in the window
        - minutes_until_reset: Minutes until rate limit resets (0 if not limited)
    """
    now = utcnow()
    time_window = now - timedelta(minutes=window_minutes)

    failed_attempts = db.query(OtpAttempt).filter(
        OtpAttempt.user_id == user_id,
        OtpAttempt.attempted_at > time_window,
        OtpAttempt.success.is_(False)
    ).order_by(OtpAttempt.attempted_at.asc()).all()

    if len(failed_attempts) >= max_failures:
        # The window reopens once the oldest counted failure ages out
        first_attempt_time = failed_attempts[0].attempted_at
        reset_time = first_attempt_time + timedelta(minutes=window_minutes)
        minutes_until_reset = max(0, int((reset_time - now).total_seconds() / 60) + 1)

        logger.warning(
            "OTP rate limit exceeded: user_id=%s failed_attempts=%s minutes_until_reset=%s",
            user_id, len(failed_attempts), minutes_until_reset
        )
        return True, minutes_until_reset

    return False, 0


def record_otp_attempt(user_id: str, success: bool, db: Session) -> None:
    """
    Record an OTP verification attempt in the database.

    Args:
        user_id: The user's ID
        success: Whether the verification was successful
        db: Database session
    """
    db.add(OtpAttempt(user_id=user_id, success=success, attempted_at=utcnow()))
    db.commit()

    status = "successful" if success else "failed"
    logger.info("OTP verification attempt: user_id=%s status=%s", user_id, status)
