from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, DateTime, Enum, Index, JSON
from datetime import datetime, timezone
from .db import Base
import uuid


def utcnow() -> datetime:
    """Naive UTC timestamp, the form SQLite DateTime columns round-trip."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    password_hash = Column(String, nullable=False)
    image = Column(String, nullable=True)
    is_verified = Column(Boolean, default=False, nullable=False)
    # Outstanding one-time code; both columns are set and cleared together
    otp_code = Column(String, nullable=True)
    otp_expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def token_claims(self) -> dict:
        return {
            "sub": self.id,
            "name": self.name,
            "email": self.email,
            "image": self.image,
        }


class OtpAttempt(Base):
    __tablename__ = "otp_attempts"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    attempted_at = Column(DateTime, default=utcnow, nullable=False)
    success = Column(Boolean, nullable=False)

    __table_args__ = (
        Index("idx_otp_attempts_user_time", "user_id", "attempted_at"),
    )


AUTH_EVENT_TYPES = (
    "sign_in_success",
    "sign_in_failure",
    "sign_in_unverified",
    "otp_success",
    "otp_failure",
    "token_refreshed",
    "password_reset",
)


class AuthEvent(Base):
    __tablename__ = "auth_events"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    # Events outlive deleted accounts, so no foreign key here
    user_id = Column(String(36), nullable=False)
    email = Column(String, nullable=False)
    event_type = Column(Enum(*AUTH_EVENT_TYPES, name="auth_event_type"), nullable=False)
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    timestamp = Column(DateTime, default=utcnow, nullable=False)
    event_metadata = Column(JSON, nullable=True)

    __table_args__ = (
        Index("ix_auth_events_user_id", "user_id"),
        Index("ix_auth_events_timestamp", "timestamp"),
        Index("ix_auth_events_event_type", "event_type"),
        Index("ix_auth_events_user_id_timestamp", "user_id", "timestamp"),
    )
