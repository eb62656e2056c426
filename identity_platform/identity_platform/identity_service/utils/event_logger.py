"""
Audit trail for authentication events.
"""
from typing import Optional
import logging

from fastapi import Request
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from ..models import AUTH_EVENT_TYPES, AuthEvent, User, utcnow

logger = logging.getLogger(__name__)


ALLOWED_EVENT_TYPES = set(AUTH_EVENT_TYPES)


def client_ip(request: Optional[Request]) -> Optional[str]:
    if request is None:
        return None
    # X-Forwarded-For can contain multiple IPs, the first one is the client
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


class AuthEventRecorder:
    """
    Persists authentication events for one request.

    Built per request so every event carries that request's client address
    and user agent.
    """

    def __init__(self, db: Session, request: Optional[Request] = None):
        self.db = db
        self.ip_address = client_ip(request)
        self.user_agent = request.headers.get("user-agent") if request is not None else None

    def record(self, event_type: str, user: User, metadata: Optional[dict] = None) -> None:
        """
        Log an authentication event to the database.

        Args:
            event_type: One of AUTH_EVENT_TYPES
            user: User the event concerns
            metadata: Optional dictionary of additional context

        Raises:
            ValueError: If event_type is invalid
        """
        if event_type not in ALLOWED_EVENT_TYPES:
            raise ValueError(
                f"Invalid event_type '{event_type}'. Must be one of: {', '.join(sorted(ALLOWED_EVENT_TYPES))}"
            )

        try:
            self.db.add(AuthEvent(
                user_id=user.id,
                email=user.email,
                event_type=event_type,
                ip_address=self.ip_address,
                user_agent=self.user_agent,
                timestamp=utcnow(),
                event_metadata=metadata or {},
            ))
            self.db.commit()
        except SQLAlchemyError as e:
            # A failed audit write must not break the auth flow
            logger.warning(
                "Failed to log auth event - user_id=%s event_type=%s error=%s",
                user.id, event_type, e
            )
            self.db.rollback()
            return

        logger.info(
            "AUTH %s user_id=%s email=%s ip=%s",
            event_type, user.id, user.email, self.ip_address
        )
