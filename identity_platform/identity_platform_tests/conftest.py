"""
Shared fixtures: an app per test on a throwaway SQLite file, a notification
sink that records instead of sending, and helpers to read the database the
way the service sees it.
"""
import pytest
from fastapi.testclient import TestClient

from identity_platform.identity_platform.identity_service.config import Settings
from identity_platform.identity_platform.identity_service.db import build_engine, build_session_factory, init_db
from identity_platform.identity_platform.identity_service.errors import DeliveryError
from identity_platform.identity_platform.identity_service.main import create_app
from identity_platform.identity_platform.identity_service.models import User

PASSWORD = "Password1!"


class RecordingSink:
    """Notification sink test double."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, to, subject, template_id, context):
        if self.fail:
            raise DeliveryError("SMTP relay unavailable")
        self.sent.append({"to": to, "subject": subject, "template_id": template_id, "context": dict(context)})

    def messages_to(self, email):
        return [m for m in self.sent if m["to"] == email]

    def last_code(self, email):
        return self.messages_to(email)[-1]["context"]["otp_code"]


@pytest.fixture
def settings(tmp_path):
    return Settings(
        ENVIRONMENT="test",
        DATABASE_URL=f"sqlite:///{tmp_path / 'identity.db'}",
        JWT_SECRET="test-secret",
        LOG_DIR=str(tmp_path / "logs"),
        UPLOAD_DIRECTORY=str(tmp_path / "uploads"),
        MAX_FILE_SIZE=1024,
    )


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def app(settings, sink):
    return create_app(settings, notification_sink=sink)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def session_factory(settings):
    engine = build_engine(settings)
    init_db(engine)
    yield build_session_factory(engine)
    engine.dispose()


def fetch_user(app, email):
    # Fresh session each time so reads never come from a stale identity map
    db = app.state.session_factory()
    try:
        return db.query(User).filter(User.email == email).first()
    finally:
        db.close()


def update_user(app, email, **values):
    db = app.state.session_factory()
    try:
        db.query(User).filter(User.email == email).update(values)
        db.commit()
    finally:
        db.close()


def register(client, email="a@x.com", password=PASSWORD, name="Alice Example"):
    return client.post("/user", json={"email": email, "password": password, "name": name})


def register_verified(client, sink, email="a@x.com", password=PASSWORD, name="Alice Example"):
    """Register and verify an account; returns the token pair from verification."""
    resp = register(client, email, password, name)
    assert resp.status_code == 201
    verify = client.post("/auth/verify-otp", json={"email": email, "otpCode": sink.last_code(email)})
    assert verify.status_code == 200
    return verify.json()


def bearer(token):
    return {"Authorization": f"Bearer {token}"}
