"""Shared test fixtures and configuration."""
import os

# Settings are read at import time; point them at an in-memory database
# and a transport that never touches the network before importing the app.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["EMAIL_PROVIDER"] = "console"
os.environ.setdefault("ENVIRONMENT", "development")

from typing import Dict, List, Optional  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.main import app  # noqa: E402
from app.db.base import Base  # noqa: E402
from app.api.deps import get_db, get_delivery_engine, get_settings  # noqa: E402
from app.core.config import Settings  # noqa: E402
from app.core.security import create_access_token  # noqa: E402
from app.mail.delivery import DeliveryEngine  # noqa: E402
from app.mail.transport import EmailMessage, TransportError  # noqa: E402
from app.services.poll import create_poll  # noqa: E402


# Test database setup
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

MEDIATOR = "mediator-1"
OTHER_MEDIATOR = "mediator-2"


class FakeTransport:
    """In-memory transport that records every attempt.

    ``fail_for`` recipients always fail; ``flaky`` maps a recipient to the
    number of attempts that fail before one succeeds.
    """

    def __init__(self, fail_for=(), flaky: Optional[Dict[str, int]] = None, retryable: bool = True):
        self.fail_for = set(fail_for)
        self.flaky = dict(flaky or {})
        self.retryable = retryable
        self.attempts: List[EmailMessage] = []
        self.delivered: List[EmailMessage] = []

    def send(self, message: EmailMessage) -> str:
        self.attempts.append(message)
        recipient = message.recipients[0]
        if recipient in self.fail_for:
            raise TransportError(f"mailbox unavailable: {recipient}", retryable=self.retryable)
        if self.flaky.get(recipient, 0) > 0:
            self.flaky[recipient] -= 1
            raise TransportError("temporary failure")
        self.delivered.append(message)
        return f"fake-{len(self.delivered)}"

    def attempts_for(self, recipient: str) -> List[EmailMessage]:
        return [m for m in self.attempts if recipient in m.recipients]


@pytest.fixture(autouse=True)
def disable_rate_limiting_for_tests(request):
    """Disable rate limiting for all tests except rate limiting tests."""
    from app.core.rate_limit import limiter

    if "rate_limit" in request.keywords:
        limiter.enabled = True
        limiter.reset()
        yield
        limiter.reset()
    else:
        limiter.enabled = False
        yield
    limiter.enabled = False


@pytest.fixture(scope="function")
def db_engine():
    """Create a fresh database for each test."""
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine):
    """Create a new database session for a test."""
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def test_settings():
    """Settings with public URLs that are easy to assert on."""
    return Settings(
        DATABASE_URL="sqlite://",
        BASE_URL="https://api.example.test",
        FRONTEND_URL="https://app.example.test",
        EMAIL_PROVIDER="console",
        EMAIL_FROM_ADDRESS="scheduling@example.test",
        EMAIL_FROM_NAME="Mediation Scheduling",
        MAX_MANUAL_RETRIES=3,
    )


@pytest.fixture
def sleeps():
    """Delays requested by the delivery engine; nothing actually waits."""
    return []


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def delivery_engine(transport, sleeps):
    return DeliveryEngine(transport, max_attempts=3, base_delay=1.0, sleep=sleeps.append)


@pytest.fixture(scope="function")
def client(db_session, delivery_engine, test_settings):
    """Create a test client with a test database and a fake transport."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_delivery_engine] = lambda: delivery_engine
    app.dependency_overrides[get_settings] = lambda: test_settings
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Bearer credentials for the mediator who owns the test polls."""
    return {"Authorization": f"Bearer {create_access_token({'sub': MEDIATOR})}"}


@pytest.fixture
def other_auth_headers():
    return {"Authorization": f"Bearer {create_access_token({'sub': OTHER_MEDIATOR})}"}


def poll_payload(**overrides):
    payload = {
        "title": "Smith v. Jones scheduling",
        "case_id": "case-42",
        "case_name": "Smith v. Jones",
        "case_number": "2025-CV-0042",
        "mediator_name": "Dana Reyes",
        "location": "Suite 400",
        "options": [
            {"date": "2025-03-03", "time": "14:00", "duration_minutes": 120},
            {"date": "2025-03-04", "time": "09:30", "duration_minutes": 120},
        ],
        "participants": [
            {"email": "pat@example.com", "name": "Pat Smith"},
            {"email": "jo@example.com", "name": "Jo Jones"},
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def make_poll(db_session):
    """Factory: create a poll owned by MEDIATOR, optionally in another status."""
    def _make(status: Optional[str] = None, created_by: str = MEDIATOR, **overrides):
        poll = create_poll(db_session, created_by, poll_payload(**overrides))
        if status:
            poll.status = status
            db_session.commit()
            db_session.refresh(poll)
        return poll
    return _make


@pytest.fixture
def poll_data():
    """A valid poll creation payload (fresh copy per test)."""
    return poll_payload()
