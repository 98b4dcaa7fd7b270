"""Pytest fixtures for testing"""

import pytest
from typing import Generator, List, Optional, Tuple
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from donation_gateway.api.dependencies import get_mail_client, payment_rate_limiter
from donation_gateway.api.main import create_app
from donation_gateway.domain.exceptions import MailProtocolError
from donation_gateway.infrastructure.database.models import Base
from donation_gateway.infrastructure.database.session import get_db, get_session_factory


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class RecordingMailClient:
    """Stands in for MailTransferClient; records every message instead of sending it"""

    def __init__(self, fail_for: Optional[List[str]] = None):
        self.fail_for = fail_for or []
        self.sent: List[Tuple[str, str, str, str, str]] = []

    async def send(self, sender_name: str, sender_address: str, to: str, subject: str, html_body: str) -> None:
        if to in self.fail_for:
            raise MailProtocolError("RCPT TO", 550, "No such user")
        self.sent.append((sender_name, sender_address, to, subject, html_body))

    def recipients(self) -> List[str]:
        return [message[2] for message in self.sent]


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def mail_client() -> RecordingMailClient:
    return RecordingMailClient()


@pytest.fixture
def client(db: Session, mail_client: RecordingMailClient) -> Generator[TestClient, None, None]:
    """Create FastAPI test client with test database and recording mail client"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    app.dependency_overrides[get_mail_client] = lambda: mail_client

    # The limiter is process-wide; start every test with fresh windows
    payment_rate_limiter._windows.clear()
    yield TestClient(app)
    payment_rate_limiter._windows.clear()
