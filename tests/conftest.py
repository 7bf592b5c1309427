"""
Shared fixtures: in-memory SQLite, a test app wired to fakes, and user factories.
"""
import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENCRYPTION_KEY", "MDAw" * 10 + "MDA=")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["SCHEDULER_ENABLED"] = "0"

from dataclasses import dataclass
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import lightfriend.db.models  # noqa: F401
from lightfriend.core.auth_dependency import get_db
from lightfriend.core.context import AppContext
from lightfriend.core.phone_numbers import PhoneNumberRegistry, SenderNumber
from lightfriend.core.security import create_access_token, hash_password
from lightfriend.db.base import Base
from lightfriend.db.models.user import User
from lightfriend.llm.provider import LLMProvider, LLMResponse
from lightfriend.main import create_app


# Setup in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

FIN_NUMBER = "+358401111111"
USA_NUMBER = "+15550001111"


@dataclass
class FakeConversation:
    conversation_sid: str


class FakeMessenger:
    """Records what would have gone out through Twilio."""

    def __init__(self):
        self.sent: List[dict] = []

    def sender_number_for(self, user) -> str:
        return FIN_NUMBER

    def ensure_conversation(self, db, user, twilio_number):
        return FakeConversation(conversation_sid=f"CH{user.id}")

    def send_conversation_message(self, conversation_sid: str, author: str, body: str) -> str:
        self.sent.append({"conversation_sid": conversation_sid, "author": author, "body": body})
        return f"IM{len(self.sent)}"

    def notify_user(self, db, user, body: str) -> str:
        return self.send_conversation_message(f"CH{user.id}", FIN_NUMBER, body)


class ScriptedProvider(LLMProvider):
    """Returns queued responses in order; queued exceptions are raised."""

    def __init__(self, responses: Optional[list] = None):
        self.responses = list(responses or [])
        self.calls: List[dict] = []

    def chat(self, messages, model=None, temperature=0.2, max_tokens=None, tools=None, **kwargs) -> LLMResponse:
        self.calls.append({"messages": list(messages), "tools": tools, "max_tokens": max_tokens})
        if not self.responses:
            return LLMResponse(content="ok", finish_reason="stop")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=test_engine)
    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def make_user(db):
    """Factory for users with sensible defaults."""
    counter = {"n": 0}

    def _make_user(**overrides) -> User:
        counter["n"] += 1
        values = dict(
            email=f"user{counter['n']}@example.com",
            password_hash=hash_password("testpass123"),
            phone_number=f"+35840000000{counter['n']}",
            credits=10.0,
            credits_left=0.0,
        )
        values.update(overrides)
        user = User(**values)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def messenger():
    return FakeMessenger()


@pytest.fixture
def app_context(provider, messenger):
    registry = PhoneNumberRegistry({
        "fin": SenderNumber(FIN_NUMBER, ["swe", "nor"]),
        "usa": SenderNumber(USA_NUMBER, ["can"]),
    })
    return AppContext(
        phone_numbers=registry,
        messenger=messenger,
        provider_factory=lambda: provider,
        session_factory=TestSessionLocal,
        whatsapp_send_delay=0,
    )


@pytest.fixture
def client(db, app_context):
    app = create_app(app_context)

    def override_get_db():
        session = TestSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Bearer header for a user."""
    def _auth_headers(user: User) -> dict:
        return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}

    return _auth_headers
