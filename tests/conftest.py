"""
Shared fixtures: in-memory SQLite database, users with tokens, a scripted
model provider and a TestClient wired to all of them.
"""
import json
import uuid
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.db.base import Base
from app.db.models.user import User
from app.db.models.subscription import Subscription
from app.core.auth_dependency import get_db, get_session_factory
from app.core.security import create_access_token
from app.api.routes.chat import get_llm_provider
from app.llm.provider import LLMProvider, LLMResponse, StreamDelta, ToolCall
from app.services.guest_usage import InMemoryGuestUsageTracker, get_guest_usage_tracker
from app.services.stream_registry import InMemoryStreamRegistry, get_stream_registry


# Setup in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


def text_step(*chunks, finish_reason="stop", usage=None):
    """One scripted model step that only writes text."""
    deltas = [StreamDelta(text=chunk) for chunk in chunks]
    deltas.append(StreamDelta(finish_reason=finish_reason, usage=usage or {"promptTokens": 5, "completionTokens": 3}))
    return deltas


def tool_step(name, arguments, call_id="call_1"):
    """One scripted model step that requests a single tool call."""
    return [
        StreamDelta(tool_call=ToolCall(id=call_id, name=name, arguments=json.dumps(arguments))),
        StreamDelta(finish_reason="tool_calls", usage={"promptTokens": 4, "completionTokens": 1}),
    ]


class FakeProvider(LLMProvider):
    """Provider that replays scripted steps and records what it was sent."""

    def __init__(self, steps=None, title="Weather in Berlin", error=None):
        self.steps = list(steps) if steps is not None else [text_step("Hello ", "there, ", "friend.")]
        self.title = title
        self.error = error
        self.stream_calls = []
        self.chat_calls = []
        self.before_stream = None

    async def chat(self, messages, model, temperature=0.7, max_tokens=None, **kwargs):
        self.chat_calls.append({"messages": messages, "model": model})
        return LLMResponse(content=self.title, model=model)

    async def stream(self, messages, model, tools=None, **kwargs):
        self.stream_calls.append({"messages": list(messages), "model": model, "tools": tools})
        if self.before_stream is not None:
            self.before_stream()
        if self.error is not None:
            raise self.error
        script = self.steps.pop(0) if self.steps else text_step("Done.")
        for delta in script:
            yield delta


def parse_sse(body: str):
    """Split an SSE body into (event, data) tuples."""
    frames = []
    for block in body.strip().split("\n\n"):
        if not block:
            continue
        lines = dict(line.split(": ", 1) for line in block.split("\n"))
        frames.append((lines["event"], json.loads(lines["data"])))
    return frames


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
    """Factory creating a user (optionally on a plan) and returning (user, auth headers)."""
    def _make_user(email="test@example.com", plan=None):
        user = User(id=str(uuid.uuid4()), email=email, full_name="Test User")
        db.add(user)
        if plan:
            db.add(Subscription(user_id=user.id, plan_type=plan, status="active"))
        db.commit()
        db.refresh(user)
        token = create_access_token({"sub": user.id})
        return user, {"Authorization": f"Bearer {token}"}
    return _make_user


@pytest.fixture
def test_user(make_user):
    return make_user()


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def guest_tracker():
    return InMemoryGuestUsageTracker()


@pytest.fixture
def stream_registry():
    return InMemoryStreamRegistry()


@pytest.fixture
def client(db, fake_provider, guest_tracker, stream_registry):
    """TestClient with database, provider, tracker and registry overridden."""
    def override_get_db():
        session = TestSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: TestSessionLocal
    app.dependency_overrides[get_llm_provider] = lambda: fake_provider
    app.dependency_overrides[get_guest_usage_tracker] = lambda: guest_tracker
    app.dependency_overrides[get_stream_registry] = lambda: stream_registry
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def chat_body(chat_id=None, message_id=None, text="What is the weather in Berlin?", search_mode="search", **extra):
    body = {
        "id": chat_id or str(uuid.uuid4()),
        "message": {
            "id": message_id or str(uuid.uuid4()),
            "role": "user",
            "content": text,
            "parts": [{"type": "text", "text": text}],
        },
        "selectedChatModel": "chat-model",
        "selectedVisibilityType": "private",
        "selectedSearchMode": search_mode,
    }
    body.update(extra)
    return body
