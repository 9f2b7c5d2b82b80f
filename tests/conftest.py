"""Shared test fixtures and configuration."""
import itertools
import os
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, Mock

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("HOLD_AUDIO_BUCKET", "test-bucket")
os.environ.setdefault("SIP_MEDIA_APPLICATION_ID", "sma-test")

from phonebot.main import app as controller_app
from phonebot.consumer import app as consumer_app
from phonebot.core.config import Settings
from phonebot.core.dependencies import get_conferencing_service, get_consumer_client
from phonebot.db.database import get_db, init_db
from phonebot.db.models import Base
from phonebot.services.conferencing.base import ConferencingService, MeetingInfo
from phonebot.services.persistence.counter import CallCounter
from phonebot.services.persistence.sessions import SessionStore
from phonebot.services.pipeline.client import ConsumerClient
from phonebot.services.telephony.controller import CallController
from phonebot.services.telephony.events import CallEvent


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

ONBOARDING_PROMPT = "Welcome. Ask me anything."


@pytest.fixture
def test_settings():
    """Override settings for testing."""
    return Settings(
        openai_api_key="test-key",
        database_url=TEST_DATABASE_URL,
        onboarding_prompt=ONBOARDING_PROMPT,
        hold_audio_bucket="test-bucket",
        hold_audio_key="timer.wav",
        hold_audio_repeat=2,
        sip_media_application_id="sma-test",
    )


@pytest.fixture
async def test_db_engine():
    """Create test database engine with seeded call counter."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    await init_db(engine)

    yield engine

    # Drop all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def test_session_factory(test_db_engine):
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    """Create test database session."""
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def mock_conferencing():
    """Conferencing service handing out numbered meetings."""
    numbers = itertools.count(1)
    conferencing = AsyncMock(spec=ConferencingService)

    def _create_meeting():
        n = next(numbers)
        return MeetingInfo(meeting_id=f"meeting-{n}", join_token=f"join-token-{n}")

    conferencing.create_meeting.side_effect = _create_meeting
    return conferencing


@pytest.fixture
def controller(test_db, mock_conferencing, test_settings):
    """Call controller backed by the test database."""
    return CallController(
        mock_conferencing,
        SessionStore(test_db),
        CallCounter(test_db),
        settings=test_settings,
    )


@pytest.fixture
def make_event():
    """Build a telephony event payload and parse it."""

    def _make_event(
        event_type: str,
        transaction_id: str = "txn-1",
        attributes: Optional[Dict[str, Any]] = None,
        participants: Optional[List[Dict[str, str]]] = None,
        action_data: Optional[Dict[str, Any]] = None,
    ) -> CallEvent:
        payload: Dict[str, Any] = {
            "SchemaVersion": "1.0",
            "Sequence": 1,
            "InvocationEventType": event_type,
            "CallDetails": {
                "TransactionId": transaction_id,
                "Participants": participants or [],
            },
        }
        if attributes is not None:
            payload["CallDetails"]["TransactionAttributes"] = attributes
        if action_data is not None:
            payload["ActionData"] = action_data
        return CallEvent.model_validate(payload)

    return _make_event


@pytest.fixture
def mock_consumer_client():
    """Consumer client that records calls."""
    client = AsyncMock(spec=ConsumerClient)
    client.stop_pipeline.return_value = True
    return client


@pytest.fixture
async def controller_client(test_db, mock_conferencing, mock_consumer_client):
    """Async HTTP client for the controller app with test dependencies."""

    async def _override_get_db():
        yield test_db

    controller_app.dependency_overrides[get_db] = _override_get_db
    controller_app.dependency_overrides[get_conferencing_service] = lambda: mock_conferencing
    controller_app.dependency_overrides[get_consumer_client] = lambda: mock_consumer_client

    transport = httpx.ASGITransport(app=controller_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    # Clear overrides
    controller_app.dependency_overrides.clear()


@pytest.fixture
def mock_openai():
    """Mock OpenAI API client."""
    mock_client = Mock()
    mock_completion = Mock()
    mock_completion.choices = [
        Mock(message=Mock(content="Paris is the capital of France."))
    ]
    mock_client.chat.completions.create = AsyncMock(return_value=mock_completion)
    return mock_client


@pytest.fixture
def consumer():
    """The consumer FastAPI app."""
    yield consumer_app
    consumer_app.dependency_overrides.clear()
