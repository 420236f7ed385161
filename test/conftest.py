"""
Pytest configuration and shared fixtures.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import AsyncGenerator, Sequence
from typing import Any

# Environment must be in place before the application module is imported.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("PUBLIC_BASE_URL", "https://surveys.example.com")
os.environ.setdefault("TELEPHONY_PROVIDER_TYPE", "mock")
os.environ.setdefault("SPEECH_ELEVENLABS_API_KEY", "")
os.environ.setdefault("SPEECH_AUDIO_DIR", tempfile.mkdtemp(prefix="surveycall-audio-"))

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import surveycall.calls.models  # noqa: F401
import surveycall.speech.models  # noqa: F401
from surveycall.config import Settings, get_settings
from surveycall.shared.database import Base, get_db_session
from surveycall.surveys.models import Question, Recipient, Survey, SurveyQuestion
from surveycall.telephony.adapters.mock import MockTelephonyProvider
from surveycall.telephony.factory import get_telephony_provider

BASE_URL = "https://surveys.example.com"

DEFAULT_QUESTIONS: tuple[dict[str, Any], ...] = (
    {"text": "How would you rate your overall experience", "response_type": "numeric"},
    {"text": "Would you recommend us to a friend", "response_type": "yes-no"},
    {"text": "What could we do better", "response_type": "open-ended"},
)


class FakeSynthesisProvider:
    """Synthesis provider double that returns fixed audio bytes."""

    def __init__(self, audio: bytes = b"ID3" + b"\x00" * 256, error: Exception | None = None) -> None:
        self.audio = audio
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def synthesize(self, text: str, voice_id: str) -> bytes:
        self.calls.append((text, voice_id))
        if self.error is not None:
            raise self.error
        return self.audio


class MemoryAudioStorage:
    """In-memory audio storage."""

    def __init__(self, base_url: str = BASE_URL) -> None:
        self.base_url = base_url
        self.files: dict[str, bytes] = {}

    async def save(self, filename: str, audio: bytes, content_type: str = "audio/mpeg") -> str:
        self.files[filename] = audio
        return f"{self.base_url}/audio/{filename}"


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        app_env="dev",
        database_url="sqlite+aiosqlite:///:memory:",
        public_base_url=BASE_URL,
        default_voice="Google.en-US-Wavenet-F",
        default_language="en-US",
    )


@pytest_asyncio.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """One shared in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def telephony_provider() -> MockTelephonyProvider:
    return MockTelephonyProvider()


@pytest_asyncio.fixture
async def async_client(
    session_factory: async_sessionmaker[AsyncSession],
    test_settings: Settings,
    telephony_provider: MockTelephonyProvider,
) -> AsyncGenerator[AsyncClient, None]:
    from surveycall.main import app

    async def _override_get_db_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = _override_get_db_session
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_telephony_provider] = lambda: telephony_provider

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


async def create_survey(
    session: AsyncSession,
    questions: Sequence[dict[str, Any]] = DEFAULT_QUESTIONS,
    name: str = "Customer satisfaction",
    description: str | None = "It only takes a couple of minutes.",
) -> tuple[Survey, list[Question]]:
    survey = Survey(name=name, description=description)
    session.add(survey)
    await session.flush()

    created: list[Question] = []
    for position, fields in enumerate(questions, start=1):
        question = Question(**fields)
        session.add(question)
        session.add(SurveyQuestion(survey_id=survey.id, question=question, position=position))
        created.append(question)
    await session.flush()
    return survey, created


async def create_recipient(
    session: AsyncSession,
    phone_number: str = "+14155551234",
    name: str | None = "Dana",
) -> Recipient:
    recipient = Recipient(phone_number=phone_number, name=name)
    session.add(recipient)
    await session.flush()
    return recipient
