import asyncio
import os
from typing import Optional, Sequence

# Settings are read at import time; point them at SQLite before `src` loads.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from tenacity import wait_none

from src.api.voice.assistant import AssistantEngine
from src.api.voice.handler import TurnOrchestrator
from src.api.voice.lifecycle import SessionLifecycleManager
from src.api.voice.workflows import ActionDispatcher
from src.database.db import Base
from src.services.locks import SessionLockRegistry
from src.services.session_store import SqlSessionStore
from src.shared.exceptions import SynthesisError
from src.shared.schemas import CustomerCart, SynthesisResult, Transcription


def make_engine():
    return create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )


class FakeTranscriber:
    """Treats the audio bytes as UTF-8 text; records every call."""

    def __init__(
        self,
        confidence: float = 0.92,
        delay: float = 0.0,
        error: Optional[Exception] = None,
        detected_language: Optional[str] = None,
    ):
        self.confidence = confidence
        self.delay = delay
        self.error = error
        self.detected_language = detected_language
        self.calls = []

    async def transcribe(
        self,
        audio: bytes,
        language_code: str,
        encoding: Optional[str] = None,
        alternative_languages: Optional[Sequence[str]] = None,
    ) -> Transcription:
        self.calls.append(
            {
                "language_code": language_code,
                "encoding": encoding,
                "alternative_languages": alternative_languages,
            }
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return Transcription(
            transcript=audio.decode("utf-8"),
            confidence=self.confidence,
            languageCode=(self.detected_language if alternative_languages else None) or language_code,
        )


class FakeSynthesizer:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.calls = []

    async def synthesize(self, text, voice_profile) -> SynthesisResult:
        self.calls.append((text, voice_profile))
        if self.error:
            raise self.error
        return SynthesisResult(audio=b"RIFF-fake-audio", mimeType="audio/wav")


class FakeCommerce:
    def __init__(self, cart: Optional[CustomerCart] = None, error: Optional[Exception] = None):
        self.cart = cart
        self.error = error
        self.calls = []

    async def get_customer_cart(self, customer_id: str) -> Optional[CustomerCart]:
        self.calls.append(customer_id)
        if self.error:
            raise self.error
        return self.cart


class RecordingNotifier:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.events = []

    def notify(self, event_name, payload) -> None:
        if self.error:
            raise self.error
        self.events.append((event_name, payload))


@pytest.fixture
async def db_engine():
    engine = make_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def store(db_engine):
    return SqlSessionStore(
        async_sessionmaker(db_engine, expire_on_commit=False),
        max_attempts=3,
        wait=wait_none(),
    )


@pytest.fixture
def locks():
    return SessionLockRegistry()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def transcriber():
    return FakeTranscriber()


@pytest.fixture
def commerce():
    return FakeCommerce()


@pytest.fixture
def chat_model():
    return FakeListChatModel(responses=["Happy to help with that!"])


@pytest.fixture
def assistant_engine(chat_model):
    return AssistantEngine(chat_model)


@pytest.fixture
def lifecycle(store, locks, notifier, assistant_engine):
    return SessionLifecycleManager(store, locks, notifier, engine=assistant_engine)


@pytest.fixture
def orchestrator(store, locks, transcriber, assistant_engine, commerce, notifier):
    return TurnOrchestrator(
        store=store,
        locks=locks,
        transcriber=transcriber,
        engine=assistant_engine,
        dispatcher=ActionDispatcher(store),
        commerce=commerce,
        notifier=notifier,
        turn_timeout=5.0,
    )


@pytest.fixture
def synthesis_failure():
    return SynthesisError("TTS backend unavailable")
