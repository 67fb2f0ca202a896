import logging
from dataclasses import dataclass

import google.genai as genai
from fastapi import Request
from langchain_openai import ChatOpenAI
from sqlalchemy.ext.asyncio import AsyncEngine
from tenacity import wait_exponential

from .assistant import AssistantEngine
from .handler import TurnOrchestrator
from .lifecycle import SessionLifecycleManager
from .workflows import ActionDispatcher
from src.config import Settings
from src.database.db import AsyncSessionLocal, engine as default_engine
from src.services.commerce import CommerceClient, HttpCommerceClient, NullCommerceClient
from src.services.locks import SessionLockRegistry
from src.services.notifier import Notifier, WebhookNotifier
from src.services.session_store import SqlSessionStore
from src.services.synthesizer import GeminiSynthesizer, Synthesizer
from src.services.transcriber import GeminiTranscriber, Transcriber

logger = logging.getLogger(__name__)


@dataclass
class VoiceServices:
    """
    The capability objects the voice endpoints work with, built once per
    application and kept on `app.state.voice`.
    """

    store: SqlSessionStore
    lifecycle: SessionLifecycleManager
    orchestrator: TurnOrchestrator
    synthesizer: Synthesizer
    assistant: AssistantEngine
    db_engine: AsyncEngine
    default_voice_profile: str = "PROFESSIONAL_FEMALE"

    async def aclose(self) -> None:
        for collaborator in (self.orchestrator.commerce, self.orchestrator.notifier):
            close = getattr(collaborator, "aclose", None)
            if close:
                await close()


def assemble_voice_services(
    store: SqlSessionStore,
    db_engine: AsyncEngine,
    transcriber: Transcriber,
    synthesizer: Synthesizer,
    engine: AssistantEngine,
    commerce: CommerceClient,
    notifier: Notifier,
    turn_timeout: float = 30.0,
    default_voice_profile: str = "PROFESSIONAL_FEMALE",
) -> VoiceServices:
    locks = SessionLockRegistry()
    orchestrator = TurnOrchestrator(
        store=store,
        locks=locks,
        transcriber=transcriber,
        engine=engine,
        dispatcher=ActionDispatcher(store),
        commerce=commerce,
        notifier=notifier,
        turn_timeout=turn_timeout,
    )
    lifecycle = SessionLifecycleManager(store, locks, notifier, engine=engine)
    return VoiceServices(
        store=store,
        lifecycle=lifecycle,
        orchestrator=orchestrator,
        synthesizer=synthesizer,
        assistant=engine,
        default_voice_profile=default_voice_profile,
        db_engine=db_engine,
    )


def build_voice_services(settings: Settings) -> VoiceServices:
    genai_client = genai.Client(api_key=settings.GEMINI_API_KEY)
    chat_model = ChatOpenAI(model=settings.OPENAI_MODEL, temperature=0.7)

    store = SqlSessionStore(
        AsyncSessionLocal,
        max_attempts=settings.STORE_WRITE_ATTEMPTS,
        wait=wait_exponential(multiplier=0.1, max=settings.STORE_RETRY_MAX_WAIT_SECONDS),
    )
    if settings.COMMERCE_API_URL:
        commerce = HttpCommerceClient(settings.COMMERCE_API_URL, timeout=settings.COMMERCE_TIMEOUT_SECONDS)
    else:
        logger.info("COMMERCE_API_URL not set, cart enrichment disabled.")
        commerce = NullCommerceClient()

    return assemble_voice_services(
        store=store,
        transcriber=GeminiTranscriber(genai_client, settings.GEMINI_TRANSCRIBE_MODEL),
        synthesizer=GeminiSynthesizer(genai_client, settings.GEMINI_TTS_MODEL),
        engine=AssistantEngine(chat_model),
        commerce=commerce,
        notifier=WebhookNotifier(settings.webhook_urls, timeout=settings.WEBHOOK_TIMEOUT_SECONDS),
        turn_timeout=settings.TURN_TIMEOUT_SECONDS,
        default_voice_profile=settings.DEFAULT_VOICE_PROFILE,
        db_engine=default_engine,
    )


def get_voice_services(request: Request) -> VoiceServices:
    return request.app.state.voice
