import asyncio
import logging
from typing import Optional, Sequence

from pydantic import BaseModel

from .assistant import AssistantEngine, assemble_context
from .workflows import ActionDispatcher
from src.services.commerce import CommerceClient
from src.services.locks import SessionLockRegistry
from src.services.notifier import Notifier
from src.services.session_store import SessionStore
from src.services.transcriber import Transcriber
from src.shared.constants import FALLBACK_REPLY
from src.shared.enums import Intent, InteractionType, NotificationEvent
from src.shared.exceptions import (
    EmptyTranscriptError,
    GenerationError,
    SessionNotFoundError,
    SessionTerminalError,
    TurnTimeoutError,
)
from src.shared.schemas import (
    AssistantReply,
    ConversationMessage,
    CustomerCart,
    Transcription,
    TurnOutcome,
    VoiceSession,
)

logger = logging.getLogger(__name__)

CONVERSION_INTENTS = frozenset({Intent.ADD_TO_CART, Intent.CHECKOUT})


class _PreparedTurn(BaseModel):
    session: VoiceSession
    transcription: Transcription
    reply: AssistantReply


def fallback_reply() -> AssistantReply:
    return AssistantReply(text=FALLBACK_REPLY, intent=Intent.UNKNOWN, actions=[], tokensUsed=0)


class TurnOrchestrator:
    """
    Runs one spoken turn of a voice session end to end:
    transcribe, record the utterance, build context, generate a reply,
    record the reply, run its side effects and report analytics.

    Turns for one session are serialized through the lock registry. The
    timeout bounds everything up to reply generation; if it fires, at most
    the user's utterance has been recorded and a retry reuses it.
    """

    def __init__(
        self,
        store: SessionStore,
        locks: SessionLockRegistry,
        transcriber: Transcriber,
        engine: AssistantEngine,
        dispatcher: ActionDispatcher,
        commerce: CommerceClient,
        notifier: Notifier,
        turn_timeout: float = 30.0,
    ):
        self.store = store
        self.locks = locks
        self.transcriber = transcriber
        self.engine = engine
        self.dispatcher = dispatcher
        self.commerce = commerce
        self.notifier = notifier
        self.turn_timeout = turn_timeout

    async def process_turn(
        self,
        session_id: str,
        audio: bytes,
        language_hint: Optional[str] = None,
        encoding: Optional[str] = None,
        alternative_languages: Optional[Sequence[str]] = None,
    ) -> TurnOutcome:
        async with self.locks.hold(session_id):
            try:
                prepared = await asyncio.wait_for(
                    self._prepare_turn(session_id, audio, language_hint, encoding, alternative_languages),
                    timeout=self.turn_timeout,
                )
            except asyncio.TimeoutError as e:
                logger.warning(f"Turn for session {session_id} timed out after {self.turn_timeout}s")
                raise TurnTimeoutError(session_id, self.turn_timeout) from e

            return await self._commit_turn(prepared)

    async def _prepare_turn(
        self,
        session_id: str,
        audio: bytes,
        language_hint: Optional[str],
        encoding: Optional[str],
        alternative_languages: Optional[Sequence[str]],
    ) -> _PreparedTurn:
        session = await self.store.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        if session.is_terminal:
            raise SessionTerminalError(session_id, session.status.value)

        # Cart enrichment does not depend on the transcript, so it overlaps
        # with transcription.
        enrichment = asyncio.create_task(self._fetch_commerce_data(session))
        try:
            transcription = await self.transcriber.transcribe(
                audio,
                language_hint or session.language,
                encoding,
                alternative_languages=alternative_languages,
            )
            if not transcription.transcript.strip():
                logger.info(f"Empty transcript for session {session_id}, nothing recorded")
                raise EmptyTranscriptError(session_id)

            prior_history = self._history_before_utterance(session, transcription.transcript)
            if len(prior_history) == len(session.conversationHistory):
                session = await self.store.append_turn(
                    session_id,
                    ConversationMessage(role=InteractionType.USER, content=transcription.transcript),
                )
            else:
                logger.debug(f"Reusing unanswered utterance from a previous attempt for session {session_id}")

            cart = await enrichment
        finally:
            if not enrichment.done():
                enrichment.cancel()

        context = assemble_context(session, cart)
        if alternative_languages and transcription.languageCode:
            # Reply in the language that was actually spoken.
            context.language = transcription.languageCode

        try:
            reply = await self.engine.generate(prior_history, context, transcription.transcript)
        except GenerationError as e:
            logger.warning(f"Assistant engine failed for session {session_id}, using fallback reply: {e}")
            reply = fallback_reply()
        except Exception as e:
            logger.error(
                f"Unexpected assistant engine error for session {session_id}, using fallback reply: {e}",
                exc_info=True,
            )
            reply = fallback_reply()

        return _PreparedTurn(session=session, transcription=transcription, reply=reply)

    @staticmethod
    def _history_before_utterance(
        session: VoiceSession, transcript: str
    ) -> list[ConversationMessage]:
        """
        History preceding the current utterance. A trailing, unanswered user
        message with the same text is left over from an attempt that timed
        out or was cancelled, and is treated as this utterance.
        """
        history = session.conversationHistory
        if (
            history
            and history[-1].role == InteractionType.USER
            and history[-1].content == transcript
        ):
            return history[:-1]
        return list(history)

    async def _fetch_commerce_data(self, session: VoiceSession) -> Optional[CustomerCart]:
        if not session.customerId:
            return None
        try:
            return await self.commerce.get_customer_cart(session.customerId)
        except Exception as e:
            logger.warning(f"Could not fetch cart for session {session.sessionId}: {e}")
            return None

    async def _commit_turn(self, prepared: _PreparedTurn) -> TurnOutcome:
        session_id = prepared.session.sessionId
        reply = prepared.reply

        await self.store.append_turn(
            session_id,
            ConversationMessage(
                role=InteractionType.ASSISTANT,
                content=reply.text,
                intent=reply.intent,
            ),
        )

        await self.dispatcher.dispatch(session_id, reply.actions)

        if reply.intent in CONVERSION_INTENTS:
            await self.store.increment_analytics(session_id, conversions=1)

        outcome = TurnOutcome(
            sessionId=session_id,
            transcript=prepared.transcription.transcript,
            confidence=prepared.transcription.confidence,
            languageCode=prepared.transcription.languageCode,
            reply=reply.text,
            intent=reply.intent,
            actions=reply.actions,
            tokensUsed=reply.tokensUsed,
        )

        try:
            self.notifier.notify(
                NotificationEvent.VOICE_INTERACTION.value,
                {
                    "sessionId": session_id,
                    "customerId": prepared.session.customerId,
                    "userInput": outcome.transcript,
                    "aiResponse": outcome.reply,
                    "intent": outcome.intent.value,
                },
            )
        except Exception as e:
            logger.warning(f"Could not schedule interaction notification for session {session_id}: {e}")

        logger.debug(f"Completed turn for session {session_id} with intent '{reply.intent.value}'")
        return outcome
