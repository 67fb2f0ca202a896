import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from src.database.db import Base
from src.database.models import VoiceSessionRecord
from src.shared.exceptions import SessionNotFoundError, StorageError
from src.shared.schemas import (
    AssistantContext,
    ConversationMessage,
    SessionAnalytics,
    SessionMetadata,
    VoiceSession,
)
from src.shared.state import SessionStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SessionStore(ABC):
    """
    Durable, keyed record of voice sessions.

    Callers are expected to hold the session's lock (see
    `src.services.locks`) around every read-modify-write sequence; the
    store itself makes no cross-call consistency promises.
    """

    @abstractmethod
    async def get(self, session_id: str) -> Optional[VoiceSession]:
        ...

    @abstractmethod
    async def put(self, session: VoiceSession) -> VoiceSession:
        """Create or fully overwrite a session record."""

    @abstractmethod
    async def append_turn(
        self, session_id: str, message: ConversationMessage
    ) -> VoiceSession:
        """
        Append one message to the history, keep `totalMessages` in step with
        it and count the message's intent, all in a single write.
        """

    @abstractmethod
    async def increment_analytics(
        self,
        session_id: str,
        *,
        intent: Optional[str] = None,
        product_id: Optional[str] = None,
        conversions: int = 0,
    ) -> VoiceSession:
        ...

    @abstractmethod
    async def update_context(
        self, session_id: str, updates: dict[str, Any]
    ) -> VoiceSession:
        ...

    @abstractmethod
    async def list_sessions(
        self,
        *,
        status: Optional[SessionStatus] = None,
        customer_id: Optional[str] = None,
        started_before: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[VoiceSession]:
        """Sessions matching every given filter, newest first."""


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def record_to_session(record: VoiceSessionRecord) -> VoiceSession:
    return VoiceSession(
        sessionId=record.session_id,
        customerId=record.customer_id,
        startTime=_as_utc(record.start_time),
        endTime=_as_utc(record.end_time),
        status=SessionStatus(record.status),
        language=record.language,
        conversationHistory=[
            ConversationMessage.model_validate(msg)
            for msg in record.conversation_history or []
        ],
        context=AssistantContext.model_validate(record.context or {}),
        metadata=SessionMetadata.model_validate(record.session_metadata or {}),
        analytics=SessionAnalytics.model_validate(record.analytics or {}),
    )


def apply_session_to_record(session: VoiceSession, record: VoiceSessionRecord) -> None:
    # JSON columns are reassigned wholesale so SQLAlchemy sees the change.
    record.customer_id = session.customerId
    record.status = session.status.value
    record.language = session.language
    record.start_time = _as_utc(session.startTime)
    record.end_time = _as_utc(session.endTime)
    record.conversation_history = [
        msg.model_dump(mode="json", exclude_none=True)
        for msg in session.conversationHistory
    ]
    record.context = session.context.model_dump(mode="json", exclude_none=True)
    record.session_metadata = session.metadata.model_dump(mode="json", exclude_none=True)
    record.analytics = session.analytics.model_dump(mode="json", exclude_none=True)


class SqlSessionStore(SessionStore):
    """
    Session store backed by one `voice_sessions` row per session.

    Every operation runs in its own transaction and is retried with bounded
    exponential backoff on database errors before surfacing a `StorageError`.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_attempts: int = 3,
        wait: Optional[wait_base] = None,
    ):
        self._session_factory = session_factory
        self._max_attempts = max_attempts
        self._wait = wait or wait_exponential(multiplier=0.1, max=2)

    async def initialize(self, engine: AsyncEngine) -> None:
        """Create the session table if it does not exist yet."""
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def _run(self, operation: Callable[[], Awaitable[T]], name: str) -> T:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._max_attempts),
                wait=self._wait,
                retry=retry_if_exception_type(SQLAlchemyError),
                reraise=True,
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.warning(
                            f"Retrying session store operation '{name}' "
                            f"(attempt {attempt.retry_state.attempt_number}/{self._max_attempts})"
                        )
                    return await operation()
        except SQLAlchemyError as e:
            logger.error(f"Session store operation '{name}' failed after retries: {e}")
            raise StorageError(f"Session store operation '{name}' failed: {e}") from e

    async def _mutate(
        self, session_id: str, name: str, change: Callable[[VoiceSession], None]
    ) -> VoiceSession:
        async def operation() -> VoiceSession:
            async with self._session_factory() as db:
                record = await db.get(VoiceSessionRecord, session_id, with_for_update=True)
                if record is None:
                    raise SessionNotFoundError(session_id)
                session = record_to_session(record)
                change(session)
                apply_session_to_record(session, record)
                await db.commit()
                return session

        return await self._run(operation, name)

    async def get(self, session_id: str) -> Optional[VoiceSession]:
        async def operation() -> Optional[VoiceSession]:
            async with self._session_factory() as db:
                record = await db.get(VoiceSessionRecord, session_id)
                return record_to_session(record) if record else None

        return await self._run(operation, "get")

    async def put(self, session: VoiceSession) -> VoiceSession:
        async def operation() -> VoiceSession:
            async with self._session_factory() as db:
                record = await db.get(VoiceSessionRecord, session.sessionId)
                if record is None:
                    record = VoiceSessionRecord(session_id=session.sessionId)
                    db.add(record)
                apply_session_to_record(session, record)
                await db.commit()
                return session

        return await self._run(operation, "put")

    async def append_turn(
        self, session_id: str, message: ConversationMessage
    ) -> VoiceSession:
        def change(session: VoiceSession) -> None:
            session.conversationHistory.append(message)
            session.metadata.totalMessages = len(session.conversationHistory)
            if message.intent:
                intents = session.analytics.intents
                intents[message.intent.value] = intents.get(message.intent.value, 0) + 1

        return await self._mutate(session_id, "append_turn", change)

    async def increment_analytics(
        self,
        session_id: str,
        *,
        intent: Optional[str] = None,
        product_id: Optional[str] = None,
        conversions: int = 0,
    ) -> VoiceSession:
        if conversions < 0:
            raise ValueError("Analytics counters cannot decrease")

        def change(session: VoiceSession) -> None:
            analytics = session.analytics
            if intent:
                analytics.intents[intent] = analytics.intents.get(intent, 0) + 1
            if product_id and product_id not in analytics.productsDiscussed:
                analytics.productsDiscussed.append(product_id)
            analytics.conversionsAttempted += conversions

        return await self._mutate(session_id, "increment_analytics", change)

    async def update_context(
        self, session_id: str, updates: dict[str, Any]
    ) -> VoiceSession:
        def change(session: VoiceSession) -> None:
            merged = session.context.model_dump()
            merged.update(updates)
            session.context = AssistantContext.model_validate(merged)

        return await self._mutate(session_id, "update_context", change)

    async def list_sessions(
        self,
        *,
        status: Optional[SessionStatus] = None,
        customer_id: Optional[str] = None,
        started_before: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[VoiceSession]:
        query = select(VoiceSessionRecord).order_by(VoiceSessionRecord.start_time.desc())
        if status is not None:
            query = query.where(VoiceSessionRecord.status == status.value)
        if customer_id is not None:
            query = query.where(VoiceSessionRecord.customer_id == customer_id)
        if started_before is not None:
            query = query.where(VoiceSessionRecord.start_time < _as_utc(started_before))
        if limit is not None:
            query = query.limit(limit)

        async def operation() -> list[VoiceSession]:
            async with self._session_factory() as db:
                result = await db.execute(query)
                return [record_to_session(record) for record in result.scalars().all()]

        return await self._run(operation, "list_sessions")
