import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from .assistant import AssistantEngine
from src.services.locks import SessionLockRegistry
from src.services.notifier import Notifier
from src.services.session_store import SessionStore
from src.shared.constants import (
    ACTIVE_SESSIONS_LIMIT,
    CUSTOMER_SESSIONS_LIMIT,
    DEFAULT_LANGUAGE,
    SATISFACTION_SCORE_MAX,
    SATISFACTION_SCORE_MIN,
)
from src.shared.enums import DeviceType, NotificationEvent
from src.shared.exceptions import (
    GenerationError,
    SessionNotFoundError,
    SessionTerminalError,
)
from src.shared.schemas import (
    AssistantContext,
    SessionMetadata,
    SessionSummary,
    VoiceSession,
)
from src.shared.state import SessionStatus, can_transition
from src.shared.utils.functions import generate_session_id

logger = logging.getLogger(__name__)


class SessionLifecycleManager:
    """
    Creates, pauses, resumes, ends and abandons voice sessions.

    Every state change runs under the same per-session lock as turn
    processing.
    """

    def __init__(
        self,
        store: SessionStore,
        locks: SessionLockRegistry,
        notifier: Notifier,
        engine: Optional[AssistantEngine] = None,
    ):
        self.store = store
        self.locks = locks
        self.notifier = notifier
        self.engine = engine

    async def create(
        self,
        customer_id: Optional[str] = None,
        language: str = DEFAULT_LANGUAGE,
        device_type: DeviceType = DeviceType.WEB,
        client_meta: Optional[Dict[str, Any]] = None,
        customer_name: Optional[str] = None,
    ) -> VoiceSession:
        client_meta = client_meta or {}
        session = VoiceSession(
            sessionId=generate_session_id(),
            customerId=customer_id,
            language=language or DEFAULT_LANGUAGE,
            context=AssistantContext(
                customerId=customer_id,
                customerName=customer_name,
                language=language or DEFAULT_LANGUAGE,
            ),
            metadata=SessionMetadata(
                deviceType=device_type,
                userAgent=client_meta.get("userAgent"),
                ipAddress=client_meta.get("ipAddress"),
            ),
        )
        await self.store.put(session)
        logger.info(f"Created voice session {session.sessionId} ({device_type.value}, {session.language})")

        self.notifier.notify(
            NotificationEvent.SESSION_STARTED.value,
            {
                "sessionId": session.sessionId,
                "customerId": session.customerId,
                "deviceType": session.metadata.deviceType.value,
                "startTime": session.startTime.isoformat(),
            },
        )
        return session

    async def get(self, session_id: str) -> VoiceSession:
        session = await self.store.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def _transition(self, session_id: str, target: SessionStatus) -> bool:
        async with self.locks.hold(session_id):
            session = await self.store.get(session_id)
            if session is None:
                logger.warning(f"Cannot move session {session_id} to '{target.value}': session not found")
                return False
            if not can_transition(session.status, target):
                logger.warning(
                    f"Ignoring transition of session {session_id} from '{session.status.value}' to '{target.value}'"
                )
                return False
            session.status = target
            await self.store.put(session)
            logger.debug(f"Session {session_id} is now '{target.value}'")
            return True

    async def pause(self, session_id: str) -> bool:
        return await self._transition(session_id, SessionStatus.PAUSED)

    async def resume(self, session_id: str) -> bool:
        return await self._transition(session_id, SessionStatus.ACTIVE)

    async def end(
        self, session_id: str, satisfaction_score: Optional[int] = None
    ) -> SessionSummary:
        if satisfaction_score is not None and not (
            SATISFACTION_SCORE_MIN <= satisfaction_score <= SATISFACTION_SCORE_MAX
        ):
            raise ValueError(
                f"satisfactionScore must be between {SATISFACTION_SCORE_MIN} and {SATISFACTION_SCORE_MAX}"
            )

        async with self.locks.hold(session_id):
            session = await self.store.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            if session.is_terminal:
                logger.debug(f"Session {session_id} already '{session.status.value}', returning stored summary")
                return SessionSummary.from_session(session)

            end_time = datetime.now(timezone.utc)
            session.status = SessionStatus.COMPLETED
            session.endTime = end_time
            session.metadata.totalDuration = int((end_time - session.startTime).total_seconds())
            if satisfaction_score is not None:
                session.analytics.satisfactionScore = satisfaction_score
            if self.engine and session.conversationHistory:
                try:
                    session.metadata.conversationSummary = await self.engine.summarize(
                        session.conversationHistory
                    )
                except GenerationError as e:
                    logger.warning(f"Could not summarize conversation for session {session_id}: {e}")

            await self.store.put(session)

        summary = SessionSummary.from_session(session)
        logger.info(f"Ended voice session {session_id} after {summary.totalDuration}s")
        self.notifier.notify(
            NotificationEvent.SESSION_ENDED.value,
            {"customerId": session.customerId, **summary.model_dump(mode="json")},
        )
        return summary

    async def update_context(self, session_id: str, updates: Dict[str, Any]) -> VoiceSession:
        async with self.locks.hold(session_id):
            session = await self.store.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            if session.is_terminal:
                raise SessionTerminalError(session_id, session.status.value)
            return await self.store.update_context(session_id, updates)

    async def sweep_abandoned(self, idle_threshold: timedelta) -> int:
        """
        Marks every active session started before `now - idle_threshold` as
        abandoned. Meant to be triggered by an external scheduler.
        """
        cutoff = datetime.now(timezone.utc) - idle_threshold
        candidates = await self.store.list_sessions(
            status=SessionStatus.ACTIVE, started_before=cutoff
        )

        abandoned = 0
        for candidate in candidates:
            async with self.locks.hold(candidate.sessionId):
                # Re-read under the lock: a turn or end may have won the race.
                session = await self.store.get(candidate.sessionId)
                if session is None or session.status != SessionStatus.ACTIVE:
                    continue
                session.status = SessionStatus.ABANDONED
                await self.store.put(session)
                abandoned += 1

        logger.info(f"Sweep marked {abandoned} session(s) idle since before {cutoff.isoformat()} as abandoned")
        return abandoned

    async def list_customer_sessions(
        self, customer_id: str, limit: int = CUSTOMER_SESSIONS_LIMIT
    ) -> list[VoiceSession]:
        return await self.store.list_sessions(customer_id=customer_id, limit=limit)

    async def list_active_sessions(self, limit: int = ACTIVE_SESSIONS_LIMIT) -> list[VoiceSession]:
        return await self.store.list_sessions(status=SessionStatus.ACTIVE, limit=limit)
