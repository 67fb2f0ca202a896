"""Tests for the SQL-backed session store."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from src.shared.enums import Intent, InteractionType
from src.shared.exceptions import SessionNotFoundError, StorageError
from src.shared.schemas import ConversationMessage, ProductContext, VoiceSession
from src.shared.state import SessionStatus


def _session(session_id="voice_1_abcdefghi", **kwargs) -> VoiceSession:
    return VoiceSession(sessionId=session_id, **kwargs)


class TestPutAndGet:
    @pytest.mark.asyncio
    async def test_round_trips_a_session(self, store):
        session = _session(customerId="cust-1", language="es-ES")
        session.context.currentProducts = [ProductContext(id="p1", title="Scarf", price="10.00")]
        await store.put(session)

        loaded = await store.get(session.sessionId)
        assert loaded is not None
        assert loaded.customerId == "cust-1"
        assert loaded.language == "es-ES"
        assert loaded.status == SessionStatus.ACTIVE
        assert loaded.context.currentProducts[0].id == "p1"
        assert loaded.startTime.tzinfo is not None

    @pytest.mark.asyncio
    async def test_missing_session_returns_none(self, store):
        assert await store.get("voice_missing") is None

    @pytest.mark.asyncio
    async def test_put_overwrites(self, store):
        session = _session()
        await store.put(session)
        session.status = SessionStatus.PAUSED
        await store.put(session)
        assert (await store.get(session.sessionId)).status == SessionStatus.PAUSED


class TestAppendTurn:
    @pytest.mark.asyncio
    async def test_keeps_total_messages_in_step_with_history(self, store):
        session = _session()
        await store.put(session)

        await store.append_turn(session.sessionId, ConversationMessage(role=InteractionType.USER, content="hi"))
        updated = await store.append_turn(
            session.sessionId,
            ConversationMessage(role=InteractionType.ASSISTANT, content="hello", intent=Intent.GENERAL_HELP),
        )

        assert [m.content for m in updated.conversationHistory] == ["hi", "hello"]
        assert updated.metadata.totalMessages == 2
        assert updated.analytics.intents == {"general_help": 1}

        reloaded = await store.get(session.sessionId)
        assert reloaded.metadata.totalMessages == len(reloaded.conversationHistory) == 2
        assert reloaded.conversationHistory[1].intent == Intent.GENERAL_HELP
        assert reloaded.conversationHistory[0].intent is None

    @pytest.mark.asyncio
    async def test_unknown_session_raises_not_found(self, store):
        with pytest.raises(SessionNotFoundError):
            await store.append_turn("voice_missing", ConversationMessage(role=InteractionType.USER, content="hi"))


class TestAnalyticsAndContext:
    @pytest.mark.asyncio
    async def test_products_discussed_is_deduplicated(self, store):
        session = _session()
        await store.put(session)
        await store.increment_analytics(session.sessionId, product_id="p1")
        await store.increment_analytics(session.sessionId, product_id="p2")
        updated = await store.increment_analytics(session.sessionId, product_id="p1")
        assert updated.analytics.productsDiscussed == ["p1", "p2"]

    @pytest.mark.asyncio
    async def test_counters_only_grow(self, store):
        session = _session()
        await store.put(session)
        await store.increment_analytics(session.sessionId, conversions=1, intent="checkout")
        updated = await store.increment_analytics(session.sessionId, conversions=1, intent="checkout")
        assert updated.analytics.conversionsAttempted == 2
        assert updated.analytics.intents["checkout"] == 2

        with pytest.raises(ValueError):
            await store.increment_analytics(session.sessionId, conversions=-1)

    @pytest.mark.asyncio
    async def test_update_context_merges(self, store):
        session = _session(customerId="cust-1")
        session.context.customerId = "cust-1"
        await store.put(session)
        updated = await store.update_context(session.sessionId, {"funnelStage": "cart"})
        assert updated.context.funnelStage == "cart"
        assert updated.context.customerId == "cust-1"


class TestListSessions:
    @pytest.mark.asyncio
    async def test_filters_and_orders_newest_first(self, store):
        now = datetime.now(timezone.utc)
        await store.put(_session("voice_old", customerId="c1", startTime=now - timedelta(hours=3)))
        await store.put(_session("voice_mid", customerId="c1", startTime=now - timedelta(hours=1)))
        await store.put(
            _session("voice_new", customerId="c2", startTime=now, status=SessionStatus.COMPLETED)
        )

        by_customer = await store.list_sessions(customer_id="c1")
        assert [s.sessionId for s in by_customer] == ["voice_mid", "voice_old"]

        active = await store.list_sessions(status=SessionStatus.ACTIVE)
        assert {s.sessionId for s in active} == {"voice_old", "voice_mid"}

        stale = await store.list_sessions(
            status=SessionStatus.ACTIVE, started_before=now - timedelta(hours=2)
        )
        assert [s.sessionId for s in stale] == ["voice_old"]

        assert len(await store.list_sessions(limit=1)) == 1


class TestRetries:
    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(self, store):
        attempts = []

        async def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise OperationalError("UPDATE voice_sessions", {}, Exception("database is locked"))
            return "ok"

        assert await store._run(flaky, "flaky") == "ok"
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_exhausted_retries_surface_storage_error(self, store):
        attempts = []

        async def broken():
            attempts.append(1)
            raise OperationalError("UPDATE voice_sessions", {}, Exception("connection refused"))

        with pytest.raises(StorageError):
            await store._run(broken, "broken")
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_domain_errors_are_not_retried(self, store):
        attempts = []

        async def missing():
            attempts.append(1)
            raise SessionNotFoundError("voice_missing")

        with pytest.raises(SessionNotFoundError):
            await store._run(missing, "missing")
        assert len(attempts) == 1
