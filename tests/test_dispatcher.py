from unittest.mock import AsyncMock

import pytest

from src.api.voice.workflows import ActionDispatcher
from src.shared.enums import ActionType
from src.shared.schemas import SuggestedAction, VoiceSession


@pytest.fixture
async def session(store):
    session = VoiceSession(sessionId="voice_1_dispatchr")
    await store.put(session)
    return session


class TestActionDispatcher:
    @pytest.mark.asyncio
    async def test_add_to_cart_records_product(self, store, session):
        dispatcher = ActionDispatcher(store)
        completed = await dispatcher.dispatch(
            session.sessionId, [SuggestedAction.of(ActionType.ADD_TO_CART, productId="p1")]
        )

        assert len(completed) == 1
        assert (await store.get(session.sessionId)).analytics.productsDiscussed == ["p1"]

    @pytest.mark.asyncio
    async def test_navigate_funnel_updates_stage(self, store, session):
        dispatcher = ActionDispatcher(store)
        await dispatcher.dispatch(
            session.sessionId,
            [SuggestedAction.of(ActionType.NAVIGATE_FUNNEL, stage="cart", direction="next")],
        )
        assert (await store.get(session.sessionId)).context.funnelStage == "cart"

    @pytest.mark.asyncio
    async def test_client_side_and_unknown_tags_are_skipped(self, store, session):
        dispatcher = ActionDispatcher(store)
        completed = await dispatcher.dispatch(
            session.sessionId,
            [
                SuggestedAction.of(ActionType.NAVIGATE_TO_CHECKOUT),
                SuggestedAction(type="apply_coupon", data={"code": "SPRING"}),
                SuggestedAction.of(ActionType.SEARCH_PRODUCTS, query="scarf"),
            ],
        )
        assert [a.type for a in completed] == [ActionType.SEARCH_PRODUCTS.value]

    @pytest.mark.asyncio
    async def test_failing_action_does_not_stop_the_rest(self, store, session):
        dispatcher = ActionDispatcher(store)
        store.increment_analytics = AsyncMock(side_effect=RuntimeError("write failed"))

        completed = await dispatcher.dispatch(
            session.sessionId,
            [
                SuggestedAction.of(ActionType.ADD_TO_CART, productId="p1"),
                SuggestedAction.of(ActionType.NAVIGATE_FUNNEL, stage="checkout", direction="next"),
            ],
        )

        assert [a.type for a in completed] == [ActionType.NAVIGATE_FUNNEL.value]
        assert (await store.get(session.sessionId)).context.funnelStage == "checkout"

    @pytest.mark.asyncio
    async def test_actions_missing_data_are_ignored(self, store, session):
        dispatcher = ActionDispatcher(store)
        await dispatcher.dispatch(
            session.sessionId,
            [
                SuggestedAction.of(ActionType.ADD_TO_CART),
                SuggestedAction.of(ActionType.NAVIGATE_FUNNEL),
            ],
        )
        stored = await store.get(session.sessionId)
        assert stored.analytics.productsDiscussed == []
        assert stored.context.funnelStage is None
