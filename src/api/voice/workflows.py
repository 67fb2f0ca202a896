import logging
from typing import Awaitable, Callable

from src.services.session_store import SessionStore
from src.shared.enums import ActionType
from src.shared.schemas import SuggestedAction

logger = logging.getLogger(__name__)

ActionHandler = Callable[[str, SuggestedAction], Awaitable[None]]


class ActionDispatcher:
    """
    Executes the suggested actions of one assistant reply.

    Each action is handled in isolation: a failing handler is logged and the
    remaining actions still run. Tags without a handler (client-side actions
    and tags from newer deployments) are skipped.
    """

    def __init__(self, store: SessionStore):
        self.store = store
        self.handlers: dict[str, ActionHandler] = {
            ActionType.ADD_TO_CART.value: self.add_to_cart_workflow,
            ActionType.SEARCH_PRODUCTS.value: self.search_products_workflow,
            ActionType.NAVIGATE_FUNNEL.value: self.navigate_funnel_workflow,
        }

    async def dispatch(
        self, session_id: str, actions: list[SuggestedAction]
    ) -> list[SuggestedAction]:
        completed = []
        for action in actions:
            handler = self.handlers.get(action.type)
            if not handler:
                logger.debug(f"No server-side handler for action '{action.type}', skipping.")
                continue
            try:
                await handler(session_id, action)
                completed.append(action)
            except Exception as e:
                logger.warning(
                    f"Action '{action.type}' failed for session {session_id}: {e}",
                    exc_info=True,
                )
        return completed

    async def add_to_cart_workflow(self, session_id: str, action: SuggestedAction) -> None:
        # Cart mutation needs explicit shopper confirmation elsewhere; here we
        # only remember that the product came up.
        product_id = action.data.get("productId")
        if not product_id:
            logger.debug(f"add_to_cart action without productId for session {session_id}")
            return
        await self.store.increment_analytics(session_id, product_id=product_id)

    async def search_products_workflow(self, session_id: str, action: SuggestedAction) -> None:
        logger.debug(f"Search suggested for session {session_id}: {action.data.get('query')!r}")

    async def navigate_funnel_workflow(self, session_id: str, action: SuggestedAction) -> None:
        stage = action.data.get("stage")
        if not stage:
            logger.debug(f"navigate_funnel action without stage for session {session_id}")
            return
        await self.store.update_context(session_id, {"funnelStage": stage})
