import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol, Set

import httpx

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, event_name: str, payload: Dict[str, Any]) -> None: ...


class WebhookNotifier:
    """
    Fire-and-forget webhook side channel.

    `notify` returns immediately; the POST runs as a detached task whose
    failure is logged and otherwise ignored. Events without a configured URL
    are skipped.
    """

    def __init__(
        self,
        webhook_urls: Dict[str, Optional[str]],
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.webhook_urls = webhook_urls
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self._pending: Set[asyncio.Task] = set()

    def notify(self, event_name: str, payload: Dict[str, Any]) -> None:
        url = self.webhook_urls.get(event_name)
        if not url:
            logger.debug(f"Webhook for event '{event_name}' not configured, skipping.")
            return

        body = {
            "event": event_name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **payload,
        }
        task = asyncio.create_task(self._send(event_name, url, body))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send(self, event_name: str, url: str, body: Dict[str, Any]) -> None:
        try:
            response = await self.client.post(url, json=body)
            response.raise_for_status()
            logger.debug(f"Webhook for event '{event_name}' delivered.")
        except httpx.HTTPError as e:
            logger.warning(f"Webhook for event '{event_name}' failed: {e}")
        except Exception as e:
            logger.error(f"Unexpected error delivering webhook '{event_name}': {e}", exc_info=True)

    async def drain(self) -> None:
        """Waits for in-flight deliveries; used on shutdown and in tests."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
        await self.client.aclose()
