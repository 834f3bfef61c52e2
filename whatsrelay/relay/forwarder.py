"""
Relay Forwarder for whatsrelay.

Forwards inbound WhatsApp messages to the automation webhook (n8n).

Delivery semantics are at-most-once, best effort: each message gets a
single POST with a bounded timeout. Success and failure are both
terminal; a failed delivery is logged and the message is dropped.
There is no queue and no retry.
"""

from __future__ import annotations

import logging

import httpx

from ..errors import RelayDeliveryFailure
from ..providers.base import MessagesUpsert
from .models import InboundMessage, parse_message

logger = logging.getLogger(__name__)

NOTIFY = "notify"


class RelayForwarder:
    """
    Posts eligible inbound messages to a webhook.

    Example:
        forwarder = RelayForwarder("https://n8n.example.com/webhook/whatsapp-task")
        await forwarder.handle_upsert(upsert)
        await forwarder.close()
    """

    def __init__(
        self,
        webhook_url: str,
        *,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._webhook_url = webhook_url
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    @property
    def enabled(self) -> bool:
        return bool(self._webhook_url)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    @staticmethod
    def select(upsert: MessagesUpsert) -> list[InboundMessage]:
        """Messages from a notify upsert that were not sent by this account."""
        if upsert.upsert_type != NOTIFY:
            return []

        selected = []
        for record in upsert.messages:
            message = parse_message(record)
            if message is None or message.from_me:
                continue
            selected.append(message)
        return selected

    async def handle_upsert(self, upsert: MessagesUpsert) -> int:
        """
        Forward every eligible message in `upsert`.

        Returns:
            Number of messages delivered
        """
        delivered = 0
        for message in self.select(upsert):
            logger.info(f"[relay] Message from {message.source}: {message.text[:80]}")
            if await self.forward(message):
                delivered += 1
        return delivered

    async def forward(self, message: InboundMessage) -> bool:
        """
        Deliver one message. Never raises.

        Returns:
            True if the webhook accepted the message
        """
        if not self.enabled:
            logger.warning(f"[relay] No webhook configured, dropping message {message.message_id}")
            return False

        try:
            status = await self._post(message)
        except RelayDeliveryFailure as e:
            logger.error(f"[relay] Error sending to webhook: {e}")
            return False

        logger.info(f"[relay] Sent to webhook: {status}")
        return True

    async def _post(self, message: InboundMessage) -> int:
        client = await self._get_client()
        try:
            response = await client.post(
                self._webhook_url,
                json=message.to_payload(),
                timeout=self._timeout,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RelayDeliveryFailure(
                f"Webhook rejected message: {e.response.reason_phrase}",
                message_id=message.message_id,
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise RelayDeliveryFailure(
                f"Webhook request failed: {e!r}",
                message_id=message.message_id,
            ) from e
        return response.status_code
