"""
Outbound Dispatch for whatsrelay.

Sends a reply from the automation system through the live WhatsApp
session. Readiness is checked once at entry; a connection that drops
while the send is in flight surfaces as a ProviderError from the
session itself.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from ..config.schemas import DEFAULT_MESSAGE
from ..errors import NotReadyError, ProviderDecodeError, ProviderError
from .normalize import NormalizedOutbound, alternate_jid, normalize_request

if TYPE_CHECKING:
    from ..lifecycle import ConnectionController
    from ..providers.base import ProviderSession, SendAck

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DispatchResult:
    """Outcome of a successful send."""

    to: str
    message_length: int
    message_id: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": "success",
            "to": self.to,
            "messageLength": self.message_length,
            "messageId": self.message_id,
            "timestamp": self.timestamp.isoformat().replace("+00:00", "Z"),
        }


class OutboundDispatcher:
    """
    Normalize, gate and send.

    Example:
        dispatcher = OutboundDispatcher(controller)
        result = await dispatcher.dispatch({"to": "628123", "message": "hi"})
    """

    def __init__(self, controller: ConnectionController, *, default_message: str = DEFAULT_MESSAGE):
        self._controller = controller
        self._default_message = default_message

    async def dispatch(self, body: Any) -> DispatchResult:
        """
        Handle one send request body.

        Raises:
            ValidationError: Malformed request (400)
            NotReadyError: No live session (503)
            ProviderError: Provider send failed (500)
        """
        request = normalize_request(body, self._default_message)

        session = self._controller.session
        if not self._controller.is_ready or session is None:
            state = self._controller.state.value
            logger.warning(f"[dispatch] Rejecting send to {request.target_jid}: state={state}")
            raise NotReadyError(state)

        ack = await self._send(session, request)
        logger.info(f"[dispatch] Reply sent to {ack.jid}: {request.text[:80]}")
        return DispatchResult(
            to=ack.jid,
            message_length=len(request.text),
            message_id=ack.message_id,
        )

    async def _send(self, session: ProviderSession, request: NormalizedOutbound) -> SendAck:
        try:
            return await session.send(request.target_jid, request.text)
        except ProviderDecodeError as e:
            fallback = alternate_jid(request.target_jid)
            if fallback is None:
                raise ProviderError(str(e), code=e.code) from e
            logger.warning(
                f"[dispatch] Provider could not decode {request.target_jid}, retrying as {fallback}"
            )
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(str(e)) from e

        try:
            return await session.send(fallback, request.text)
        except ProviderError as e:
            raise ProviderError(str(e), code=e.code) from e
        except Exception as e:
            raise ProviderError(str(e)) from e
