"""
Outbound message endpoint.

The automation system (n8n) posts replies here:

    POST /send-message  {"to": "628123", "message": "hi"}
"""
from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request

from whatsrelay.app.dependencies import get_dispatcher
from whatsrelay.dispatch import TARGET_FIELDS, TEXT_FIELDS, OutboundDispatcher
from whatsrelay.errors import ProviderError, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["messages"])


@router.post(
    "/send-message",
    summary="Send a WhatsApp message",
    responses={
        200: {"description": "Message sent"},
        400: {"description": "Missing or invalid target/message"},
        503: {"description": "WhatsApp not connected"},
        500: {"description": "Provider failed to send"},
    },
)
async def send_message(
    request: Request,
    dispatcher: OutboundDispatcher = Depends(get_dispatcher),
) -> dict[str, Any]:
    """
    Send a text message through the live WhatsApp session.

    Accepts the target as `to`, `jid` or `phone` and the text as
    `message`, `text` or `msg`.
    """
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError(
            "Request body must be valid JSON",
            accepted_fields=TARGET_FIELDS + TEXT_FIELDS,
            received_fields=[],
        )

    try:
        result = await dispatcher.dispatch(body)
    except ProviderError as e:
        logger.error(f"Error sending message: {e}", exc_info=True)
        raise

    return result.to_dict()
