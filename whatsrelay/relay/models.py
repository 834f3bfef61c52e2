"""
Inbound message model.

Built from a raw provider message record:

    {
        "key": {"remoteJid": "628123@s.whatsapp.net", "fromMe": false, "id": "3EB0..."},
        "message": {"conversation": "hello"},
        "pushName": "Budi"
    }
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class InboundMessage:
    """An inbound chat message. Immutable once constructed."""

    source: str
    text: str
    message_id: str
    received_at: datetime = field(default_factory=_utc_now)
    from_me: bool = False
    push_name: str | None = None

    def to_payload(self) -> dict[str, str]:
        """Webhook body: {from, message, timestamp, messageId}."""
        return {
            "from": self.source,
            "message": self.text,
            "timestamp": self.received_at.isoformat().replace("+00:00", "Z"),
            "messageId": self.message_id,
        }


def extract_text(content: dict[str, Any] | None) -> str:
    """
    Pull the human-readable text out of a provider message body.

    Plain conversation first, then extended (link/quote) text, then
    media captions. Anything else yields "".
    """
    if not isinstance(content, dict):
        return ""

    conversation = content.get("conversation")
    if isinstance(conversation, str) and conversation:
        return conversation

    for container, key in (
        ("extendedTextMessage", "text"),
        ("imageMessage", "caption"),
        ("videoMessage", "caption"),
        ("documentMessage", "caption"),
    ):
        inner = content.get(container)
        if isinstance(inner, dict):
            value = inner.get(key)
            if isinstance(value, str) and value:
                return value

    return ""


def parse_message(record: dict[str, Any]) -> InboundMessage | None:
    """Build an InboundMessage from a raw record, or None if it has no sender."""
    key = record.get("key")
    if not isinstance(key, dict):
        return None

    source = str(key.get("remoteJid") or "")
    if not source:
        return None

    return InboundMessage(
        source=source,
        text=extract_text(record.get("message")),
        message_id=str(key.get("id") or ""),
        from_me=bool(key.get("fromMe", False)),
        push_name=record.get("pushName") or None,
    )
