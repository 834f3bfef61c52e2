"""
Tests for the relay forwarder.

Uses httpx.MockTransport in place of the n8n webhook.
"""

import json
from datetime import UTC, datetime

import httpx
import pytest

from whatsrelay.errors import RelayDeliveryFailure
from whatsrelay.providers import MessagesUpsert
from whatsrelay.relay import InboundMessage, RelayForwarder, extract_text, parse_message

WEBHOOK = "https://n8n.example.com/webhook/whatsapp-task"


def record(text="hi", *, from_me=False, jid="628123@s.whatsapp.net", msg_id="ID1"):
    return {
        "key": {"remoteJid": jid, "fromMe": from_me, "id": msg_id},
        "message": {"conversation": text},
    }


class RecordingWebhook:
    """MockTransport handler that records requests."""

    def __init__(self, status_code=200, error=None):
        self.status_code = status_code
        self.error = error
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, json={"ok": True})

    @property
    def payloads(self):
        return [json.loads(r.content) for r in self.requests]


def make_forwarder(webhook, url=WEBHOOK):
    client = httpx.AsyncClient(transport=httpx.MockTransport(webhook))
    return RelayForwarder(url, timeout=5.0, client=client), client


# =============================================================================
# Message parsing
# =============================================================================


class TestExtractText:
    """Tests for extract_text()."""

    def test_conversation(self):
        assert extract_text({"conversation": "halo"}) == "halo"

    def test_extended_text(self):
        assert extract_text({"extendedTextMessage": {"text": "see https://x.y"}}) == "see https://x.y"

    def test_caption(self):
        assert extract_text({"imageMessage": {"caption": "foto"}}) == "foto"

    def test_conversation_preferred(self):
        content = {"conversation": "a", "extendedTextMessage": {"text": "b"}}
        assert extract_text(content) == "a"

    @pytest.mark.parametrize("content", [None, {}, {"stickerMessage": {}}, "text"])
    def test_no_text(self, content):
        assert extract_text(content) == ""


class TestParseMessage:
    """Tests for parse_message()."""

    def test_parses_record(self, sample_record):
        message = parse_message(sample_record)

        assert message.source == "628123456789@s.whatsapp.net"
        assert message.text == "Halo, jadwal besok?"
        assert message.message_id == "3EB0ABCDEF"
        assert message.from_me is False
        assert message.push_name == "Budi"

    def test_missing_key_or_sender(self):
        assert parse_message({"message": {"conversation": "x"}}) is None
        assert parse_message({"key": {"fromMe": False}}) is None

    def test_payload_shape(self):
        message = InboundMessage(
            source="628123@s.whatsapp.net",
            text="halo",
            message_id="ID1",
            received_at=datetime(2024, 5, 1, 8, 30, tzinfo=UTC),
        )

        assert message.to_payload() == {
            "from": "628123@s.whatsapp.net",
            "message": "halo",
            "timestamp": "2024-05-01T08:30:00Z",
            "messageId": "ID1",
        }


# =============================================================================
# RelayForwarder
# =============================================================================


class TestSelect:
    """Tests for RelayForwarder.select()."""

    def test_own_messages_never_selected(self):
        upsert = MessagesUpsert(
            upsert_type="notify",
            messages=tuple(record(f"m{i}", from_me=i % 2 == 0, msg_id=f"ID{i}") for i in range(10)),
        )

        selected = RelayForwarder.select(upsert)

        assert [m.message_id for m in selected] == ["ID1", "ID3", "ID5", "ID7", "ID9"]
        assert all(not m.from_me for m in selected)

    def test_history_sync_ignored(self):
        upsert = MessagesUpsert(upsert_type="append", messages=(record(),))
        assert RelayForwarder.select(upsert) == []


class TestForwarder:
    """Tests for delivery to the webhook."""

    @pytest.mark.asyncio
    async def test_forwards_notify_messages(self):
        webhook = RecordingWebhook()
        forwarder, client = make_forwarder(webhook)
        upsert = MessagesUpsert(upsert_type="notify", messages=(record("halo", msg_id="A"),))

        delivered = await forwarder.handle_upsert(upsert)

        assert delivered == 1
        assert len(webhook.requests) == 1
        assert webhook.requests[0].method == "POST"
        assert str(webhook.requests[0].url) == WEBHOOK
        payload = webhook.payloads[0]
        assert set(payload) == {"from", "message", "timestamp", "messageId"}
        assert payload["from"] == "628123@s.whatsapp.net"
        assert payload["message"] == "halo"
        assert payload["messageId"] == "A"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_own_messages_never_posted(self):
        webhook = RecordingWebhook()
        forwarder, client = make_forwarder(webhook)
        upsert = MessagesUpsert(
            upsert_type="notify",
            messages=(record("mine", from_me=True), record("also mine", from_me=True)),
        )

        delivered = await forwarder.handle_upsert(upsert)

        assert delivered == 0
        assert webhook.requests == []
        await client.aclose()

    @pytest.mark.asyncio
    async def test_non_text_message_forwarded_empty(self):
        webhook = RecordingWebhook()
        forwarder, client = make_forwarder(webhook)
        sticker = {"key": {"remoteJid": "628123@s.whatsapp.net", "id": "S1"}, "message": {"stickerMessage": {}}}

        await forwarder.handle_upsert(MessagesUpsert(upsert_type="notify", messages=(sticker,)))

        assert webhook.payloads[0]["message"] == ""
        await client.aclose()

    @pytest.mark.asyncio
    async def test_http_error_returns_false(self):
        webhook = RecordingWebhook(status_code=500)
        forwarder, client = make_forwarder(webhook)
        message = parse_message(record())

        assert await forwarder.forward(message) is False
        assert len(webhook.requests) == 1  # no retry
        await client.aclose()

    @pytest.mark.asyncio
    async def test_network_error_returns_false(self):
        webhook = RecordingWebhook(error=httpx.ConnectError("refused"))
        forwarder, client = make_forwarder(webhook)
        upsert = MessagesUpsert(upsert_type="notify", messages=(record(msg_id="A"), record(msg_id="B")))

        delivered = await forwarder.handle_upsert(upsert)

        assert delivered == 0
        assert len(webhook.requests) == 2
        await client.aclose()

    @pytest.mark.asyncio
    async def test_post_raises_delivery_failure(self):
        webhook = RecordingWebhook(status_code=404)
        forwarder, client = make_forwarder(webhook)

        with pytest.raises(RelayDeliveryFailure) as exc_info:
            await forwarder._post(parse_message(record(msg_id="X9")))

        assert exc_info.value.http_status == 404
        assert "message_id=X9" in str(exc_info.value)
        await client.aclose()

    @pytest.mark.asyncio
    async def test_disabled_without_url(self):
        webhook = RecordingWebhook()
        forwarder, client = make_forwarder(webhook, url="")

        assert forwarder.enabled is False
        assert await forwarder.forward(parse_message(record())) is False
        assert webhook.requests == []
        await client.aclose()

    @pytest.mark.asyncio
    async def test_close_leaves_injected_client_open(self):
        forwarder, client = make_forwarder(RecordingWebhook())

        await forwarder.close()

        assert client.is_closed is False
        await client.aclose()
