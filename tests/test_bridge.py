"""
Tests for the Baileys bridge provider.

A FakeBridgeSocket stands in for the WebSocket connection: frames fed
into it are read by the session's reader loop, and commands sent to it
can be answered by a responder callback.
"""

import asyncio
import json

import pytest

from whatsrelay.errors import ProviderDecodeError, ProviderError
from whatsrelay.providers import (
    BridgeProvider,
    BridgeSession,
    Close,
    Connecting,
    CredentialsUpdated,
    DisconnectReason,
    MessagesUpsert,
    Open,
    PairingChallenge,
)
from whatsrelay.providers import bridge as bridge_module


# =============================================================================
# Fake WebSocket
# =============================================================================


class FakeBridgeSocket:
    """Minimal stand-in for a websockets client connection."""

    def __init__(self, responder=None):
        self.sent = []
        self.responder = responder
        self.closed = False
        self._incoming = asyncio.Queue()

    async def send(self, data):
        frame = json.loads(data)
        self.sent.append(frame)
        if self.responder is not None:
            payload = self.responder(frame)
            if payload is not None:
                self.feed({"type": "response", "requestId": frame["requestId"], "payload": payload})

    def feed(self, frame):
        self._incoming.put_nowait(json.dumps(frame))

    def feed_raw(self, raw):
        self._incoming.put_nowait(raw)

    def drop(self):
        self._incoming.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        raw = await self._incoming.get()
        if raw is None:
            raise StopAsyncIteration
        return raw

    async def close(self):
        self.closed = True
        self.drop()


def ok(**fields):
    return lambda frame: {"ok": True, **fields}


async def settle():
    for _ in range(5):
        await asyncio.sleep(0)


def started_session(ws, events, timeout=1.0):
    session = BridgeSession(ws, events.append, command_timeout=timeout)
    session.start()
    return session


# =============================================================================
# connection.update parsing
# =============================================================================


class TestParseConnectionUpdate:
    """Tests for BridgeSession.parse_connection_update()."""

    def setup_method(self):
        self.session = BridgeSession(None, lambda event: None)

    def test_qr_comes_first(self):
        events = self.session.parse_connection_update({"connection": "connecting", "qr": "2@abc"})
        assert events == [PairingChallenge(code="2@abc"), Connecting()]

    def test_open_records_user(self):
        events = self.session.parse_connection_update(
            {"connection": "open", "user": {"id": "628999:3@s.whatsapp.net"}}
        )

        assert events == [Open(user_id="628999:3@s.whatsapp.net")]
        assert self.session.user_id == "628999:3@s.whatsapp.net"

    def test_logged_out_close(self):
        events = self.session.parse_connection_update(
            {"connection": "close", "lastDisconnect": {"statusCode": 401, "error": "Connection Failure"}}
        )

        assert len(events) == 1
        assert events[0].reason == DisconnectReason.LOGGED_OUT
        assert events[0].logged_out is True
        assert events[0].error == "Connection Failure"

    def test_string_status_code_coerced(self):
        [event] = self.session.parse_connection_update(
            {"connection": "close", "lastDisconnect": {"statusCode": "401"}}
        )

        assert event.reason == DisconnectReason.LOGGED_OUT
        assert event.logged_out is True

    def test_non_numeric_status_code(self):
        [event] = self.session.parse_connection_update({"connection": "close", "statusCode": "oops"})
        assert event.reason == DisconnectReason.CONNECTION_CLOSED

    def test_unknown_close_code_kept(self):
        [event] = self.session.parse_connection_update({"connection": "close", "statusCode": 999})

        assert event.reason == 999
        assert event.logged_out is False

    def test_close_without_code(self):
        [event] = self.session.parse_connection_update({"connection": "close"})
        assert event.reason == DisconnectReason.CONNECTION_CLOSED

    def test_empty_update(self):
        assert self.session.parse_connection_update({}) == []


# =============================================================================
# Ingress
# =============================================================================


class TestIngress:
    """Tests for frames read from the bridge."""

    @pytest.mark.asyncio
    async def test_frames_become_events(self, sample_record):
        ws = FakeBridgeSocket()
        events = []
        session = started_session(ws, events)

        ws.feed({"type": "connection.update", "payload": {"qr": "2@abc"}})
        ws.feed({"type": "creds.update"})
        ws.feed(
            {
                "type": "messages.upsert",
                "payload": {"type": "notify", "messages": [sample_record, "junk"]},
            }
        )
        await settle()

        assert events == [
            PairingChallenge(code="2@abc"),
            CredentialsUpdated(),
            MessagesUpsert(upsert_type="notify", messages=(sample_record,)),
        ]
        await session.close()

    @pytest.mark.asyncio
    async def test_invalid_frames_ignored(self):
        ws = FakeBridgeSocket()
        events = []
        session = started_session(ws, events)

        ws.feed_raw("not json")
        ws.feed_raw("[1, 2]")
        ws.feed({"type": "error", "payload": {"error": "boom"}})
        ws.feed({"type": "mystery"})
        ws.feed({"type": "creds.update"})
        await settle()

        assert events == [CredentialsUpdated()]
        await session.close()

    @pytest.mark.asyncio
    async def test_unexpected_drop_emits_close(self):
        ws = FakeBridgeSocket()
        events = []
        started_session(ws, events)

        ws.drop()
        await settle()

        assert events == [Close(reason=DisconnectReason.CONNECTION_LOST)]

    @pytest.mark.asyncio
    async def test_drop_after_reported_close_is_silent(self):
        ws = FakeBridgeSocket()
        events = []
        started_session(ws, events)

        ws.feed({"type": "connection.update", "payload": {"connection": "close", "statusCode": 515}})
        ws.drop()
        await settle()

        assert events == [Close(reason=DisconnectReason.RESTART_REQUIRED)]

    @pytest.mark.asyncio
    async def test_deliberate_close_is_silent(self):
        ws = FakeBridgeSocket()
        events = []
        session = started_session(ws, events)

        await session.close()
        await session.close()
        await settle()

        assert events == []
        assert ws.closed is True
        assert session.is_open is False

    @pytest.mark.asyncio
    async def test_sink_errors_are_contained(self):
        ws = FakeBridgeSocket()

        def sink(event):
            raise RuntimeError("sink broke")

        session = BridgeSession(ws, sink)
        session.start()

        ws.feed({"type": "creds.update"})
        await settle()

        assert session.is_open is True
        await session.close()


# =============================================================================
# Commands
# =============================================================================


class TestCommands:
    """Tests for commands issued to the bridge."""

    @pytest.mark.asyncio
    async def test_send_text(self):
        ws = FakeBridgeSocket(responder=ok(messageId="3EB0XYZ", jid="628123@s.whatsapp.net"))
        session = started_session(ws, [])

        ack = await session.send("628123@s.whatsapp.net", "hello")

        assert ack.jid == "628123@s.whatsapp.net"
        assert ack.message_id == "3EB0XYZ"
        frame = ws.sent[0]
        assert frame["type"] == "command"
        assert frame["command"] == "send_text"
        assert frame["payload"] == {"jid": "628123@s.whatsapp.net", "text": "hello"}
        assert frame["requestId"]
        await session.close()

    @pytest.mark.asyncio
    async def test_jid_decode_error(self):
        ws = FakeBridgeSocket(responder=lambda f: {"ok": False, "code": "jid_decode", "error": "bad jid"})
        session = started_session(ws, [])

        with pytest.raises(ProviderDecodeError, match="bad jid"):
            await session.send("628123@s.whatsapp.net", "hello")
        await session.close()

    @pytest.mark.asyncio
    async def test_other_error(self):
        ws = FakeBridgeSocket(responder=lambda f: {"ok": False, "code": "not_connected", "error": "offline"})
        session = started_session(ws, [])

        with pytest.raises(ProviderError) as exc_info:
            await session.logout()

        assert not isinstance(exc_info.value, ProviderDecodeError)
        assert exc_info.value.code == "not_connected"
        await session.close()

    @pytest.mark.asyncio
    async def test_command_timeout(self):
        ws = FakeBridgeSocket()
        session = started_session(ws, [], timeout=0.05)

        with pytest.raises(ProviderError, match="timed out"):
            await session.save_credentials()
        await session.close()

    @pytest.mark.asyncio
    async def test_pending_command_fails_on_drop(self):
        ws = FakeBridgeSocket()
        session = started_session(ws, [])

        task = asyncio.create_task(session.send("628123@s.whatsapp.net", "hello"))
        await settle()
        ws.drop()

        with pytest.raises(ProviderError, match="closed"):
            await task

    @pytest.mark.asyncio
    async def test_command_after_close(self):
        ws = FakeBridgeSocket(responder=ok())
        session = started_session(ws, [])
        await session.close()

        with pytest.raises(ProviderError):
            await session.send("628123@s.whatsapp.net", "hello")


# =============================================================================
# BridgeProvider
# =============================================================================


class TestBridgeProvider:
    """Tests for BridgeProvider.connect()."""

    @pytest.mark.asyncio
    async def test_connect_opens_socket(self, monkeypatch):
        ws = FakeBridgeSocket(responder=ok())
        calls = []

        async def fake_connect(url, **kwargs):
            calls.append((url, kwargs))
            return ws

        monkeypatch.setattr(bridge_module.websockets, "connect", fake_connect)
        provider = BridgeProvider(
            "ws://bridge:3001",
            auth_dir="/data/auth",
            browser=("WhatsApp Task Bot", "Chrome", "1.0.0"),
            token="s3cret",
        )

        session = await provider.connect(lambda event: None)

        assert provider.name == "baileys-bridge"
        assert calls[0][0] == "ws://bridge:3001"
        frame = ws.sent[0]
        assert frame["command"] == "connect"
        assert frame["payload"] == {
            "authDir": "/data/auth",
            "browser": ["WhatsApp Task Bot", "Chrome", "1.0.0"],
            "token": "s3cret",
        }
        assert session.is_open is True
        await session.close()

    @pytest.mark.asyncio
    async def test_unreachable_bridge(self, monkeypatch):
        async def fake_connect(url, **kwargs):
            raise ConnectionRefusedError("refused")

        monkeypatch.setattr(bridge_module.websockets, "connect", fake_connect)

        with pytest.raises(ProviderError, match="Could not reach bridge"):
            await BridgeProvider("ws://bridge:3001").connect(lambda event: None)

    @pytest.mark.asyncio
    async def test_rejected_open_closes_socket(self, monkeypatch):
        ws = FakeBridgeSocket(responder=lambda f: {"ok": False, "error": "auth dir locked"})

        async def fake_connect(url, **kwargs):
            return ws

        monkeypatch.setattr(bridge_module.websockets, "connect", fake_connect)

        with pytest.raises(ProviderError, match="auth dir locked"):
            await BridgeProvider("ws://bridge:3001").connect(lambda event: None)

        assert ws.closed is True
