"""
Baileys Bridge Provider for whatsrelay.

Talks to a Node.js bridge process hosting Baileys over a JSON WebSocket.
The bridge owns the WhatsApp socket and the credential directory; this
adapter only relays its event stream and issues commands.

Frames from the bridge:
    {"type": "connection.update", "payload": {"connection", "qr", "user", "lastDisconnect"}}
    {"type": "creds.update"}
    {"type": "messages.upsert", "payload": {"type": "notify", "messages": [...]}}
    {"type": "response", "requestId": "...", "payload": {"ok": true, ...}}
    {"type": "error", "payload": {"error": "..."}}

Commands to the bridge:
    {"type": "command", "command": "connect" | "send_text" | "logout" | "save_creds",
     "requestId": "...", "payload": {...}}
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import uuid
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..errors import ProviderDecodeError, ProviderError
from .base import (
    Close,
    Connecting,
    CredentialsUpdated,
    DisconnectReason,
    EventSink,
    MessagesUpsert,
    Open,
    PairingChallenge,
    ProviderEvent,
    SendAck,
)

logger = logging.getLogger(__name__)

JID_DECODE_ERROR = "jid_decode"
MAX_FRAME_BYTES = 8 * 1024 * 1024


class BridgeSession:
    """
    One bridge WebSocket carrying one WhatsApp socket.

    A deliberate close() emits no Close event. An unexpected drop emits
    Close(CONNECTION_LOST) unless the bridge already reported a close.
    """

    def __init__(self, ws: Any, sink: EventSink, *, command_timeout: float = 20.0):
        self._ws = ws
        self._sink = sink
        self._command_timeout = command_timeout
        self._pending: dict[str, asyncio.Future[dict[str, Any]]] = {}
        self._reader_task: asyncio.Task[None] | None = None
        self._user_id: str | None = None
        self._closing = False
        self._close_reported = False

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def is_open(self) -> bool:
        return not self._closing and self._reader_task is not None and not self._reader_task.done()

    def start(self) -> None:
        """Start consuming bridge frames."""
        if self._reader_task is None:
            self._reader_task = asyncio.create_task(self._read_loop())

    # ── Egress ──────────────────────────────────────────────────

    async def open_socket(self, auth_dir: str, browser: tuple[str, str, str], token: str = "") -> None:
        await self._command(
            "connect",
            {"authDir": auth_dir, "browser": list(browser), "token": token},
        )

    async def send(self, jid: str, text: str) -> SendAck:
        response = await self._command("send_text", {"jid": jid, "text": text})
        return SendAck(
            jid=str(response.get("jid") or jid),
            message_id=response.get("messageId"),
        )

    async def logout(self) -> None:
        await self._command("logout", {})

    async def save_credentials(self) -> None:
        await self._command("save_creds", {})

    async def close(self) -> None:
        if self._closing:
            return
        self._closing = True
        with contextlib.suppress(WebSocketException, OSError):
            await self._ws.close()
        if self._reader_task is not None:
            self._reader_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader_task
        self._fail_pending("Bridge session closed")

    async def _command(self, command: str, payload: dict[str, Any]) -> dict[str, Any]:
        if self._closing:
            raise ProviderError(f"Bridge session closed, cannot run '{command}'")

        request_id = uuid.uuid4().hex
        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        frame = {
            "type": "command",
            "command": command,
            "requestId": request_id,
            "payload": payload,
        }
        try:
            await self._ws.send(json.dumps(frame))
            response = await asyncio.wait_for(future, timeout=self._command_timeout)
        except asyncio.TimeoutError as e:
            raise ProviderError(f"Bridge command '{command}' timed out") from e
        except (ConnectionClosed, OSError) as e:
            raise ProviderError(f"Bridge connection lost during '{command}': {e}") from e
        finally:
            self._pending.pop(request_id, None)

        if not response.get("ok", False):
            code = response.get("code")
            message = str(response.get("error") or f"Bridge command '{command}' failed")
            if code == JID_DECODE_ERROR:
                raise ProviderDecodeError(message, code=code)
            raise ProviderError(message, code=code)

        return response

    # ── Ingress ─────────────────────────────────────────────────

    async def _read_loop(self) -> None:
        error: str | None = None
        try:
            async for raw in self._ws:
                self._handle_frame(raw)
        except ConnectionClosed as e:
            error = str(e)
        finally:
            self._fail_pending("Bridge connection closed")
            if not self._closing and not self._close_reported:
                self._close_reported = True
                logger.warning(f"[bridge] Connection to bridge lost: {error or 'closed'}")
                self._emit(Close(reason=DisconnectReason.CONNECTION_LOST, error=error))

    def _handle_frame(self, raw: str | bytes) -> None:
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("[bridge] Invalid JSON from bridge")
            return

        if not isinstance(data, dict):
            logger.warning("[bridge] Invalid bridge frame shape")
            return

        frame_type = data.get("type")
        payload = data.get("payload")
        if not isinstance(payload, dict):
            payload = {}

        if frame_type == "response":
            request_id = data.get("requestId")
            future = self._pending.get(request_id) if isinstance(request_id, str) else None
            if future is not None and not future.done():
                future.set_result(payload)
            return

        if frame_type == "connection.update":
            for event in self.parse_connection_update(payload):
                self._emit(event)
            return

        if frame_type == "creds.update":
            self._emit(CredentialsUpdated())
            return

        if frame_type == "messages.upsert":
            messages = payload.get("messages")
            if not isinstance(messages, list):
                messages = []
            self._emit(
                MessagesUpsert(
                    upsert_type=str(payload.get("type") or ""),
                    messages=tuple(m for m in messages if isinstance(m, dict)),
                )
            )
            return

        if frame_type == "error":
            logger.error(f"[bridge] Bridge error: {payload.get('error')}")
            return

        logger.debug(f"[bridge] Ignoring frame type: {frame_type!r}")

    def parse_connection_update(self, payload: dict[str, Any]) -> list[ProviderEvent]:
        """Split one connection.update into ordered events (QR first)."""
        events: list[ProviderEvent] = []

        qr = payload.get("qr")
        if isinstance(qr, str) and qr:
            events.append(PairingChallenge(code=qr))

        connection = payload.get("connection")
        if connection == "connecting":
            events.append(Connecting())
        elif connection == "open":
            user = payload.get("user")
            user_id = str(user.get("id") or "") if isinstance(user, dict) else ""
            self._user_id = user_id or None
            events.append(Open(user_id=user_id))
        elif connection == "close":
            last = payload.get("lastDisconnect")
            last = last if isinstance(last, dict) else {}
            code = last.get("statusCode", payload.get("statusCode"))
            error = last.get("error") or payload.get("error")
            self._user_id = None
            self._close_reported = True
            events.append(
                Close(
                    reason=DisconnectReason.from_code(code),
                    error=str(error) if error else None,
                )
            )

        return events

    def _emit(self, event: ProviderEvent) -> None:
        try:
            self._sink(event)
        except Exception as e:
            logger.error(f"[bridge] Event sink rejected {type(event).__name__}: {e}", exc_info=True)

    def _fail_pending(self, reason: str) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(ProviderError(reason))
        self._pending.clear()


class BridgeProvider:
    """
    MessagingProvider backed by the Baileys bridge.

    Example:
        provider = BridgeProvider(url="ws://127.0.0.1:3001", auth_dir="auth_info_baileys")
        session = await provider.connect(events.append)
        await session.send("628123@s.whatsapp.net", "hi")
    """

    def __init__(
        self,
        url: str,
        *,
        auth_dir: str = "auth_info_baileys",
        browser: tuple[str, str, str] = ("WhatsApp Task Bot", "Chrome", "1.0.0"),
        token: str = "",
        command_timeout: float = 20.0,
    ):
        self._url = url
        self._auth_dir = auth_dir
        self._browser = browser
        self._token = token
        self._command_timeout = command_timeout

    @property
    def name(self) -> str:
        return "baileys-bridge"

    async def connect(self, sink: EventSink) -> BridgeSession:
        try:
            ws = await websockets.connect(
                self._url,
                max_size=MAX_FRAME_BYTES,
                ping_interval=20,
                ping_timeout=20,
                open_timeout=self._command_timeout,
            )
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            raise ProviderError(f"Could not reach bridge at {self._url}: {e}") from e

        session = BridgeSession(ws, sink, command_timeout=self._command_timeout)
        session.start()
        try:
            await session.open_socket(self._auth_dir, self._browser, self._token)
        except ProviderError:
            await session.close()
            raise

        logger.info(f"[bridge] Session requested via {self._url} (auth_dir={self._auth_dir})")
        return session
