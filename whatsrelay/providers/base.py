"""
Messaging Provider Protocol for whatsrelay.

Defines the interface to the external library that speaks the WhatsApp
multi-device protocol. The provider is an opaque capability: it owns
pairing cryptography, credential storage and message framing. This
package only sees tagged events flowing out of it and a handful of
session operations flowing in.

Event variants mirror the provider's own event stream:

    connection.update  -> Connecting | PairingChallenge | Open | Close
    creds.update       -> CredentialsUpdated
    messages.upsert    -> MessagesUpsert
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Protocol, Union, runtime_checkable


class DisconnectReason(IntEnum):
    """Close status codes reported by the provider."""

    CONNECTION_CLOSED = 428
    CONNECTION_LOST = 408
    CONNECTION_REPLACED = 440
    TIMED_OUT = 408
    LOGGED_OUT = 401
    BAD_SESSION = 500
    RESTART_REQUIRED = 515
    MULTIDEVICE_MISMATCH = 411
    FORBIDDEN = 403
    UNAVAILABLE_SERVICE = 503

    @classmethod
    def from_code(cls, code: int | str | None) -> DisconnectReason | int:
        """
        Map a raw status code to a known reason, keeping unknown codes as ints.

        Numeric strings ("401") are accepted. Missing or non-numeric codes
        map to CONNECTION_CLOSED.
        """
        if code is None or isinstance(code, bool):
            return cls.CONNECTION_CLOSED
        try:
            value = int(code)
        except (TypeError, ValueError):
            return cls.CONNECTION_CLOSED
        try:
            return cls(value)
        except ValueError:
            return value


# =============================================================================
# Provider events
# =============================================================================


@dataclass(frozen=True, slots=True)
class Connecting:
    """The provider started opening a session."""


@dataclass(frozen=True, slots=True)
class PairingChallenge:
    """A pairing code (QR payload) the phone must scan."""

    code: str


@dataclass(frozen=True, slots=True)
class Open:
    """The session is authenticated and usable."""

    user_id: str = ""


@dataclass(frozen=True, slots=True)
class Close:
    """The session closed for `reason`."""

    reason: DisconnectReason | int = DisconnectReason.CONNECTION_CLOSED
    error: str | None = None

    @property
    def logged_out(self) -> bool:
        return self.reason == DisconnectReason.LOGGED_OUT


@dataclass(frozen=True, slots=True)
class CredentialsUpdated:
    """Session credentials changed and should be persisted."""


@dataclass(frozen=True, slots=True)
class MessagesUpsert:
    """
    A batch of inbound messages.

    Attributes:
        upsert_type: "notify" for live messages, "append" for history sync
        messages: Raw provider message records (key/message/pushName)
    """

    upsert_type: str
    messages: tuple[dict[str, Any], ...] = field(default_factory=tuple)


ConnectionEvent = Union[Connecting, PairingChallenge, Open, Close, CredentialsUpdated]
ProviderEvent = Union[ConnectionEvent, MessagesUpsert]

EventSink = Callable[[ProviderEvent], None]


# =============================================================================
# Session / provider protocols
# =============================================================================


@dataclass(frozen=True, slots=True)
class SendAck:
    """
    Acknowledgement of a sent message.

    Attributes:
        jid: JID the provider delivered to
        message_id: Provider message identifier (if available)
    """

    jid: str
    message_id: str | None = None


@runtime_checkable
class ProviderSession(Protocol):
    """
    A live (or pending) session returned by MessagingProvider.connect().

    Implementations must make close() idempotent and must not emit a
    Close event for a deliberate close().
    """

    @property
    def user_id(self) -> str | None:
        """The authenticated account JID, or None before pairing completes."""
        ...

    async def send(self, jid: str, text: str) -> SendAck:
        """
        Send a text message.

        Raises:
            ProviderDecodeError: If the provider cannot decode `jid`
            ProviderError: On any other send failure
        """
        ...

    async def logout(self) -> None:
        """Unlink this device from the account."""
        ...

    async def save_credentials(self) -> None:
        """Persist updated credentials (format owned by the provider)."""
        ...

    async def close(self) -> None:
        """Close the transport without logging out."""
        ...


@runtime_checkable
class MessagingProvider(Protocol):
    """
    Opaque WhatsApp capability.

    Example:
        provider = BridgeProvider(url="ws://127.0.0.1:3001")
        session = await provider.connect(controller_sink)
        await session.send("628123@s.whatsapp.net", "hi")
    """

    @property
    def name(self) -> str:
        ...

    async def connect(self, sink: EventSink) -> ProviderSession:
        """
        Begin a session.

        Events for this session are delivered through `sink`, in order.

        Raises:
            ProviderError: If the session could not be started
        """
        ...
