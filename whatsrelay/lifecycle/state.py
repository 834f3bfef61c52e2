"""
Connection state types.

ConnectionState and PairingCode are owned by the ConnectionController;
everything else sees them through a frozen ControllerSnapshot.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum


def _utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


class ConnectionState(str, Enum):
    """Process-wide connection state. Exactly one value is live at a time."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    WAITING_FOR_SCAN = "waiting_for_scan"
    CONNECTED = "connected"
    ERROR = "error"
    SHUTTING_DOWN = "shutting_down"


@dataclass(frozen=True, slots=True)
class PairingCode:
    """
    The latest pairing challenge a phone can scan.

    Superseded (never merged) by a newer code; cleared on entering
    CONNECTED or DISCONNECTED.
    """

    code: str
    issued_at: datetime = field(default_factory=_utc_now)

    @property
    def age_seconds(self) -> float:
        return (_utc_now() - self.issued_at).total_seconds()


def bot_number_from_jid(jid: str | None) -> str | None:
    """
    Extract the phone number from an account JID.

    "628123:12@s.whatsapp.net" -> "628123"
    """
    if not jid:
        return None
    user = jid.split("@", 1)[0]
    return user.split(":", 1)[0] or None


@dataclass(frozen=True, slots=True)
class ControllerSnapshot:
    """Read-only view of the controller for the HTTP layer."""

    state: ConnectionState
    connected: bool
    bot_id: str | None = None
    pairing: PairingCode | None = None
    logged_out: bool = False
    pending_timer: str | None = None
    last_disconnect_reason: int | None = None

    @property
    def bot_number(self) -> str | None:
        return bot_number_from_jid(self.bot_id)

    @property
    def qr_available(self) -> bool:
        return self.pairing is not None

    def to_dict(self) -> dict[str, object]:
        """Connection details reported by /status."""
        return {
            "connection_state": self.state.value,
            "bot_number": self.bot_number,
            "qr_available": self.qr_available,
            "logged_out": self.logged_out,
            "pending_timer": self.pending_timer,
            "last_disconnect_reason": self.last_disconnect_reason,
        }
