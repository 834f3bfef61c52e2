"""
Single-slot timer for the lifecycle controller.

The controller never has more than one pending reconnect, retry or
pairing-expiry action. TimerSlot enforces that: scheduling always
cancels whatever was pending first, and a fired timer clears the slot
before its callback runs.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

logger = logging.getLogger(__name__)


class TimerKind(str, Enum):
    STARTUP = "startup"
    RECONNECT = "reconnect"
    RETRY = "retry"
    PAIRING_EXPIRY = "pairing_expiry"


@dataclass
class ReconnectTimer:
    """A scheduled action with its cancellation handle."""

    kind: TimerKind
    delay: float
    handle: asyncio.TimerHandle
    scheduled_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def cancelled(self) -> bool:
        return self.handle.cancelled()

    def cancel(self) -> None:
        self.handle.cancel()


class TimerSlot:
    """Holds at most one pending ReconnectTimer."""

    def __init__(self) -> None:
        self._timer: ReconnectTimer | None = None

    @property
    def pending(self) -> ReconnectTimer | None:
        return self._timer

    def schedule(self, kind: TimerKind, delay: float, callback: Callable[[], None]) -> ReconnectTimer:
        """
        Replace any pending timer with a new one.

        Must be called from within the running event loop.
        """
        self.cancel()

        def fire() -> None:
            if self._timer is not timer:
                return
            self._timer = None
            callback()

        handle = asyncio.get_running_loop().call_later(delay, fire)
        timer = ReconnectTimer(kind=kind, delay=delay, handle=handle)
        self._timer = timer
        logger.debug(f"[timer] Scheduled {kind.value} in {delay:.1f}s")
        return timer

    def cancel(self) -> ReconnectTimer | None:
        """Cancel the pending timer, if any, and return it."""
        timer = self._timer
        if timer is None:
            return None
        self._timer = None
        timer.cancel()
        logger.debug(f"[timer] Cancelled {timer.kind.value}")
        return timer
