"""
Connection Lifecycle Controller for whatsrelay.

Owns the connection state machine and the reconnect policy:

    DISCONNECTED --connect()--> CONNECTING
    CONNECTING --PairingChallenge--> WAITING_FOR_SCAN   (+ pairing_expiry timer)
    WAITING_FOR_SCAN --PairingChallenge--> WAITING_FOR_SCAN (expiry replaced)
    *  --Open--> CONNECTED
    *  --Close(logged_out)--> DISCONNECTED              (terminal, no timer)
    *  --Close(other)--> DISCONNECTED                   (+ reconnect timer)
    CONNECTING --connect() raised--> ERROR              (+ retry timer)
    *  --shutdown()--> SHUTTING_DOWN

Provider events are delivered through a single asyncio.Queue and
processed one at a time by a consumer task, so state, pairing code and
the timer slot have exactly one writer. Every state change cancels the
timer left over from the previous state before scheduling its own.

Each connect() attempt gets a generation number. The event sink handed
to the provider is bound to that generation; events from a session that
has since closed or been replaced are dropped.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any

from ..providers.base import (
    Close,
    Connecting,
    CredentialsUpdated,
    EventSink,
    MessagesUpsert,
    MessagingProvider,
    Open,
    PairingChallenge,
    ProviderEvent,
    ProviderSession,
)
from ..utils.qr import render_ascii
from .backoff import BackoffStrategy, ConstantBackoff
from .state import ConnectionState, ControllerSnapshot, PairingCode
from .timers import ReconnectTimer, TimerKind, TimerSlot

logger = logging.getLogger(__name__)

MessageHandler = Callable[[MessagesUpsert], Awaitable[Any]]

_IN_FLIGHT = (ConnectionState.CONNECTING, ConnectionState.WAITING_FOR_SCAN)


class ConnectionController:
    """
    Single owner of ConnectionState, PairingCode and the timer slot.

    Example:
        controller = ConnectionController(
            BridgeProvider(url="ws://127.0.0.1:3001"),
            reconnect_backoff=ConstantBackoff(delay=5.0),
            on_messages=forwarder.handle_upsert,
        )
        controller.start(delay=2.0)
        ...
        await controller.shutdown()
    """

    def __init__(
        self,
        provider: MessagingProvider,
        *,
        reconnect_backoff: BackoffStrategy | None = None,
        error_backoff: BackoffStrategy | None = None,
        pairing_timeout: float = 60.0,
        shutdown_timeout: float = 10.0,
        logout_on_shutdown: bool = True,
        on_messages: MessageHandler | None = None,
        log_qr: bool = True,
    ):
        self._provider = provider
        self._reconnect_backoff = reconnect_backoff or ConstantBackoff(delay=5.0)
        self._error_backoff = error_backoff or ConstantBackoff(delay=15.0)
        self._pairing_timeout = pairing_timeout
        self._shutdown_timeout = shutdown_timeout
        self._logout_on_shutdown = logout_on_shutdown
        self._on_messages = on_messages
        self._log_qr = log_qr

        self._state = ConnectionState.DISCONNECTED
        self._pairing: PairingCode | None = None
        self._timers = TimerSlot()
        self._session: ProviderSession | None = None
        self._generation = 0

        self._bot_id: str | None = None
        self._logged_out = False
        self._last_disconnect_reason: int | None = None
        self._reconnect_attempts = 0
        self._retry_attempts = 0

        self._queue: asyncio.Queue[tuple[int | None, ProviderEvent]] = asyncio.Queue()
        self._consumer: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    # =========================================================================
    # Read-only views
    # =========================================================================

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def pairing_code(self) -> PairingCode | None:
        return self._pairing

    @property
    def session(self) -> ProviderSession | None:
        return self._session

    @property
    def pending_timer(self) -> ReconnectTimer | None:
        return self._timers.pending

    @property
    def logged_out(self) -> bool:
        return self._logged_out

    @property
    def is_ready(self) -> bool:
        """True when a send may be issued."""
        return self._state is ConnectionState.CONNECTED and self._session is not None

    def snapshot(self) -> ControllerSnapshot:
        pending = self._timers.pending
        return ControllerSnapshot(
            state=self._state,
            connected=self.is_ready,
            bot_id=self._bot_id,
            pairing=self._pairing,
            logged_out=self._logged_out,
            pending_timer=pending.kind.value if pending else None,
            last_disconnect_reason=self._last_disconnect_reason,
        )

    # =========================================================================
    # Commands
    # =========================================================================

    def start(self, delay: float = 0.0) -> None:
        """Start consuming events and schedule the first connect()."""
        self._ensure_consumer()
        self._timers.schedule(TimerKind.STARTUP, delay, lambda: self._spawn(self.connect()))

    async def connect(self) -> None:
        """
        Open a new provider session.

        No-op while an attempt is already in flight, while connected or
        during shutdown. A failure moves to ERROR and schedules one retry.
        """
        if self._state in _IN_FLIGHT or self.is_ready:
            logger.debug(f"[lifecycle] connect() ignored, already {self._state.value}")
            return
        if self._state is ConnectionState.SHUTTING_DOWN:
            return
        if self._logged_out:
            logger.info("[lifecycle] Reconnecting after logout, a new pairing will be required")
            self._logged_out = False

        self._generation += 1
        generation = self._generation
        self._transition(ConnectionState.CONNECTING)
        self._ensure_consumer()

        # Only one provider session may be open at a time
        stale, self._session = self._session, None
        await self._close_quietly(stale)

        try:
            session = await self._provider.connect(self._sink_for(generation))
        except Exception as e:
            if generation != self._generation or self._state is not ConnectionState.CONNECTING:
                logger.debug(f"[lifecycle] Superseded connect attempt failed: {e}")
                return
            self._retry_attempts += 1
            delay = self._error_backoff.get_delay(self._retry_attempts)
            logger.error(
                f"[lifecycle] Connect failed via {self._provider.name}: {e} "
                f"(retry {self._retry_attempts} in {delay:.1f}s)",
                exc_info=True,
            )
            self._transition(ConnectionState.ERROR)
            self._schedule(TimerKind.RETRY, delay, self.connect)
            return

        if generation != self._generation or self._state is ConnectionState.SHUTTING_DOWN:
            logger.debug(f"[lifecycle] Discarding session from superseded generation {generation}")
            await self._close_quietly(session)
            return

        self._session = session

    async def shutdown(self) -> None:
        """
        Stop the controller.

        Cancels pending timers, logs out when connected (bounded by the
        shutdown timeout) and closes the session. Logout failures are
        logged and never block shutdown.
        """
        if self._state is ConnectionState.SHUTTING_DOWN:
            return

        was_connected = self._state is ConnectionState.CONNECTED
        self._transition(ConnectionState.SHUTTING_DOWN)
        self._pairing = None
        self._generation += 1

        session, self._session = self._session, None
        if session is not None:
            if was_connected and self._logout_on_shutdown:
                try:
                    await asyncio.wait_for(session.logout(), timeout=self._shutdown_timeout)
                    logger.info("[lifecycle] Logged out of WhatsApp")
                except Exception as e:
                    logger.warning(f"[lifecycle] Logout failed during shutdown: {e}")
            await self._close_quietly(session)

        if self._consumer is not None:
            self._consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._consumer
            self._consumer = None

        tasks = [t for t in self._tasks if t is not asyncio.current_task()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

        logger.info("[lifecycle] Shutdown complete")

    # =========================================================================
    # Event intake
    # =========================================================================

    def submit(self, event: ProviderEvent, generation: int | None = None) -> None:
        """Queue an event for the consumer task."""
        self._queue.put_nowait((generation, event))

    def _sink_for(self, generation: int) -> EventSink:
        def sink(event: ProviderEvent) -> None:
            self.submit(event, generation)

        return sink

    def _ensure_consumer(self) -> None:
        if self._consumer is None or self._consumer.done():
            self._consumer = asyncio.create_task(self._consume())

    async def _consume(self) -> None:
        while True:
            generation, event = await self._queue.get()
            try:
                await self.handle_event(event, generation=generation)
            except Exception as e:
                logger.error(f"[lifecycle] Error handling {type(event).__name__}: {e}", exc_info=True)
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued event has been handled."""
        await self._queue.join()

    async def handle_event(self, event: ProviderEvent, *, generation: int | None = None) -> None:
        """
        Apply one provider event.

        `generation=None` applies the event to the current session.
        """
        if self._state is ConnectionState.SHUTTING_DOWN:
            return
        if generation is not None and generation != self._generation:
            logger.debug(
                f"[lifecycle] Dropping stale {type(event).__name__} "
                f"(generation {generation}, current {self._generation})"
            )
            return

        if isinstance(event, MessagesUpsert):
            self._on_messages_upsert(event)
        elif isinstance(event, PairingChallenge):
            self._on_pairing_challenge(event)
        elif isinstance(event, Open):
            self._on_open(event)
        elif isinstance(event, Close):
            await self._on_close(event)
        elif isinstance(event, Connecting):
            self._on_connecting()
        elif isinstance(event, CredentialsUpdated):
            await self._on_credentials_updated()
        else:
            logger.warning(f"[lifecycle] Unknown provider event: {event!r}")

    # =========================================================================
    # Transitions
    # =========================================================================

    def _on_connecting(self) -> None:
        if self._state is not ConnectionState.CONNECTING:
            self._transition(ConnectionState.CONNECTING)

    def _on_pairing_challenge(self, event: PairingChallenge) -> None:
        self._transition(ConnectionState.WAITING_FOR_SCAN)
        self._pairing = PairingCode(code=event.code)
        self._schedule(TimerKind.PAIRING_EXPIRY, self._pairing_timeout, self._on_pairing_expired)

        logger.info("[lifecycle] QR code received, scan it with WhatsApp (also served at /qr)")
        if self._log_qr:
            try:
                logger.info("\n" + render_ascii(event.code))
            except Exception as e:
                logger.debug(f"[lifecycle] Could not render QR for log: {e}")

    def _on_open(self, event: Open) -> None:
        self._transition(ConnectionState.CONNECTED)
        session_user = self._session.user_id if self._session is not None else None
        self._bot_id = event.user_id or session_user or self._bot_id
        self._reconnect_attempts = 0
        self._retry_attempts = 0
        logger.info(f"[lifecycle] WhatsApp connected as {self._bot_id}")

    async def _on_close(self, event: Close) -> None:
        session, self._session = self._session, None
        self._generation += 1
        self._last_disconnect_reason = int(event.reason)
        self._transition(ConnectionState.DISCONNECTED)

        if event.logged_out:
            self._logged_out = True
            logger.error(
                "[lifecycle] Connection closed: logged out. "
                "Not reconnecting; delete the credential directory and re-pair to resume."
            )
        else:
            self._reconnect_attempts += 1
            delay = self._reconnect_backoff.get_delay(self._reconnect_attempts)
            logger.warning(
                f"[lifecycle] Connection closed (reason={self._last_disconnect_reason}, "
                f"error={event.error}), reconnecting in {delay:.1f}s"
            )
            self._schedule(TimerKind.RECONNECT, delay, self.connect)

        await self._close_quietly(session)

    async def _on_credentials_updated(self) -> None:
        if self._session is None:
            return
        try:
            await self._session.save_credentials()
        except Exception as e:
            logger.error(f"[lifecycle] Failed to save credentials: {e}")

    def _on_messages_upsert(self, event: MessagesUpsert) -> None:
        if self._on_messages is None:
            return
        self._spawn(self._on_messages(event))

    async def _on_pairing_expired(self) -> None:
        if self._state is not ConnectionState.WAITING_FOR_SCAN:
            return

        logger.warning(
            f"[lifecycle] QR not scanned within {self._pairing_timeout:.0f}s, "
            "requesting a fresh pairing code"
        )
        session, self._session = self._session, None
        self._generation += 1
        self._transition(ConnectionState.DISCONNECTED)
        await self._close_quietly(session)
        await self.connect()

    def _transition(self, new_state: ConnectionState) -> None:
        self._timers.cancel()
        if new_state in (ConnectionState.CONNECTED, ConnectionState.DISCONNECTED):
            self._pairing = None
        if new_state is not self._state:
            logger.info(f"[lifecycle] {self._state.value} -> {new_state.value}")
        self._state = new_state

    # =========================================================================
    # Helpers
    # =========================================================================

    def _schedule(
        self,
        kind: TimerKind,
        delay: float,
        action: Callable[[], Coroutine[Any, Any, None]],
    ) -> ReconnectTimer:
        return self._timers.schedule(kind, delay, lambda: self._spawn(action()))

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"[lifecycle] Background task failed: {error}", exc_info=error)

    @staticmethod
    async def _close_quietly(session: ProviderSession | None) -> None:
        if session is None:
            return
        try:
            await session.close()
        except Exception as e:
            logger.warning(f"[lifecycle] Error closing provider session: {e}")
