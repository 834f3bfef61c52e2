"""
Dependency Injection for whatsrelay.

Provides the process-wide singletons: settings, the lifecycle
controller, the relay forwarder and the outbound dispatcher.
"""
from __future__ import annotations

import logging
import os
import time
from functools import lru_cache
from typing import Optional

from pydantic import SecretStr

from whatsrelay.config import DEFAULT_MESSAGE, AppSettings
from whatsrelay.dispatch import OutboundDispatcher
from whatsrelay.lifecycle import ConnectionController, create_backoff
from whatsrelay.providers import BridgeProvider, MessagingProvider
from whatsrelay.relay import RelayForwarder

logger = logging.getLogger(__name__)


@lru_cache()
def get_settings() -> AppSettings:
    """
    Get application settings from environment.

    Uses lru_cache for singleton pattern.
    """
    return AppSettings(
        # Service
        environment=os.getenv("NODE_ENV", "development"),
        # HTTP server
        host=os.getenv("HOST", "0.0.0.0"),
        port=os.getenv("PORT", "3000"),
        # Relay
        n8n_webhook_url=os.getenv("N8N_WEBHOOK_URL", ""),
        webhook_timeout=os.getenv("WA_RELAY_WEBHOOK_TIMEOUT", "5"),
        # Bridge
        bridge_url=os.getenv("WA_RELAY_BRIDGE_URL", "ws://127.0.0.1:3001"),
        bridge_token=SecretStr(os.getenv("WA_RELAY_BRIDGE_TOKEN", "")),
        auth_dir=os.getenv("WA_RELAY_AUTH_DIR", "auth_info_baileys"),
        command_timeout=os.getenv("WA_RELAY_COMMAND_TIMEOUT", "20"),
        # Lifecycle policy
        reconnect_delay=os.getenv("WA_RELAY_RECONNECT_DELAY", "5"),
        error_retry_delay=os.getenv("WA_RELAY_ERROR_RETRY_DELAY", "15"),
        pairing_timeout=os.getenv("WA_RELAY_PAIRING_TIMEOUT", "60"),
        startup_delay=os.getenv("WA_RELAY_STARTUP_DELAY", "2"),
        shutdown_timeout=os.getenv("WA_RELAY_SHUTDOWN_TIMEOUT", "10"),
        reconnect_backoff=os.getenv("WA_RELAY_RECONNECT_BACKOFF", "constant").lower(),
        logout_on_shutdown=os.getenv("WA_RELAY_LOGOUT_ON_SHUTDOWN", "true").lower() == "true",
        # Dispatch
        default_message=os.getenv("WA_RELAY_DEFAULT_MESSAGE", DEFAULT_MESSAGE),
    )


# Global instances (initialized on startup)
_controller: Optional[ConnectionController] = None
_forwarder: Optional[RelayForwarder] = None
_dispatcher: Optional[OutboundDispatcher] = None
_started_at: float = time.monotonic()


def get_controller() -> ConnectionController:
    if _controller is None:
        raise RuntimeError("Services not initialized")
    return _controller


def get_forwarder() -> RelayForwarder:
    if _forwarder is None:
        raise RuntimeError("Services not initialized")
    return _forwarder


def get_dispatcher() -> OutboundDispatcher:
    if _dispatcher is None:
        raise RuntimeError("Services not initialized")
    return _dispatcher


def get_uptime() -> float:
    """Seconds since services started."""
    return time.monotonic() - _started_at


def build_provider(settings: AppSettings) -> BridgeProvider:
    return BridgeProvider(
        url=settings.bridge_url,
        auth_dir=settings.auth_dir,
        browser=settings.browser,
        token=settings.bridge_token.get_secret_value(),
        command_timeout=settings.command_timeout,
    )


async def initialize_services(provider: Optional[MessagingProvider] = None) -> ConnectionController:
    """
    Wire the controller, forwarder and dispatcher, then schedule the
    first connect after the startup delay.

    Called from FastAPI lifespan.
    """
    global _controller, _forwarder, _dispatcher, _started_at
    settings = get_settings()

    if not settings.n8n_webhook_url:
        logger.warning("N8N_WEBHOOK_URL is not set, inbound messages will not be forwarded")

    _forwarder = RelayForwarder(settings.n8n_webhook_url, timeout=settings.webhook_timeout)
    _controller = ConnectionController(
        provider or build_provider(settings),
        reconnect_backoff=create_backoff(settings.reconnect_backoff, settings.reconnect_delay),
        error_backoff=create_backoff("constant", settings.error_retry_delay),
        pairing_timeout=settings.pairing_timeout,
        shutdown_timeout=settings.shutdown_timeout,
        logout_on_shutdown=settings.logout_on_shutdown,
        on_messages=_forwarder.handle_upsert,
    )
    _dispatcher = OutboundDispatcher(_controller, default_message=settings.default_message)
    _started_at = time.monotonic()

    logger.info(f"Starting WhatsApp connection in {settings.startup_delay:.0f}s...")
    _controller.start(delay=settings.startup_delay)
    return _controller


async def shutdown_services() -> None:
    """
    Cleanup all services on application shutdown.

    Called from FastAPI lifespan.
    """
    global _controller, _forwarder, _dispatcher
    if _controller:
        await _controller.shutdown()
        _controller = None
    if _forwarder:
        await _forwarder.close()
        _forwarder = None
    _dispatcher = None
