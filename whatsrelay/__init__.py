"""
whatsrelay - relay a WhatsApp account to an automation webhook.

- **Lifecycle**: one connection state machine with a fixed-delay
  reconnect policy and a single pending timer
- **Relay**: inbound chat messages POSTed to n8n, at most once
- **Dispatch**: replies from n8n sent back through the live session
- **Providers**: WhatsApp itself stays behind an opaque provider
  (Baileys, via a WebSocket bridge)

Quick Start:
    $ N8N_WEBHOOK_URL=https://n8n.example.com/webhook/whatsapp-task whatsrelay
"""

__version__ = "0.1.0"

from whatsrelay.errors import (
    NotReadyError,
    ProviderDecodeError,
    ProviderError,
    RelayDeliveryFailure,
    RelayError,
    ValidationError,
)

__all__ = [
    "__version__",
    "NotReadyError",
    "ProviderDecodeError",
    "ProviderError",
    "RelayDeliveryFailure",
    "RelayError",
    "ValidationError",
]
