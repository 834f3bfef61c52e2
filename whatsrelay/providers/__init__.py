"""
whatsrelay Messaging Providers.

The provider is the external capability that speaks WhatsApp. The
lifecycle controller only depends on the protocols in `base`; the
Baileys bridge is the built-in implementation.
"""

from .base import (
    Close,
    Connecting,
    ConnectionEvent,
    CredentialsUpdated,
    DisconnectReason,
    EventSink,
    MessagesUpsert,
    MessagingProvider,
    Open,
    PairingChallenge,
    ProviderEvent,
    ProviderSession,
    SendAck,
)
from .bridge import BridgeProvider, BridgeSession

__all__ = [
    # Events
    "Close",
    "Connecting",
    "ConnectionEvent",
    "CredentialsUpdated",
    "DisconnectReason",
    "MessagesUpsert",
    "Open",
    "PairingChallenge",
    "ProviderEvent",
    # Protocols
    "EventSink",
    "MessagingProvider",
    "ProviderSession",
    "SendAck",
    # Implementations
    "BridgeProvider",
    "BridgeSession",
]
