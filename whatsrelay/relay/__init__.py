"""
whatsrelay Relay.

Inbound WhatsApp messages -> automation webhook, at most once.
"""

from .forwarder import RelayForwarder
from .models import InboundMessage, extract_text, parse_message

__all__ = [
    "InboundMessage",
    "RelayForwarder",
    "extract_text",
    "parse_message",
]
