"""
whatsrelay Outbound Dispatch.

Replies from the automation system -> WhatsApp.
"""

from .dispatcher import DispatchResult, OutboundDispatcher
from .normalize import (
    LEGACY_USER_DOMAIN,
    TARGET_FIELDS,
    TEXT_FIELDS,
    USER_DOMAIN,
    NormalizedOutbound,
    alternate_jid,
    normalize_jid,
    normalize_request,
    normalize_text,
    resolve_alias,
)

__all__ = [
    "DispatchResult",
    "OutboundDispatcher",
    "NormalizedOutbound",
    "LEGACY_USER_DOMAIN",
    "TARGET_FIELDS",
    "TEXT_FIELDS",
    "USER_DOMAIN",
    "alternate_jid",
    "normalize_jid",
    "normalize_request",
    "normalize_text",
    "resolve_alias",
]
