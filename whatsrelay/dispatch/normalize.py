"""
Outbound request normalization.

Send requests from the automation system are loosely typed: the target
may arrive as `to`, `jid` or `phone`, the text as `message`, `text` or
`msg`. These pure functions resolve the aliases and normalize the
target into a JID, or raise ValidationError describing what was
accepted and what was received.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from ..config.schemas import DEFAULT_MESSAGE
from ..errors import ValidationError

TARGET_FIELDS: tuple[str, ...] = ("to", "jid", "phone")
TEXT_FIELDS: tuple[str, ...] = ("message", "text", "msg")

USER_DOMAIN = "s.whatsapp.net"
LEGACY_USER_DOMAIN = "c.us"

# Unresolved template expressions from the automation side
PLACEHOLDER_TEXTS = frozenset({"undefined", "null"})

_JID_RE = re.compile(r"^\d+@[a-z0-9-]+(\.[a-z0-9-]+)+$")
_NON_DIGIT_RE = re.compile(r"\D")
_DOMAIN_STRIP_RE = re.compile(r"[^a-z0-9.-]")


@dataclass(frozen=True, slots=True)
class NormalizedOutbound:
    """A validated send request."""

    target_jid: str
    text: str


def resolve_alias(body: dict[str, Any], aliases: tuple[str, ...], *, allow_empty: bool = False) -> Any:
    """
    Return the value of the first alias present in `body`, else None.

    null never counts as present. Blank strings count as present only
    when `allow_empty` is set.
    """
    for alias in aliases:
        value = body.get(alias)
        if value is None:
            continue
        if not allow_empty and isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def normalize_jid(raw: Any) -> str:
    """
    Normalize a target into `digits@domain`.

        "628123"                -> "628123@s.whatsapp.net"
        "+62 812-3"             -> "628123@s.whatsapp.net"
        "whatsapp:+628123"      -> "628123@s.whatsapp.net"
        "628123:7@s.whatsapp.net" -> "628123@s.whatsapp.net"
        "628123@c.us"           -> "628123@c.us"

    Idempotent on its own output.

    Raises:
        ValidationError: If the result is not `digits@domain`
    """
    if isinstance(raw, bool) or not isinstance(raw, (str, int)):
        raise ValidationError(f"Invalid target type: {type(raw).__name__}")

    value = str(raw).strip()
    if value.lower().startswith("whatsapp:"):
        value = value[len("whatsapp:"):]

    if "@" in value:
        local, domain = value.split("@", 1)
        local = local.split(":", 1)[0]
        domain = _DOMAIN_STRIP_RE.sub("", domain.lower())
    else:
        local, domain = value, USER_DOMAIN

    jid = f"{_NON_DIGIT_RE.sub('', local)}@{domain}"
    if not _JID_RE.match(jid):
        raise ValidationError(
            f"Invalid target {raw!r}: expected a phone number or digits@domain JID",
            normalized=jid,
        )
    return jid


def alternate_jid(jid: str) -> str | None:
    """Swap between the current and legacy user domains."""
    local, _, domain = jid.partition("@")
    if domain == USER_DOMAIN:
        return f"{local}@{LEGACY_USER_DOMAIN}"
    if domain == LEGACY_USER_DOMAIN:
        return f"{local}@{USER_DOMAIN}"
    return None


def normalize_text(raw: Any, default_message: str = DEFAULT_MESSAGE) -> str:
    """
    Normalize message text.

    An explicit "" is kept as-is. Whitespace-only text and unresolved
    placeholders ("undefined", "null") become `default_message`.
    Anything else is trimmed.
    """
    if isinstance(raw, (dict, list)):
        raise ValidationError(f"Invalid message type: {type(raw).__name__}")

    text = raw if isinstance(raw, str) else str(raw)
    if text == "":
        return text

    stripped = text.strip()
    if not stripped or stripped.lower() in PLACEHOLDER_TEXTS:
        return default_message
    return stripped


def normalize_request(body: Any, default_message: str = DEFAULT_MESSAGE) -> NormalizedOutbound:
    """
    Resolve and validate a raw send request body.

    Raises:
        ValidationError: Missing target/text, or an invalid target
    """
    if not isinstance(body, dict):
        raise ValidationError(
            "Request body must be a JSON object",
            accepted_fields=TARGET_FIELDS + TEXT_FIELDS,
            received_fields=[],
        )

    received = [str(k) for k in body]

    raw_target = resolve_alias(body, TARGET_FIELDS)
    if raw_target is None:
        raise ValidationError(
            f"Missing target: provide one of {', '.join(TARGET_FIELDS)}",
            accepted_fields=TARGET_FIELDS,
            received_fields=received,
        )

    raw_text = resolve_alias(body, TEXT_FIELDS, allow_empty=True)
    if raw_text is None:
        raise ValidationError(
            f"Missing message text: provide one of {', '.join(TEXT_FIELDS)}",
            accepted_fields=TEXT_FIELDS,
            received_fields=received,
        )

    return NormalizedOutbound(
        target_jid=normalize_jid(raw_target),
        text=normalize_text(raw_text, default_message),
    )
