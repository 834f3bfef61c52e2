"""
Error taxonomy for whatsrelay.

Request-scoped errors (validation, not-ready) are returned synchronously
to the HTTP caller. Background errors (provider disconnects, relay
failures) are logged and only drive internal state.

    RelayError
    ├── ValidationError        400  malformed send request
    ├── NotReadyError          503  no live WhatsApp session
    ├── ProviderError          500  provider send/connect failure
    │   └── ProviderDecodeError     provider could not decode the JID
    └── RelayDeliveryFailure        webhook POST failed (logged, dropped)
"""

from __future__ import annotations

from typing import Any


class RelayError(Exception):
    """Base exception for whatsrelay errors."""

    status_code: int = 500

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """JSON body returned to HTTP callers."""
        return {"status": "error", "message": self.message, **self.details}


class ValidationError(RelayError):
    """Raised when an outbound request is malformed."""

    status_code = 400

    def __init__(
        self,
        message: str,
        *,
        accepted_fields: list[str] | tuple[str, ...] | None = None,
        received_fields: list[str] | None = None,
        **details: Any,
    ):
        if accepted_fields is not None:
            details["accepted_fields"] = list(accepted_fields)
        if received_fields is not None:
            details["received_fields"] = list(received_fields)
        super().__init__(message, **details)


class NotReadyError(RelayError):
    """Raised when a send is attempted without a live session."""

    status_code = 503

    def __init__(self, connection_state: str, message: str = "WhatsApp not connected"):
        super().__init__(message, connection_state=connection_state)
        self.connection_state = connection_state


class ProviderError(RelayError):
    """Raised when the messaging provider fails a connect or send."""

    status_code = 500

    def __init__(self, message: str, *, code: str | None = None):
        super().__init__(message)
        self.code = code


class ProviderDecodeError(ProviderError):
    """
    Raised when the provider cannot decode a target JID.

    The dispatcher retries once against the alternate JID domain
    before surfacing this as a plain ProviderError.
    """


class RelayDeliveryFailure(RelayError):
    """
    Raised when forwarding an inbound message to the webhook fails.

    Never surfaced to a caller: WhatsApp has no synchronous ack path
    back to the automation system, so the message is logged and dropped.
    """

    def __init__(self, message: str, *, message_id: str = "", status_code: int | None = None):
        super().__init__(message)
        self.message_id = message_id
        self.http_status = status_code

    def __str__(self) -> str:
        parts = [self.message]
        if self.message_id:
            parts.append(f"(message_id={self.message_id})")
        if self.http_status:
            parts.append(f"(status={self.http_status})")
        return " ".join(parts)
