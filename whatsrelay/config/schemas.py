"""
Configuration Schemas for whatsrelay.

Pydantic models for process settings loaded from the environment.

Security:
    The bridge token uses SecretStr to prevent accidental logging.
    Access the value with `.get_secret_value()`.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, SecretStr

DEFAULT_MESSAGE = "(empty message)"


class AppSettings(BaseModel):
    """
    Application settings model.

    Timing values are policy, not protocol constants: every delay and
    timeout here is expressed in seconds and may be overridden per
    deployment.
    """

    # Service identity
    service_name: str = "whatsrelay"
    environment: str = "development"

    # HTTP server
    host: str = "0.0.0.0"
    port: int = Field(3000, ge=1, le=65535)

    # Relay
    n8n_webhook_url: str = Field(default="", description="Webhook receiving inbound messages")
    webhook_timeout: float = Field(5.0, gt=0)

    # Messaging provider bridge
    bridge_url: str = Field(default="ws://127.0.0.1:3001", description="Baileys bridge WebSocket URL")
    bridge_token: SecretStr = Field(default=SecretStr(""), description="Bridge shared secret")
    auth_dir: str = Field(default="auth_info_baileys", description="Credential directory owned by the bridge")
    browser: tuple[str, str, str] = ("WhatsApp Task Bot", "Chrome", "1.0.0")
    command_timeout: float = Field(20.0, gt=0)

    # Lifecycle policy
    reconnect_delay: float = Field(5.0, ge=0)
    error_retry_delay: float = Field(15.0, ge=0)
    pairing_timeout: float = Field(60.0, gt=0)
    startup_delay: float = Field(2.0, ge=0)
    shutdown_timeout: float = Field(10.0, gt=0)
    reconnect_backoff: Literal["constant", "exponential"] = "constant"
    logout_on_shutdown: bool = True

    # Outbound dispatch
    default_message: str = DEFAULT_MESSAGE

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def log_level(self) -> str:
        """Log verbosity follows NODE_ENV: production is quieter."""
        return "INFO" if self.is_production else "DEBUG"
