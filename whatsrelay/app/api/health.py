"""
Liveness and status endpoints.
"""
from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends

from whatsrelay.app.dependencies import get_controller, get_uptime
from whatsrelay.lifecycle import ConnectionController

router = APIRouter(tags=["health"])


def _timestamp() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


@router.get("/")
async def root(controller: ConnectionController = Depends(get_controller)) -> dict[str, Any]:
    """Service info."""
    snapshot = controller.snapshot()
    return {
        "message": "WhatsApp Task Bot is running!",
        "status": snapshot.state.value,
        "connected": snapshot.connected,
        "qr_available": snapshot.qr_available,
        "qr_endpoint": "/qr",
        "send_endpoint": "/send-message",
        "timestamp": _timestamp(),
    }


@router.get("/status")
async def status(controller: ConnectionController = Depends(get_controller)) -> dict[str, Any]:
    """Read-only snapshot of the WhatsApp connection."""
    snapshot = controller.snapshot()
    return {
        "status": "running",
        "whatsapp_connected": snapshot.connected,
        **snapshot.to_dict(),
        "timestamp": _timestamp(),
        "uptime": round(get_uptime(), 3),
    }


@router.get("/ping")
async def ping() -> dict[str, Any]:
    """Liveness probe."""
    return {"pong": True, "timestamp": _timestamp()}
