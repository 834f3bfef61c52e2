"""HTTP routers for whatsrelay."""

from .health import router as health_router
from .messages import router as messages_router
from .qr import router as qr_router

__all__ = ["health_router", "messages_router", "qr_router"]
