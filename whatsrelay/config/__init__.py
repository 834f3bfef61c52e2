"""
whatsrelay Configuration

Environment-driven settings.
"""

from .schemas import DEFAULT_MESSAGE, AppSettings

__all__ = [
    "AppSettings",
    "DEFAULT_MESSAGE",
]
