"""Utility modules for whatsrelay."""

from .qr import render_ascii, render_svg

__all__ = ["render_ascii", "render_svg"]
