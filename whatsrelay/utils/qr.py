"""
QR rendering for pairing codes.

SVG for the /qr page, ASCII blocks for the operator log.
"""

from __future__ import annotations

import io

import qrcode
import qrcode.image.svg


def _build(code: str, border: int) -> qrcode.QRCode:
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=10,
        border=border,
    )
    qr.add_data(code)
    qr.make(fit=True)
    return qr


def render_svg(code: str) -> str:
    """Render `code` as an inline SVG document fragment."""
    image = _build(code, border=4).make_image(image_factory=qrcode.image.svg.SvgPathImage)
    return image.to_string(encoding="unicode")


def render_ascii(code: str) -> str:
    """Render `code` as terminal block characters."""
    out = io.StringIO()
    _build(code, border=1).print_ascii(out=out, invert=True)
    return out.getvalue()
