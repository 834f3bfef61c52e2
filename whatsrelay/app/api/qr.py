"""
Pairing QR page.

Renders the controller's current pairing code as an inline SVG so an
operator can link the bot from a browser instead of the server log.
"""
from __future__ import annotations

import html
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse

from whatsrelay.app.dependencies import get_controller
from whatsrelay.lifecycle import ConnectionController, ControllerSnapshot
from whatsrelay.utils.qr import render_svg

logger = logging.getLogger(__name__)

router = APIRouter(tags=["pairing"])

REFRESH_SECONDS = 10

_PAGE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta http-equiv="refresh" content="{refresh}">
  <title>WhatsApp Task Bot - {title}</title>
  <style>
    body {{ font-family: sans-serif; text-align: center; padding: 2em; background: #f0f2f5; }}
    .card {{ display: inline-block; background: #fff; padding: 2em; border-radius: 8px; }}
    .qr svg {{ width: 300px; height: 300px; }}
    .state {{ color: #667781; }}
  </style>
</head>
<body>
  <div class="card">
    <h1>{title}</h1>
    {body}
    <p class="state">Connection state: {state}</p>
  </div>
</body>
</html>
"""


def _page(title: str, body: str, snapshot: ControllerSnapshot) -> str:
    return _PAGE.format(
        refresh=REFRESH_SECONDS,
        title=html.escape(title),
        body=body,
        state=html.escape(snapshot.state.value),
    )


def render_qr_page(snapshot: ControllerSnapshot) -> str:
    """HTML for the current pairing state."""
    if snapshot.connected:
        number = html.escape(snapshot.bot_number or "unknown")
        return _page("Already connected", f"<p>Bot number: {number}</p>", snapshot)

    if snapshot.pairing is None:
        hint = (
            "<p>The session was logged out. Delete the credential directory and restart to pair again.</p>"
            if snapshot.logged_out
            else "<p>QR code not available yet. This page refreshes automatically.</p>"
        )
        return _page("QR not available", hint, snapshot)

    try:
        svg = render_svg(snapshot.pairing.code)
    except Exception as e:
        logger.error(f"Failed to render QR code: {e}", exc_info=True)
        return _page("QR not available", "<p>Could not render the QR code.</p>", snapshot)

    body = (
        f'<div class="qr">{svg}</div>'
        "<p>Open WhatsApp &rarr; Linked devices &rarr; Link a device, then scan.</p>"
        f"<p>Issued {int(snapshot.pairing.age_seconds)}s ago.</p>"
    )
    return _page("Scan to link WhatsApp", body, snapshot)


@router.get("/qr", response_class=HTMLResponse)
async def qr_page(controller: ConnectionController = Depends(get_controller)) -> HTMLResponse:
    """Current pairing QR as HTML."""
    return HTMLResponse(render_qr_page(controller.snapshot()))
