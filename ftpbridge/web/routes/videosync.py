"""
VideoSync Routes for ftpbridge.

Provides the watch-together viewer:
- GET /videosync?url=...: the viewer page
- WS /ws/videosync: the real-time playback channel

Frames on the channel are JSON objects ``{"event": ..., "data": {...}}``:
- "sync"   server -> client, full playback state, once on connect
- "update" both ways, partial playback state
- "error"  server -> client, an update was rejected
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.responses import HTMLResponse
from starlette.types import Message as ASGIMessage

from ftpbridge.exceptions import BadRequest
from ftpbridge.sync.broadcaster import Message
from ftpbridge.sync.state import InvalidUpdate
from ftpbridge.web.pages import render_viewer

if TYPE_CHECKING:
    from ftpbridge.sync.broadcaster import PlaybackBroadcaster, Viewer

logger = logging.getLogger(__name__)

router = APIRouter(tags=["videosync"])

# Reference to PlaybackBroadcaster, set during route registration
_broadcaster: PlaybackBroadcaster | None = None


def register_videosync_routes(app, broadcaster: PlaybackBroadcaster) -> None:
    """
    Register watch-together routes with the FastAPI app.

    Args:
        app: FastAPI application instance
        broadcaster: The process-wide PlaybackBroadcaster
    """
    global _broadcaster
    _broadcaster = broadcaster
    app.include_router(router)


@router.get("/videosync", response_class=HTMLResponse)
async def videosync_page(url: str | None = None) -> HTMLResponse:
    """
    Serve the viewer page.

    Args:
        url: Media URL, or a path on the FTP server.
    """
    if not url:
        raise BadRequest("VideoSync: File url not specified.")
    return HTMLResponse(render_viewer(url.strip()))


async def _send_outbox(
    broadcaster: PlaybackBroadcaster, websocket: WebSocket, viewer: Viewer
) -> None:
    """
    Write queued messages to the viewer's socket, in queue order.

    A failed write deregisters the viewer at once, so no more deltas pile
    up in its outbox while the receive loop has not seen the disconnect.
    """
    while True:
        message = await viewer.next_message()
        try:
            await websocket.send_json(message.to_dict())
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            logger.debug("Stopped sending to %s: %s", viewer.viewer_id, e)
            broadcaster.leave(viewer)
            return


def _frame_text(frame: ASGIMessage, viewer: Viewer) -> str | None:
    """Payload of a received frame as text. Binary frames must be UTF-8."""
    if frame.get("text") is not None:
        return frame["text"]
    data = frame.get("bytes")
    if data is None:
        return None
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        logger.warning("Dropping undecodable binary frame from %s", viewer.viewer_id)
        return None


def _handle_frame(broadcaster: PlaybackBroadcaster, viewer: Viewer, text: str) -> None:
    try:
        frame = json.loads(text)
    except json.JSONDecodeError:
        logger.warning("Invalid JSON received from %s", viewer.viewer_id)
        return

    if not isinstance(frame, dict) or frame.get("event") != "update":
        logger.debug("Ignoring frame from %s: %r", viewer.viewer_id, frame)
        return

    try:
        broadcaster.update(frame.get("data"), from_viewer=viewer)
    except InvalidUpdate as e:
        logger.warning("Rejected update from %s: %s", viewer.viewer_id, e)
        viewer.outbox.put_nowait(Message(event="error", data={"message": str(e)}))


@router.websocket("/ws/videosync")
async def videosync_socket(websocket: WebSocket) -> None:
    """Real-time playback channel for one viewer."""
    if _broadcaster is None:
        await websocket.close(code=1013, reason="Broadcaster not initialized")
        return

    await websocket.accept()
    viewer = _broadcaster.join()
    sender = asyncio.create_task(_send_outbox(_broadcaster, websocket, viewer))

    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(frame.get("code", 1000))
            text = _frame_text(frame, viewer)
            if text is not None:
                _handle_frame(_broadcaster, viewer, text)
    except WebSocketDisconnect:
        pass  # Normal disconnect, handled in finally
    finally:
        _broadcaster.leave(viewer)
        sender.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sender
