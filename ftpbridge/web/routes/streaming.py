"""
Streaming Routes for ftpbridge.

Provides the /file endpoint that streams a remote FTP file, honouring
HTTP byte-range requests.

The connection lifecycle lives in ftpbridge.streaming.gateway; this module
only binds a RemoteFileStream to the ASGI response and guarantees that the
stream is released once the response is over, however it ended.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, HTTPException, Request
from starlette.requests import ClientDisconnect
from starlette.responses import StreamingResponse
from starlette.types import Message, Receive, Scope, Send

from ftpbridge.exceptions import UpstreamStreamingFailure

if TYPE_CHECKING:
    from ftpbridge.streaming.gateway import RemoteFileStream, StreamingGateway

logger = logging.getLogger(__name__)

router = APIRouter(tags=["streaming"])

# Reference to StreamingGateway, set during route registration
_gateway: StreamingGateway | None = None


def register_streaming_routes(app, gateway: StreamingGateway) -> None:
    """
    Register streaming routes with the FastAPI app.

    Args:
        app: FastAPI application instance
        gateway: StreamingGateway that opens the FTP downloads
    """
    global _gateway
    _gateway = gateway
    app.include_router(router)


class RemoteFileResponse(StreamingResponse):
    """
    Streaming response that owns a RemoteFileStream.

    Headers are sent before the first body byte. When the consumer goes
    away the stream is cancelled silently; when the upstream fails after the
    headers went out the response is dropped (the failure is already logged
    by the stream).
    """

    def __init__(self, stream: RemoteFileStream) -> None:
        self.stream = stream
        super().__init__(
            stream.iter_bytes(),
            status_code=stream.status_code,
            media_type=stream.content_type,
            headers=stream.headers,
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                self.stream.mark_headers_sent()
            await send(message)

        try:
            await super().__call__(scope, receive, send_wrapper)
        except UpstreamStreamingFailure:
            # Response is already in flight, nothing left to report
            pass
        except (ClientDisconnect, OSError) as e:
            logger.debug("Consumer disconnected from %s: %s", self.stream.path, e)
            self.stream.cancel("consumer disconnected")
        finally:
            await self.body_iterator.aclose()
            self.stream.release()


@router.get("/file")
async def serve_file(
    request: Request,
    path: str | None = None,
) -> RemoteFileResponse:
    """
    Stream a file from the FTP server.

    Args:
        request: The FastAPI request (Range header).
        path: Absolute path of the file on the FTP server.

    Returns:
        206 with Content-Range when a byte range was requested, else 200.

    Raises:
        BadRequest: 400 if no path was given.
        UpstreamUnavailable: 502 if the FTP server cannot be reached.
        RemoteFileNotFound: 404 if the file does not exist.
    """
    if _gateway is None:
        raise HTTPException(status_code=503, detail="Streaming gateway not initialized")

    stream = await _gateway.open(path, request.headers.get("range"))
    return RemoteFileResponse(stream)
