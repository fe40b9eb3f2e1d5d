"""
Web Server Module for ftpbridge.

This module provides the WebServer class that creates and manages the
FastAPI application and registers all routes.

The WebServer integrates:
- Directory listing (/)
- File streaming with byte ranges (/file)
- Watch-together viewer page and real-time channel (/videosync, /ws/videosync)
- Health check (/health)
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse

from ftpbridge import __version__
from ftpbridge.exceptions import GatewayError
from ftpbridge.web.pages import render_error
from ftpbridge.web.routes.browse import register_browse_routes
from ftpbridge.web.routes.streaming import register_streaming_routes
from ftpbridge.web.routes.videosync import register_videosync_routes

if TYPE_CHECKING:
    from ftpbridge.remote.client import RemoteStoreFactory
    from ftpbridge.streaming.gateway import StreamingGateway
    from ftpbridge.sync.broadcaster import PlaybackBroadcaster

logger = logging.getLogger(__name__)

ERROR_TITLES = {
    400: "Bad Request",
    404: "File Not Found",
    502: "FTP Server Error",
}


class WebServer:
    """
    FastAPI-based web server for ftpbridge.
    """

    def __init__(
        self,
        factory: RemoteStoreFactory,
        gateway: StreamingGateway,
        broadcaster: PlaybackBroadcaster,
    ) -> None:
        """
        Initialize the WebServer.

        Args:
            factory: Opens FTP connections for directory listings
            gateway: Streams FTP files
            broadcaster: Shared playback state for the viewer page
        """
        self.factory = factory
        self.gateway = gateway
        self.broadcaster = broadcaster

        # Create FastAPI app
        self.app = FastAPI(
            title="ftpbridge",
            description="FTP file browser, streaming gateway and watch-together sync",
            version=__version__,
        )

        # Add CORS middleware
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET"],
            allow_headers=["*"],
        )

        # Server state
        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task[None] | None = None
        self._host = "0.0.0.0"
        self._port = 3000

        # Register routes
        self._register_routes()

    def _register_routes(self) -> None:
        """Register all routes with the FastAPI app."""

        # Health check
        @self.app.get("/health")
        async def health_check() -> dict[str, Any]:
            """Health check endpoint."""
            return {
                "status": "ok",
                "server": "ftpbridge",
                "active_streams": self.gateway.active_count,
                "viewers": self.broadcaster.viewer_count,
            }

        @self.app.exception_handler(GatewayError)
        async def gateway_error_handler(request: Request, exc: GatewayError) -> HTMLResponse:
            """Render errors raised before any response byte was sent."""
            if exc.status_code >= 500:
                logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
            else:
                logger.info("%s %s rejected: %s", request.method, request.url.path, exc.message)
            title = ERROR_TITLES.get(exc.status_code, "Error")
            return HTMLResponse(render_error(title, exc.message), status_code=exc.status_code)

        register_browse_routes(self.app, self.factory)
        register_streaming_routes(self.app, self.gateway)
        register_videosync_routes(self.app, self.broadcaster)

    async def start(self, host: str = "0.0.0.0", port: int = 3000) -> None:
        """
        Start the web server.

        Args:
            host: Host address to bind to
            port: Port to listen on
        """
        self._host = host
        self._port = port

        # Configure uvicorn
        config = uvicorn.Config(
            self.app,
            host=host,
            port=port,
            log_level="warning",
            access_log=False,
        )
        self._server = uvicorn.Server(config)

        # Start server in background
        self._serve_task = asyncio.create_task(self._server.serve())

        logger.info("Web server started on http://%s:%d", host, port)

    async def stop(self) -> None:
        """Stop the web server, cancelling all running streams first."""
        self.gateway.cancel_all("server shutdown")

        # Stop uvicorn server
        if self._server is not None:
            self._server.should_exit = True
            self._server = None

        if self._serve_task is not None:
            await self._serve_task
            self._serve_task = None

        logger.info("Web server stopped")

    @property
    def port(self) -> int:
        """Get the server port."""
        return self._port

    @property
    def host(self) -> str:
        """Get the server host."""
        return self._host
