"""
ftpbridge - Main Server Module

This module contains the FtpBridgeServer class that wires the components
together and manages the application lifecycle.
"""

import asyncio
import logging
import signal

from ftpbridge.config import ServerConfig
from ftpbridge.remote.client import RemoteStoreFactory
from ftpbridge.streaming.gateway import StreamingGateway
from ftpbridge.sync.broadcaster import PlaybackBroadcaster
from ftpbridge.web.server import WebServer

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class FtpBridgeServer:
    """
    Main ftpbridge server that coordinates all components.

    The server manages:
    - The remote store factory (one FTP session per operation)
    - The streaming gateway for /file
    - The playback broadcaster (one shared state per process)
    - The web server for HTTP and WebSocket endpoints
    """

    def __init__(self, config: ServerConfig) -> None:
        """
        Initialize the server.

        Args:
            config: Runtime configuration.
        """
        self.config = config

        self.factory = RemoteStoreFactory(
            config.ftp,
            connect_timeout=config.connect_timeout,
            socket_timeout=config.socket_timeout,
        )
        self.gateway = StreamingGateway(self.factory, chunk_size=config.chunk_size)

        # Playback state lives as long as the process; never persisted
        self.broadcaster = PlaybackBroadcaster()

        self.web_server = WebServer(
            factory=self.factory,
            gateway=self.gateway,
            broadcaster=self.broadcaster,
        )

        # Server state
        self._running = False
        self._shutdown_event: asyncio.Event | None = None
        self._signals: list[signal.Signals] = []

    async def start(self) -> None:
        """Start the web server and listen for SIGINT/SIGTERM."""
        self._running = True
        self._shutdown_event = asyncio.Event()
        self._watch_signals(asyncio.get_running_loop())

        await self.web_server.start(host=self.config.http_host, port=self.config.http_port)

        logger.info("FTP host: %s", self.config.ftp.display_name)
        logger.info("HTTP host running: http://localhost:%d", self.config.http_port)

    def _watch_signals(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in SHUTDOWN_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.request_shutdown, sig)
            except (NotImplementedError, RuntimeError, ValueError) as e:
                # Windows, or a loop outside the main thread
                logger.debug("Cannot watch %s: %s", sig.name, e)
                continue
            self._signals.append(sig)

    def request_shutdown(self, sig: signal.Signals | None = None) -> None:
        """Make run() return. Safe to call from a signal handler."""
        if sig is not None:
            logger.info("Received %s, shutting down", sig.name)
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    async def stop(self) -> None:
        """Cancel running streams and stop the web server."""
        if not self._running:
            return

        logger.info("Stopping ftpbridge...")
        self._running = False

        loop = asyncio.get_running_loop()
        while self._signals:
            loop.remove_signal_handler(self._signals.pop())

        await self.web_server.stop()
        self.request_shutdown()

        logger.info("ftpbridge stopped")

    async def run(self) -> None:
        """Serve until a shutdown signal or request_shutdown()."""
        await self.start()
        try:
            await self._shutdown_event.wait()
        finally:
            await self.stop()

    @property
    def is_running(self) -> bool:
        return self._running
