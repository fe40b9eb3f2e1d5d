"""
Remote Store Client for ftpbridge.

Every logical file operation opens its own FTP session and closes it when
done. Sessions are never pooled and never shared between requests:

    async with factory.session() as connection:
        entries = await connection.list("/movies")

The streaming gateway uses connect() directly because the connection must
outlive the route handler and is released by the response that owns it.

RELEASE SEMANTICS:
==================
RemoteConnection.close() is synchronous and idempotent. The first call
closes the data channel (if a transfer is running) and the control
channel; every later call is a no-op. Errors raised while closing are
logged and swallowed so they never mask the error or cancellation that
triggered the close.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import PurePosixPath
from typing import Any

import aioftp

from ftpbridge.config import FtpConfig
from ftpbridge.exceptions import (
    RemoteFileNotFound,
    UpstreamStreamingFailure,
    UpstreamUnavailable,
)

logger = logging.getLogger(__name__)

# FTP reply code for "file unavailable"
FILE_UNAVAILABLE = "550"

_connection_ids = itertools.count(1)


def _translate_error(exc: BaseException, path: str) -> Exception:
    """Map an aioftp or socket error onto the gateway taxonomy."""
    if isinstance(exc, aioftp.StatusCodeError):
        if FILE_UNAVAILABLE in exc.received_codes:
            return RemoteFileNotFound(f"File not found: {path}")
        info = exc.info if isinstance(exc.info, str) else " ".join(exc.info)
        return UpstreamStreamingFailure(f"FTP server refused {path}: {info.strip()}")
    return UpstreamStreamingFailure(f"FTP transfer failed for {path}: {exc}")


class RemoteTransfer:
    """
    A running RETR transfer on the data channel of a RemoteConnection.
    """

    def __init__(self, stream: Any, path: str, offset: int) -> None:
        self._stream = stream
        self.path = path
        self.offset = offset
        self._closed = False

    async def iter_blocks(self, block_size: int) -> AsyncIterator[bytes]:
        """Yield data blocks as they arrive from the FTP server."""
        async for block in self._stream.iter_by_block(block_size):
            yield block

    async def finish(self) -> None:
        """Wait for the server's end-of-transfer reply after a full read."""
        await self._stream.finish()
        self._closed = True

    def close(self) -> None:
        """Drop the data channel without waiting for the server."""
        if self._closed:
            return
        self._closed = True
        self._stream.close()


class RemoteConnection:
    """
    A single-use, authenticated FTP session.

    Owned exclusively by the request that opened it.
    """

    def __init__(self, client: aioftp.Client, label: str = "") -> None:
        self._client = client
        self._transfer: RemoteTransfer | None = None
        self._closed = False
        self.label = label or f"ftp-{next(_connection_ids)}"

    @property
    def closed(self) -> bool:
        return self._closed

    async def size(self, path: str) -> int:
        """
        Query the size of a file with the SIZE command.

        Raises:
            aioftp.StatusCodeError: If the server refuses the query.
            ValueError: If the reply cannot be parsed.
        """
        # SIZE is only meaningful in binary mode
        await self._client.command("TYPE I", "200")
        _, info = await self._client.command(f"SIZE {path}", "213")
        return int(info[0].strip())

    async def list(self, path: str) -> list[tuple[PurePosixPath, dict[str, Any]]]:
        """List the direct children of a directory."""
        try:
            return await self._client.list(path)
        except (aioftp.AIOFTPException, OSError) as e:
            raise _translate_error(e, path) from e

    async def start_download(self, path: str, offset: int = 0) -> RemoteTransfer:
        """
        Start a RETR transfer at the given byte offset.

        Returns once the server accepted the transfer, before any data
        block is read.

        Raises:
            RemoteFileNotFound: If the server reports the path as missing.
            UpstreamStreamingFailure: If the transfer cannot be started.
        """
        try:
            stream = await self._client.download_stream(path, offset=offset)
        except (aioftp.AIOFTPException, OSError) as e:
            raise _translate_error(e, path) from e

        self._transfer = RemoteTransfer(stream, path, offset)
        return self._transfer

    def close(self) -> None:
        """Release the session. Safe to call any number of times."""
        if self._closed:
            return
        self._closed = True

        try:
            if self._transfer is not None:
                self._transfer.close()
            self._client.close()
        except Exception as e:
            logger.debug("Error while closing %s: %s", self.label, e)
        else:
            logger.debug("Closed %s", self.label)


class RemoteStoreFactory:
    """
    Opens authenticated FTP sessions on demand.

    The credentials are fixed for the lifetime of the factory. There is no
    retry: a failed connect() is reported to the single request that asked
    for the connection.
    """

    def __init__(
        self,
        config: FtpConfig,
        *,
        connect_timeout: float = 10.0,
        socket_timeout: float = 30.0,
    ) -> None:
        self.config = config
        self.connect_timeout = connect_timeout
        self.socket_timeout = socket_timeout

    async def _login(self, client: aioftp.Client) -> None:
        await client.connect(self.config.host, self.config.port)
        await client.login(self.config.user, self.config.password)

    async def connect(self) -> RemoteConnection:
        """
        Open and authenticate a fresh FTP session.

        Raises:
            UpstreamUnavailable: If the server is unreachable, the login is
                rejected or connect_timeout elapses.
        """
        client = aioftp.Client(socket_timeout=self.socket_timeout, encoding="utf-8")
        try:
            await asyncio.wait_for(self._login(client), timeout=self.connect_timeout)
        except (aioftp.AIOFTPException, OSError, asyncio.TimeoutError) as e:
            client.close()
            logger.error("FTP connection error (%s): %s", self.config.display_name, e)
            raise UpstreamUnavailable(f"FTP connection error: {str(e) or type(e).__name__}") from e
        except BaseException:
            client.close()
            raise

        connection = RemoteConnection(client)
        logger.debug("Opened %s to %s", connection.label, self.config.display_name)
        return connection

    @asynccontextmanager
    async def session(self) -> AsyncIterator[RemoteConnection]:
        """Scoped connection, released on every exit path."""
        connection = await self.connect()
        try:
            yield connection
        finally:
            connection.close()
