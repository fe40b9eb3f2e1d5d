"""
Streaming Gateway for ftpbridge.

Serves a remote FTP file over HTTP, honouring byte-range requests.

Request lifecycle:
    IDLE -> CONNECTION_ACQUIRED -> HEADERS_SENT -> STREAMING
         -> COMPLETED | CANCELLED | FAILED

Everything that can fail before the response headers are sent (missing
path, FTP login, missing file) is raised from StreamingGateway.open() and
rendered as an error page. Once headers are out, failures are only logged
and the response is cut short.

STREAM CANCELLATION:
====================
Each RemoteFileStream has one CancellationToken. It fires when the
consumer disconnects (the ASGI server cancels the streaming task or its
send() fails), when the server shuts down (cancel_all) or when the
upstream connection resets because the consumer went away. Firing the
token releases the FTP connection immediately, which also unblocks a read
that is waiting on the data channel. Cancellation is never reported as an
error.

CONNECTION OWNERSHIP:
=====================
The RemoteFileStream owns its RemoteConnection from the moment open()
returns. release() closes it; the first call wins and every later call is
a no-op. It runs from the body iterator's finally block, from the token,
and once more from the response after the ASGI call has ended, so there is
no exit path that leaks the connection.
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
from enum import Enum
from typing import TYPE_CHECKING, AsyncIterator, Callable
from urllib.parse import quote

from ftpbridge.exceptions import BadRequest, UpstreamStreamingFailure
from ftpbridge.streaming.content_types import content_type_for
from ftpbridge.streaming.ranges import ResolvedRange, resolve_range

if TYPE_CHECKING:
    from ftpbridge.remote.client import RemoteConnection, RemoteStoreFactory, RemoteTransfer

logger = logging.getLogger(__name__)

# Buffer size for streaming
STREAM_BUFFER_SIZE = 65536  # 64KB chunks

# Errors on the upstream side that mean the consumer is already gone
CONSUMER_GONE_ERRORS = (ConnectionResetError, BrokenPipeError)


class StreamState(Enum):
    """Lifecycle of a single file request."""

    IDLE = "idle"
    CONNECTION_ACQUIRED = "connection_acquired"
    HEADERS_SENT = "headers_sent"
    STREAMING = "streaming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (StreamState.COMPLETED, StreamState.CANCELLED, StreamState.FAILED)


class CancellationToken:
    """
    Single cancellation signal for a stream, whatever its origin.

    Callbacks registered with add_callback() run synchronously, once, when
    the token is first cancelled. A callback added after cancellation runs
    immediately.
    """

    __slots__ = ("_cancelled", "_reason", "_callbacks")

    def __init__(self) -> None:
        self._cancelled = False
        self._reason = ""
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str:
        return self._reason

    def add_callback(self, callback: Callable[[], None]) -> None:
        if self._cancelled:
            callback()
        else:
            self._callbacks.append(callback)

    def cancel(self, reason: str = "") -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason

        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.debug("Cancellation callback failed: %s", e)


def content_disposition(filename: str) -> str:
    """Inline disposition hint, RFC 6266 encoded for non-ASCII names."""
    quoted = quote(filename)
    if quoted != filename:
        return f"inline; filename*=utf-8''{quoted}"
    return f'inline; filename="{filename}"'


class RemoteFileStream:
    """
    A prepared file response: resolved range, headers and a body iterator.

    Created by StreamingGateway.open() with the connection already acquired
    and the upstream transfer already accepted by the FTP server.
    """

    def __init__(
        self,
        path: str,
        connection: RemoteConnection,
        transfer: RemoteTransfer | None,
        byte_range: ResolvedRange,
        *,
        chunk_size: int = STREAM_BUFFER_SIZE,
        on_release: Callable[[RemoteFileStream], None] | None = None,
    ) -> None:
        self.path = path
        self.filename = posixpath.basename(path.rstrip("/")) or path
        self.content_type = content_type_for(self.filename)
        self.range = byte_range
        self.connection = connection
        self.transfer = transfer
        self.chunk_size = chunk_size
        self.bytes_sent = 0
        self.state = StreamState.CONNECTION_ACQUIRED
        self.token = CancellationToken()

        self._released = False
        self._on_release = on_release

        self.token.add_callback(self.release)

    @property
    def status_code(self) -> int:
        return 206 if self.range.partial else 200

    @property
    def headers(self) -> dict[str, str]:
        """Response headers, without Content-Type (passed as media type)."""
        headers = {"Content-Disposition": content_disposition(self.filename)}

        if self.range.total is None:
            # Size unknown: no ranges, no length, stream until EOF
            headers["Accept-Ranges"] = "none"
            return headers

        headers["Accept-Ranges"] = "bytes"
        headers["Content-Length"] = str(self.range.length)
        if self.range.partial:
            headers["Content-Range"] = self.range.content_range
        return headers

    @property
    def released(self) -> bool:
        return self._released

    def mark_headers_sent(self) -> None:
        if self.state == StreamState.CONNECTION_ACQUIRED:
            self.state = StreamState.HEADERS_SENT

    def cancel(self, reason: str = "consumer disconnected") -> None:
        """Abandon the transfer. Silent; releases the connection."""
        if not self.state.is_terminal:
            self.state = StreamState.CANCELLED
        self.token.cancel(reason)

    def release(self) -> None:
        """Release the FTP connection. Only the first call has an effect."""
        if self._released:
            return
        self._released = True

        if not self.state.is_terminal:
            self.state = StreamState.CANCELLED

        self.connection.close()
        logger.debug(
            "Released %s for %s (%s, %d bytes)",
            self.connection.label,
            self.path,
            self.state.value,
            self.bytes_sent,
        )

        if self._on_release is not None:
            self._on_release(self)

    def _is_cancellation(self, exc: BaseException) -> bool:
        return self.token.cancelled or isinstance(exc, CONSUMER_GONE_ERRORS)

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        """
        Yield the resolved span as it arrives from the FTP server.

        Raises:
            UpstreamStreamingFailure: If the FTP server aborts the transfer
                for a reason unrelated to cancellation. It is logged here;
                the caller only has to drop the response.
        """
        self.state = StreamState.STREAMING
        remaining = self.range.length

        try:
            if self.transfer is not None and remaining != 0:
                async for block in self.transfer.iter_blocks(self.chunk_size):
                    if self.token.cancelled:
                        break
                    if remaining is not None:
                        block = block[:remaining]
                        remaining -= len(block)

                    yield block
                    self.bytes_sent += len(block)

                    if remaining == 0:
                        break
                else:
                    if remaining is None and not self.token.cancelled:
                        # Read to EOF: confirm the server finished cleanly
                        await self.transfer.finish()

            if self.token.cancelled:
                self.state = StreamState.CANCELLED
            elif remaining:
                raise UpstreamStreamingFailure(
                    f"Upstream ended {remaining} bytes early for {self.path}"
                )
            else:
                self.state = StreamState.COMPLETED
                logger.debug("Stream completed for %s (%d bytes)", self.path, self.bytes_sent)

        except asyncio.CancelledError:
            self.cancel("consumer disconnected")
            raise

        except GeneratorExit:
            self.cancel("consumer disconnected")
            raise

        except Exception as e:
            if self._is_cancellation(e):
                logger.debug("Stream cancelled for %s: %s", self.path, e)
                self.cancel(self.token.reason or "upstream reset")
                return

            self.state = StreamState.FAILED
            logger.error(
                "Streaming error for %s after %d bytes: %s",
                self.path,
                self.bytes_sent,
                e,
                exc_info=not isinstance(e, UpstreamStreamingFailure),
            )
            if isinstance(e, UpstreamStreamingFailure):
                raise
            raise UpstreamStreamingFailure(str(e)) from e

        finally:
            self.release()


class StreamingGateway:
    """
    Maps HTTP file requests onto FTP downloads.

    Every request opens its own FTP connection through the factory; no
    connection is shared or pooled.
    """

    def __init__(
        self,
        factory: RemoteStoreFactory,
        *,
        chunk_size: int = STREAM_BUFFER_SIZE,
    ) -> None:
        self._factory = factory
        self.chunk_size = chunk_size
        self._active: set[RemoteFileStream] = set()

    @property
    def active_count(self) -> int:
        """Number of streams whose connection has not been released yet."""
        return len(self._active)

    async def _query_size(self, connection: RemoteConnection, path: str) -> int | None:
        """
        Query the file size, tolerating servers that refuse it.

        Some servers refuse SIZE for directories or special files; the
        request then degrades to a plain full-file stream.
        """
        try:
            return await connection.size(path)
        except Exception as e:
            logger.debug("Size query failed for %s, streaming without length: %s", path, e)
            return None

    async def open(self, path: str | None, range_header: str | None = None) -> RemoteFileStream:
        """
        Prepare a file response.

        Args:
            path: Absolute path on the FTP server.
            range_header: Raw Range header value, if any.

        Returns:
            A RemoteFileStream that owns the FTP connection.

        Raises:
            BadRequest: If no path was given.
            UpstreamUnavailable: If no FTP connection could be opened.
            RemoteFileNotFound: If the file does not exist.
            UpstreamStreamingFailure: If the download could not be started.
        """
        if not path:
            raise BadRequest("File path not specified.")

        connection = await self._factory.connect()
        try:
            total_size = await self._query_size(connection, path)
            byte_range = resolve_range(range_header, total_size)

            transfer = None
            if byte_range.length != 0:
                transfer = await connection.start_download(path, byte_range.start)
        except BaseException:
            connection.close()
            raise

        stream = RemoteFileStream(
            path,
            connection,
            transfer,
            byte_range,
            chunk_size=self.chunk_size,
            on_release=self._active.discard,
        )
        self._active.add(stream)

        logger.info(
            "Streaming %s (%s) via %s",
            path,
            byte_range.content_range if byte_range.partial else "full",
            connection.label,
        )
        return stream

    def cancel_all(self, reason: str = "server shutdown") -> int:
        """Cancel every active stream. Returns the number cancelled."""
        streams = list(self._active)
        for stream in streams:
            stream.cancel(reason)
        if streams:
            logger.info("Cancelled %d active stream(s): %s", len(streams), reason)
        return len(streams)
