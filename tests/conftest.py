"""
Shared pytest fixtures.

FakeStore is an in-memory stand-in for the FTP server. It hands out
FakeConnection objects with the same interface as RemoteConnection and
records how often each one was closed.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import PurePosixPath
from typing import Any, AsyncIterator

import pytest

from ftpbridge.config import FtpConfig
from ftpbridge.exceptions import RemoteFileNotFound, UpstreamUnavailable


class FakeTransfer:
    """A RETR transfer over in-memory bytes."""

    def __init__(
        self,
        connection: FakeConnection,
        data: bytes,
        *,
        fail_at: int | None = None,
        hang_at: int | None = None,
    ) -> None:
        self.connection = connection
        self.data = data
        self.fail_at = fail_at
        self.hang_at = hang_at
        self.finished = False

    async def iter_blocks(self, block_size: int) -> AsyncIterator[bytes]:
        sent = 0
        while sent < len(self.data):
            if self.hang_at is not None and sent >= self.hang_at:
                # Blocks until the connection is closed, like a stalled socket
                await self.connection.closed_event.wait()
                raise OSError("data connection closed")
            if self.fail_at is not None and sent >= self.fail_at:
                raise OSError("426 Connection closed; transfer aborted")
            if self.connection.closed:
                raise OSError("data connection closed")

            block = self.data[sent : sent + block_size]
            sent += len(block)
            await asyncio.sleep(0)
            yield block

    async def finish(self) -> None:
        self.finished = True


class FakeConnection:
    """Same interface as ftpbridge.remote.client.RemoteConnection."""

    def __init__(self, store: FakeStore, label: str) -> None:
        self.store = store
        self.label = label
        self.close_count = 0
        self.closed_event = asyncio.Event()
        self.downloads: list[tuple[str, int]] = []

    @property
    def closed(self) -> bool:
        return self.close_count > 0

    async def size(self, path: str) -> int:
        if path in self.store.refuse_size or path not in self.store.files:
            raise OSError(f"550 SIZE not allowed for {path}")
        return len(self.store.files[path])

    async def list(self, path: str) -> list[tuple[PurePosixPath, dict[str, Any]]]:
        if path not in self.store.directories:
            raise RemoteFileNotFound(f"File not found: {path}")
        return [(PurePosixPath(path) / name, info) for name, info in self.store.directories[path]]

    async def start_download(self, path: str, offset: int = 0) -> FakeTransfer:
        if path not in self.store.files:
            raise RemoteFileNotFound(f"File not found: {path}")
        self.downloads.append((path, offset))
        return FakeTransfer(
            self,
            self.store.files[path][offset:],
            fail_at=self.store.fail_at,
            hang_at=self.store.hang_at,
        )

    def close(self) -> None:
        self.close_count += 1
        self.closed_event.set()


class FakeStore:
    """In-memory remote store and connection factory."""

    def __init__(self) -> None:
        self.config = FtpConfig(host="ftp.example.com", user="alice", password="secret")
        self.files: dict[str, bytes] = {}
        self.directories: dict[str, list[tuple[str, dict[str, Any]]]] = {}
        self.refuse_size: set[str] = set()
        self.fail_connect = False
        self.fail_at: int | None = None
        self.hang_at: int | None = None
        self.connections: list[FakeConnection] = []
        self.connect_calls = 0

    def add_file(self, path: str, data: bytes) -> bytes:
        self.files[path] = data
        return data

    async def connect(self) -> FakeConnection:
        self.connect_calls += 1
        if self.fail_connect:
            raise UpstreamUnavailable("FTP connection error: 530 Login incorrect.")
        connection = FakeConnection(self, f"fake-{len(self.connections) + 1}")
        self.connections.append(connection)
        return connection

    @asynccontextmanager
    async def session(self) -> AsyncIterator[FakeConnection]:
        connection = await self.connect()
        try:
            yield connection
        finally:
            connection.close()


def sample_bytes(size: int) -> bytes:
    """Deterministic payload where every offset is distinguishable."""
    return bytes(i % 251 for i in range(size))


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()
