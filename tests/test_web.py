"""
Tests for ftpbridge.web (FastAPI routes and the streaming response).

These tests verify:
- Directory listing pages
- /file status codes, range headers and bodies
- Error pages rendered before any body byte
- Connection release when the consumer disconnects or the upstream fails
- The watch-together page and WebSocket channel
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import FakeStore, sample_bytes
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from ftpbridge.streaming.gateway import StreamingGateway, StreamState
from ftpbridge.sync.broadcaster import PlaybackBroadcaster
from ftpbridge.web.routes.streaming import RemoteFileResponse
from ftpbridge.web.routes.videosync import _send_outbox
from ftpbridge.web.server import WebServer

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def gateway(store: FakeStore) -> StreamingGateway:
    return StreamingGateway(store, chunk_size=64)


@pytest.fixture
def broadcaster() -> PlaybackBroadcaster:
    return PlaybackBroadcaster()


@pytest.fixture
def web_server(
    store: FakeStore, gateway: StreamingGateway, broadcaster: PlaybackBroadcaster
) -> WebServer:
    return WebServer(factory=store, gateway=gateway, broadcaster=broadcaster)


@pytest.fixture
async def client(web_server: WebServer) -> AsyncClient:
    """Create an async HTTP client for testing."""
    transport = ASGITransport(app=web_server.app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def http_scope(spec_version: str = "2.4") -> dict:
    return {
        "type": "http",
        "asgi": {"version": "3.0", "spec_version": spec_version},
        "http_version": "1.1",
        "method": "GET",
        "scheme": "http",
        "path": "/file",
        "raw_path": b"/file",
        "query_string": b"",
        "headers": [],
    }


# =============================================================================
# Health
# =============================================================================


class TestHealth:
    async def test_health(self, client: AsyncClient) -> None:
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {
            "status": "ok",
            "server": "ftpbridge",
            "active_streams": 0,
            "viewers": 0,
        }


# =============================================================================
# Browse
# =============================================================================


class TestBrowse:
    """Tests for the / directory listing."""

    async def test_root_listing(self, client: AsyncClient, store: FakeStore) -> None:
        store.directories["/"] = [
            ("film.mp4", {"type": "file", "size": "1536", "modify": "20240102030405"}),
            ("Episode 10", {"type": "dir"}),
            ("Episode 2", {"type": "dir"}),
            ("notes.txt", {"type": "file", "size": "0"}),
        ]

        response = await client.get("/")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        body = response.text
        assert "FTP File Explorer" in body
        assert "Host: ftp.example.com:21" in body
        assert "Up one level" not in body
        assert body.index("Episode 2") < body.index("Episode 10") < body.index("film.mp4")
        assert 'href="/file?path=%2Ffilm.mp4"' in body
        assert 'href="/videosync?url=%2Ffilm.mp4"' in body
        assert 'href="/videosync?url=%2Fnotes.txt"' not in body
        assert "1.5 KB" in body
        assert "2024-01-02 03:04:05" in body
        assert store.connections[0].close_count == 1

    async def test_subdirectory_has_up_link(self, client: AsyncClient, store: FakeStore) -> None:
        store.directories["/movies/new"] = [("a.mkv", {"type": "file", "size": "10"})]

        response = await client.get("/", params={"path": "movies/new/"})

        assert response.status_code == 200
        assert "Current location: /movies/new" in response.text
        assert 'href="/?path=%2Fmovies"' in response.text
        assert 'href="/file?path=%2Fmovies%2Fnew%2Fa.mkv"' in response.text

    async def test_missing_directory(self, client: AsyncClient, store: FakeStore) -> None:
        response = await client.get("/", params={"path": "/nope"})

        assert response.status_code == 404
        assert "Back to Home Page" in response.text
        assert store.connections[0].close_count == 1

    async def test_connection_error(self, client: AsyncClient, store: FakeStore) -> None:
        store.fail_connect = True

        response = await client.get("/")

        assert response.status_code == 502
        assert "FTP connection error" in response.text


# =============================================================================
# File streaming
# =============================================================================


class TestServeFile:
    """Tests for /file."""

    async def test_range_request(self, client: AsyncClient, store: FakeStore) -> None:
        data = store.add_file("/movies/film.mp4", sample_bytes(1000))

        response = await client.get(
            "/file", params={"path": "/movies/film.mp4"}, headers={"Range": "bytes=100-199"}
        )

        assert response.status_code == 206
        assert response.headers["content-range"] == "bytes 100-199/1000"
        assert response.headers["content-length"] == "100"
        assert response.headers["accept-ranges"] == "bytes"
        assert response.headers["content-type"] == "video/mp4"
        assert response.content == data[100:200]
        assert store.connections[0].close_count == 1

    async def test_full_file(self, client: AsyncClient, store: FakeStore) -> None:
        data = store.add_file("/song.mp3", sample_bytes(500))

        response = await client.get("/file", params={"path": "/song.mp3"})

        assert response.status_code == 200
        assert response.headers["content-length"] == "500"
        assert response.headers["content-type"] == "audio/mpeg"
        assert "content-range" not in response.headers
        assert response.content == data
        assert store.connections[0].close_count == 1

    async def test_range_clamped(self, client: AsyncClient, store: FakeStore) -> None:
        data = store.add_file("/film.mp4", sample_bytes(1000))

        response = await client.get(
            "/file", params={"path": "/film.mp4"}, headers={"Range": "bytes=900-2000"}
        )

        assert response.status_code == 206
        assert response.headers["content-range"] == "bytes 900-999/1000"
        assert response.content == data[900:]

    async def test_unknown_extension(self, client: AsyncClient, store: FakeStore) -> None:
        store.add_file("/data/blob.xyz", b"abc")

        response = await client.get("/file", params={"path": "/data/blob.xyz"})

        assert response.headers["content-type"] == "application/octet-stream"

    async def test_missing_path(self, client: AsyncClient, store: FakeStore) -> None:
        response = await client.get("/file")

        assert response.status_code == 400
        assert "File path not specified." in response.text
        assert store.connect_calls == 0

    async def test_connection_error(self, client: AsyncClient, store: FakeStore) -> None:
        store.add_file("/film.mp4", sample_bytes(10))
        store.fail_connect = True

        response = await client.get("/file", params={"path": "/film.mp4"})

        assert response.status_code == 502
        assert "FTP Server Error" in response.text

    async def test_missing_file(self, client: AsyncClient, store: FakeStore) -> None:
        response = await client.get("/file", params={"path": "/nope.mp4"})

        assert response.status_code == 404
        assert "File not found: /nope.mp4" in response.text
        assert store.connections[0].close_count == 1

    async def test_size_refused(self, client: AsyncClient, store: FakeStore) -> None:
        data = store.add_file("/live.ts", sample_bytes(200))
        store.refuse_size.add("/live.ts")

        response = await client.get(
            "/file", params={"path": "/live.ts"}, headers={"Range": "bytes=10-20"}
        )

        assert response.status_code == 200
        assert response.headers["accept-ranges"] == "none"
        assert response.content == data

    async def test_health_counts_released_streams(
        self, client: AsyncClient, store: FakeStore
    ) -> None:
        store.add_file("/film.mp4", sample_bytes(100))

        await client.get("/file", params={"path": "/film.mp4"})
        response = await client.get("/health")

        assert response.json()["active_streams"] == 0


class TestRemoteFileResponse:
    """Drives the ASGI response directly to simulate broken connections."""

    async def test_consumer_send_fails(self, gateway: StreamingGateway, store: FakeStore) -> None:
        store.add_file("/film.mp4", sample_bytes(1000))
        stream = await gateway.open("/film.mp4")
        sent = []

        async def receive() -> dict:
            await asyncio.Event().wait()

        async def send(message: dict) -> None:
            if message["type"] == "http.response.body" and sent:
                raise OSError("Broken pipe")
            sent.append(message)

        await RemoteFileResponse(stream)(http_scope(), receive, send)

        assert sent[0]["type"] == "http.response.start"
        assert stream.state == StreamState.CANCELLED
        assert store.connections[0].close_count == 1
        assert gateway.active_count == 0

    async def test_consumer_disconnects_during_stalled_read(
        self, gateway: StreamingGateway, store: FakeStore
    ) -> None:
        store.add_file("/film.mp4", sample_bytes(1000))
        store.hang_at = 64
        stream = await gateway.open("/film.mp4")
        first_body = asyncio.Event()

        async def receive() -> dict:
            await first_body.wait()
            return {"type": "http.disconnect"}

        async def send(message: dict) -> None:
            if message["type"] == "http.response.body":
                first_body.set()

        await asyncio.wait_for(
            RemoteFileResponse(stream)(http_scope("2.0"), receive, send), timeout=2
        )

        assert stream.state == StreamState.CANCELLED
        assert stream.bytes_sent == 64
        assert store.connections[0].close_count == 1

    async def test_upstream_fails_after_headers(
        self, gateway: StreamingGateway, store: FakeStore
    ) -> None:
        store.add_file("/film.mp4", sample_bytes(1000))
        store.fail_at = 128
        stream = await gateway.open("/film.mp4")
        sent = []

        async def receive() -> dict:
            await asyncio.Event().wait()

        async def send(message: dict) -> None:
            sent.append(message)

        await RemoteFileResponse(stream)(http_scope(), receive, send)

        assert sent[0]["status"] == 200
        bodies = [m for m in sent if m["type"] == "http.response.body"]
        assert sum(len(m["body"]) for m in bodies) == 128
        # Never completed
        assert all(m.get("more_body") for m in bodies)
        assert stream.state == StreamState.FAILED
        assert store.connections[0].close_count == 1

    async def test_response_never_started(
        self, gateway: StreamingGateway, store: FakeStore
    ) -> None:
        store.add_file("/film.mp4", sample_bytes(1000))
        stream = await gateway.open("/film.mp4")

        async def receive() -> dict:
            await asyncio.Event().wait()

        async def send(message: dict) -> None:
            raise OSError("Connection reset by peer")

        await RemoteFileResponse(stream)(http_scope(), receive, send)

        assert stream.state == StreamState.CANCELLED
        assert store.connections[0].close_count == 1


# =============================================================================
# VideoSync
# =============================================================================


class TestVideoSyncPage:
    """Tests for GET /videosync."""

    async def test_missing_url(self, client: AsyncClient) -> None:
        response = await client.get("/videosync")

        assert response.status_code == 400
        assert "VideoSync: File url not specified." in response.text

    async def test_page(self, client: AsyncClient) -> None:
        response = await client.get("/videosync", params={"url": "/movies/film.mp4"})

        assert response.status_code == 200
        assert '"/movies/film.mp4"' in response.text
        assert "/ws/videosync" in response.text

    async def test_url_is_escaped(self, client: AsyncClient) -> None:
        response = await client.get("/videosync", params={"url": '</script><b x="1">'})

        assert response.status_code == 200
        assert "</script><b" not in response.text


class TestVideoSyncChannel:
    """Tests for WS /ws/videosync."""

    def test_watch_together(self, web_server: WebServer, broadcaster: PlaybackBroadcaster) -> None:
        with TestClient(web_server.app) as client:
            with client.websocket_connect("/ws/videosync") as a:
                assert a.receive_json() == {
                    "event": "sync",
                    "data": {"url": "", "position": 0.0, "speed": 1.0, "paused": True},
                }

                with client.websocket_connect("/ws/videosync") as b:
                    assert b.receive_json()["event"] == "sync"

                    a.send_json({"event": "update", "data": {"position": 42.0, "paused": False}})
                    assert b.receive_json() == {
                        "event": "update",
                        "data": {"position": 42.0, "paused": False},
                    }
                    assert broadcaster.snapshot()["position"] == 42.0

                    with client.websocket_connect("/ws/videosync") as c:
                        snapshot = c.receive_json()
                        assert snapshot["event"] == "sync"
                        assert snapshot["data"]["position"] == 42.0
                        assert snapshot["data"]["paused"] is False

                        b.send_json({"event": "update", "data": {"speed": 1.5}})
                        assert a.receive_json() == {"event": "update", "data": {"speed": 1.5}}
                        assert c.receive_json() == {"event": "update", "data": {"speed": 1.5}}

    def test_invalid_frames(self, web_server: WebServer) -> None:
        with TestClient(web_server.app) as client:
            with client.websocket_connect("/ws/videosync") as a:
                a.receive_json()
                with client.websocket_connect("/ws/videosync") as b:
                    b.receive_json()

                    a.send_text("not json")
                    a.send_json({"event": "sync", "data": {"paused": False}})
                    a.send_json({"event": "update", "data": {"speed": "fast"}})

                    # The sender's own update never comes back, so the next
                    # message is the rejection
                    assert a.receive_json() == {
                        "event": "error",
                        "data": {"message": "speed must be a number"},
                    }

                    a.send_json({"event": "update", "data": {"paused": False}})
                    assert b.receive_json() == {"event": "update", "data": {"paused": False}}

    def test_binary_frames(self, web_server: WebServer) -> None:
        with TestClient(web_server.app) as client:
            with client.websocket_connect("/ws/videosync") as a:
                a.receive_json()
                with client.websocket_connect("/ws/videosync") as b:
                    b.receive_json()

                    a.send_bytes(b"\xff\xfe not utf-8")
                    a.send_bytes(b'{"event": "update", "data": {"position": 7}}')
                    assert b.receive_json() == {"event": "update", "data": {"position": 7.0}}

                    a.send_json({"event": "update", "data": {"paused": False}})
                    assert b.receive_json() == {"event": "update", "data": {"paused": False}}


class TestSendOutbox:
    """Tests for the per-viewer sender task."""

    async def test_failed_write_deregisters_viewer(self, broadcaster: PlaybackBroadcaster) -> None:
        websocket = MagicMock()
        websocket.send_json = AsyncMock(side_effect=RuntimeError("socket closed"))
        viewer = broadcaster.join()
        other = broadcaster.join()

        await asyncio.wait_for(_send_outbox(broadcaster, websocket, viewer), timeout=1)

        assert broadcaster.viewer_count == 1
        broadcaster.update({"paused": False}, other)
        assert viewer.pending() == []
