"""Integration tests for the HTTP routes.

POST handling is exercised through Starlette's TestClient. SSE sessions
are driven by calling the ASGI app with hand-written receive/send
callables, because TestClient buffers a streaming body until the
response ends.
"""

from __future__ import annotations

import asyncio
import json
from functools import partial
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest
from conftest import RecordingHandler, RecordingSink, parse_frames
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.testclient import TestClient

from mcp_sse_runtime.app import create_app
from mcp_sse_runtime.config import ServerConfig
from mcp_sse_runtime.protocol.types import JsonRpcResponse
from mcp_sse_runtime.registry import SessionRegistry
from mcp_sse_runtime.routes.sse import message_endpoint, sse_endpoint
from mcp_sse_runtime.transport import SSEServerTransport, TransportConfig, TransportState

PING = b'{"jsonrpc":"2.0","id":1,"method":"ping"}'


@pytest.fixture
def registry() -> SessionRegistry:
    return SessionRegistry()


@pytest.fixture
def app(registry: SessionRegistry) -> Starlette:
    return create_app(config=ServerConfig(keepalive_interval=0), registry=registry)


@pytest.fixture
def client(app: Starlette) -> TestClient:
    return TestClient(app)


def make_request(
    app: Starlette, method: str, path: str, query: bytes = b"", body: bytes = b""
) -> Request:
    scope: dict[str, Any] = {
        "type": "http",
        "method": method,
        "path": path,
        "query_string": query,
        "headers": [],
        "app": app,
    }

    async def receive() -> dict[str, Any]:
        return {"type": "http.request", "body": body, "more_body": False}

    return Request(scope, receive)


def started_transport(handler: RecordingHandler, sink: RecordingSink) -> SSEServerTransport:
    transport = SSEServerTransport(
        open_sink=lambda: sink,
        handler=handler,
        config=TransportConfig(keepalive_interval=0),
    )
    asyncio.run(transport.start())
    return transport


# =============================================================================
# Tests: Info and health
# =============================================================================


class TestInfoEndpoints:
    """Test server info and health endpoints."""

    def test_health_returns_ok(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "sessions": 0}

    def test_info_lists_endpoints(self, client: TestClient) -> None:
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "mcp-sse-runtime"
        assert set(data["endpoints"]) == {"/", "/sse", "/messages"}

    def test_cors_allows_local_origin(self, client: TestClient) -> None:
        response = client.get("/health", headers={"Origin": "http://localhost:5173"})

        assert response.headers["access-control-allow-origin"] == "http://localhost:5173"

    def test_cors_ignores_remote_origin(self, client: TestClient) -> None:
        response = client.get("/health", headers={"Origin": "https://example.com"})

        assert response.status_code == 200
        assert "access-control-allow-origin" not in response.headers

    def test_custom_paths(self, registry: SessionRegistry) -> None:
        app = create_app(
            config=ServerConfig(sse_path="/events", messages_path="/rpc"), registry=registry
        )
        client = TestClient(app)

        assert client.post("/rpc?sessionId=x", content=PING).status_code == 400
        assert client.post("/messages?sessionId=x", content=PING).status_code == 404


# =============================================================================
# Tests: Message intake
# =============================================================================


class TestMessageEndpoint:
    """Test POST routing to session transports."""

    def test_unknown_session(self, client: TestClient, registry: SessionRegistry) -> None:
        response = client.post("/messages?sessionId=does-not-exist", content=PING)

        assert response.status_code == 400
        assert response.json() == {"error": "invalid or missing session id"}
        assert len(registry) == 0

    def test_missing_session_id(self, client: TestClient) -> None:
        response = client.post("/messages", content=PING)

        assert response.status_code == 400
        assert response.json() == {"error": "invalid or missing session id"}

    def test_accepted(self, client: TestClient, registry: SessionRegistry) -> None:
        handler, sink = RecordingHandler(), RecordingSink()
        transport = started_transport(handler, sink)
        asyncio.run(registry.register(transport.session_id, transport))

        response = client.post(f"/messages?sessionId={transport.session_id}", content=PING)

        assert response.status_code == 202
        assert response.json() == {"success": True}
        assert len(handler.messages) == 1
        assert handler.messages[0].method == "ping"

    def test_malformed_envelope(self, client: TestClient, registry: SessionRegistry) -> None:
        handler, sink = RecordingHandler(), RecordingSink()
        transport = started_transport(handler, sink)
        asyncio.run(registry.register(transport.session_id, transport))

        response = client.post(
            f"/messages?sessionId={transport.session_id}",
            content=b'{"jsonrpc":"2.0","id":1,"params":{}}',
        )

        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid message")
        assert handler.messages == []
        assert transport.is_connected

    def test_not_connected(self, client: TestClient, registry: SessionRegistry) -> None:
        transport = SSEServerTransport(open_sink=RecordingSink, handler=RecordingHandler())
        asyncio.run(registry.register(transport.session_id, transport))

        response = client.post(f"/messages?sessionId={transport.session_id}", content=PING)

        assert response.status_code == 500
        assert response.json() == {"error": "connection not established"}

    def test_unexpected_failure(self, client: TestClient, registry: SessionRegistry) -> None:
        transport = SSEServerTransport(open_sink=RecordingSink, handler=RecordingHandler())
        transport.handle_incoming = AsyncMock(side_effect=RuntimeError("boom"))
        asyncio.run(registry.register(transport.session_id, transport))

        response = client.post(f"/messages?sessionId={transport.session_id}", content=PING)

        assert response.status_code == 500
        assert response.json() == {"error": "internal server error"}


# =============================================================================
# Tests: Full session over the SSE endpoint
# =============================================================================


def stream_scope(path: str = "/sse") -> dict[str, Any]:
    return {
        "type": "http",
        "http_version": "1.1",
        "method": "GET",
        "path": path,
        "query_string": b"",
        "headers": [],
    }


class StreamClient:
    """Runs a GET against the ASGI app and collects streamed body chunks."""

    def __init__(self, app: Starlette) -> None:
        self.app = app
        self.status: int | None = None
        self.headers: dict[str, str] = {}
        self.chunks: asyncio.Queue[bytes] = asyncio.Queue()
        self._disconnected = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    def open(self, path: str = "/sse") -> None:
        self._task = asyncio.create_task(self.app(stream_scope(path), self._receive, self._send))

    async def next_chunk(self, timeout: float = 1.0) -> bytes:
        return await asyncio.wait_for(self.chunks.get(), timeout)

    async def finished(self, timeout: float = 1.0) -> None:
        assert self._task is not None
        await asyncio.wait_for(self._task, timeout)

    async def disconnect(self) -> None:
        self._disconnected.set()
        await self.finished()

    async def _receive(self) -> dict[str, Any]:
        await self._disconnected.wait()
        return {"type": "http.disconnect"}

    async def _send(self, message: dict[str, Any]) -> None:
        if message["type"] == "http.response.start":
            self.status = message["status"]
            self.headers = {k.decode(): v.decode() for k, v in message["headers"]}
        elif message["type"] == "http.response.body" and message.get("body"):
            self.chunks.put_nowait(message["body"])


async def read_endpoint(stream: StreamClient) -> tuple[str, str]:
    """Read the endpoint event and split it into (path, session id)."""
    [(event, endpoint)] = parse_frames(await stream.next_chunk())
    assert event == "endpoint"
    path, _, query = endpoint.partition("?")
    return path, query.removeprefix("sessionId=")


class TestSseSession:
    """Open a stream, POST to it, and read the reply from the stream."""

    @pytest.mark.asyncio
    async def test_ping_round_trip(self, app: Starlette, registry: SessionRegistry) -> None:
        stream = StreamClient(app)
        stream.open()

        path, session_id = await read_endpoint(stream)
        assert stream.status == 200
        assert stream.headers["content-type"].startswith("text/event-stream")
        assert stream.headers["cache-control"] == "no-cache"
        assert path == "/messages"
        assert session_id in registry

        post = await message_endpoint(
            make_request(
                app, "POST", path, query=f"sessionId={session_id}".encode(), body=PING
            )
        )
        assert post.status_code == 202
        assert json.loads(post.body) == {"success": True}

        [(event, data)] = parse_frames(await stream.next_chunk())
        assert event == "message"
        assert json.loads(data) == {"jsonrpc": "2.0", "id": 1, "result": {}}

        transport = await registry.lookup(session_id)
        await transport.close()

        await stream.finished()
        assert session_id not in registry

    @pytest.mark.asyncio
    async def test_client_disconnect_reclaims_session(
        self, app: Starlette, registry: SessionRegistry
    ) -> None:
        stream = StreamClient(app)
        stream.open()
        _, session_id = await read_endpoint(stream)
        transport = await registry.lookup(session_id)

        await stream.disconnect()

        assert transport.state == TransportState.CLOSED
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_disconnect_before_first_chunk_reclaims_session(
        self, registry: SessionRegistry
    ) -> None:
        """A client gone before the body starts still gets its session closed."""
        handler = RecordingHandler()
        app = create_app(
            config=ServerConfig(keepalive_interval=0.01), server=handler, registry=registry
        )

        async def receive() -> dict[str, Any]:
            return {"type": "http.disconnect"}

        async def slow_send(message: dict[str, Any]) -> None:
            await asyncio.sleep(0.01)

        await asyncio.wait_for(app(stream_scope(), receive, slow_send), timeout=1.0)

        assert await registry.session_ids() == []
        assert handler.close_count == 1

        # No keepalive keeps running against the abandoned stream
        await asyncio.sleep(0.05)
        assert handler.errors == []

    @pytest.mark.asyncio
    async def test_write_failure_tears_down_session(self, registry: SessionRegistry) -> None:
        handler = RecordingHandler()
        app = create_app(config=ServerConfig(keepalive_interval=0), server=handler, registry=registry)

        with patch("mcp_sse_runtime.routes.sse.EventSink", partial(RecordingSink, fail_after=1)):
            stream = StreamClient(app)
            stream.open()
            _, session_id = await read_endpoint(stream)
            transport = await registry.lookup(session_id)

            await transport.send(JsonRpcResponse(id=1, result={}))
            await stream.finished()

        assert transport.state == TransportState.CLOSED
        assert len(registry) == 0
        assert len(handler.errors) == 1
        assert isinstance(handler.errors[0], OSError)
        assert handler.close_count == 1

    @pytest.mark.asyncio
    async def test_keepalive_failure_tears_down_session(self, registry: SessionRegistry) -> None:
        handler = RecordingHandler()
        app = create_app(
            config=ServerConfig(keepalive_interval=0.01), server=handler, registry=registry
        )

        with patch("mcp_sse_runtime.routes.sse.EventSink", partial(RecordingSink, fail_after=1)):
            stream = StreamClient(app)
            stream.open()
            await read_endpoint(stream)
            await stream.finished()

        assert len(registry) == 0
        assert len(handler.errors) == 1
        assert handler.close_count == 1

    @pytest.mark.asyncio
    async def test_each_connection_gets_fresh_session(
        self, app: Starlette, registry: SessionRegistry
    ) -> None:
        first, second = StreamClient(app), StreamClient(app)
        first.open()
        second.open()

        _, first_id = await read_endpoint(first)
        _, second_id = await read_endpoint(second)
        assert first_id != second_id
        assert set(await registry.session_ids()) == {first_id, second_id}

        await first.disconnect()
        await second.disconnect()
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_start_failure_returns_error(
        self, app: Starlette, registry: SessionRegistry
    ) -> None:
        with patch.object(SSEServerTransport, "start", AsyncMock(side_effect=RuntimeError("boom"))):
            response = await sse_endpoint(make_request(app, "GET", "/sse"))

        assert response.status_code == 500
        assert json.loads(response.body) == {"error": "transport error", "message": "boom"}
        assert len(registry) == 0

    def test_shutdown_closes_open_sessions(self, app: Starlette, registry: SessionRegistry) -> None:
        handler, sink = RecordingHandler(), RecordingSink()
        transport = started_transport(handler, sink)
        asyncio.run(registry.register(transport.session_id, transport))

        with TestClient(app):
            pass

        assert transport.state == TransportState.CLOSED
        assert handler.close_count == 1
        assert len(registry) == 0
