"""SSE stream and message intake endpoints.

- GET <sse_path>: opens a session and streams its events
- POST <messages_path>?sessionId=<id>: delivers one client message
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterable
from typing import Any

import anyio
from starlette.requests import Request
from starlette.responses import JSONResponse, Response, StreamingResponse
from starlette.routing import Route
from starlette.types import Receive, Scope, Send

from ..config import ServerConfig
from ..registry import SessionRegistry
from ..transport import EventSink, SSEServerTransport

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
}


class SessionStreamingResponse(StreamingResponse):
    """Event stream response that owns the teardown of its session.

    The transport is closed and unregistered whenever the response ends,
    including when the client disconnects before the first chunk is sent.
    """

    def __init__(
        self,
        transport: SSEServerTransport,
        registry: SessionRegistry,
        content: AsyncIterable[bytes],
        **kwargs: Any,
    ) -> None:
        super().__init__(content, **kwargs)
        self.transport = transport
        self.registry = registry

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            with anyio.CancelScope(shield=True):
                await self.transport.close()
                await self.registry.remove(self.transport.session_id)


async def sse_endpoint(request: Request) -> Response:
    """Open a session and stream its events until close or disconnect."""
    state = request.app.state
    registry: SessionRegistry = state.registry
    config: ServerConfig = state.config

    sink = EventSink()
    transport = SSEServerTransport(
        open_sink=lambda: sink,
        handler=state.protocol_server,
        config=config.transport_config(),
    )
    await registry.register(transport.session_id, transport)

    try:
        await transport.start()
    except Exception as e:
        logger.exception(f"Failed to start transport {transport.session_id}: {e}")
        await registry.remove(transport.session_id)
        return JSONResponse(
            {"error": "transport error", "message": str(e)},
            status_code=500,
        )

    return SessionStreamingResponse(
        transport,
        registry,
        sink,
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


async def message_endpoint(request: Request) -> JSONResponse:
    """Route a POSTed message to the session's transport."""
    registry: SessionRegistry = request.app.state.registry

    session_id = request.query_params.get("sessionId")
    transport = await registry.lookup(session_id) if session_id else None
    if transport is None:
        return JSONResponse({"error": "invalid or missing session id"}, status_code=400)

    try:
        body = await request.body()
        outcome = await transport.handle_incoming(body)
    except Exception as e:
        logger.exception(f"Error handling message for session {session_id}: {e}")
        return JSONResponse({"error": "internal server error"}, status_code=500)

    return JSONResponse(outcome.to_dict(), status_code=outcome.status_code)


def sse_routes(config: ServerConfig) -> list[Route]:
    """Build the stream and message routes at the configured paths."""
    return [
        Route(config.sse_path, sse_endpoint, methods=["GET"]),
        Route(config.messages_path, message_endpoint, methods=["POST"]),
    ]
