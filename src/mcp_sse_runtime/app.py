"""MCP SSE Server Application.

Creates the Starlette ASGI application with all routes.

Routes:
- / - Server info
- /health - Health check
- /sse - SSE stream, one session per connection (configurable)
- /messages - Message intake, addressed by ?sessionId= (configurable)
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncIterator

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.routing import Route

from .config import ServerConfig
from .protocol.server import McpServer
from .registry import SessionRegistry
from .routes import health_routes, sse_routes

logger = logging.getLogger(__name__)


def create_app(
    config: ServerConfig | None = None,
    server: McpServer | None = None,
    registry: SessionRegistry | None = None,
) -> Starlette:
    """Create the MCP SSE backend application.

    Args:
        config: Server configuration (defaults to ServerConfig.from_env())
        server: Protocol server handling session messages (defaults to the demo server)
        registry: Session registry (a new one per app by default)

    Returns:
        Configured Starlette application
    """
    config = config or ServerConfig.from_env()
    if server is None:
        from .demo import build_demo_server

        server = build_demo_server()
    if registry is None:
        registry = SessionRegistry()

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        yield
        # End open streams so the server can shut down
        for session_id in await registry.session_ids():
            transport = await registry.remove(session_id)
            if transport is not None:
                await transport.close()
        logger.info("All sessions closed")

    routes: list[Route] = []
    routes.extend(health_routes)
    routes.extend(sse_routes(config))

    middleware = [
        Middleware(
            CORSMiddleware,
            allow_origin_regex=config.cors_origin_regex,
            allow_methods=["*"],
            allow_headers=["*"],
        ),
    ]

    app = Starlette(routes=routes, middleware=middleware, lifespan=lifespan)
    app.state.config = config
    app.state.registry = registry
    app.state.protocol_server = server
    return app
