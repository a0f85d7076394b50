"""Health check and server info endpoints."""

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from .. import __version__


async def health_check(request: Request) -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse({"status": "ok", "sessions": len(request.app.state.registry)})


async def server_info(request: Request) -> JSONResponse:
    """Describe the server and its endpoints."""
    config = request.app.state.config
    return JSONResponse(
        {
            "name": request.app.state.protocol_server.name,
            "version": __version__,
            "description": "Model Context Protocol server over Server-Sent Events",
            "endpoints": {
                "/": "This info",
                config.sse_path: "SSE endpoint for MCP connections",
                config.messages_path: "Message endpoint for MCP clients",
            },
        }
    )


health_routes = [
    Route("/", server_info, methods=["GET"]),
    Route("/health", health_check, methods=["GET"]),
]
