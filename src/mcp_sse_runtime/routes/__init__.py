"""HTTP routes."""

from .health import health_routes
from .sse import message_endpoint, sse_endpoint, sse_routes

__all__ = [
    "health_routes",
    "message_endpoint",
    "sse_endpoint",
    "sse_routes",
]
