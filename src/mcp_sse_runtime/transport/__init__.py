"""Transport layer.

Server-push event streaming over SSE with inbound messages delivered
by separate HTTP POSTs, correlated by session id.
"""

from .base import (
    EventSink,
    NotConnectedError,
    SinkClosedError,
    TransportConfig,
    TransportError,
    TransportHandler,
    TransportState,
)
from .sse import MessageOutcome, OutcomeStatus, SSEServerTransport, format_event

__all__ = [
    "EventSink",
    "MessageOutcome",
    "NotConnectedError",
    "OutcomeStatus",
    "SSEServerTransport",
    "SinkClosedError",
    "TransportConfig",
    "TransportError",
    "TransportHandler",
    "TransportState",
    "format_event",
]
