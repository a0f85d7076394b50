"""Transport abstraction base classes.

Defines the contracts shared by the server-push transport and the
protocol layer that drives it:
- TransportState: lifecycle states of one session's transport
- TransportHandler: the upward interface injected at creation time
- EventSink: the single-writer byte sink feeding a streaming response
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .sse import SSEServerTransport


class TransportError(Exception):
    """Base class for transport failures."""


class NotConnectedError(TransportError):
    """Operation attempted on a transport that is not connected."""

    def __init__(self, message: str = "Not connected") -> None:
        super().__init__(message)


class SinkClosedError(TransportError):
    """Write attempted on a sink that has already been closed."""


class TransportState(str, Enum):
    """Lifecycle states of a streaming transport."""

    CREATED = "created"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


@runtime_checkable
class TransportHandler(Protocol):
    """Receiver for everything a transport reports upward.

    Implemented by the protocol-dispatch layer and passed to the
    transport constructor. Callbacks are invoked synchronously; long
    running work must be scheduled by the handler itself.
    """

    def on_message(self, transport: SSEServerTransport, message: Any) -> None:
        """Called with each decoded inbound message."""
        ...

    def on_close(self, transport: SSEServerTransport) -> None:
        """Called once when the transport closes."""
        ...

    def on_error(self, transport: SSEServerTransport, error: Exception) -> None:
        """Called on setup, write, or decode failures."""
        ...


class EventSink:
    """Append-only byte sink consumed by exactly one streaming response.

    The transport holding the sink is its only writer. Chunks are
    yielded to the reader in write order; iteration ends once the sink
    is closed and drained.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, data: bytes) -> None:
        """Append a chunk.

        Raises:
            SinkClosedError: If the sink was closed
        """
        if self._closed:
            raise SinkClosedError("Sink is closed")
        self._queue.put_nowait(data)

    def close(self) -> None:
        """Close the sink. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)

    async def __aiter__(self) -> AsyncIterator[bytes]:
        while True:
            chunk = await self._queue.get()
            if chunk is None:
                break
            yield chunk


@dataclass
class TransportConfig:
    """Transport configuration."""

    # Path advertised in the endpoint event for inbound POSTs
    messages_path: str = "/messages"

    # Seconds between keepalive comments (0 disables)
    keepalive_interval: float = 30.0
