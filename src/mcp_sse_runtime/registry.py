"""Session registry.

Maps session ids to live transports so inbound POSTs can be routed to
the stream that owns the session. One registry is created per
application and shared by its request handlers.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from .transport.base import TransportError

if TYPE_CHECKING:
    from .transport.sse import SSEServerTransport

logger = logging.getLogger(__name__)


class SessionExistsError(TransportError):
    """A transport is already registered under this session id."""


class SessionRegistry:
    """Concurrency-safe mapping of session id to transport.

    The registry holds non-owning references; transports are closed by
    the routing layer, which then removes them here.
    """

    def __init__(self) -> None:
        self._transports: dict[str, SSEServerTransport] = {}
        self._lock = asyncio.Lock()

    async def register(self, session_id: str, transport: SSEServerTransport) -> None:
        """Register a transport.

        Raises:
            SessionExistsError: If the id is already registered
        """
        async with self._lock:
            if session_id in self._transports:
                raise SessionExistsError(f"Session already registered: {session_id}")
            self._transports[session_id] = transport
            count = len(self._transports)
        logger.info(f"Registered session {session_id} ({count} active)")

    async def lookup(self, session_id: str) -> SSEServerTransport | None:
        """Get the transport for a session, or None if unknown."""
        async with self._lock:
            return self._transports.get(session_id)

    async def remove(self, session_id: str) -> SSEServerTransport | None:
        """Remove a session. Returns the removed transport, if any.

        Safe to call for ids that are unknown or already removed.
        """
        async with self._lock:
            transport = self._transports.pop(session_id, None)
        if transport is not None:
            logger.info(f"Removed session {session_id}")
        return transport

    async def session_ids(self) -> list[str]:
        async with self._lock:
            return list(self._transports)

    def __len__(self) -> int:
        return len(self._transports)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._transports
