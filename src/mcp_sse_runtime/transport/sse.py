"""Server-Sent Events (SSE) server transport.

One instance per client connection. The transport owns the session's
server-push stream and accepts the messages the client POSTs back,
correlated by the session id advertised in the initial endpoint event.

Wire format of one event frame:

    event: <name>\\n
    data: <payload>\\n
    \\n
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any
from urllib.parse import quote

from ..protocol.types import (
    JsonRpcMessage,
    MessageValidationError,
    parse_message,
    serialize_message,
)
from .base import (
    EventSink,
    NotConnectedError,
    TransportConfig,
    TransportHandler,
    TransportState,
)

logger = logging.getLogger(__name__)

ENDPOINT_EVENT = "endpoint"
MESSAGE_EVENT = "message"

KEEPALIVE_FRAME = b": keepalive\n\n"

# Characters encodeURI leaves intact in a path
_URI_SAFE = "/:@!$&'()*+,;=?#[]~-._"


def format_event(event: str, data: str) -> bytes:
    """Frame one SSE event."""
    return f"event: {event}\ndata: {data}\n\n".encode()


class OutcomeStatus(str, Enum):
    """Result of handing an inbound message to a transport."""

    ACCEPTED = "accepted"
    REJECTED = "rejected"
    NOT_CONNECTED = "not_connected"


@dataclass
class MessageOutcome:
    """Outcome of handle_incoming, mapped to an HTTP response by the caller."""

    status: OutcomeStatus
    error: str | None = None

    @property
    def accepted(self) -> bool:
        return self.status == OutcomeStatus.ACCEPTED

    @property
    def status_code(self) -> int:
        if self.status == OutcomeStatus.ACCEPTED:
            return 202
        if self.status == OutcomeStatus.NOT_CONNECTED:
            return 500
        return 400

    def to_dict(self) -> dict[str, Any]:
        if self.accepted:
            return {"success": True}
        return {"error": self.error}


class SSEServerTransport:
    """Server-side SSE transport for one session.

    Lifecycle: CREATED -> CONNECTING -> CONNECTED -> CLOSED, with no
    transitions out of CLOSED. Only the transport writes to its sink.
    """

    def __init__(
        self,
        open_sink: Callable[[], EventSink],
        handler: TransportHandler,
        config: TransportConfig | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            open_sink: Called once by start() to bind the response stream
            handler: Receives decoded messages, close and error reports
            config: Transport configuration
        """
        self.config = config or TransportConfig()
        self._open_sink = open_sink
        self._handler = handler
        self._session_id = str(uuid.uuid4())
        self._state = TransportState.CREATED
        self._sink: EventSink | None = None
        self._keepalive_task: asyncio.Task[None] | None = None
        self._close_notified = False

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def state(self) -> TransportState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == TransportState.CONNECTED

    @property
    def endpoint_url(self) -> str:
        """URL the client must POST follow-up messages to."""
        path = quote(self.config.messages_path, safe=_URI_SAFE)
        return f"{path}?sessionId={quote(self._session_id, safe='')}"

    async def start(self) -> None:
        """Bind the outbound sink and announce the message endpoint.

        No-op if already connected.

        Raises:
            NotConnectedError: If the transport was already closed
            Exception: Whatever open_sink raised; reported via on_error first
        """
        if self._state == TransportState.CONNECTED:
            logger.debug(f"[Transport:{self._session_id}] Already started")
            return
        if self._state == TransportState.CLOSED:
            raise NotConnectedError("Transport is closed")

        self._state = TransportState.CONNECTING
        try:
            self._sink = self._open_sink()
        except Exception as e:
            logger.error(f"[Transport:{self._session_id}] Error starting transport: {e}")
            self._state = TransportState.CREATED
            self._handler.on_error(self, e)
            raise

        self._state = TransportState.CONNECTED
        logger.info(f"[Transport:{self._session_id}] Transport connected")

        self._send_event(ENDPOINT_EVENT, self.endpoint_url)

        if self.config.keepalive_interval > 0 and self.is_connected:
            self._keepalive_task = asyncio.create_task(self._keepalive())

    def _send_event(self, event: str, data: str) -> None:
        """Write one event frame; dropped silently if not connected."""
        if not self.is_connected:
            logger.warning(
                f"[Transport:{self._session_id}] Cannot send {event} event, not connected"
            )
            return
        self._write(format_event(event, data))

    def _write(self, frame: bytes) -> None:
        if self._sink is None:
            raise NotConnectedError("Transport has no bound sink")
        try:
            self._sink.write(frame)
        except Exception as e:
            logger.exception(f"[Transport:{self._session_id}] Error sending event: {e}")
            self._state = TransportState.CLOSED
            self._stop_keepalive()
            self._sink.close()
            self._handler.on_error(self, e)

    async def _keepalive(self) -> None:
        """Write a comment frame periodically while connected."""
        while True:
            await asyncio.sleep(self.config.keepalive_interval)
            if not self.is_connected:
                break
            self._write(KEEPALIVE_FRAME)

    def _stop_keepalive(self) -> None:
        task = self._keepalive_task
        self._keepalive_task = None
        if task is not None and task is not _current_task():
            task.cancel()

    async def send(self, message: JsonRpcMessage | dict[str, Any]) -> None:
        """Push a protocol message to the client.

        Raises:
            NotConnectedError: If the transport is not connected
        """
        if not self.is_connected:
            raise NotConnectedError()

        logger.debug(f"[Transport:{self._session_id}] Sending message")
        self._send_event(MESSAGE_EVENT, serialize_message(message))

    async def handle_incoming(self, raw_body: bytes | str | dict[str, Any]) -> MessageOutcome:
        """Validate an inbound message and hand it to the handler.

        Replies are not returned here; they travel over the event stream.
        """
        if not self.is_connected:
            logger.error(f"[Transport:{self._session_id}] Message received while not connected")
            return MessageOutcome(OutcomeStatus.NOT_CONNECTED, "connection not established")

        try:
            message = parse_message(raw_body)
        except MessageValidationError as e:
            logger.warning(f"[Transport:{self._session_id}] Invalid message format: {e}")
            self._handler.on_error(self, e)
            return MessageOutcome(OutcomeStatus.REJECTED, str(e))

        logger.debug(f"[Transport:{self._session_id}] Forwarding message to handler")
        self._handler.on_message(self, message)
        return MessageOutcome(OutcomeStatus.ACCEPTED)

    async def close(self) -> None:
        """Close the transport and end the event stream. Idempotent."""
        if self._close_notified:
            return
        self._close_notified = True

        logger.info(f"[Transport:{self._session_id}] Closing transport")
        self._state = TransportState.CLOSED
        self._stop_keepalive()
        if self._sink is not None:
            self._sink.close()
        self._handler.on_close(self)


def _current_task() -> asyncio.Task[Any] | None:
    with contextlib.suppress(RuntimeError):
        return asyncio.current_task()
    return None
