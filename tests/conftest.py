"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from typing import Any

import pytest

from mcp_sse_runtime.transport import EventSink, SSEServerTransport, TransportConfig


@pytest.fixture(scope="module")
def anyio_backend():
    """Configure anyio to use asyncio backend."""
    return "asyncio"


class RecordingHandler:
    """TransportHandler that records every callback."""

    def __init__(self) -> None:
        self.messages: list[Any] = []
        self.errors: list[Exception] = []
        self.close_count = 0

    def on_message(self, transport: Any, message: Any) -> None:
        self.messages.append(message)

    def on_close(self, transport: Any) -> None:
        self.close_count += 1

    def on_error(self, transport: Any, error: Exception) -> None:
        self.errors.append(error)


class RecordingSink(EventSink):
    """EventSink that also keeps a copy of every chunk written."""

    def __init__(self, fail_after: int | None = None) -> None:
        super().__init__()
        self.written: list[bytes] = []
        self._fail_after = fail_after

    def write(self, data: bytes) -> None:
        if self._fail_after is not None and len(self.written) >= self._fail_after:
            raise OSError("broken pipe")
        super().write(data)
        self.written.append(data)


def parse_frames(data: bytes) -> list[tuple[str, str]]:
    """Split an SSE byte stream into (event, data) pairs, skipping comments."""
    frames = []
    for block in data.decode().split("\n\n"):
        if not block or block.startswith(":"):
            continue
        event_line, data_line = block.split("\n")
        assert event_line.startswith("event: ")
        assert data_line.startswith("data: ")
        frames.append((event_line[len("event: ") :], data_line[len("data: ") :]))
    return frames


@pytest.fixture
def handler() -> RecordingHandler:
    return RecordingHandler()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def transport(sink: RecordingSink, handler: RecordingHandler) -> SSEServerTransport:
    """Transport bound to a recording sink, keepalive disabled."""
    return SSEServerTransport(
        open_sink=lambda: sink,
        handler=handler,
        config=TransportConfig(keepalive_interval=0),
    )
