"""Server configuration.

Values come from defaults, then environment variables, then CLI options.

Environment variables:
    MCP_SSE_HOST            Bind address
    PORT / MCP_SSE_PORT     Bind port (MCP_SSE_PORT wins)
    MCP_SSE_PATH            Path of the SSE stream endpoint
    MCP_SSE_MESSAGES_PATH   Path clients POST messages to
    MCP_SSE_KEEPALIVE       Seconds between keepalive comments (0 disables)
    MCP_SSE_LOG_LEVEL       Logging level name
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from .transport.base import TransportConfig

# Browser origins allowed by CORS: local development servers on any port
DEFAULT_CORS_ORIGIN_REGEX = r"https?://(localhost|127\.0\.0\.1)(:\d+)?"


@dataclass
class ServerConfig:
    """HTTP server configuration."""

    host: str = "127.0.0.1"
    port: int = 3001
    sse_path: str = "/sse"
    messages_path: str = "/messages"
    keepalive_interval: float = 30.0
    log_level: str = "INFO"
    cors_origin_regex: str = DEFAULT_CORS_ORIGIN_REGEX

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ServerConfig:
        """Build a config from environment variables.

        Raises:
            ValueError: If a numeric variable cannot be parsed
        """
        env = os.environ if environ is None else environ
        config = cls()

        if "MCP_SSE_HOST" in env:
            config.host = env["MCP_SSE_HOST"]

        port = env.get("MCP_SSE_PORT") or env.get("PORT")
        if port:
            try:
                config.port = int(port)
            except ValueError:
                raise ValueError(f"Invalid port: {port!r}") from None

        if "MCP_SSE_PATH" in env:
            config.sse_path = env["MCP_SSE_PATH"]
        if "MCP_SSE_MESSAGES_PATH" in env:
            config.messages_path = env["MCP_SSE_MESSAGES_PATH"]

        keepalive = env.get("MCP_SSE_KEEPALIVE")
        if keepalive:
            try:
                config.keepalive_interval = float(keepalive)
            except ValueError:
                raise ValueError(f"Invalid keepalive interval: {keepalive!r}") from None

        if "MCP_SSE_LOG_LEVEL" in env:
            config.log_level = env["MCP_SSE_LOG_LEVEL"].upper()

        return config

    def transport_config(self) -> TransportConfig:
        return TransportConfig(
            messages_path=self.messages_path,
            keepalive_interval=self.keepalive_interval,
        )
