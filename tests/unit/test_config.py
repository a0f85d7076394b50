"""Tests for server configuration."""

from __future__ import annotations

import pytest

from mcp_sse_runtime.config import DEFAULT_CORS_ORIGIN_REGEX, ServerConfig


class TestServerConfig:
    """Test configuration defaults and environment overrides."""

    def test_defaults(self) -> None:
        config = ServerConfig.from_env({})

        assert config.host == "127.0.0.1"
        assert config.port == 3001
        assert config.sse_path == "/sse"
        assert config.messages_path == "/messages"
        assert config.keepalive_interval == 30.0
        assert config.log_level == "INFO"
        assert config.cors_origin_regex == DEFAULT_CORS_ORIGIN_REGEX

    def test_environment_overrides(self) -> None:
        config = ServerConfig.from_env(
            {
                "MCP_SSE_HOST": "0.0.0.0",
                "MCP_SSE_PORT": "8080",
                "MCP_SSE_PATH": "/events",
                "MCP_SSE_MESSAGES_PATH": "/rpc",
                "MCP_SSE_KEEPALIVE": "0",
                "MCP_SSE_LOG_LEVEL": "debug",
            }
        )

        assert config.host == "0.0.0.0"
        assert config.port == 8080
        assert config.sse_path == "/events"
        assert config.messages_path == "/rpc"
        assert config.keepalive_interval == 0.0
        assert config.log_level == "DEBUG"

    def test_generic_port_variable(self) -> None:
        """PORT is honoured, but MCP_SSE_PORT takes precedence."""
        assert ServerConfig.from_env({"PORT": "9000"}).port == 9000
        assert ServerConfig.from_env({"PORT": "9000", "MCP_SSE_PORT": "9001"}).port == 9001

    def test_reads_process_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MCP_SSE_MESSAGES_PATH", "/inbox")

        assert ServerConfig.from_env().messages_path == "/inbox"

    @pytest.mark.parametrize(
        "env",
        [{"MCP_SSE_PORT": "http"}, {"MCP_SSE_KEEPALIVE": "often"}],
    )
    def test_invalid_numbers(self, env: dict[str, str]) -> None:
        with pytest.raises(ValueError):
            ServerConfig.from_env(env)

    def test_transport_config(self) -> None:
        config = ServerConfig(messages_path="/rpc", keepalive_interval=5.0)

        transport_config = config.transport_config()

        assert transport_config.messages_path == "/rpc"
        assert transport_config.keepalive_interval == 5.0
