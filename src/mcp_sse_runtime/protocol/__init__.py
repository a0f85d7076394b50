"""JSON-RPC envelope types and the MCP protocol server."""

from .server import McpProtocolError, McpServer
from .types import (
    JsonRpcError,
    JsonRpcErrorCode,
    JsonRpcErrorResponse,
    JsonRpcMessage,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    MessageValidationError,
    parse_message,
    serialize_message,
)

__all__ = [
    "JsonRpcError",
    "JsonRpcErrorCode",
    "JsonRpcErrorResponse",
    "JsonRpcMessage",
    "JsonRpcNotification",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "McpProtocolError",
    "McpServer",
    "MessageValidationError",
    "parse_message",
    "serialize_message",
]
