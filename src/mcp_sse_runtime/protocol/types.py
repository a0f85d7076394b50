"""JSON-RPC 2.0 envelope types.

Defines the message shapes exchanged over a session. Validation is
strict: unknown top-level keys reject the envelope, matching the
MCP schema. Params and results are free-form objects.
"""

from __future__ import annotations

import json
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

JSONRPC_VERSION = "2.0"

# Protocol version advertised by initialize
LATEST_PROTOCOL_VERSION = "2024-11-05"


class EnvelopeModel(BaseModel):
    """Base model for JSON-RPC envelopes."""

    model_config = ConfigDict(extra="forbid")


class JsonRpcRequest(EnvelopeModel):
    """JSON-RPC 2.0 request."""

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    id: str | int
    method: str
    params: dict[str, Any] | None = None


class JsonRpcNotification(EnvelopeModel):
    """JSON-RPC 2.0 notification (no response expected)."""

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    method: str
    params: dict[str, Any] | None = None


class JsonRpcError(BaseModel):
    """JSON-RPC 2.0 error object."""

    code: int
    message: str
    data: Any | None = None


class JsonRpcResponse(EnvelopeModel):
    """JSON-RPC 2.0 success response."""

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    id: str | int
    result: dict[str, Any]


class JsonRpcErrorResponse(EnvelopeModel):
    """JSON-RPC 2.0 error response."""

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    id: str | int | None
    error: JsonRpcError


JsonRpcMessage = Union[JsonRpcRequest, JsonRpcNotification, JsonRpcResponse, JsonRpcErrorResponse]

_message_adapter: TypeAdapter[JsonRpcMessage] = TypeAdapter(JsonRpcMessage)


class JsonRpcErrorCode:
    """Standard JSON-RPC 2.0 error codes."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603


class MessageValidationError(ValueError):
    """Raised when a blob is not a well-formed JSON-RPC envelope."""


def parse_message(raw: bytes | str | dict[str, Any]) -> JsonRpcMessage:
    """Decode and validate a JSON-RPC envelope.

    Args:
        raw: Request body as bytes/str, or an already decoded object

    Returns:
        The validated message model

    Raises:
        MessageValidationError: If the body is not valid JSON or not a
            JSON-RPC 2.0 message
    """
    if isinstance(raw, (bytes, str)):
        try:
            raw = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MessageValidationError(f"Parse error: {e}") from e

    if not isinstance(raw, dict):
        raise MessageValidationError("Invalid message: expected a JSON object")
    if "jsonrpc" not in raw:
        raise MessageValidationError("Invalid message: missing 'jsonrpc' field")

    try:
        return _message_adapter.validate_python(raw)
    except ValidationError as e:
        raise MessageValidationError(f"Invalid message: {e}") from e


def serialize_message(message: JsonRpcMessage | dict[str, Any]) -> str:
    """Serialize a message to compact single-line JSON."""
    if isinstance(message, BaseModel):
        data = message.model_dump(mode="json", exclude_none=True)
        if isinstance(message, JsonRpcErrorResponse):
            # id is required on error responses even when null
            data["id"] = message.id
        message = data
    return json.dumps(message, separators=(",", ":"))


def error_response(
    request_id: str | int | None,
    code: int,
    message: str,
    data: Any | None = None,
) -> JsonRpcErrorResponse:
    """Create a JSON-RPC error response."""
    return JsonRpcErrorResponse(
        id=request_id,
        error=JsonRpcError(code=code, message=message, data=data),
    )
