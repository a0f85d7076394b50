"""MCP protocol server.

Dispatches JSON-RPC requests arriving over a transport to registered
tools, resources, and prompts, and pushes the responses back over the
same transport. Implements the TransportHandler interface, so one
server instance can serve any number of sessions.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ValidationError

from ..transport.base import NotConnectedError
from .types import (
    LATEST_PROTOCOL_VERSION,
    JsonRpcErrorCode,
    JsonRpcErrorResponse,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    error_response,
)

if TYPE_CHECKING:
    from ..transport.sse import SSEServerTransport

logger = logging.getLogger(__name__)

SUPPORTED_PROTOCOL_VERSIONS = (LATEST_PROTOCOL_VERSION, "2024-10-07")

# MCP-specific error code
RESOURCE_NOT_FOUND = -32002

MethodHandler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]


class McpProtocolError(Exception):
    """Error reported to the client as a JSON-RPC error response."""

    def __init__(self, code: int, message: str, data: Any | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data


@dataclass
class ToolDefinition:
    """A callable tool exposed via tools/list and tools/call."""

    name: str
    handler: Callable[..., Any]
    args_model: type[BaseModel] | None = None
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        schema = self.args_model.model_json_schema() if self.args_model else {"type": "object"}
        data: dict[str, Any] = {"name": self.name, "inputSchema": schema}
        if self.description:
            data["description"] = self.description
        return data


@dataclass
class ResourceDefinition:
    """A static resource or a URI template such as users://{userId}/profile."""

    name: str
    uri: str
    handler: Callable[..., Any]
    pattern: re.Pattern[str] | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        if "{" in self.uri:
            self.pattern = _compile_template(self.uri)

    @property
    def is_template(self) -> bool:
        return self.pattern is not None

    def match(self, uri: str) -> dict[str, str] | None:
        """Return template variables if the URI matches this resource."""
        if self.pattern is None:
            return {} if uri == self.uri else None
        m = self.pattern.fullmatch(uri)
        return m.groupdict() if m else None


@dataclass
class PromptDefinition:
    """A prompt template exposed via prompts/list and prompts/get."""

    name: str
    handler: Callable[..., Any]
    args_model: type[BaseModel] | None = None
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name}
        if self.description:
            data["description"] = self.description
        if self.args_model is not None:
            data["arguments"] = [
                {"name": name, "required": info.is_required()}
                for name, info in self.args_model.model_fields.items()
            ]
        return data


def _compile_template(template: str) -> re.Pattern[str]:
    parts = re.split(r"\{(\w+)\}", template)
    regex = ""
    for i, part in enumerate(parts):
        # Odd indices are variable names
        regex += f"(?P<{part}>[^/]+)" if i % 2 else re.escape(part)
    return re.compile(regex)


async def _invoke(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    result = fn(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result


def _validate_args(model: type[BaseModel] | None, arguments: Any) -> list[Any]:
    if model is None:
        return []
    try:
        return [model.model_validate(arguments or {})]
    except ValidationError as e:
        raise McpProtocolError(JsonRpcErrorCode.INVALID_PARAMS, f"Invalid arguments: {e}") from e


class McpServer:
    """Protocol server for MCP over any session transport.

    Usage:
        server = McpServer("my-server", "1.0.0")
        server.add_tool("echo", lambda args: args.text, args_model=EchoArgs)
    """

    def __init__(self, name: str, version: str) -> None:
        self.name = name
        self.version = version
        self._tools: dict[str, ToolDefinition] = {}
        self._resources: dict[str, ResourceDefinition] = {}
        self._prompts: dict[str, PromptDefinition] = {}
        self._initialized: set[str] = set()
        self._tasks: set[asyncio.Task[None]] = set()
        self._methods: dict[str, MethodHandler] = {
            "initialize": self._initialize,
            "ping": self._ping,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
            "resources/list": self._list_resources,
            "resources/templates/list": self._list_resource_templates,
            "resources/read": self._read_resource,
            "prompts/list": self._list_prompts,
            "prompts/get": self._get_prompt,
        }

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def add_tool(
        self,
        name: str,
        handler: Callable[..., Any],
        args_model: type[BaseModel] | None = None,
        description: str = "",
    ) -> None:
        """Register a tool. The handler receives a validated args_model instance."""
        self._tools[name] = ToolDefinition(name, handler, args_model, description)

    def add_resource(self, name: str, uri: str, handler: Callable[..., Any]) -> None:
        """Register a resource.

        The handler is called as handler(uri, **variables), where variables
        are the {placeholders} captured from a template URI.
        """
        self._resources[name] = ResourceDefinition(name, uri, handler)

    def add_prompt(
        self,
        name: str,
        handler: Callable[..., Any],
        args_model: type[BaseModel] | None = None,
        description: str = "",
    ) -> None:
        """Register a prompt. The handler receives a validated args_model instance."""
        self._prompts[name] = PromptDefinition(name, handler, args_model, description)

    def is_initialized(self, session_id: str) -> bool:
        return session_id in self._initialized

    # -------------------------------------------------------------------------
    # TransportHandler
    # -------------------------------------------------------------------------

    def on_message(self, transport: SSEServerTransport, message: Any) -> None:
        if isinstance(message, JsonRpcRequest):
            task = asyncio.create_task(self._respond(transport, message))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        elif isinstance(message, JsonRpcNotification):
            logger.debug(f"Notification {message.method} from {transport.session_id}")
            if message.method == "notifications/initialized":
                self._initialized.add(transport.session_id)
        else:
            logger.debug(f"Ignoring client response {message.id} from {transport.session_id}")

    def on_close(self, transport: SSEServerTransport) -> None:
        self._initialized.discard(transport.session_id)
        logger.info(f"Session {transport.session_id} closed")

    def on_error(self, transport: SSEServerTransport, error: Exception) -> None:
        logger.warning(f"Transport error on session {transport.session_id}: {error}")

    async def _respond(self, transport: SSEServerTransport, request: JsonRpcRequest) -> None:
        response = await self.handle_request(request)
        try:
            await transport.send(response)
        except NotConnectedError:
            logger.warning(
                f"Dropping response to {request.method} ({request.id}): "
                f"session {transport.session_id} closed"
            )

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    async def handle_request(
        self, request: JsonRpcRequest
    ) -> JsonRpcResponse | JsonRpcErrorResponse:
        """Run a request against the registered method table."""
        method = self._methods.get(request.method)
        if method is None:
            return error_response(
                request.id,
                JsonRpcErrorCode.METHOD_NOT_FOUND,
                f"Method not found: {request.method}",
            )

        try:
            result = await method(request.params or {})
        except McpProtocolError as e:
            return error_response(request.id, e.code, e.message, e.data)
        except Exception as e:
            logger.exception(f"Error handling request {request.method}: {e}")
            return error_response(request.id, JsonRpcErrorCode.INTERNAL_ERROR, str(e))

        return JsonRpcResponse(id=request.id, result=result)

    async def _initialize(self, params: dict[str, Any]) -> dict[str, Any]:
        requested = params.get("protocolVersion")
        version = requested if requested in SUPPORTED_PROTOCOL_VERSIONS else LATEST_PROTOCOL_VERSION

        capabilities: dict[str, Any] = {}
        if self._tools:
            capabilities["tools"] = {}
        if self._resources:
            capabilities["resources"] = {}
        if self._prompts:
            capabilities["prompts"] = {}

        return {
            "protocolVersion": version,
            "capabilities": capabilities,
            "serverInfo": {"name": self.name, "version": self.version},
        }

    async def _ping(self, params: dict[str, Any]) -> dict[str, Any]:
        return {}

    async def _list_tools(self, params: dict[str, Any]) -> dict[str, Any]:
        return {"tools": [tool.to_dict() for tool in self._tools.values()]}

    async def _call_tool(self, params: dict[str, Any]) -> dict[str, Any]:
        name = params.get("name")
        tool = self._tools.get(name) if isinstance(name, str) else None
        if tool is None:
            raise McpProtocolError(JsonRpcErrorCode.INVALID_PARAMS, f"Unknown tool: {name}")

        args = _validate_args(tool.args_model, params.get("arguments"))
        result = await _invoke(tool.handler, *args)
        if isinstance(result, str):
            return {"content": [{"type": "text", "text": result}]}
        return result

    async def _list_resources(self, params: dict[str, Any]) -> dict[str, Any]:
        return {
            "resources": [
                {"uri": r.uri, "name": r.name}
                for r in self._resources.values()
                if not r.is_template
            ]
        }

    async def _list_resource_templates(self, params: dict[str, Any]) -> dict[str, Any]:
        return {
            "resourceTemplates": [
                {"uriTemplate": r.uri, "name": r.name}
                for r in self._resources.values()
                if r.is_template
            ]
        }

    async def _read_resource(self, params: dict[str, Any]) -> dict[str, Any]:
        uri = params.get("uri")
        if not isinstance(uri, str):
            raise McpProtocolError(JsonRpcErrorCode.INVALID_PARAMS, "Missing 'uri'")

        # Static resources take precedence over templates
        ordered = sorted(self._resources.values(), key=lambda r: r.is_template)
        for resource in ordered:
            variables = resource.match(uri)
            if variables is None:
                continue
            result = await _invoke(resource.handler, uri, **variables)
            if isinstance(result, str):
                return {"contents": [{"uri": uri, "text": result}]}
            return result

        raise McpProtocolError(RESOURCE_NOT_FOUND, f"Resource not found: {uri}")

    async def _list_prompts(self, params: dict[str, Any]) -> dict[str, Any]:
        return {"prompts": [prompt.to_dict() for prompt in self._prompts.values()]}

    async def _get_prompt(self, params: dict[str, Any]) -> dict[str, Any]:
        name = params.get("name")
        prompt = self._prompts.get(name) if isinstance(name, str) else None
        if prompt is None:
            raise McpProtocolError(JsonRpcErrorCode.INVALID_PARAMS, f"Unknown prompt: {name}")

        args = _validate_args(prompt.args_model, params.get("arguments"))
        result = await _invoke(prompt.handler, *args)
        if isinstance(result, str):
            return {
                "messages": [
                    {"role": "user", "content": {"type": "text", "text": result}},
                ]
            }
        return result
