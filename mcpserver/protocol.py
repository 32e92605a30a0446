"""Wire-level types, error classes and JSON-RPC envelopes for the MCP server."""

from __future__ import annotations

import dataclasses
import enum
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from mcpserver.uritemplate import URITemplate

JSONRPC_VERSION = "2.0"
LATEST_PROTOCOL_VERSION = "2024-11-05"

NOTIFICATION_RESOURCES_LIST_CHANGED = "notifications/resources/list_changed"
NOTIFICATION_PROMPTS_LIST_CHANGED = "notifications/prompts/list_changed"
NOTIFICATION_TOOLS_LIST_CHANGED = "notifications/tools/list_changed"


class ErrorCode(enum.IntEnum):
    """JSON-RPC and MCP error codes."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603
    RESOURCE_NOT_FOUND = -32002


class LoggingLevel(str, enum.Enum):
    """Log severities a client may request."""

    DEBUG = "debug"
    INFO = "info"
    NOTICE = "notice"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"
    ALERT = "alert"
    EMERGENCY = "emergency"


class MCPError(Exception):
    """Base class for all server errors."""

    default_message = "mcp error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail if detail is not None else type(self).default_message)


class UnsupportedError(MCPError):
    """A capability the request needs was not enabled on the server."""

    default_message = "not supported"

    def __init__(self, feature: str | None = None) -> None:
        self.feature = feature
        super().__init__(f"{feature} not supported" if feature else None)


class ToolNotFoundError(MCPError):
    default_message = "tool not found"

    def __init__(self, name: str | None = None) -> None:
        self.name = name
        super().__init__(
            f"tool '{name}' not found: {self.default_message}" if name is not None else None
        )


class PromptNotFoundError(MCPError):
    default_message = "prompt not found"

    def __init__(self, name: str | None = None) -> None:
        self.name = name
        super().__init__(
            f"prompt '{name}' not found: {self.default_message}" if name is not None else None
        )


class ResourceNotFoundError(MCPError):
    default_message = "resource not found"

    def __init__(self, uri: str | None = None) -> None:
        self.uri = uri
        super().__init__(
            f"handler not found for resource URI '{uri}': {self.default_message}"
            if uri is not None
            else None
        )


class SessionExistsError(MCPError):
    default_message = "session already exists"


class SessionNotFoundError(MCPError):
    default_message = "session not found"


class SessionNotInitializedError(MCPError):
    default_message = "session not properly initialized"


class SessionDoesNotSupportToolsError(MCPError):
    default_message = "session does not support per-session tools"


class SessionDoesNotSupportLoggingError(MCPError):
    default_message = "session does not support setting logging level"


class NotificationNotInitializedError(MCPError):
    default_message = "notification not initialized"


class NotificationChannelBlockedError(MCPError):
    default_message = "notification channel full or blocked"


class UnparsableMessageError(MCPError):
    """Raised when a request body cannot be decoded for its method."""

    def __init__(self, message: Any, method: str, cause: BaseException | str) -> None:
        self.message = message
        self.method = method
        self.cause = cause
        super().__init__(f"unparsable {method} request: {cause}")
        if isinstance(cause, BaseException):
            self.__cause__ = cause


class RequestError(MCPError):
    """An error tied to a request id that converts to a JSON-RPC error."""

    def __init__(self, request_id: Any, code: int, error: BaseException) -> None:
        self.request_id = request_id
        self.code = code
        self.error = error
        super().__init__(f"request error: {error}")
        self.__cause__ = error

    def to_jsonrpc_error(self) -> JSONRPCError:
        return JSONRPCError(id=self.request_id, code=self.code, message=str(self.error))


def _to_wire(value: Any) -> Any:
    """Convert a result value into plain JSON-compatible data."""
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict) and not isinstance(value, type):
        return to_dict()
    if isinstance(value, enum.Enum):
        return value.value
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _to_wire(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Mapping):
        return {str(k): _to_wire(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_wire(v) for v in value]
    return value


def _default_input_schema() -> dict[str, Any]:
    return {"type": "object", "properties": {}}


@dataclass
class Tool:
    name: str
    description: str = ""
    input_schema: dict[str, Any] = field(default_factory=_default_input_schema)
    annotations: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "inputSchema": _to_wire(self.input_schema),
        }
        if self.annotations is not None:
            data["annotations"] = _to_wire(self.annotations)
        return data


@dataclass
class ServerTool:
    """A tool together with the callable that serves it."""

    tool: Tool
    handler: Callable[..., Any] | None = None


@dataclass
class Resource:
    uri: str
    name: str
    description: str = ""
    mime_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"uri": self.uri, "name": self.name}
        if self.description:
            data["description"] = self.description
        if self.mime_type:
            data["mimeType"] = self.mime_type
        return data


@dataclass
class ResourceTemplate:
    uri_template: URITemplate
    name: str
    description: str = ""
    mime_type: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.uri_template, str):
            self.uri_template = URITemplate(self.uri_template)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"uriTemplate": self.uri_template.raw, "name": self.name}
        if self.description:
            data["description"] = self.description
        if self.mime_type:
            data["mimeType"] = self.mime_type
        return data


@dataclass
class PromptArgument:
    name: str
    description: str = ""
    required: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name}
        if self.description:
            data["description"] = self.description
        if self.required:
            data["required"] = True
        return data


@dataclass
class Prompt:
    name: str
    description: str = ""
    arguments: list[PromptArgument] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name}
        if self.description:
            data["description"] = self.description
        if self.arguments:
            data["arguments"] = [a.to_dict() for a in self.arguments]
        return data


@dataclass
class JSONRPCResponse:
    id: Any
    result: Any

    def to_dict(self) -> dict[str, Any]:
        return {"jsonrpc": JSONRPC_VERSION, "id": self.id, "result": _to_wire(self.result)}


@dataclass
class JSONRPCError:
    id: Any
    code: int
    message: str
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": int(self.code), "message": self.message}
        if self.data is not None:
            error["data"] = _to_wire(self.data)
        return {"jsonrpc": JSONRPC_VERSION, "id": self.id, "error": error}


@dataclass
class JSONRPCNotification:
    method: str
    params: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "method": self.method}
        if self.params is not None:
            data["params"] = _to_wire(self.params)
        return data


def create_response(request_id: Any, result: Any) -> JSONRPCResponse:
    """Build a successful JSON-RPC response."""
    return JSONRPCResponse(id=request_id, result=result)


def create_error_response(request_id: Any, code: int, message: str) -> JSONRPCError:
    """Build a JSON-RPC error response."""
    return JSONRPCError(id=request_id, code=code, message=message)