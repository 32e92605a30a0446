"""Handlers for each MCP request method.

Every handler takes the server, the request id, the decoded ``params`` object
and the calling session (or None). It returns the result object or raises
:class:`~mcpserver.protocol.RequestError`.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from mcpserver.pagination import paginate
from mcpserver.protocol import (
    LATEST_PROTOCOL_VERSION,
    ErrorCode,
    LoggingLevel,
    MCPError,
    PromptNotFoundError,
    RequestError,
    ResourceNotFoundError,
    ServerTool,
    SessionDoesNotSupportLoggingError,
    SessionNotInitializedError,
    Tool,
    ToolNotFoundError,
)
from mcpserver.registry import Registry
from mcpserver.session import LoggingSession, Session, ToolSession


def _params(params: Mapping[str, Any] | None) -> dict[str, Any]:
    return dict(params) if params else {}


def _page(server: Registry, request_id: Any, params: dict[str, Any], items: list[Any]):
    try:
        return paginate(items, params.get("cursor") or "", server.pagination_limit)
    except ValueError as exc:
        raise RequestError(request_id, ErrorCode.INVALID_PARAMS, exc) from exc


def _listing(key: str, items: list[Any], next_cursor: str) -> dict[str, Any]:
    result: dict[str, Any] = {key: items}
    if next_cursor:
        result["nextCursor"] = next_cursor
    return result


def _call(request_id: Any, handler: Any, request: dict[str, Any]) -> Any:
    try:
        return handler(request)
    except Exception as exc:
        raise RequestError(request_id, ErrorCode.INTERNAL_ERROR, exc) from exc


def _flags(**flags: bool) -> dict[str, bool]:
    return {name: True for name, value in flags.items() if value}


def handle_initialize(
    server: Registry, request_id: Any, params: Mapping[str, Any] | None, session: Session | None
) -> dict[str, Any]:
    capabilities: dict[str, Any] = {}
    if server.resource_capabilities is not None:
        caps = server.resource_capabilities
        capabilities["resources"] = _flags(subscribe=caps.subscribe, listChanged=caps.list_changed)
    if server.prompt_capabilities is not None:
        capabilities["prompts"] = _flags(listChanged=server.prompt_capabilities.list_changed)
    if server.tool_capabilities is not None:
        capabilities["tools"] = _flags(listChanged=server.tool_capabilities.list_changed)
    if server.logging:
        capabilities["logging"] = {}

    result: dict[str, Any] = {
        "protocolVersion": LATEST_PROTOCOL_VERSION,
        "capabilities": capabilities,
        "serverInfo": {"name": server.name, "version": server.version},
    }
    if server.instructions:
        result["instructions"] = server.instructions
    if session is not None:
        session.initialize()
    return result


def handle_ping(
    server: Registry, request_id: Any, params: Mapping[str, Any] | None, session: Session | None
) -> dict[str, Any]:
    return {}


def handle_set_level(
    server: Registry, request_id: Any, params: Mapping[str, Any] | None, session: Session | None
) -> dict[str, Any]:
    if session is None or not session.initialized:
        raise RequestError(request_id, ErrorCode.INTERNAL_ERROR, SessionNotInitializedError())
    if not isinstance(session, LoggingSession):
        raise RequestError(
            request_id, ErrorCode.INTERNAL_ERROR, SessionDoesNotSupportLoggingError()
        )
    level = _params(params).get("level")
    try:
        valid = LoggingLevel(level)
    except ValueError as exc:
        raise RequestError(
            request_id, ErrorCode.INVALID_PARAMS, MCPError(f"invalid logging level '{level}'")
        ) from exc
    session.set_log_level(valid)
    return {}


def handle_list_resources(
    server: Registry, request_id: Any, params: Mapping[str, Any] | None, session: Session | None
) -> dict[str, Any]:
    with server.lock:
        resources = [entry.resource for entry in server.resource_entries.values()]
    resources.sort(key=lambda r: r.name)
    page, next_cursor = _page(server, request_id, _params(params), resources)
    return _listing("resources", page, next_cursor)


def handle_list_resource_templates(
    server: Registry, request_id: Any, params: Mapping[str, Any] | None, session: Session | None
) -> dict[str, Any]:
    with server.lock:
        templates = [entry.template for entry in server.template_entries.values()]
    templates.sort(key=lambda t: t.name)
    page, next_cursor = _page(server, request_id, _params(params), templates)
    return _listing("resourceTemplates", page, next_cursor)


def handle_read_resource(
    server: Registry, request_id: Any, params: Mapping[str, Any] | None, session: Session | None
) -> dict[str, Any]:
    request = _params(params)
    uri = request.get("uri", "")
    handler = None
    with server.lock:
        entry = server.resource_entries.get(uri)
        if entry is not None:
            handler = entry.handler
        else:
            for template_entry in server.template_entries.values():
                template = template_entry.template.uri_template
                if template.matches(uri):
                    handler = template_entry.handler
                    request["arguments"] = template.match(uri) or {}
                    break
    if handler is None:
        raise RequestError(request_id, ErrorCode.RESOURCE_NOT_FOUND, ResourceNotFoundError(uri))
    return {"contents": _call(request_id, handler, request)}


def handle_list_prompts(
    server: Registry, request_id: Any, params: Mapping[str, Any] | None, session: Session | None
) -> dict[str, Any]:
    with server.lock:
        prompts = list(server.prompts.values())
    prompts.sort(key=lambda p: p.name)
    page, next_cursor = _page(server, request_id, _params(params), prompts)
    return _listing("prompts", page, next_cursor)


def handle_get_prompt(
    server: Registry, request_id: Any, params: Mapping[str, Any] | None, session: Session | None
) -> Any:
    request = _params(params)
    name = request.get("name", "")
    with server.lock:
        handler = server.prompt_handlers.get(name)
    if handler is None:
        raise RequestError(request_id, ErrorCode.INVALID_PARAMS, PromptNotFoundError(name))
    return _call(request_id, handler, request)


def _session_tools(session: Session | None) -> dict[str, ServerTool] | None:
    if isinstance(session, ToolSession):
        return session.get_tools()
    return None


def handle_list_tools(
    server: Registry, request_id: Any, params: Mapping[str, Any] | None, session: Session | None
) -> dict[str, Any]:
    with server.lock:
        by_name: dict[str, Tool] = {name: entry.tool for name, entry in server.tools.items()}
        filters = list(server.tool_filters)
    session_tools = _session_tools(session)
    if session_tools is not None:
        by_name.update((name, entry.tool) for name, entry in session_tools.items())
    tools = sorted(by_name.values(), key=lambda t: t.name)
    for tool_filter in filters:
        tools = list(tool_filter(session, tools) or [])
    page, next_cursor = _page(server, request_id, _params(params), tools)
    return _listing("tools", page, next_cursor)


def handle_call_tool(
    server: Registry, request_id: Any, params: Mapping[str, Any] | None, session: Session | None
) -> Any:
    request = _params(params)
    name = request.get("name", "")
    entry = None
    session_tools = _session_tools(session)
    if session_tools is not None:
        entry = session_tools.get(name)
    with server.lock:
        if entry is None:
            entry = server.tools.get(name)
        middlewares = list(server.tool_middlewares)
    if entry is None:
        raise RequestError(request_id, ErrorCode.INVALID_PARAMS, ToolNotFoundError(name))
    handler = entry.handler
    for middleware in reversed(middlewares):
        handler = middleware(handler)
    return _call(request_id, handler, request)