"""Registration of tools, resources, prompts and client sessions."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from mcpserver.hooks import Hooks
from mcpserver.protocol import (
    NOTIFICATION_PROMPTS_LIST_CHANGED,
    NOTIFICATION_RESOURCES_LIST_CHANGED,
    NOTIFICATION_TOOLS_LIST_CHANGED,
    JSONRPCNotification,
    MCPError,
    NotificationChannelBlockedError,
    NotificationNotInitializedError,
    Prompt,
    Resource,
    ResourceTemplate,
    ServerTool,
    SessionDoesNotSupportToolsError,
    SessionExistsError,
    SessionNotFoundError,
    SessionNotInitializedError,
    Tool,
)
from mcpserver.session import Session, ToolSession

ToolHandler = Callable[[Any], Any]
ToolMiddleware = Callable[[ToolHandler], ToolHandler]
ToolFilter = Callable[[Any, list[Tool]], list[Tool]]
ResourceHandler = Callable[[Any], Any]
PromptHandler = Callable[[Any], Any]
NotificationHandler = Callable[[Any, JSONRPCNotification], None]


@dataclass
class ResourceCapabilities:
    subscribe: bool = False
    list_changed: bool = False


@dataclass
class PromptCapabilities:
    list_changed: bool = False


@dataclass
class ToolCapabilities:
    list_changed: bool = False


@dataclass
class _ResourceEntry:
    resource: Resource
    handler: ResourceHandler


@dataclass
class _TemplateEntry:
    template: ResourceTemplate
    handler: ResourceHandler


def _request_name(request: Any) -> Any:
    if isinstance(request, Mapping):
        return request.get("name", "")
    return getattr(request, "name", "")


def _recovery_middleware(next_handler: ToolHandler) -> ToolHandler:
    """Turn unexpected exceptions from a tool handler into a uniform error."""

    def handler(request: Any) -> Any:
        try:
            return next_handler(request)
        except MCPError:
            raise
        except Exception as exc:
            raise RuntimeError(
                f"panic recovered in {_request_name(request)} tool handler: {exc}"
            ) from exc

    return handler


class Registry:
    """Holds what a server offers and the sessions connected to it."""

    def __init__(
        self,
        name: str,
        version: str,
        *,
        instructions: str = "",
        resources: ResourceCapabilities | None = None,
        prompts: PromptCapabilities | None = None,
        tools: ToolCapabilities | None = None,
        logging: bool = False,
        pagination_limit: int | None = None,
        hooks: Hooks | None = None,
        recovery: bool = False,
    ) -> None:
        self.name = name
        self.version = version
        self.instructions = instructions
        self.resource_capabilities = resources
        self.prompt_capabilities = prompts
        self.tool_capabilities = tools
        self.logging = logging
        self.pagination_limit = pagination_limit
        self.hooks = hooks

        self.lock = threading.RLock()
        self.resource_entries: dict[str, _ResourceEntry] = {}
        self.template_entries: dict[str, _TemplateEntry] = {}
        self.prompts: dict[str, Prompt] = {}
        self.prompt_handlers: dict[str, PromptHandler] = {}
        self.tools: dict[str, ServerTool] = {}
        self.tool_middlewares: list[ToolMiddleware] = []
        self.tool_filters: list[ToolFilter] = []
        self.notification_handlers: dict[str, NotificationHandler] = {}
        self.sessions: dict[str, Session] = {}

        if recovery:
            self.add_tool_middleware(_recovery_middleware)

    # -- configuration -------------------------------------------------

    def add_tool_middleware(self, middleware: ToolMiddleware) -> None:
        """Append a wrapper applied around every tool handler call."""
        with self.lock:
            self.tool_middlewares.append(middleware)

    def add_tool_filter(self, tool_filter: ToolFilter) -> None:
        """Append a filter applied to the tool list before it is returned."""
        with self.lock:
            self.tool_filters.append(tool_filter)

    # -- resources -----------------------------------------------------

    def _ensure_resource_capabilities(self) -> ResourceCapabilities:
        with self.lock:
            if self.resource_capabilities is None:
                self.resource_capabilities = ResourceCapabilities()
            return self.resource_capabilities

    def add_resource(self, resource: Resource, handler: ResourceHandler) -> None:
        caps = self._ensure_resource_capabilities()
        with self.lock:
            self.resource_entries[resource.uri] = _ResourceEntry(resource, handler)
        if caps.list_changed:
            self.send_notification_to_all_clients(NOTIFICATION_RESOURCES_LIST_CHANGED, None)

    def remove_resource(self, uri: str) -> None:
        with self.lock:
            existed = self.resource_entries.pop(uri, None) is not None
        caps = self.resource_capabilities
        if existed and caps is not None and caps.list_changed:
            self.send_notification_to_all_clients(NOTIFICATION_RESOURCES_LIST_CHANGED, None)

    def add_resource_template(self, template: ResourceTemplate, handler: ResourceHandler) -> None:
        caps = self._ensure_resource_capabilities()
        with self.lock:
            self.template_entries[template.uri_template.raw] = _TemplateEntry(template, handler)
        if caps.list_changed:
            self.send_notification_to_all_clients(NOTIFICATION_RESOURCES_LIST_CHANGED, None)

    # -- prompts -------------------------------------------------------

    def add_prompt(self, prompt: Prompt, handler: PromptHandler) -> None:
        with self.lock:
            if self.prompt_capabilities is None:
                self.prompt_capabilities = PromptCapabilities()
            caps = self.prompt_capabilities
            self.prompts[prompt.name] = prompt
            self.prompt_handlers[prompt.name] = handler
        if caps.list_changed:
            self.send_notification_to_all_clients(NOTIFICATION_PROMPTS_LIST_CHANGED, None)

    # -- tools ---------------------------------------------------------

    def _ensure_tool_capabilities(self) -> ToolCapabilities:
        """Enable tools with list_changed on unless already configured."""
        with self.lock:
            if self.tool_capabilities is None:
                self.tool_capabilities = ToolCapabilities(list_changed=True)
            return self.tool_capabilities

    def add_tool(self, tool: Tool, handler: ToolHandler | None) -> None:
        self.add_tools(ServerTool(tool=tool, handler=handler))

    def add_tools(self, *args: ServerTool) -> None:
        caps = self._ensure_tool_capabilities()
        with self.lock:
            for entry in args:
                self.tools[entry.tool.name] = entry
        if caps.list_changed:
            self.send_notification_to_all_clients(NOTIFICATION_TOOLS_LIST_CHANGED, None)

    def set_tools(self, *args: ServerTool) -> None:
        """Replace every registered tool with the ones given."""
        with self.lock:
            self.tools = {}
        self.add_tools(*args)

    def delete_tools(self, *args: str) -> None:
        with self.lock:
            removed = [name for name in args if self.tools.pop(name, None) is not None]
        caps = self.tool_capabilities
        if removed and caps is not None and caps.list_changed:
            self.send_notification_to_all_clients(NOTIFICATION_TOOLS_LIST_CHANGED, None)

    def list_tools(self) -> list[Tool]:
        with self.lock:
            return [entry.tool for entry in self.tools.values()]

    def add_notification_handler(self, method: str, handler: NotificationHandler) -> None:
        with self.lock:
            self.notification_handlers[method] = handler

    # -- sessions ------------------------------------------------------

    def register_session(self, session: Session) -> None:
        with self.lock:
            if session.session_id in self.sessions:
                raise SessionExistsError()
            self.sessions[session.session_id] = session
        if self.hooks is not None:
            self.hooks.register_session(session)

    def unregister_session(self, session_id: str) -> None:
        with self.lock:
            session = self.sessions.pop(session_id, None)
        if session is not None and self.hooks is not None:
            self.hooks.unregister_session(session)

    def _report(self, session_id: str, method: str, error: BaseException) -> None:
        if self.hooks is not None and self.hooks.on_error:
            self.hooks.error(
                None, "notification", {"method": method, "sessionID": session_id}, error
            )

    def _deliver(self, session: Session, method: str, params: Mapping[str, Any] | None) -> None:
        notification = JSONRPCNotification(
            method=method, params=dict(params) if params is not None else None
        )
        try:
            session.deliver(notification)
        except NotificationChannelBlockedError:
            self._report(
                session.session_id,
                method,
                NotificationChannelBlockedError(
                    f"notification channel blocked for session {session.session_id}: "
                    f"{NotificationChannelBlockedError.default_message}"
                ),
            )
            raise NotificationChannelBlockedError() from None

    def send_notification_to_all_clients(
        self, method: str, params: Mapping[str, Any] | None
    ) -> None:
        """Queue a notification for every initialized session, skipping full queues."""
        with self.lock:
            sessions = list(self.sessions.values())
        for session in sessions:
            if not session.initialized:
                continue
            try:
                self._deliver(session, method, params)
            except NotificationChannelBlockedError:
                continue

    def send_notification_to_client(
        self, session: Session | None, method: str, params: Mapping[str, Any] | None
    ) -> None:
        if session is None or not session.initialized:
            raise NotificationNotInitializedError()
        self._deliver(session, method, params)

    def send_notification_to_specific_client(
        self, session_id: str, method: str, params: Mapping[str, Any] | None
    ) -> None:
        with self.lock:
            session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError()
        if not session.initialized:
            raise SessionNotInitializedError()
        self._deliver(session, method, params)

    def _tool_session(self, session_id: str) -> ToolSession:
        with self.lock:
            session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError()
        if not isinstance(session, ToolSession):
            raise SessionDoesNotSupportToolsError()
        return session

    def _notify_session_tools_changed(self, session: ToolSession, action: str) -> None:
        caps = self.tool_capabilities
        if not (session.initialized and caps is not None and caps.list_changed):
            return
        try:
            self.send_notification_to_specific_client(
                session.session_id, NOTIFICATION_TOOLS_LIST_CHANGED, None
            )
        except MCPError as err:
            wrapped = MCPError(f"failed to send notification after {action} tools: {err}")
            wrapped.__cause__ = err
            self._report(session.session_id, NOTIFICATION_TOOLS_LIST_CHANGED, wrapped)

    def add_session_tool(self, session_id: str, tool: Tool, handler: ToolHandler | None) -> None:
        self.add_session_tools(session_id, ServerTool(tool=tool, handler=handler))

    def add_session_tools(self, session_id: str, *args: ServerTool) -> None:
        session = self._tool_session(session_id)
        self._ensure_tool_capabilities()
        tools = session.get_tools() or {}
        tools.update((entry.tool.name, entry) for entry in args)
        session.set_tools(tools)
        self._notify_session_tools_changed(session, "adding")

    def delete_session_tools(self, session_id: str, *args: str) -> None:
        session = self._tool_session(session_id)
        tools = session.get_tools()
        if tools is None:
            return
        for name in _unique(args):
            tools.pop(name, None)
        session.set_tools(tools)
        self._notify_session_tools_changed(session, "deleting")


def _unique(names: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(names))