import itertools
import threading
import time

import pytest

from mcpserver import handlers
from mcpserver.pagination import encode_cursor
from mcpserver.protocol import (
    LATEST_PROTOCOL_VERSION,
    ErrorCode,
    LoggingLevel,
    Prompt,
    PromptNotFoundError,
    RequestError,
    Resource,
    ResourceNotFoundError,
    ResourceTemplate,
    ServerTool,
    SessionDoesNotSupportLoggingError,
    SessionNotInitializedError,
    Tool,
    ToolNotFoundError,
)
from mcpserver.registry import (
    PromptCapabilities,
    Registry,
    ResourceCapabilities,
    ToolCapabilities,
)
from mcpserver.session import LoggingSession, Session, ToolSession


def _text(value):
    return {"content": [{"type": "text", "text": value}]}


def _tool_server(**kwargs):
    return Registry("test-server", "1.0.0", tools=ToolCapabilities(True), **kwargs)


def test_initialize_reports_capabilities_and_initializes_session():
    server = Registry(
        "test-server",
        "1.0.0",
        resources=ResourceCapabilities(True, False),
        prompts=PromptCapabilities(True),
        tools=ToolCapabilities(False),
        logging=True,
        instructions="Line 1\nLine 2",
    )
    session = Session("s")
    result = handlers.handle_initialize(server, 1, None, session)
    assert result["protocolVersion"] == LATEST_PROTOCOL_VERSION
    assert result["serverInfo"] == {"name": "test-server", "version": "1.0.0"}
    caps = result["capabilities"]
    assert caps["resources"].get("subscribe") is True
    assert caps["resources"].get("listChanged", False) is False
    assert caps["prompts"].get("listChanged") is True
    assert caps["tools"].get("listChanged", False) is False
    assert caps["logging"] == {}
    assert result["instructions"] == "Line 1\nLine 2"
    assert session.initialized


def test_initialize_without_capabilities():
    result = handlers.handle_initialize(Registry("test-server", "1.0.0"), 1, None, None)
    assert result["capabilities"] == {}
    assert "instructions" not in result


def test_ping_returns_empty_result():
    assert handlers.handle_ping(Registry("a", "1"), 1, None, None) == {}


def test_set_level_changes_session_level():
    server = Registry("test-server", "1.0.0", logging=True)
    session = LoggingSession("session-1")
    session.initialize()
    assert session.log_level == LoggingLevel.ERROR
    assert handlers.handle_set_level(server, 1, {"level": "critical"}, session) == {}
    assert session.log_level == LoggingLevel.CRITICAL


def test_set_level_requires_initialized_session():
    server = Registry("test-server", "1.0.0", logging=True)
    with pytest.raises(RequestError) as info:
        handlers.handle_set_level(server, 1, {"level": "info"}, LoggingSession("s"))
    assert info.value.code == ErrorCode.INTERNAL_ERROR
    assert isinstance(info.value.error, SessionNotInitializedError)


def test_set_level_requires_logging_session():
    server = Registry("test-server", "1.0.0", logging=True)
    with pytest.raises(RequestError) as info:
        handlers.handle_set_level(server, 1, {"level": "info"}, Session("s", initialized=True))
    assert isinstance(info.value.error, SessionDoesNotSupportLoggingError)


def test_set_level_rejects_unknown_level():
    server = Registry("test-server", "1.0.0", logging=True)
    session = LoggingSession("s")
    session.initialize()
    with pytest.raises(RequestError) as info:
        handlers.handle_set_level(server, 7, {"level": "loud"}, session)
    assert info.value.code == ErrorCode.INVALID_PARAMS
    assert str(info.value.error) == "invalid logging level 'loud'"


def test_list_resources_pagination_with_cursor():
    server = Registry(
        "test-server", "1.0.0", resources=ResourceCapabilities(True, True), pagination_limit=2
    )
    server.add_resource(Resource(uri="resource://testresource", name="My Resource"), lambda r: [])
    result = handlers.handle_list_resources(
        server, 1, {"cursor": encode_cursor("My Resource")}, None
    )
    assert result["resources"] == []
    assert result.get("nextCursor", "") == ""


def test_list_resources_sorted_by_name():
    server = Registry("test-server", "1.0.0")
    server.add_resource(Resource(uri="test://b", name="Resource 2"), lambda r: [])
    server.add_resource(Resource(uri="test://a", name="Resource 1"), lambda r: [])
    result = handlers.handle_list_resources(server, 1, None, None)
    assert [r.name for r in result["resources"]] == ["Resource 1", "Resource 2"]


def test_invalid_cursor_is_invalid_params():
    server = Registry("test-server", "1.0.0", pagination_limit=2)
    with pytest.raises(RequestError) as info:
        handlers.handle_list_prompts(server, 3, {"cursor": "%%%"}, None)
    assert info.value.code == ErrorCode.INVALID_PARAMS


def test_read_resource_direct():
    server = Registry("test-server", "1.0.0")
    contents = [{"uri": "test://resource1", "mimeType": "text/plain", "text": "test content 1"}]
    server.add_resource(Resource(uri="test://resource1", name="Resource 1"), lambda r: contents)
    result = handlers.handle_read_resource(server, 1, {"uri": "test://resource1"}, None)
    assert result == {"contents": contents}


def test_read_resource_template_arguments():
    server = Registry("test-server", "1.0.0", resources=ResourceCapabilities(True, True))
    seen = {}

    def handler(request):
        seen.update(request["arguments"])
        return [{"text": "test content: " + request["arguments"]["a"][0]}]

    server.add_resource_template(
        ResourceTemplate("test://{a}/test-resource{/b*}", "My Resource"), handler
    )
    listed = handlers.handle_list_resource_templates(server, 1, None, None)
    assert [t.name for t in listed["resourceTemplates"]] == ["My Resource"]
    assert listed["resourceTemplates"][0].to_dict()["uriTemplate"] == (
        "test://{a}/test-resource{/b*}"
    )

    result = handlers.handle_read_resource(
        server, 2, {"uri": "test://something/test-resource/a/b/c"}, None
    )
    assert seen == {"a": ["something"], "b": ["a", "b", "c"]}
    assert result["contents"][0]["text"] == "test content: something"


def test_read_unknown_resource():
    server = Registry("test-server", "1.0.0")
    with pytest.raises(RequestError) as info:
        handlers.handle_read_resource(server, 1, {"uri": "undefined-resource"}, None)
    assert info.value.code == ErrorCode.RESOURCE_NOT_FOUND
    assert isinstance(info.value.error, ResourceNotFoundError)


def test_read_resource_handler_failure_is_internal_error():
    server = Registry("test-server", "1.0.0")

    def broken(request):
        raise OSError("disk gone")

    server.add_resource(Resource(uri="test://x", name="x"), broken)
    with pytest.raises(RequestError) as info:
        handlers.handle_read_resource(server, 1, {"uri": "test://x"}, None)
    assert info.value.code == ErrorCode.INTERNAL_ERROR
    assert str(info.value.error) == "disk gone"


def test_prompts_list_and_get():
    server = Registry("test-server", "1.0.0", prompts=PromptCapabilities(True))
    server.add_prompt(
        Prompt(name="test-prompt", description="A test prompt"),
        lambda r: {"text": "Test prompt with arg1: " + r.get("arguments", {}).get("arg1", "")},
    )
    listed = handlers.handle_list_prompts(server, 1, None, None)
    assert [(p.name, p.description) for p in listed["prompts"]] == [
        ("test-prompt", "A test prompt")
    ]
    got = handlers.handle_get_prompt(
        server, 1, {"name": "test-prompt", "arguments": {"arg1": "test-value"}}, None
    )
    assert got["text"] == "Test prompt with arg1: test-value"
    missing = handlers.handle_get_prompt(
        server, 1, {"name": "test-prompt", "arguments": {}}, None
    )
    assert missing["text"] == "Test prompt with arg1: "


def test_get_unknown_prompt():
    server = Registry("test-server", "1.0.0", prompts=PromptCapabilities(True))
    with pytest.raises(RequestError) as info:
        handlers.handle_get_prompt(server, 1, {"name": "undefined-prompt"}, None)
    assert info.value.code == ErrorCode.INVALID_PARAMS
    assert isinstance(info.value.error, PromptNotFoundError)


def test_tools_with_session_tools():
    server = _tool_server()
    server.add_tools(
        ServerTool(Tool("global-tool-1")), ServerTool(Tool("global-tool-2"))
    )
    session = ToolSession(
        "session-1",
        initialized=True,
        tools={
            "session-tool-1": ServerTool(Tool("session-tool-1")),
            "global-tool-1": ServerTool(Tool("global-tool-1", description="Overridden")),
        },
    )
    server.register_session(session)
    result = handlers.handle_list_tools(server, 1, None, session)
    tools = result["tools"]
    assert len(tools) == 3
    by_name = {t.name: t for t in tools}
    assert by_name["global-tool-1"].description == "Overridden"
    assert [t.name for t in tools] == sorted(by_name)


def test_call_session_tool_overrides_global():
    server = _tool_server()
    server.add_tool(Tool("test_tool"), lambda r: _text("global result"))
    session = ToolSession("session-1", initialized=True)
    server.register_session(session)
    server.add_session_tool("session-1", Tool("test_tool"), lambda r: _text("session result"))
    result = handlers.handle_call_tool(server, 1, {"name": "test_tool"}, session)
    assert result["content"][0]["text"] == "session result"
    global_result = handlers.handle_call_tool(server, 1, {"name": "test_tool"}, None)
    assert global_result["content"][0]["text"] == "global result"


def test_tool_filtering():
    def allow_prefix(session, tools):
        return [t for t in tools if t.name.startswith("allow-")]

    server = _tool_server()
    server.add_tool_filter(allow_prefix)
    server.add_tools(
        ServerTool(Tool("allow-tool-1")),
        ServerTool(Tool("allow-tool-2")),
        ServerTool(Tool("deny-tool-1")),
        ServerTool(Tool("deny-tool-2")),
    )
    session = ToolSession(
        "session-1",
        initialized=True,
        tools={
            "allow-session-tool": ServerTool(Tool("allow-session-tool")),
            "deny-session-tool": ServerTool(Tool("deny-session-tool")),
        },
    )
    server.register_session(session)
    tools = handlers.handle_list_tools(server, 1, None, session)["tools"]
    assert len(tools) == 3
    assert all(t.name.startswith("allow-") for t in tools)


def test_call_unknown_tool():
    server = _tool_server()
    with pytest.raises(RequestError) as info:
        handlers.handle_call_tool(server, 1, {"name": "undefined-tool", "arguments": {}}, None)
    assert info.value.code == ErrorCode.INVALID_PARAMS
    assert isinstance(info.value.error, ToolNotFoundError)


def test_call_tool_recovery_message():
    server = Registry("test-server", "1.0.0", recovery=True)

    def panics(request):
        raise RuntimeError("test panic")

    server.add_tool(Tool("panic-tool"), panics)
    with pytest.raises(RequestError) as info:
        handlers.handle_call_tool(server, 4, {"name": "panic-tool"}, None)
    error = info.value.to_jsonrpc_error()
    assert error.code == ErrorCode.INTERNAL_ERROR
    assert error.message == "panic recovered in panic-tool tool handler: test panic"


def test_middlewares_wrap_in_registration_order():
    server = _tool_server()
    calls = []

    def tagging(tag):
        def middleware(next_handler):
            def handler(request):
                calls.append(tag)
                return next_handler(request)

            return handler

        return middleware

    server.add_tool_middleware(tagging("outer"))
    server.add_tool_middleware(tagging("inner"))
    server.add_tool(Tool("t"), lambda r: {"ok": True})
    assert handlers.handle_call_tool(server, 1, {"name": "t"}, None) == {"ok": True}
    assert calls == ["outer", "inner"]


def test_concurrent_prompt_add_does_not_deadlock():
    server = Registry("test-server", "1.0.0", prompts=PromptCapabilities(True))

    def handler(request):
        worker = threading.Thread(
            target=server.add_prompt,
            args=(Prompt(name=f"new-prompt-{time.monotonic_ns()}"), lambda r: {}),
        )
        worker.start()
        worker.join(timeout=1)
        return {"messages": []}

    server.add_prompt(Prompt(name="initial-prompt", description="Initial prompt"), handler)
    results = []
    caller = threading.Thread(
        target=lambda: results.append(
            handlers.handle_get_prompt(server, "123", {"name": "initial-prompt"}, None)
        )
    )
    caller.start()
    caller.join(timeout=1)
    assert results == [{"messages": []}]
    assert len(server.prompts) == 2