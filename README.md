# mcpserver

Building blocks for a Model Context Protocol (MCP) server. The package keeps
a registry of tools, resources, resource templates and prompts. It has one
handler function per MCP request method. It also manages connected client
sessions and the notifications queued for them.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Modules

- `mcpserver.registry.Registry` holds what the server offers. That covers
  tools, resources, resource templates, prompts, notification handlers, tool
  middlewares and tool filters. It also holds the server capabilities
  (`ResourceCapabilities`, `PromptCapabilities`, `ToolCapabilities`,
  `logging`) and the registered sessions.
  - Adding a tool enables tool capabilities with `list_changed=True` unless
    they were set already.
  - When `list_changed` is on, adding or removing entries sends a
    `list_changed` notification to every initialized session.
  - With `recovery=True`, unexpected exceptions from tool handlers are
    turned into a uniform `panic recovered in <name> tool handler: ...`
    error.
- `mcpserver.handlers` has `handle_initialize`, `handle_ping`,
  `handle_set_level`, `handle_list_resources`,
  `handle_list_resource_templates`, `handle_read_resource`,
  `handle_list_prompts`, `handle_get_prompt`, `handle_list_tools` and
  `handle_call_tool`.
  - Each takes `(server, request_id, params, session)`, where `server` is a
    `Registry`.
  - Each returns the result object or raises
    `mcpserver.protocol.RequestError`, which carries an `ErrorCode`.
- `mcpserver.session` has three session classes:
  - `Session` is a client with a bounded notification queue. `deliver`
    raises `NotificationChannelBlockedError` when the queue is full.
  - `ToolSession` carries tools of its own. They override global tools of
    the same name in `tools/list` and `tools/call`.
  - `LoggingSession` keeps a minimum `LoggingLevel`. It resets the level to
    `error` on `initialize()`.
- `mcpserver.hooks.Hooks` collects callbacks:
  - `Registry` runs the session hooks when a session is registered or
    unregistered.
  - `Registry` runs the `on_error` hooks when a notification cannot be
    delivered.
  - `before`, `after`, `error` and `request_initialization` run the other
    hooks. You call them around the handlers yourself.
- `mcpserver.pagination`:
  - `paginate(items, cursor, limit)` splits a name-sorted list into pages
    with base64 cursors.
  - `encode_cursor(name)` builds such a cursor.
  - The page size comes from `Registry(pagination_limit=...)`.
- `mcpserver.uritemplate.URITemplate` matches URIs against RFC 6570
  templates such as `test://{a}/test-resource{/b*}`. It extracts each
  variable's values as a list of strings.
- `mcpserver.protocol` has the data classes (`Tool`, `ServerTool`,
  `Resource`, `ResourceTemplate`, `Prompt`, `PromptArgument`), the
  JSON-RPC envelopes (`JSONRPCResponse`, `JSONRPCError`,
  `JSONRPCNotification`, each with `to_dict()`), `create_response`,
  `create_error_response` and the error classes.

## Example

```python
from mcpserver.handlers import handle_call_tool
from mcpserver.protocol import RequestError, Tool, create_response
from mcpserver.registry import Registry
from mcpserver.session import ToolSession

registry = Registry("demo", "1.0.0")

def echo(request):
    return {"content": [{"type": "text", "text": "hello"}]}

registry.add_tool(Tool(name="echo"), echo)

try:
    result = handle_call_tool(registry, 1, {"name": "echo"}, None)
    print(create_response(1, result).to_dict())
except RequestError as err:
    print(err.to_jsonrpc_error().to_dict())

session = ToolSession("session-1", initialized=True)
registry.register_session(session)
registry.add_session_tool("session-1", Tool(name="private"), echo)
print(session.notifications.get_nowait().to_dict())
# {'jsonrpc': '2.0', 'method': 'notifications/tools/list_changed'}
```

## Errors

Failures are raised as subclasses of `mcpserver.protocol.MCPError`, for
example `ToolNotFoundError`, `SessionNotFoundError`, `SessionExistsError`
and `NotificationChannelBlockedError`. The handlers wrap their failures in
`RequestError`. Its `to_jsonrpc_error()` builds the matching `JSONRPCError`.

## What this package does not do

There is no message dispatcher. Nothing here parses a raw JSON-RPC message,
checks its version, and routes it by method name to the handlers. Nothing
here runs the hooks around a request or turns errors into error responses on
its own. The package also has no transport: no stdio loop, no HTTP server and
no command to start one. You read messages, pick the handler for each method,
and send the results back yourself.