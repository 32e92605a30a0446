"""Client sessions that receive notifications from the server."""

from __future__ import annotations

import queue
import threading
from typing import TYPE_CHECKING

from mcpserver.protocol import (
    JSONRPCNotification,
    LoggingLevel,
    NotificationChannelBlockedError,
)

if TYPE_CHECKING:
    from mcpserver.protocol import ServerTool

DEFAULT_CAPACITY = 100


class Session:
    """A connected client with a bounded queue of pending notifications."""

    def __init__(
        self,
        session_id: str,
        *,
        capacity: int = DEFAULT_CAPACITY,
        initialized: bool = False,
    ) -> None:
        if capacity < 1:
            raise ValueError("notification capacity must be at least 1")
        self.session_id = session_id
        self.initialized = initialized
        self.notifications: queue.Queue[JSONRPCNotification] = queue.Queue(maxsize=capacity)

    def initialize(self) -> None:
        """Mark the session ready to receive notifications."""
        self.initialized = True

    def deliver(self, notification: JSONRPCNotification) -> None:
        """Queue a notification without waiting; raise if the queue is full."""
        try:
            self.notifications.put_nowait(notification)
        except queue.Full:
            raise NotificationChannelBlockedError() from None

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(session_id={self.session_id!r}, "
            f"initialized={self.initialized!r})"
        )


class ToolSession(Session):
    """A session that carries its own tools in addition to the server's."""

    def __init__(
        self,
        session_id: str,
        *,
        capacity: int = DEFAULT_CAPACITY,
        initialized: bool = False,
        tools: dict[str, ServerTool] | None = None,
    ) -> None:
        super().__init__(session_id, capacity=capacity, initialized=initialized)
        self._lock = threading.Lock()
        self._tools = dict(tools) if tools is not None else None

    def get_tools(self) -> dict[str, ServerTool] | None:
        """Return a copy of the session's tools, or None if it has none set."""
        with self._lock:
            return dict(self._tools) if self._tools is not None else None

    def set_tools(self, tools: dict[str, ServerTool] | None) -> None:
        """Replace the session's tools with a copy of the mapping given."""
        with self._lock:
            self._tools = dict(tools) if tools is not None else None


class LoggingSession(Session):
    """A session that keeps the minimum log level the client asked for."""

    def __init__(
        self,
        session_id: str,
        *,
        capacity: int = DEFAULT_CAPACITY,
        initialized: bool = False,
    ) -> None:
        super().__init__(session_id, capacity=capacity, initialized=initialized)
        self.log_level: LoggingLevel | None = None

    def initialize(self) -> None:
        """Mark the session ready and reset its log level to error."""
        self.log_level = LoggingLevel.ERROR
        super().initialize()

    def set_log_level(self, level: LoggingLevel | str) -> None:
        """Set the minimum log level; an unknown level raises ValueError."""
        self.log_level = LoggingLevel(level)