"""Callbacks that observe request processing and session lifecycle."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

BeforeAnyHook = Callable[[Any, str, Any], None]
OnSuccessHook = Callable[[Any, str, Any, Any], None]
OnErrorHook = Callable[[Any, str, Any, BaseException], None]
RequestInitializationHook = Callable[[Any, Any], None]
SessionHook = Callable[[Any], None]
BeforeHook = Callable[[Any, Any], None]
AfterHook = Callable[[Any, Any, Any], None]


@dataclass
class Hooks:
    """Collections of callbacks run around request handling.

    General hooks see every method; method hooks registered with
    :meth:`add_before` and :meth:`add_after` run only for that method.
    A request-initialization hook rejects a request by raising.
    """

    before_any: list[BeforeAnyHook] = field(default_factory=list)
    on_success: list[OnSuccessHook] = field(default_factory=list)
    on_error: list[OnErrorHook] = field(default_factory=list)
    on_request_initialization: list[RequestInitializationHook] = field(default_factory=list)
    on_register_session: list[SessionHook] = field(default_factory=list)
    on_unregister_session: list[SessionHook] = field(default_factory=list)
    before_method: dict[str, list[BeforeHook]] = field(
        default_factory=lambda: defaultdict(list)
    )
    after_method: dict[str, list[AfterHook]] = field(
        default_factory=lambda: defaultdict(list)
    )

    def add_before_any(self, hook: BeforeAnyHook) -> None:
        self.before_any.append(hook)

    def add_on_success(self, hook: OnSuccessHook) -> None:
        self.on_success.append(hook)

    def add_on_error(self, hook: OnErrorHook) -> None:
        self.on_error.append(hook)

    def add_on_request_initialization(self, hook: RequestInitializationHook) -> None:
        self.on_request_initialization.append(hook)

    def add_on_register_session(self, hook: SessionHook) -> None:
        self.on_register_session.append(hook)

    def add_on_unregister_session(self, hook: SessionHook) -> None:
        self.on_unregister_session.append(hook)

    def add_before(self, method: str, hook: BeforeHook) -> None:
        """Register a hook run before requests of one method."""
        self.before_method[str(method)].append(hook)

    def add_after(self, method: str, hook: AfterHook) -> None:
        """Register a hook run after successful requests of one method."""
        self.after_method[str(method)].append(hook)

    def before(self, request_id: Any, method: str, message: Any) -> None:
        """Run the general and then the method-specific before hooks."""
        for hook in self.before_any:
            hook(request_id, method, message)
        for hook in self.before_method.get(str(method), ()):
            hook(request_id, message)

    def after(self, request_id: Any, method: str, message: Any, result: Any) -> None:
        """Run the success hooks and then the method-specific after hooks."""
        for hook in self.on_success:
            hook(request_id, method, message, result)
        for hook in self.after_method.get(str(method), ()):
            hook(request_id, message, result)

    def error(self, request_id: Any, method: str, message: Any, error: BaseException) -> None:
        """Report an error to every error hook."""
        for hook in self.on_error:
            hook(request_id, method, message, error)

    def request_initialization(self, request_id: Any, message: Any) -> None:
        """Run the request-initialization hooks; any of them may raise to reject."""
        for hook in self.on_request_initialization:
            hook(request_id, message)

    def register_session(self, session: Any) -> None:
        for hook in self.on_register_session:
            hook(session)

    def unregister_session(self, session: Any) -> None:
        for hook in self.on_unregister_session:
            hook(session)