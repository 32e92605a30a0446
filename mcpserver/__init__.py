"""Model Context Protocol server building blocks: registry, handlers, sessions, hooks and pagination."""

__version__ = "0.1.0"
__all__ = ["handlers", "hooks", "pagination", "protocol", "registry", "session", "uritemplate"]