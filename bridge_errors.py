"""
Error taxonomy for the LSP MCP bridge.

Configuration and startup errors are fatal to the whole process. Every other
error is raised per tool call and surfaces as that call's failure.
"""

from typing import Any


class BridgeError(Exception):
    """Base class for all bridge errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ConfigurationError(BridgeError):
    """Invalid or inconsistent configuration (duplicate ids, malformed spec)."""


class StartupError(BridgeError):
    """An LSP server process could not be spawned or initialized."""

    def __init__(self, server_id: str, message: str):
        self.server_id = server_id
        super().__init__(f"LSP server '{server_id}' failed to start: {message}")


class NotStartedError(BridgeError):
    """A request was issued on a connection that has not finished starting."""


class ConnectionClosedError(BridgeError):
    """The connection was terminated before or while a request was in flight."""


class ProtocolError(BridgeError):
    """The language server answered a request with an error payload."""

    def __init__(self, code: int, message: str, data: Any | None = None):
        self.code = code
        self.data = data
        super().__init__(message)

    def __str__(self) -> str:
        return f"LSP error {self.code}: {self.message}"


class RequestTimeoutError(BridgeError):
    """A request did not receive a response within its deadline."""

    def __init__(self, method: str, timeout: float):
        self.method = method
        self.timeout = timeout
        super().__init__(f"Request {method} timed out after {timeout}s")


class RoutingError(BridgeError):
    """No connection serves the language or extension of a tool call."""

    def __init__(self, method: str, uri: str | None, language: str | None = None):
        self.method = method
        self.uri = uri
        self.language = language
        message = f"No LSP found for method: {method} with uri: {uri}"
        if language:
            message += f" (programming_language: {language})"
        super().__init__(message)


class InvalidArgumentError(BridgeError):
    """A required tool argument is missing or malformed."""


class DuplicateToolError(BridgeError):
    """A tool id was registered twice."""

    def __init__(self, tool_id: str):
        self.tool_id = tool_id
        super().__init__(f"Tool already registered: {tool_id}")


class UnknownToolError(BridgeError):
    """A tool id that was never registered was invoked."""

    def __init__(self, tool_id: str):
        self.tool_id = tool_id
        super().__init__(f"Unknown tool: {tool_id}")
