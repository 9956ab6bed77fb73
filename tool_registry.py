"""Tool registration and dispatch for the MCP side of the bridge."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from bridge_errors import DuplicateToolError, InvalidArgumentError, UnknownToolError
from constants import METHOD_PATH_SEPARATOR

ToolHandler = Callable[[dict[str, Any]], Awaitable[Any]]


@dataclass(frozen=True)
class Tool:
    """A named, schema-described callable exposed over MCP."""

    id: str
    description: str
    input_schema: dict[str, Any]
    handler: ToolHandler

    def __post_init__(self):
        if not self.id:
            raise InvalidArgumentError("Tool id cannot be empty")
        if METHOD_PATH_SEPARATOR in self.id:
            raise InvalidArgumentError(
                f"Tool id may not contain '{METHOD_PATH_SEPARATOR}': {self.id}"
            )


class ToolRegistry:
    """Name-keyed tool store preserving registration order."""

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger(__name__)
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        """Register a tool.

        Raises:
            DuplicateToolError: If a tool with the same id exists
        """
        if tool.id in self._tools:
            raise DuplicateToolError(tool.id)
        self._tools[tool.id] = tool
        self.logger.debug(f"Registered tool: {tool.id}")

    def get(self, tool_id: str) -> Tool | None:
        """Return a tool by id."""
        return self._tools.get(tool_id)

    def list(self) -> list[Tool]:
        """Return tools in registration order."""
        return list(self._tools.values())

    async def invoke(self, tool_id: str, arguments: dict[str, Any]) -> Any:
        """Run a tool's handler; handler failures propagate unchanged.

        Raises:
            UnknownToolError: If no tool is registered under tool_id
        """
        tool = self._tools.get(tool_id)
        if tool is None:
            raise UnknownToolError(tool_id)
        return await tool.handler(arguments)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, tool_id: object) -> bool:
        return tool_id in self._tools
