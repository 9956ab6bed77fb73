#!/usr/bin/env python3

"""
LSP MCP Bridge

Composition root of the bridge process. Owns the server registry, the tool
registry and the MCP server; starts every language server, registers the
generated tools, answers the MCP list_tools and call_tool requests, and
disposes everything exactly once on shutdown.
"""

import asyncio
import atexit
import json
import logging
import os
import time
from typing import Any

import mcp.server.stdio
import mcp.types as types
from mcp.server import Server

from bridge_config import BridgeConfig
from bridge_errors import BridgeError
from constants import SERVER_INSTRUCTIONS, SERVER_NAME, SERVER_VERSION
from lsp_connection import LSPConnection
from lsp_methods import CatalogMethod, get_lsp_methods
from lsp_tools import ToolCatalog
from server_registry import ServerRegistry
from shutdown_simple import SimpleShutdownCoordinator, setup_simple_signal_handlers
from tool_registry import ToolRegistry

TRANSPORT_CLOSE_TIMEOUT = 2.0


class LSPBridge:
    """Bridges MCP tool calls to one or more language servers."""

    def __init__(
        self,
        registry: ServerRegistry,
        methods: list[CatalogMethod],
        server: Server | None = None,
        logger: logging.Logger | None = None,
    ):
        self.registry = registry
        self.methods = methods
        self.logger = logger or logging.getLogger(__name__)
        self.server = server or Server(
            SERVER_NAME, version=SERVER_VERSION, instructions=SERVER_INSTRUCTIONS
        )
        self.tool_registry = ToolRegistry(logger=self.logger)
        self.catalog = ToolCatalog(registry, methods, logger=self.logger)
        self.shutdown_coordinator = SimpleShutdownCoordinator(self.logger)
        self._started = False
        self._disposed = False

    async def start(self) -> None:
        """Start every language server, then register tools and MCP handlers.

        If any server fails to start, every connection is disposed and the
        first failure is raised; the bridge never runs with a partial set.
        """
        connections = self.registry.all()
        self.logger.info(f"Starting {len(connections)} LSP server(s)")

        results = await asyncio.gather(
            *(connection.start() for connection in connections),
            return_exceptions=True,
        )
        failures = [result for result in results if isinstance(result, BaseException)]
        if failures:
            for failure in failures:
                self.logger.error(f"LSP startup failed: {failure}")
            self.dispose()
            raise failures[0]

        self._register_tools()
        self._register_mcp_handlers()
        self._started = True
        self.logger.info(
            f"Bridge ready: {len(connections)} LSP(s), {len(self.tool_registry)} tools"
        )

    def _register_tools(self) -> None:
        for tool in self.catalog.build_tools():
            self.tool_registry.register(tool)

    def _register_mcp_handlers(self) -> None:
        self.server.list_tools()(self.list_tools)
        self.server.call_tool()(self.call_tool)

    async def list_tools(self) -> list[types.Tool]:
        """Define all available tools"""
        return [
            types.Tool(
                name=tool.id,
                description=tool.description,
                inputSchema=tool.input_schema,
            )
            for tool in self.tool_registry.list()
        ]

    async def call_tool(
        self, name: str, arguments: dict[str, Any] | None
    ) -> list[types.TextContent]:
        """Route a tool call and wrap its result as one JSON text block.

        Errors are logged and re-raised; the MCP server turns them into an
        error result for this call only.
        """
        start_time = time.time()
        self.logger.info(f"Tool call received: {name}")
        self.logger.debug(f"Arguments for {name}: {arguments}")

        if arguments is None:
            raise ValueError(f"No arguments provided for tool: {name}")

        try:
            result = await self.tool_registry.invoke(name, arguments)
        except BridgeError as e:
            self.logger.warning(f"Tool {name} failed: {e}")
            raise
        except Exception as e:
            self.logger.error(f"Tool {name} failed with error: {e}", exc_info=True)
            raise

        execution_time = time.time() - start_time
        self.logger.info(f"Tool {name} completed successfully in {execution_time:.2f} seconds")

        return [types.TextContent(type="text", text=json.dumps(result, indent=2, default=str))]

    async def _serve_stdio(self) -> None:
        async with mcp.server.stdio.stdio_server() as (read_stream, write_stream):
            self.logger.info("MCP server initialized, starting main loop")
            await self.server.run(
                read_stream, write_stream, self.server.create_initialization_options()
            )

    async def run(self) -> int:
        """Serve MCP over stdio until the transport closes or shutdown is requested.

        Returns:
            The process exit code
        """
        if not self._started:
            await self.start()

        setup_simple_signal_handlers(self.shutdown_coordinator)
        atexit.register(self.dispose)

        serve_task = asyncio.create_task(self._serve_stdio(), name="mcp-stdio")
        shutdown_task = asyncio.create_task(
            self.shutdown_coordinator.wait_for_shutdown(), name="shutdown-wait"
        )

        try:
            done, _ = await asyncio.wait(
                {serve_task, shutdown_task}, return_when=asyncio.FIRST_COMPLETED
            )
            if serve_task in done:
                self.shutdown_coordinator.initiate_shutdown("transport_closed")
                serve_task.result()
        finally:
            self.dispose()
            shutdown_task.cancel()

        if not serve_task.done():
            serve_task.cancel()
            await asyncio.wait({serve_task}, timeout=TRANSPORT_CLOSE_TIMEOUT)
            if not serve_task.done():
                # A thread blocked on stdin keeps the transport open; nothing left to clean up
                exit_code = int(self.shutdown_coordinator.get_exit_code())
                self.logger.warning(
                    f"MCP transport did not close within {TRANSPORT_CLOSE_TIMEOUT}s, "
                    f"exiting with code {exit_code}"
                )
                logging.shutdown()
                os._exit(exit_code)

        return self.shutdown_coordinator.get_exit_code()

    def dispose(self) -> None:
        """Dispose every connection. Idempotent."""
        if self._disposed:
            return
        self._disposed = True
        self.logger.info("Disposing LSP connections")
        for connection in self.registry.all():
            connection.dispose()

    @property
    def is_disposed(self) -> bool:
        return self._disposed


def create_bridge(config: BridgeConfig, logger: logging.Logger | None = None) -> LSPBridge:
    """Build a bridge, its connections and its registry from configuration."""
    methods = get_lsp_methods(config.methods)

    def connection_factory(spec) -> LSPConnection:
        return LSPConnection(
            spec,
            workspace_root=config.workspace_root,
            request_timeout=config.request_timeout,
            startup_timeout=config.startup_timeout,
        )

    registry = ServerRegistry.from_specs(config.servers, connection_factory, logger=logger)
    return LSPBridge(registry, methods, logger=logger)
