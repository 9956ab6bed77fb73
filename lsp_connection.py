"""
LSP Connection

This module manages exactly one external language server process and the
framed JSON-RPC channel over its standard streams: spawning, the initialize
handshake, request/notification dispatch, and teardown. It is the only module
that touches process and channel primitives.
"""

import asyncio
import json
import logging
import os
from collections.abc import Awaitable, Callable
from enum import Enum
from pathlib import Path
from typing import Any

from bridge_config import ServerSpec
from bridge_errors import (
    BridgeError,
    ConnectionClosedError,
    NotStartedError,
    ProtocolError,
    RequestTimeoutError,
    StartupError,
)
from constants import (
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_STARTUP_TIMEOUT,
    DISPOSE_REAP_TIMEOUT,
    SERVER_NAME,
    SERVER_VERSION,
)
from lsp_constants import (
    InitializeParams,
    InitializeResult,
    JsonRPCMessage,
    LSPErrorCode,
    LSPMessageType,
    LSPMethod,
)
from lsp_jsonrpc import (
    JSONRPCError,
    JSONRPCNotification,
    JSONRPCProtocol,
    JSONRPCRequest,
    JSONRPCResponse,
)
from system_utils import terminate_process_tree

RequestHandler = Callable[[JsonRPCMessage], Awaitable[Any]]
NotificationHandler = Callable[[JsonRPCMessage], Awaitable[None]]


class ConnectionState(Enum):
    """States of an LSP connection."""

    UNSTARTED = "unstarted"
    STARTING = "starting"
    READY = "ready"
    TERMINATED = "terminated"


class LSPConnection:
    """One running language server process and its RPC channel."""

    def __init__(
        self,
        spec: ServerSpec,
        workspace_root: str | None = None,
        request_timeout: float | None = DEFAULT_REQUEST_TIMEOUT,
        startup_timeout: float | None = DEFAULT_STARTUP_TIMEOUT,
        logger: logging.Logger | None = None,
    ):
        self.spec = spec
        self.workspace_root = os.path.abspath(workspace_root or os.getcwd())
        self.request_timeout = request_timeout
        self.startup_timeout = startup_timeout
        self.logger = logger or logging.getLogger(f"{__name__}.{spec.id}")

        # Connection state
        self.state = ConnectionState.UNSTARTED
        self.process: asyncio.subprocess.Process | None = None
        # Stored for future use; nothing is gated on it
        self.server_capabilities: dict[str, Any] = {}
        # uri -> version of documents opened through this connection
        self.open_documents: dict[str, int] = {}

        # Communication
        self.protocol = JSONRPCProtocol(logger=self.logger)
        self._pending: dict[str | int, asyncio.Future[Any]] = {}
        self._write_lock = asyncio.Lock()

        # Message handling
        self._request_handlers: dict[str, RequestHandler] = {}
        self._notification_handlers: dict[str, NotificationHandler] = {}

        # Background tasks
        self._reader_task: asyncio.Task | None = None
        self._stderr_task: asyncio.Task | None = None
        self._reap_task: asyncio.Task | None = None
        self._request_tasks: set[asyncio.Task] = set()

        self._setup_builtin_handlers()

    def __repr__(self) -> str:
        return f"LSPConnection(id={self.spec.id!r}, state={self.state.value})"

    @property
    def id(self) -> str:
        return self.spec.id

    def _setup_builtin_handlers(self) -> None:
        """Setup built-in message handlers."""
        # Server-to-client notifications
        self._notification_handlers[LSPMethod.LOG_MESSAGE] = self._handle_log_message
        self._notification_handlers[LSPMethod.SHOW_MESSAGE] = self._handle_show_message
        self._notification_handlers[LSPMethod.PUBLISH_DIAGNOSTICS] = (
            self._handle_publish_diagnostics
        )

        # Server-to-client requests
        self._request_handlers[LSPMethod.WORKSPACE_CONFIGURATION] = (
            self._handle_workspace_configuration
        )
        self._request_handlers[LSPMethod.WORK_DONE_PROGRESS_CREATE] = self._handle_null_request
        self._request_handlers[LSPMethod.REGISTER_CAPABILITY] = self._handle_null_request
        self._request_handlers[LSPMethod.UNREGISTER_CAPABILITY] = self._handle_null_request
        self._request_handlers[LSPMethod.SHOW_MESSAGE_REQUEST] = self._handle_null_request

    def _set_state_starting(self) -> None:
        """Set state to starting and log the transition."""
        self.logger.info(f"Starting LSP server '{self.spec.id}'")
        self.state = ConnectionState.STARTING

    def _set_state_ready(self) -> None:
        """Set state to ready and log the transition."""
        self.logger.info(f"LSP server '{self.spec.id}' initialized")
        self.state = ConnectionState.READY

    def _set_state_terminated(self) -> None:
        """Set state to terminated and log the transition."""
        self.logger.info(f"LSP server '{self.spec.id}' terminated")
        self.state = ConnectionState.TERMINATED

    async def start(self) -> InitializeResult:
        """Spawn the server process and perform the initialize handshake.

        Returns:
            The server's initialize result

        Raises:
            StartupError: If the process cannot be spawned, the handshake fails
                or times out, or the connection was already started or disposed
        """
        if self.state is not ConnectionState.UNSTARTED:
            raise StartupError(
                self.spec.id,
                f"connection is {self.state.value} and cannot be started again",
            )

        self._set_state_starting()
        full_command = [self.spec.command, *self.spec.args]
        self.logger.debug(f"Command: {' '.join(full_command)}")
        self.logger.debug(f"Workspace root: {self.workspace_root}")

        try:
            self.process = await asyncio.create_subprocess_exec(
                *full_command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.workspace_root,
                env=os.environ.copy(),
            )
        except OSError as e:
            self.dispose()
            raise StartupError(
                self.spec.id, f"cannot spawn {self.spec.command}: {e}"
            ) from e

        self.logger.debug(f"Server process PID: {self.process.pid}")

        self._reader_task = asyncio.create_task(
            self._message_reader_loop(), name=f"lsp-{self.spec.id}-reader"
        )
        self._stderr_task = asyncio.create_task(
            self._stderr_reader_loop(), name=f"lsp-{self.spec.id}-stderr"
        )

        try:
            result = await self._request(
                LSPMethod.INITIALIZE, self._initialize_params(), self.startup_timeout
            )
        except (ProtocolError, RequestTimeoutError, ConnectionClosedError) as e:
            self.dispose()
            raise StartupError(self.spec.id, f"initialize failed: {e}") from e
        except asyncio.CancelledError:
            self.dispose()
            raise

        if not isinstance(result, dict) or "capabilities" not in result:
            self.dispose()
            raise StartupError(
                self.spec.id, f"initialize result has no capabilities: {result!r}"
            )

        self.server_capabilities = result.get("capabilities") or {}
        self._set_state_ready()

        try:
            await self.send_notification(LSPMethod.INITIALIZED, {})
        except ConnectionClosedError as e:
            raise StartupError(self.spec.id, f"connection lost after initialize: {e}") from e

        return result

    def _initialize_params(self) -> InitializeParams:
        """Build the initialize request parameters."""
        root = Path(self.workspace_root)
        return {
            "processId": os.getpid(),
            "clientInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
            "rootUri": root.as_uri(),
            "workspaceFolders": [{"uri": root.as_uri(), "name": root.name}],
            "capabilities": {},
        }

    def _ensure_ready(self, method: str) -> None:
        if self.state is ConnectionState.TERMINATED:
            raise ConnectionClosedError(
                f"Connection to LSP '{self.spec.id}' is closed, cannot send {method}"
            )
        if self.state is not ConnectionState.READY:
            raise NotStartedError(
                f"Connection to LSP '{self.spec.id}' is not started, cannot send {method}"
            )

    async def send_request(self, method: str, params: Any | None = None) -> Any:
        """Send a request and wait for the server's result.

        Raises:
            NotStartedError: If start() has not completed
            ConnectionClosedError: If the connection is or becomes terminated
            ProtocolError: If the server answers with an error
            RequestTimeoutError: If the request deadline elapses
        """
        self._ensure_ready(method)
        return await self._request(method, params, self.request_timeout)

    async def send_notification(self, method: str, params: Any | None = None) -> None:
        """Send a notification; returns once the channel accepted the write."""
        self._ensure_ready(method)
        await self._send_message(self.protocol.create_notification(method, params))
        self._track_document(method, params)

    async def open_document(self, uri: str, language_id: str, text: str) -> int:
        """Make the server see ``text`` as the content of ``uri``.

        The first call for a URI sends didOpen. Later calls send a full
        didChange with the next version. The version is claimed before the
        write, so concurrent calls on one URI never repeat a version; it is
        released again if the write fails.

        Returns:
            The document version now known to the server
        """
        previous = self.open_documents.get(uri)
        if previous is None:
            version = 1
            method = LSPMethod.DID_OPEN
            params = {
                "textDocument": {
                    "uri": uri,
                    "languageId": language_id,
                    "version": version,
                    "text": text,
                }
            }
        else:
            version = previous + 1
            method = LSPMethod.DID_CHANGE
            params = {
                "textDocument": {"uri": uri, "version": version},
                "contentChanges": [{"text": text}],
            }

        self._ensure_ready(method)
        self.open_documents[uri] = version
        try:
            await self._send_message(self.protocol.create_notification(method, params))
        except (BridgeError, asyncio.CancelledError):
            if self.open_documents.get(uri) == version:
                if previous is None:
                    del self.open_documents[uri]
                else:
                    self.open_documents[uri] = previous
            raise
        return version

    def _track_document(self, method: str, params: Any) -> None:
        """Keep open_documents in sync with document notifications."""
        if not isinstance(params, dict):
            return
        text_document = params.get("textDocument")
        if not isinstance(text_document, dict) or "uri" not in text_document:
            return

        uri = text_document["uri"]
        if method == LSPMethod.DID_OPEN:
            self.open_documents[uri] = text_document.get("version", 1)
        elif method == LSPMethod.DID_CHANGE and uri in self.open_documents:
            self.open_documents[uri] = text_document.get(
                "version", self.open_documents[uri] + 1
            )
        elif method == LSPMethod.DID_CLOSE:
            self.open_documents.pop(uri, None)

    async def _request(self, method: str, params: Any, timeout: float | None) -> Any:
        """Send a request and wait for its response, without state checks."""
        request = self.protocol.create_request(method, params)
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[request.id] = future

        try:
            await self._send_message(request)
            if timeout is None:
                return await future
            return await asyncio.wait_for(future, timeout=timeout)
        except TimeoutError:
            self.logger.error(f"Request timeout: {method} (id {request.id})")
            self._pending.pop(request.id, None)
            await self._cancel_remote_request(request.id)
            raise RequestTimeoutError(method, timeout) from None
        finally:
            self._pending.pop(request.id, None)

    async def _cancel_remote_request(self, request_id: str | int) -> None:
        """Tell the server to stop working on an abandoned request."""
        if self.state is ConnectionState.TERMINATED:
            return
        try:
            await self._send_message(
                self.protocol.create_notification(
                    LSPMethod.CANCEL_REQUEST, {"id": request_id}
                )
            )
        except ConnectionClosedError as e:
            self.logger.debug(f"Could not cancel request {request_id}: {e}")

    async def _send_message(
        self, message: JSONRPCRequest | JSONRPCResponse | JSONRPCNotification
    ) -> None:
        """Write one framed message to the server."""
        process = self.process
        if (
            self.state is ConnectionState.TERMINATED
            or process is None
            or process.stdin is None
        ):
            raise ConnectionClosedError(f"No connection to LSP '{self.spec.id}'")

        serialized = self.protocol.serialize_message(message)
        async with self._write_lock:
            try:
                process.stdin.write(serialized)
                await process.stdin.drain()
            except (ConnectionError, OSError) as e:
                self.logger.error(f"Error sending message: {e}")
                self.dispose()
                raise ConnectionClosedError(
                    f"Connection to LSP '{self.spec.id}' lost while writing: {e}"
                ) from e

        self.logger.debug(f"Sent message: {message.to_json()[:500]}")

    async def _read_message(self, stream: asyncio.StreamReader) -> JsonRPCMessage | None:
        """Read one framed message, or None on a clean end of stream."""
        header_lines: list[bytes] = []
        while True:
            line = await stream.readline()
            if not line:
                if header_lines:
                    raise JSONRPCError(
                        LSPErrorCode.PARSE_ERROR, "Channel closed inside a header"
                    )
                return None
            if not line.strip():
                if header_lines:
                    break
                continue
            header_lines.append(line)

        content_length = self.protocol.parse_headers(header_lines)
        content = await stream.readexactly(content_length)
        return self.protocol.decode_content(content)

    async def _message_reader_loop(self) -> None:
        """Main message reading loop."""
        process = self.process
        if process is None or process.stdout is None:
            return

        try:
            while True:
                message = await self._read_message(process.stdout)
                if message is None:
                    self._on_channel_closed()
                    return
                await self._process_message(message)
        except asyncio.CancelledError:
            raise
        except (JSONRPCError, asyncio.IncompleteReadError, OSError, ValueError) as e:
            self._on_transport_error(e)

    async def _stderr_reader_loop(self) -> None:
        """Forward the server's stderr to the debug log."""
        process = self.process
        if process is None or process.stderr is None:
            return

        try:
            while line := await process.stderr.readline():
                self.logger.debug(f"stderr: {line.decode('utf-8', errors='replace').rstrip()}")
        except asyncio.CancelledError:
            raise
        except (OSError, ValueError) as e:
            self.logger.debug(f"stderr reader stopped: {e}")

    def _on_transport_error(self, error: Exception) -> None:
        if self.state is ConnectionState.TERMINATED:
            return
        self.logger.error(f"Connection error: {error}")
        self.dispose()

    def _on_channel_closed(self) -> None:
        if self.state is ConnectionState.TERMINATED:
            return
        self.logger.info("Connection closed")
        self.dispose()

    async def _process_message(self, message: JsonRPCMessage) -> None:
        """Dispatch a received message."""
        if self.protocol.is_response(message):
            self._handle_response(message)
        elif self.protocol.is_request(message):
            # Answer in a separate task so the reader never waits on a write
            task = asyncio.create_task(self._handle_request(message))
            self._request_tasks.add(task)
            task.add_done_callback(self._request_tasks.discard)
        elif self.protocol.is_notification(message):
            await self._handle_notification(message)
        else:
            self.logger.warning(f"Unknown message type: {message}")

    def _handle_response(self, message: JsonRPCMessage) -> None:
        """Resolve the pending request a response belongs to."""
        message_id = message.get("id")
        future = self._pending.pop(message_id, None)
        if future is None:
            self.logger.warning(f"No pending request for response ID: {message_id}")
            return
        if future.done():
            return

        error = message.get("error")
        if error is None:
            future.set_result(message.get("result"))
            return

        if not isinstance(error, dict):
            error = {"code": LSPErrorCode.UNKNOWN_ERROR_CODE.value, "message": str(error)}
        future.set_exception(
            ProtocolError(
                code=error.get("code", LSPErrorCode.UNKNOWN_ERROR_CODE.value),
                message=error.get("message", "Unknown error"),
                data=error.get("data"),
            )
        )

    async def _handle_request(self, message: JsonRPCMessage) -> None:
        """Answer a server-to-client request."""
        method = message.get("method")
        message_id = message.get("id")
        handler = self._request_handlers.get(method)

        if handler is None:
            self.logger.debug(f"No handler for request method: {method}")
            response = self.protocol.create_error_response(
                message_id, LSPErrorCode.METHOD_NOT_FOUND, f"Method not found: {method}"
            )
        else:
            try:
                response = self.protocol.create_response(message_id, await handler(message))
            except Exception as e:
                self.logger.error(f"Error in request handler for {method}: {e}")
                response = self.protocol.create_error_response(
                    message_id, LSPErrorCode.INTERNAL_ERROR, f"Handler error: {e}"
                )

        try:
            await self._send_message(response)
        except ConnectionClosedError as e:
            self.logger.debug(f"Could not answer {method}: {e}")

    async def _handle_notification(self, message: JsonRPCMessage) -> None:
        """Handle a notification; unknown ones are logged and ignored."""
        method = message.get("method")
        handler = self._notification_handlers.get(method)
        if handler is None:
            self.logger.debug(f"Unhandled notification: {json.dumps(message)[:500]}")
            return
        try:
            await handler(message)
        except Exception as e:
            self.logger.error(f"Error in notification handler for {method}: {e}")

    # Built-in message handlers
    async def _handle_log_message(self, message: JsonRPCMessage) -> None:
        """Handle window/logMessage notification."""
        params = message.get("params") or {}
        try:
            level = LSPMessageType(params.get("type", LSPMessageType.LOG.value))
        except ValueError:
            level = LSPMessageType.LOG
        self.logger.log(level.to_logging_level(), f"Server log: {params.get('message', '')}")

    async def _handle_show_message(self, message: JsonRPCMessage) -> None:
        """Handle window/showMessage notification."""
        params = message.get("params") or {}
        self.logger.info(f"Server message: {params.get('message', '')}")

    async def _handle_publish_diagnostics(self, message: JsonRPCMessage) -> None:
        """Handle textDocument/publishDiagnostics notification."""
        params = message.get("params") or {}
        diagnostics = params.get("diagnostics", [])
        self.logger.debug(
            f"Received diagnostics for {params.get('uri')}: {len(diagnostics)} items"
        )

    async def _handle_workspace_configuration(self, message: JsonRPCMessage) -> list[None]:
        """Handle workspace/configuration request with one null per item."""
        params = message.get("params") or {}
        return [None] * len(params.get("items", []))

    async def _handle_null_request(self, message: JsonRPCMessage) -> None:
        """Acknowledge a server request that needs no data."""
        return None

    # Public API methods
    def is_ready(self) -> bool:
        """Check if the connection completed its handshake and is usable."""
        return self.state is ConnectionState.READY

    def get_server_capabilities(self) -> dict[str, Any]:
        """Get the server's capabilities."""
        return dict(self.server_capabilities)

    def pending_request_count(self) -> int:
        """Number of requests still waiting for a response."""
        return len(self._pending)

    def dispose(self) -> None:
        """Terminate the connection. Idempotent and never raises."""
        if self.state is ConnectionState.TERMINATED:
            return
        self._set_state_terminated()

        for step in (
            self._cancel_background_tasks,
            self._fail_pending_requests,
            self._kill_process,
        ):
            try:
                step()
            except Exception as e:
                self.logger.error(f"Error during dispose ({step.__name__}): {e}")

    def _cancel_background_tasks(self) -> None:
        current = asyncio.current_task() if _has_running_loop() else None
        for task in (self._reader_task, self._stderr_task, *self._request_tasks):
            if task is not None and task is not current and not task.done():
                task.cancel()

    def _fail_pending_requests(self) -> None:
        pending = list(self._pending.items())
        self._pending.clear()
        for request_id, future in pending:
            if not future.done():
                future.set_exception(
                    ConnectionClosedError(
                        f"Connection to LSP '{self.spec.id}' closed before "
                        f"request {request_id} completed"
                    )
                )

    def _kill_process(self) -> None:
        process = self.process
        if process is None:
            return

        if process.stdin is not None and not process.stdin.is_closing():
            process.stdin.close()

        if process.returncode is None:
            terminate_process_tree(process.pid, self.logger)
            if _has_running_loop():
                self._reap_task = asyncio.get_running_loop().create_task(
                    self._reap(process)
                )

    async def _reap(self, process: asyncio.subprocess.Process) -> None:
        try:
            returncode = await asyncio.wait_for(process.wait(), timeout=DISPOSE_REAP_TIMEOUT)
            self.logger.debug(f"Server process exited with code {returncode}")
        except TimeoutError:
            self.logger.warning(
                f"Server process {process.pid} did not exit within {DISPOSE_REAP_TIMEOUT}s"
            )

    async def wait_closed(self) -> None:
        """Wait until a disposed connection's process has been reaped."""
        if self._reap_task is not None:
            await self._reap_task


def _has_running_loop() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True
