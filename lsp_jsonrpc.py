"""
JSON-RPC 2.0 Protocol Implementation for LSP

This module leverages the python-lsp-jsonrpc package for message framing and
provides the message wrappers, request-id allocation and header parsing the
bridge's connections need.
"""

import io
import itertools
import json
import logging
from typing import Any

from pylsp_jsonrpc.streams import JsonRpcStreamWriter

from lsp_constants import (
    JsonRPCMessage,
    LSPErrorCode,
)

CONTENT_LENGTH_HEADER = "content-length"


class JSONRPCError(Exception):
    """Exception for JSON-RPC protocol errors."""

    def __init__(self, code: LSPErrorCode, message: str, data: Any | None = None):
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"JSON-RPC Error {code.value}: {message}")


# Simple compatibility classes that just wrap dictionaries
class JSONRPCMessage:
    """Base class for JSON-RPC messages - minimal wrapper around dict."""

    def __init__(self, data: dict[str, Any]):
        self._data = data

    def to_dict(self) -> dict[str, Any]:
        """Convert message to dictionary."""
        return self._data.copy()

    def to_json(self) -> str:
        """Convert message to JSON string."""
        return json.dumps(self._data, separators=(",", ":"))


class JSONRPCRequest(JSONRPCMessage):
    """JSON-RPC request message."""

    def __init__(
        self,
        method: str,
        params: Any | None = None,
        message_id: str | int = 0,
    ):
        data = {
            "jsonrpc": "2.0",
            "id": message_id,
            "method": method,
        }
        if params is not None:
            data["params"] = params
        super().__init__(data)

    @property
    def method(self) -> str:
        return self._data["method"]

    @property
    def params(self) -> Any:
        return self._data.get("params")

    @property
    def id(self) -> str | int:
        return self._data["id"]


class JSONRPCNotification(JSONRPCMessage):
    """JSON-RPC notification message."""

    def __init__(self, method: str, params: Any | None = None):
        data = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            data["params"] = params
        super().__init__(data)

    @property
    def method(self) -> str:
        return self._data["method"]

    @property
    def params(self) -> Any:
        return self._data.get("params")


class JSONRPCResponse(JSONRPCMessage):
    """JSON-RPC response message."""

    def __init__(
        self,
        message_id: str | int | None,
        result: Any | None = None,
        error: dict[str, Any] | None = None,
    ):
        data = {"jsonrpc": "2.0", "id": message_id}
        if error is not None:
            data["error"] = error
        else:
            data["result"] = result
        super().__init__(data)

    @property
    def id(self) -> str | int | None:
        return self._data["id"]

    @property
    def result(self) -> Any:
        return self._data.get("result")

    @property
    def error(self) -> dict[str, Any] | None:
        return self._data.get("error")

    @classmethod
    def create_error(
        cls,
        message_id: str | int | None,
        code: LSPErrorCode,
        message: str,
        data: Any | None = None,
    ) -> "JSONRPCResponse":
        """Create an error response."""
        error = {"code": code.value, "message": message}
        if data is not None:
            error["data"] = data
        return cls(message_id=message_id, error=error)


class JSONRPCProtocol:
    """JSON-RPC 2.0 protocol handler leveraging python-lsp-jsonrpc.

    One instance belongs to one connection. Request ids come from a monotonic
    counter, so every outstanding request on the connection has a unique id.
    """

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger(__name__)

        # Create stream writer for serialization
        self._stream_buffer = io.BytesIO()
        self._stream_writer = JsonRpcStreamWriter(self._stream_buffer)

        self._id_counter = itertools.count(1)

    def next_request_id(self) -> int:
        """Allocate the next request id."""
        return next(self._id_counter)

    def create_request(self, method: str, params: Any | None = None) -> JSONRPCRequest:
        """Create a new JSON-RPC request with a fresh id."""
        return JSONRPCRequest(
            method=method, params=params, message_id=self.next_request_id()
        )

    def create_notification(
        self, method: str, params: Any | None = None
    ) -> JSONRPCNotification:
        """Create a new JSON-RPC notification."""
        return JSONRPCNotification(method=method, params=params)

    def create_response(self, message_id: str | int, result: Any) -> JSONRPCResponse:
        """Create a successful JSON-RPC response."""
        return JSONRPCResponse(message_id=message_id, result=result)

    def create_error_response(
        self,
        message_id: str | int | None,
        code: LSPErrorCode,
        message: str,
        data: Any | None = None,
    ) -> JSONRPCResponse:
        """Create an error JSON-RPC response."""
        return JSONRPCResponse.create_error(
            message_id=message_id, code=code, message=message, data=data
        )

    def serialize_message(self, message: JSONRPCMessage) -> bytes:
        """Serialize a JSON-RPC message with its Content-Length header."""
        self._stream_buffer.seek(0)
        self._stream_buffer.truncate()
        self._stream_writer.write(message.to_dict())
        self._stream_buffer.seek(0)
        return self._stream_buffer.read()

    def parse_headers(self, header_lines: list[bytes]) -> int:
        """Parse a header block and return the announced content length."""
        content_length = None
        for raw_line in header_lines:
            try:
                line = raw_line.decode("ascii").strip()
            except UnicodeDecodeError as e:
                raise JSONRPCError(
                    LSPErrorCode.PARSE_ERROR, f"Invalid header encoding: {e}"
                ) from e
            if not line:
                continue
            if ":" not in line:
                raise JSONRPCError(
                    LSPErrorCode.PARSE_ERROR, f"Malformed header line: {line!r}"
                )
            key, value = line.split(":", 1)
            if key.strip().lower() == CONTENT_LENGTH_HEADER:
                try:
                    content_length = int(value.strip())
                except ValueError as e:
                    raise JSONRPCError(
                        LSPErrorCode.PARSE_ERROR, f"Invalid Content-Length: {value!r}"
                    ) from e

        if content_length is None:
            raise JSONRPCError(LSPErrorCode.PARSE_ERROR, "Missing Content-Length header")
        if content_length < 0:
            raise JSONRPCError(
                LSPErrorCode.PARSE_ERROR, f"Negative Content-Length: {content_length}"
            )
        return content_length

    def decode_content(self, content: bytes) -> JsonRPCMessage:
        """Decode a message body into a JSON-RPC message dict."""
        try:
            message = json.loads(content.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise JSONRPCError(
                LSPErrorCode.PARSE_ERROR, f"Message parsing error: {e}"
            ) from e

        if not isinstance(message, dict):
            raise JSONRPCError(
                LSPErrorCode.INVALID_REQUEST, "JSON-RPC message must be an object"
            )
        if message.get("jsonrpc") != "2.0":
            raise JSONRPCError(LSPErrorCode.INVALID_REQUEST, "Invalid JSON-RPC version")
        return message

    def is_request(self, message: JsonRPCMessage) -> bool:
        """Check if message is a request."""
        return "id" in message and "method" in message

    def is_response(self, message: JsonRPCMessage) -> bool:
        """Check if message is a response."""
        return (
            "id" in message
            and "method" not in message
            and ("result" in message or "error" in message)
        )

    def is_notification(self, message: JsonRPCMessage) -> bool:
        """Check if message is a notification."""
        return "method" in message and "id" not in message
