"""
Unit tests for LSP JSON-RPC protocol implementation.
"""

import json

import pytest

from lsp_constants import LSPErrorCode
from lsp_jsonrpc import (
    JSONRPCError,
    JSONRPCNotification,
    JSONRPCProtocol,
    JSONRPCRequest,
    JSONRPCResponse,
)


class TestJSONRPCRequest:
    """Test JSON-RPC request message handling."""

    def test_request_to_dict(self):
        """Test converting request to dictionary."""
        request = JSONRPCRequest(
            method="textDocument/hover", params={"a": 1}, message_id=7
        )

        assert request.to_dict() == {
            "jsonrpc": "2.0",
            "id": 7,
            "method": "textDocument/hover",
            "params": {"a": 1},
        }
        assert request.method == "textDocument/hover"
        assert request.id == 7

    def test_request_without_params(self):
        """Absent params are omitted, not sent as null."""
        request = JSONRPCRequest(method="shutdown", message_id=1)

        assert "params" not in request.to_dict()

    def test_request_with_empty_params_keeps_them(self):
        request = JSONRPCRequest(method="initialized", params={}, message_id=1)

        assert request.to_dict()["params"] == {}

    def test_request_to_json_is_compact(self):
        request = JSONRPCRequest(method="m", params=[1, 2], message_id=3)

        json_str = request.to_json()
        assert " " not in json_str
        assert json.loads(json_str)["params"] == [1, 2]


class TestJSONRPCResponse:
    """Test JSON-RPC response message handling."""

    def test_success_response_keeps_null_result(self):
        response = JSONRPCResponse(message_id=1, result=None)

        assert response.to_dict() == {"jsonrpc": "2.0", "id": 1, "result": None}
        assert response.error is None

    def test_create_error(self):
        response = JSONRPCResponse.create_error(
            5, LSPErrorCode.METHOD_NOT_FOUND, "Method not found: x", data={"m": "x"}
        )

        assert response.error == {
            "code": LSPErrorCode.METHOD_NOT_FOUND.value,
            "message": "Method not found: x",
            "data": {"m": "x"},
        }
        assert "result" not in response.to_dict()


class TestJSONRPCNotification:
    def test_notification_has_no_id(self):
        notification = JSONRPCNotification("initialized", {})

        assert notification.to_dict() == {
            "jsonrpc": "2.0",
            "method": "initialized",
            "params": {},
        }


class TestJSONRPCProtocol:
    """Test the per-connection protocol helper."""

    def setup_method(self):
        self.protocol = JSONRPCProtocol()

    def test_request_ids_are_unique_and_increasing(self):
        ids = [self.protocol.create_request("m").id for _ in range(5)]

        assert ids == sorted(ids)
        assert len(set(ids)) == 5

    def test_protocols_have_independent_counters(self):
        other = JSONRPCProtocol()

        assert self.protocol.next_request_id() == other.next_request_id()

    def test_serialize_message_frames_with_content_length(self):
        message = self.protocol.create_notification("textDocument/didOpen", {"x": "é"})

        data = self.protocol.serialize_message(message)
        header, _, body = data.partition(b"\r\n\r\n")

        assert header.startswith(b"Content-Length: ")
        assert int(header.split(b":")[1].split(b"\r\n")[0]) == len(body)
        assert json.loads(body.decode("utf-8"))["params"] == {"x": "é"}

    def test_serialize_twice_does_not_leak_previous_message(self):
        first = self.protocol.serialize_message(
            self.protocol.create_notification("first", {"long": "x" * 100})
        )
        second = self.protocol.serialize_message(self.protocol.create_notification("b"))

        assert len(second) < len(first)
        assert b"first" not in second

    def test_parse_headers(self):
        length = self.protocol.parse_headers(
            [
                b"Content-Length: 42\r\n",
                b"Content-Type: application/vscode-jsonrpc; charset=utf-8\r\n",
            ]
        )

        assert length == 42

    def test_parse_headers_is_case_insensitive(self):
        assert self.protocol.parse_headers([b"content-length: 3\r\n"]) == 3

    @pytest.mark.parametrize(
        "lines",
        [
            [b"Content-Type: text/plain\r\n"],
            [b"Content-Length: abc\r\n"],
            [b"Content-Length: -1\r\n"],
            [b"garbage\r\n"],
        ],
    )
    def test_parse_headers_rejects_invalid(self, lines):
        with pytest.raises(JSONRPCError) as exc_info:
            self.protocol.parse_headers(lines)

        assert exc_info.value.code == LSPErrorCode.PARSE_ERROR

    def test_decode_content(self):
        message = self.protocol.decode_content(b'{"jsonrpc": "2.0", "id": 1, "result": 5}')

        assert message["result"] == 5

    @pytest.mark.parametrize(
        "content,code",
        [
            (b"{not json", LSPErrorCode.PARSE_ERROR),
            (b"[1, 2]", LSPErrorCode.INVALID_REQUEST),
            (b'{"jsonrpc": "1.0", "id": 1}', LSPErrorCode.INVALID_REQUEST),
        ],
    )
    def test_decode_content_rejects_invalid(self, content, code):
        with pytest.raises(JSONRPCError) as exc_info:
            self.protocol.decode_content(content)

        assert exc_info.value.code == code

    def test_message_classification(self):
        request = {"jsonrpc": "2.0", "id": 1, "method": "workspace/configuration"}
        response = {"jsonrpc": "2.0", "id": 1, "result": None}
        error_response = {"jsonrpc": "2.0", "id": 1, "error": {"code": 1, "message": "x"}}
        notification = {"jsonrpc": "2.0", "method": "window/logMessage"}

        assert self.protocol.is_request(request)
        assert not self.protocol.is_response(request)
        assert self.protocol.is_response(response)
        assert self.protocol.is_response(error_response)
        assert self.protocol.is_notification(notification)
        assert not self.protocol.is_request(notification)
