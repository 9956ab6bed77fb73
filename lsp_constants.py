"""
LSP Protocol Constants and Message Types

This module defines the constants and message types the bridge needs for
Language Server Protocol communication, following the LSP 3.17 specification.
"""

import logging
from enum import Enum
from typing import Any


class LSPErrorCode(Enum):
    """LSP error codes from the protocol definition."""

    # JSON-RPC Error Codes
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    # LSP-specific Error Codes
    SERVER_NOT_INITIALIZED = -32002
    UNKNOWN_ERROR_CODE = -32001
    REQUEST_FAILED = -32803
    SERVER_CANCELLED = -32802
    CONTENT_MODIFIED = -32801
    REQUEST_CANCELLED = -32800


class LSPMessageType(Enum):
    """LSP Message Types for logging and notifications."""

    ERROR = 1
    WARNING = 2
    INFO = 3
    LOG = 4

    def to_logging_level(self) -> int:
        """Map the LSP message type onto a Python logging level."""
        return {
            LSPMessageType.ERROR: logging.ERROR,
            LSPMessageType.WARNING: logging.WARNING,
            LSPMessageType.INFO: logging.INFO,
            LSPMessageType.LOG: logging.DEBUG,
        }[self]


class LSPMethod:
    """LSP Method Names as constants."""

    # General
    INITIALIZE = "initialize"
    INITIALIZED = "initialized"
    CANCEL_REQUEST = "$/cancelRequest"

    # Text Document Sync
    DID_OPEN = "textDocument/didOpen"
    DID_CHANGE = "textDocument/didChange"
    DID_CLOSE = "textDocument/didClose"
    PUBLISH_DIAGNOSTICS = "textDocument/publishDiagnostics"

    # Window Features
    SHOW_MESSAGE = "window/showMessage"
    SHOW_MESSAGE_REQUEST = "window/showMessageRequest"
    LOG_MESSAGE = "window/logMessage"
    WORK_DONE_PROGRESS_CREATE = "window/workDoneProgress/create"

    # Server-to-client workspace/client requests
    WORKSPACE_CONFIGURATION = "workspace/configuration"
    REGISTER_CAPABILITY = "client/registerCapability"
    UNREGISTER_CAPABILITY = "client/unregisterCapability"


# JSON-RPC 2.0 Message Types
JsonRPCRequest = dict[str, Any]
JsonRPCResponse = dict[str, Any]
JsonRPCNotification = dict[str, Any]
JsonRPCMessage = JsonRPCRequest | JsonRPCResponse | JsonRPCNotification

# LSP-specific types
InitializeParams = dict[str, Any]
InitializeResult = dict[str, Any]
