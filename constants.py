#!/usr/bin/env python3

"""
Shared constants for the LSP MCP bridge.
"""

# MCP server identity
SERVER_NAME = "lsp-mcp"
SERVER_VERSION = "0.1.0"
SERVER_INSTRUCTIONS = "Exposes Language Server Protocol requests as MCP tools"

# Single-server fallback when no config file is given
DEFAULT_SERVER_ID = "lsp"
DEFAULT_LSP_COMMAND = "npx -y typescript-language-server --stdio"
DEFAULT_LANGUAGES = ["typescript", "typescriptreact", "javascript", "javascriptreact"]
DEFAULT_EXTENSIONS = ["ts", "tsx", "js", "jsx", "mjs", "cjs", "mts", "cts"]

# Deadlines in seconds
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_STARTUP_TIMEOUT = 30.0
DISPOSE_REAP_TIMEOUT = 5.0

# URIs
FILE_URI_SCHEME = "file"
MEMORY_URI_SCHEME = "mem"

# LSP method names use "/" as a path separator, MCP tool ids may not
METHOD_PATH_SEPARATOR = "/"
TOOL_ID_SEPARATOR = "_"

# Synthetic tool
FILE_CONTENTS_TO_URI_TOOL = "file_contents_to_uri"

# Environment variables read by the CLI
ENV_CONFIG_PATH = "LSP_MCP_CONFIG"
ENV_LOG_LEVEL = "LSP_MCP_LOG_LEVEL"
ENV_LOG_FILE = "LSP_MCP_LOG_FILE"
ENV_REQUEST_TIMEOUT = "LSP_MCP_REQUEST_TIMEOUT"
