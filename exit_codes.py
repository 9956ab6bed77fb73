"""
Exit code definitions for the LSP MCP bridge.

Provides standardized exit codes that process managers and MCP hosts can
interpret to understand how the bridge exited.
"""

import enum

from bridge_errors import ConfigurationError, StartupError


class BridgeExitCode(enum.IntEnum):
    """Exit codes for different shutdown scenarios."""

    # Success codes (0-9)
    SUCCESS_CLEAN_SHUTDOWN = 0  # Transport closed normally
    SUCCESS_SIGNAL_SHUTDOWN = 1  # Clean shutdown via signal (SIGTERM/SIGINT)

    # Configuration/setup errors (50-59)
    INVALID_CONFIGURATION = 50  # Invalid bridge configuration
    LSP_STARTUP_FAILURE = 51  # A language server failed to spawn or initialize

    # Unknown/unexpected errors (60-69)
    UNEXPECTED_ERROR = 60  # Unexpected exception


def exit_code_for_exception(error: BaseException) -> BridgeExitCode:
    """Map a fatal exception to the exit code reported for it."""
    if isinstance(error, ConfigurationError):
        return BridgeExitCode.INVALID_CONFIGURATION
    if isinstance(error, StartupError):
        return BridgeExitCode.LSP_STARTUP_FAILURE
    return BridgeExitCode.UNEXPECTED_ERROR
