#!/usr/bin/env python3

"""
Command-line entry point for the LSP MCP bridge.

Usage:
    lsp-mcp                                   # typescript-language-server
    lsp-mcp --lsp "pyright-langserver --stdio" --language python --extension py
    lsp-mcp --config lsps.json --methods textDocument/hover textDocument/definition

stdout carries the MCP protocol, so all logging goes to stderr and,
optionally, a log file.
"""

import argparse
import asyncio
import dataclasses
import logging
import os
import sys
import traceback
from typing import Any

from dotenv import load_dotenv

from bridge_config import BridgeConfig, load_configuration
from bridge_errors import ConfigurationError
from constants import (
    DEFAULT_LSP_COMMAND,
    ENV_CONFIG_PATH,
    ENV_LOG_FILE,
    ENV_LOG_LEVEL,
    ENV_REQUEST_TIMEOUT,
    SERVER_VERSION,
)
from exit_codes import BridgeExitCode, exit_code_for_exception
from lsp_bridge import create_bridge
from system_utils import MicrosecondFormatter

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lsp-mcp",
        description="Expose Language Server Protocol methods as MCP tools over stdio",
    )
    parser.add_argument(
        "-c",
        "--config",
        help=f"Path to a JSON config listing the LSPs to launch (env: {ENV_CONFIG_PATH})",
    )
    parser.add_argument(
        "-m",
        "--methods",
        nargs="+",
        metavar="METHOD",
        help="Only expose these LSP methods, e.g. textDocument/hover",
    )
    parser.add_argument(
        "-l",
        "--lsp",
        metavar="COMMAND",
        help=f"LSP command line, run through 'sh -c' (default: {DEFAULT_LSP_COMMAND})",
    )
    parser.add_argument(
        "--language",
        action="append",
        metavar="LANGUAGE",
        help="Language handled by --lsp (repeatable)",
    )
    parser.add_argument(
        "--extension",
        action="append",
        metavar="EXT",
        help="File extension handled by --lsp (repeatable)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--log-file", help=f"Also write logs to this file (env: {ENV_LOG_FILE})"
    )
    parser.add_argument(
        "--request-timeout",
        type=float,
        metavar="SECONDS",
        help=f"Per-request deadline, 0 disables (env: {ENV_REQUEST_TIMEOUT})",
    )
    parser.add_argument(
        "--workspace", metavar="DIR", help="Workspace root the LSPs are started in"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {SERVER_VERSION}")
    return parser


def resolve_log_level(verbose: bool) -> int:
    """-v wins, then LSP_MCP_LOG_LEVEL, then WARNING."""
    if verbose:
        return logging.DEBUG

    level_name = os.getenv(ENV_LOG_LEVEL)
    if level_name:
        level = logging.getLevelName(level_name.strip().upper())
        if isinstance(level, int):
            return level
        logger.warning(f"Ignoring unknown {ENV_LOG_LEVEL} value: {level_name}")

    return logging.WARNING


def setup_logging(level: int, log_file: str | None = None) -> logging.Logger:
    """Configure the root logger with a stderr handler and an optional file handler."""
    root_logger = logging.getLogger()
    if root_logger.handlers:
        root_logger.handlers.clear()
    root_logger.setLevel(level)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(
        MicrosecondFormatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    )
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(os.path.expanduser(log_file), mode="a")
        file_handler.setLevel(level)
        file_handler.setFormatter(
            MicrosecondFormatter(
                "%(asctime)s [%(levelname)8s] %(name)s.%(funcName)s:%(lineno)d - %(message)s"
            )
        )
        root_logger.addHandler(file_handler)

    logger.debug(f"Log level set to: {logging.getLevelName(level)}")
    if log_file:
        logger.debug(f"Log file: {log_file}")
    return root_logger


def _parse_timeout(value: Any, source: str) -> float | None:
    try:
        seconds = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{source} must be a number, got: {value!r}") from e
    if seconds < 0:
        raise ConfigurationError(f"{source} must not be negative, got: {seconds}")
    return seconds or None


def build_config(args: argparse.Namespace) -> BridgeConfig:
    """Build the bridge configuration from a config file or the --lsp flags.

    Command-line flags override values from the file; environment variables
    only fill in what neither provides.

    Raises:
        ConfigurationError: If the configuration is invalid
    """
    overrides: dict[str, Any] = {}
    if args.methods is not None:
        overrides["methods"] = args.methods
    if args.workspace is not None:
        overrides["workspace_root"] = args.workspace
    if args.request_timeout is not None:
        overrides["request_timeout"] = _parse_timeout(args.request_timeout, "--request-timeout")
    elif os.getenv(ENV_REQUEST_TIMEOUT):
        overrides["request_timeout"] = _parse_timeout(
            os.getenv(ENV_REQUEST_TIMEOUT), ENV_REQUEST_TIMEOUT
        )

    config_path = args.config or os.getenv(ENV_CONFIG_PATH)
    if config_path:
        if args.lsp or args.language or args.extension:
            logger.warning("--lsp, --language and --extension are ignored with a config file")
        config = load_configuration(config_path)
        return dataclasses.replace(config, **overrides) if overrides else config

    return BridgeConfig.from_command(
        args.lsp or DEFAULT_LSP_COMMAND,
        languages=args.language,
        extensions=args.extension,
        **overrides,
    )


async def run_bridge(config: BridgeConfig) -> int:
    """Start the bridge and serve until shutdown. Returns the exit code."""
    bridge = create_bridge(config)
    try:
        await bridge.start()
        return await bridge.run()
    finally:
        bridge.dispose()


def main(argv: list[str] | None = None) -> None:
    """Main entry point"""
    load_dotenv()

    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(resolve_log_level(args.verbose), args.log_file or os.getenv(ENV_LOG_FILE))
    logger.info(f"Starting lsp-mcp {SERVER_VERSION}")

    try:
        config = build_config(args)
        logger.info(
            f"Configured LSP(s): {', '.join(spec.id for spec in config.servers)}"
        )
        exit_code = asyncio.run(run_bridge(config))
    except KeyboardInterrupt:
        logger.info("Bridge stopped by user")
        exit_code = BridgeExitCode.SUCCESS_SIGNAL_SHUTDOWN
    except Exception as e:
        exit_code = exit_code_for_exception(e)
        if exit_code == BridgeExitCode.UNEXPECTED_ERROR:
            logger.error(f"Bridge failed: {e}")
            traceback.print_exc()
        else:
            logger.error(str(e))

    logger.info(f"Exiting with code {int(exit_code)}")
    sys.exit(int(exit_code))


if __name__ == "__main__":
    main()
