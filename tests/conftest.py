"""
Pytest configuration and shared fixtures for bridge tests.
"""

import logging
import tempfile
from pathlib import Path
from unittest.mock import Mock

import pytest

from bridge_config import ServerSpec
from lsp_connection import LSPConnection


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def mock_logger():
    """Logger double for asserting on log calls."""
    return Mock(spec=logging.Logger)


@pytest.fixture
def typescript_spec():
    return ServerSpec(
        id="typescript",
        command="typescript-language-server",
        args=("--stdio",),
        languages=("typescript", "javascript"),
        extensions=("ts", "js"),
    )


@pytest.fixture
def python_spec():
    return ServerSpec(
        id="python",
        command="pyright-langserver",
        args=("--stdio",),
        languages=("python",),
        extensions=("py",),
    )


@pytest.fixture
def connection_factory(temp_dir):
    """Create real connections to the fake server; disposed after the test."""
    created: list[LSPConnection] = []

    def factory(spec: ServerSpec, **kwargs) -> LSPConnection:
        kwargs.setdefault("workspace_root", str(temp_dir))
        kwargs.setdefault("request_timeout", 5.0)
        kwargs.setdefault("startup_timeout", 5.0)
        connection = LSPConnection(spec, **kwargs)
        created.append(connection)
        return connection

    yield factory

    for connection in created:
        connection.dispose()
