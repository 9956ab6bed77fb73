"""
Test fixtures and mock objects for the bridge test suite.

Currently provides:
- fake_server_spec: ServerSpec launching the scripted fake language server
- make_mock_connection: LSPConnection double with async methods

Usage:
    from tests.test_fixtures import fake_server_spec, make_mock_connection

    def test_something():
        connection = make_mock_connection(spec)
        registry = ServerRegistry([(spec, connection)])
"""

import sys
from pathlib import Path
from unittest.mock import AsyncMock, Mock

from bridge_config import ServerSpec
from lsp_connection import LSPConnection

FAKE_SERVER = str(Path(__file__).parent / "fake_lsp_server.py")


def fake_server_spec(
    *flags: str,
    server_id: str = "fake",
    languages: tuple[str, ...] = ("typescript",),
    extensions: tuple[str, ...] = ("ts",),
) -> ServerSpec:
    """Spec that launches the scripted fake language server."""
    return ServerSpec(
        id=server_id,
        command=sys.executable,
        args=(FAKE_SERVER, *flags),
        languages=languages,
        extensions=extensions,
    )


def make_mock_connection(spec: ServerSpec) -> Mock:
    """Connection double with async request/notification methods."""
    connection = Mock(spec=LSPConnection)
    connection.spec = spec
    connection.id = spec.id
    connection.start = AsyncMock(return_value={"capabilities": {}})
    connection.send_request = AsyncMock(return_value={"ok": True})
    connection.send_notification = AsyncMock(return_value=None)
    connection.open_document = AsyncMock(return_value=1)
    connection.dispose = Mock()
    return connection
