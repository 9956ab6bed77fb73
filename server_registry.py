#!/usr/bin/env python3

"""
Server Registry for the LSP MCP bridge

Holds the set of language server connections and answers routing queries:
which connection serves a given id, language tag or file extension.
"""

import logging
from collections.abc import Callable, Iterable

from bridge_config import ServerSpec, normalize_extension, normalize_language
from bridge_errors import ConfigurationError
from lsp_connection import LSPConnection


class ServerRegistry:
    """Connections keyed by id, with derived language and extension indices.

    When two specs claim the same language or extension, the spec registered
    first keeps the claim and a warning is logged.
    """

    def __init__(
        self,
        entries: Iterable[tuple[ServerSpec, LSPConnection]],
        logger: logging.Logger | None = None,
    ):
        self.logger = logger or logging.getLogger(__name__)
        self._specs: dict[str, ServerSpec] = {}
        self._connections: dict[str, LSPConnection] = {}
        self._language_to_id: dict[str, str] = {}
        self._extension_to_id: dict[str, str] = {}

        for spec, connection in entries:
            if spec.id in self._connections:
                raise ConfigurationError(f"Duplicate LSP id: {spec.id}")
            self._specs[spec.id] = spec
            self._connections[spec.id] = connection

        for spec in self._specs.values():
            for language in spec.languages:
                self._claim(self._language_to_id, "language", normalize_language(language), spec.id)
            for extension in spec.extensions:
                self._claim(self._extension_to_id, "extension", normalize_extension(extension), spec.id)

        self.logger.debug(
            f"Registry built: {len(self._connections)} LSP(s), "
            f"languages={sorted(self._language_to_id)}, "
            f"extensions={sorted(self._extension_to_id)}"
        )

    def _claim(self, index: dict[str, str], kind: str, key: str, server_id: str) -> None:
        if not key:
            return
        owner = index.get(key)
        if owner is None:
            index[key] = server_id
        elif owner != server_id:
            self.logger.warning(
                f"LSP '{server_id}' also claims {kind} '{key}'; keeping '{owner}'"
            )

    @classmethod
    def from_specs(
        cls,
        specs: Iterable[ServerSpec],
        connection_factory: Callable[[ServerSpec], LSPConnection],
        logger: logging.Logger | None = None,
    ) -> "ServerRegistry":
        """Build a registry, creating one connection per spec."""
        specs = list(specs)
        ids = [spec.id for spec in specs]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ConfigurationError(f"Duplicate LSP id: {', '.join(duplicates)}")
        return cls(((spec, connection_factory(spec)) for spec in specs), logger=logger)

    def get(self, server_id: str) -> LSPConnection | None:
        """Get a connection by id (case-insensitive)."""
        connection = self._connections.get(server_id)
        if connection is not None:
            return connection
        wanted = server_id.lower()
        for key, candidate in self._connections.items():
            if key.lower() == wanted:
                return candidate
        return None

    def all(self) -> list[LSPConnection]:
        """All connections in registration order."""
        return list(self._connections.values())

    def ids(self) -> list[str]:
        """All server ids in registration order."""
        return list(self._connections)

    def spec_for(self, server_id: str) -> ServerSpec | None:
        """Get the spec a connection was built from."""
        return self._specs.get(server_id)

    def by_language(self, language: str) -> LSPConnection | None:
        """Get the connection serving a language tag."""
        server_id = self._language_to_id.get(normalize_language(language))
        return self._connections[server_id] if server_id is not None else None

    def by_extension(self, extension: str) -> LSPConnection | None:
        """Get the connection serving a file extension (with or without dot)."""
        server_id = self._extension_to_id.get(normalize_extension(extension))
        return self._connections[server_id] if server_id is not None else None

    def languages(self) -> dict[str, str]:
        """Language tag -> server id."""
        return dict(self._language_to_id)

    def extensions(self) -> dict[str, str]:
        """Extension -> server id."""
        return dict(self._extension_to_id)

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, server_id: object) -> bool:
        return isinstance(server_id, str) and self.get(server_id) is not None
