"""
LSP Tool Catalog

Turns the LSP method catalog into MCP tools. Every generated tool routes its
call to a language server connection, applies the method's handler strategy,
and forwards the caller's arguments verbatim as the method params.

Also provides the file_contents_to_uri tool, which opens inline content as an
in-memory document so that later tool calls can reference it by URI.
"""

import copy
import logging
import secrets
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse

from bridge_errors import InvalidArgumentError, RoutingError
from constants import (
    FILE_CONTENTS_TO_URI_TOOL,
    FILE_URI_SCHEME,
    MEMORY_URI_SCHEME,
    METHOD_PATH_SEPARATOR,
    TOOL_ID_SEPARATOR,
)
from lsp_connection import LSPConnection
from lsp_constants import LSPMethod
from lsp_methods import CatalogMethod, HandlerStrategy
from server_registry import ServerRegistry
from tool_registry import Tool, ToolHandler

PROGRAMMING_LANGUAGE_PROPERTY = "programming_language"


def tool_id_for_method(method_name: str) -> str:
    """Derive a flat tool id from an LSP method name."""
    return method_name.replace(METHOD_PATH_SEPARATOR, TOOL_ID_SEPARATOR)


def normalize_input_schema(schema: dict[str, Any]) -> dict[str, Any]:
    """Collapse list-valued ``type`` declarations some MCP clients cannot parse.

    A list prefers "string" when present, otherwise its first entry. Recurses
    into every ``properties`` value and into ``items``. The input is not
    modified.
    """
    normalized = copy.deepcopy(schema)
    _normalize_in_place(normalized)
    return normalized


def _normalize_in_place(node: Any) -> None:
    if not isinstance(node, dict):
        return

    schema_type = node.get("type")
    if isinstance(schema_type, list):
        if "string" in schema_type:
            node["type"] = "string"
        elif schema_type:
            node["type"] = schema_type[0]
        else:
            del node["type"]

    properties = node.get("properties")
    if isinstance(properties, dict):
        for value in properties.values():
            _normalize_in_place(value)

    items = node.get("items")
    if isinstance(items, list):
        for item in items:
            _normalize_in_place(item)
    else:
        _normalize_in_place(items)


def add_programming_language(schema: dict[str, Any]) -> dict[str, Any]:
    """Add an optional programming_language to textDocument, when it has properties."""
    text_document = schema.get("properties", {}).get("textDocument")
    if isinstance(text_document, dict) and isinstance(text_document.get("properties"), dict):
        text_document["properties"] = {
            **text_document["properties"],
            PROGRAMMING_LANGUAGE_PROPERTY: {
                "type": "string",
                "description": "Optional programming language of the file, if not obvious from the file extension",
            },
        }
    return schema


def uri_extension(uri: str) -> str | None:
    """Substring after the last '.' of a URI, or None."""
    if "." not in uri:
        return None
    extension = uri.rsplit(".", 1)[1]
    return extension or None


def new_memory_uri() -> str:
    """Fresh, unguessable in-memory document URI."""
    return f"{MEMORY_URI_SCHEME}://{secrets.token_hex(8)}"


@dataclass(frozen=True)
class VirtualDocument:
    """In-memory document opened on one connection."""

    uri: str
    language: str
    connection_id: str


class VirtualDocumentStore:
    """Tracks which connection holds each in-memory document."""

    def __init__(self):
        self._documents: dict[str, VirtualDocument] = {}

    def add(self, document: VirtualDocument) -> None:
        self._documents[document.uri] = document

    def get(self, uri: str) -> VirtualDocument | None:
        return self._documents.get(uri)

    def discard(self, uri: str) -> None:
        self._documents.pop(uri, None)

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, uri: object) -> bool:
        return uri in self._documents


class ToolCatalog:
    """Builds the tool set for a registry and a list of catalog methods."""

    def __init__(
        self,
        registry: ServerRegistry,
        methods: list[CatalogMethod],
        logger: logging.Logger | None = None,
    ):
        self.registry = registry
        self.methods = methods
        self.logger = logger or logging.getLogger(__name__)
        self.virtual_documents = VirtualDocumentStore()

    def build_tools(self) -> list[Tool]:
        """The file_contents_to_uri tool followed by one tool per method."""
        tools = [self._file_contents_to_uri_tool()]
        for method in self.methods:
            tools.append(self._method_tool(method))
        return tools

    def _method_tool(self, method: CatalogMethod) -> Tool:
        input_schema = add_programming_language(normalize_input_schema(method.input_schema))
        return Tool(
            id=tool_id_for_method(method.name),
            description=method.description,
            input_schema=input_schema,
            handler=self._make_handler(method),
        )

    def _make_handler(self, method: CatalogMethod) -> ToolHandler:
        async def handler(arguments: dict[str, Any]) -> Any:
            connection = self.resolve_connection(method.name, arguments)

            if method.strategy is HandlerStrategy.NOTIFY:
                await connection.send_notification(method.name, arguments)
                if method.name == LSPMethod.DID_CLOSE:
                    self.virtual_documents.discard(self._text_document_uri(arguments) or "")
                return None

            if method.strategy is HandlerStrategy.OPEN_THEN_REQUEST:
                await self._open_file_document(connection, arguments)

            return await connection.send_request(method.name, arguments)

        handler.__name__ = f"handle_{tool_id_for_method(method.name)}"
        return handler

    @staticmethod
    def _text_document(arguments: Any) -> dict[str, Any]:
        if not isinstance(arguments, dict):
            return {}
        text_document = arguments.get("textDocument")
        return text_document if isinstance(text_document, dict) else {}

    def _text_document_uri(self, arguments: Any) -> str | None:
        uri = self._text_document(arguments).get("uri")
        return uri if isinstance(uri, str) else None

    def resolve_connection(self, method_name: str, arguments: Any) -> LSPConnection:
        """Pick the connection for a call.

        Order: textDocument.programming_language, then a URI opened through
        file_contents_to_uri, then the extension of textDocument.uri.

        Raises:
            RoutingError: If nothing matches
        """
        text_document = self._text_document(arguments)
        language = text_document.get(PROGRAMMING_LANGUAGE_PROPERTY)
        uri = self._text_document_uri(arguments)

        connection = None
        if isinstance(language, str) and language:
            connection = self.registry.by_language(language)

        if connection is None and uri:
            document = self.virtual_documents.get(uri)
            if document is not None:
                connection = self.registry.get(document.connection_id)

        if connection is None and uri:
            extension = uri_extension(uri)
            if extension:
                connection = self.registry.by_extension(extension)

        if connection is None:
            raise RoutingError(
                method_name, uri, language if isinstance(language, str) else None
            )

        self.logger.debug(f"Routing {method_name} ({uri}) to LSP '{connection.spec.id}'")
        return connection

    async def _open_file_document(self, connection: LSPConnection, arguments: Any) -> None:
        """Open a file:// document on the server with its current disk content."""
        uri = self._text_document_uri(arguments)
        if not uri:
            return
        parsed = urlparse(uri)
        if parsed.scheme != FILE_URI_SCHEME:
            return

        path = Path(unquote(parsed.path))
        try:
            contents = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise InvalidArgumentError(f"Cannot read {uri}: {e}") from e

        language_id = self._language_id_for(connection, arguments, uri)
        version = await connection.open_document(uri, language_id, contents)
        self.logger.debug(f"Opened {uri} as {language_id} (version {version})")

    def _language_id_for(self, connection: LSPConnection, arguments: Any, uri: str) -> str:
        language = self._text_document(arguments).get(PROGRAMMING_LANGUAGE_PROPERTY)
        if isinstance(language, str) and language:
            return language
        if connection.spec.languages:
            return connection.spec.languages[0]
        return uri_extension(uri) or "plaintext"

    def _file_contents_to_uri_tool(self) -> Tool:
        return Tool(
            id=FILE_CONTENTS_TO_URI_TOOL,
            description=(
                "Creates a URI given some file contents to be used in the LSP "
                "methods that require a URI"
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "file_contents": {
                        "type": "string",
                        "description": "The contents of the file",
                    },
                    PROGRAMMING_LANGUAGE_PROPERTY: {
                        "type": "string",
                        "description": "The programming language of the file",
                    },
                },
                "required": ["file_contents", PROGRAMMING_LANGUAGE_PROPERTY],
            },
            handler=self._file_contents_to_uri,
        )

    async def _file_contents_to_uri(self, arguments: dict[str, Any]) -> str:
        if not isinstance(arguments, dict):
            raise InvalidArgumentError("Arguments must be an object")

        file_contents = arguments.get("file_contents")
        language = arguments.get(PROGRAMMING_LANGUAGE_PROPERTY)
        if not isinstance(file_contents, str):
            raise InvalidArgumentError("Missing required argument: file_contents")
        if not isinstance(language, str) or not language.strip():
            raise InvalidArgumentError(
                f"Missing required argument: {PROGRAMMING_LANGUAGE_PROPERTY}"
            )

        connection = self.registry.by_language(language)
        if connection is None:
            raise RoutingError(FILE_CONTENTS_TO_URI_TOOL, None, language)

        uri = new_memory_uri()
        await connection.open_document(uri, language, file_contents)
        self.virtual_documents.add(VirtualDocument(uri, language, connection.spec.id))
        self.logger.info(f"Opened in-memory document {uri} on LSP '{connection.spec.id}'")
        return uri
