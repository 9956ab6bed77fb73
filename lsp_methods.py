"""
LSP Method Catalog

Fixed table of the text-document LSP methods the bridge exposes as tools.
Each entry carries the method name, a description, the JSON schema of its
params (LSP 3.17 shapes), and the strategy the tool handler uses to forward it.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from bridge_errors import ConfigurationError


class HandlerStrategy(Enum):
    """How a generated tool forwards its call to the language server."""

    REQUEST = "request"
    OPEN_THEN_REQUEST = "open_then_request"
    NOTIFY = "notify"


@dataclass(frozen=True)
class CatalogMethod:
    """One LSP method exposed as a tool."""

    name: str
    description: str
    input_schema: dict[str, Any]
    strategy: HandlerStrategy


def _object(
    properties: dict[str, Any],
    required: list[str] | None = None,
    description: str | None = None,
) -> dict[str, Any]:
    schema: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    if description:
        schema["description"] = description
    return schema


TEXT_DOCUMENT_IDENTIFIER = _object(
    {
        "uri": {
            "type": "string",
            "description": "The text document's URI (file:// URI, or a URI from file_contents_to_uri)",
        }
    },
    ["uri"],
    "The text document",
)

VERSIONED_TEXT_DOCUMENT_IDENTIFIER = _object(
    {
        "uri": {"type": "string", "description": "The text document's URI"},
        "version": {"type": "integer", "description": "The version number of this document"},
    },
    ["uri", "version"],
    "The document that changed",
)

TEXT_DOCUMENT_ITEM = _object(
    {
        "uri": {"type": "string", "description": "The text document's URI"},
        "languageId": {"type": "string", "description": "The text document's language identifier"},
        "version": {"type": "integer", "description": "The version number of this document"},
        "text": {"type": "string", "description": "The content of the opened text document"},
    },
    ["uri", "languageId", "version", "text"],
    "The document that was opened",
)

POSITION = _object(
    {
        "line": {"type": "integer", "description": "Line position in a document (zero-based)"},
        "character": {
            "type": "integer",
            "description": "Character offset on a line in a document (zero-based)",
        },
    },
    ["line", "character"],
    "The position inside the text document",
)

RANGE = _object(
    {"start": POSITION, "end": POSITION},
    ["start", "end"],
    "A range in a text document",
)

WORK_DONE_TOKEN = {
    "type": ["integer", "string"],
    "description": "An optional token that a server can use to report work done progress",
}

PARTIAL_RESULT_TOKEN = {
    "type": ["integer", "string"],
    "description": "An optional token that a server can use to report partial results",
}

FORMATTING_OPTIONS = _object(
    {
        "tabSize": {"type": "integer", "description": "Size of a tab in spaces"},
        "insertSpaces": {"type": "boolean", "description": "Prefer spaces over tabs"},
        "trimTrailingWhitespace": {"type": "boolean"},
        "insertFinalNewline": {"type": "boolean"},
        "trimFinalNewlines": {"type": "boolean"},
    },
    ["tabSize", "insertSpaces"],
    "The format options",
)

HIERARCHY_ITEM_NOTE = "Use the prepare request first to obtain items"


def _document_params(
    extra: dict[str, Any] | None = None,
    required: list[str] | None = None,
    partial_results: bool = False,
) -> dict[str, Any]:
    properties: dict[str, Any] = {"textDocument": TEXT_DOCUMENT_IDENTIFIER}
    properties.update(extra or {})
    properties["workDoneToken"] = WORK_DONE_TOKEN
    if partial_results:
        properties["partialResultToken"] = PARTIAL_RESULT_TOKEN
    return _object(properties, ["textDocument", *(required or [])])


def _position_params(
    extra: dict[str, Any] | None = None,
    required: list[str] | None = None,
    partial_results: bool = False,
) -> dict[str, Any]:
    return _document_params(
        {"position": POSITION, **(extra or {})},
        ["position", *(required or [])],
        partial_results=partial_results,
    )


def _request(name: str, description: str, schema: dict[str, Any]) -> CatalogMethod:
    return CatalogMethod(name, description, schema, HandlerStrategy.OPEN_THEN_REQUEST)


def _notification(name: str, description: str, schema: dict[str, Any]) -> CatalogMethod:
    return CatalogMethod(name, description, schema, HandlerStrategy.NOTIFY)


LSP_METHODS: tuple[CatalogMethod, ...] = (
    _request(
        "textDocument/documentSymbol",
        "Get the symbols in a file (classes, functions, variables, ...)",
        _document_params(partial_results=True),
    ),
    _request(
        "textDocument/definition",
        "Get the definition location of the symbol at a position",
        _position_params(partial_results=True),
    ),
    _request(
        "textDocument/declaration",
        "Get the declaration location of the symbol at a position",
        _position_params(partial_results=True),
    ),
    _request(
        "textDocument/typeDefinition",
        "Get the type definition location of the symbol at a position",
        _position_params(partial_results=True),
    ),
    _request(
        "textDocument/implementation",
        "Get the implementation locations of the symbol at a position",
        _position_params(partial_results=True),
    ),
    _request(
        "textDocument/references",
        "Find all references to the symbol at a position",
        _position_params(
            {
                "context": _object(
                    {
                        "includeDeclaration": {
                            "type": "boolean",
                            "description": "Include the declaration of the current symbol",
                        }
                    },
                    ["includeDeclaration"],
                )
            },
            ["context"],
            partial_results=True,
        ),
    ),
    _request(
        "textDocument/hover",
        "Get hover information (type, documentation) for the symbol at a position",
        _position_params(),
    ),
    _request(
        "textDocument/documentHighlight",
        "Get the ranges in a file that refer to the symbol at a position",
        _position_params(partial_results=True),
    ),
    _request(
        "textDocument/completion",
        "Get completion items at a position",
        _position_params(
            {
                "context": _object(
                    {
                        "triggerKind": {
                            "type": "integer",
                            "description": "How the completion was triggered (1 invoked, 2 character, 3 incomplete)",
                        },
                        "triggerCharacter": {"type": "string"},
                    },
                    ["triggerKind"],
                )
            },
            partial_results=True,
        ),
    ),
    _request(
        "textDocument/signatureHelp",
        "Get signature information for the call at a position",
        _position_params(),
    ),
    _request(
        "textDocument/codeAction",
        "Get the code actions (quick fixes, refactorings) available for a range",
        _document_params(
            {
                "range": RANGE,
                "context": _object(
                    {
                        "diagnostics": {"type": "array", "items": {"type": "object"}},
                        "only": {"type": "array", "items": {"type": "string"}},
                        "triggerKind": {"type": "integer"},
                    },
                    ["diagnostics"],
                ),
            },
            ["range", "context"],
            partial_results=True,
        ),
    ),
    _request(
        "textDocument/codeLens",
        "Get the code lenses of a file",
        _document_params(partial_results=True),
    ),
    _request(
        "textDocument/documentLink",
        "Get the links in a file",
        _document_params(partial_results=True),
    ),
    _request(
        "textDocument/foldingRange",
        "Get the folding ranges of a file",
        _document_params(partial_results=True),
    ),
    _request(
        "textDocument/selectionRange",
        "Get selection ranges around the given positions",
        _document_params(
            {"positions": {"type": "array", "items": POSITION}},
            ["positions"],
            partial_results=True,
        ),
    ),
    _request(
        "textDocument/formatting",
        "Get the edits that format a whole file",
        _document_params({"options": FORMATTING_OPTIONS}, ["options"]),
    ),
    _request(
        "textDocument/rangeFormatting",
        "Get the edits that format a range of a file",
        _document_params({"range": RANGE, "options": FORMATTING_OPTIONS}, ["range", "options"]),
    ),
    _request(
        "textDocument/prepareRename",
        "Check whether the symbol at a position can be renamed",
        _position_params(),
    ),
    _request(
        "textDocument/rename",
        "Get the workspace edit that renames the symbol at a position",
        _position_params(
            {"newName": {"type": "string", "description": "The new name of the symbol"}},
            ["newName"],
        ),
    ),
    _request(
        "textDocument/inlayHint",
        "Get inlay hints (inferred types, parameter names) for a range",
        _document_params({"range": RANGE}, ["range"]),
    ),
    _request(
        "textDocument/semanticTokens/full",
        "Get the semantic tokens of a file",
        _document_params(partial_results=True),
    ),
    _request(
        "textDocument/prepareCallHierarchy",
        f"Get call hierarchy items for the symbol at a position. {HIERARCHY_ITEM_NOTE}",
        _position_params(),
    ),
    _request(
        "textDocument/prepareTypeHierarchy",
        f"Get type hierarchy items for the symbol at a position. {HIERARCHY_ITEM_NOTE}",
        _position_params(),
    ),
    _request(
        "textDocument/diagnostic",
        "Pull the diagnostics (errors, warnings) of a file",
        _document_params(
            {
                "identifier": {"type": "string"},
                "previousResultId": {"type": "string"},
            },
            partial_results=True,
        ),
    ),
    _notification(
        "textDocument/didOpen",
        "Open a document on the language server with the given content",
        _object({"textDocument": TEXT_DOCUMENT_ITEM}, ["textDocument"]),
    ),
    _notification(
        "textDocument/didChange",
        "Replace the content of an open document",
        _object(
            {
                "textDocument": VERSIONED_TEXT_DOCUMENT_IDENTIFIER,
                "contentChanges": {
                    "type": "array",
                    "items": _object(
                        {"range": RANGE, "text": {"type": "string"}},
                        ["text"],
                    ),
                },
            },
            ["textDocument", "contentChanges"],
        ),
    ),
    _notification(
        "textDocument/didClose",
        "Close a document previously opened on the language server",
        _object({"textDocument": TEXT_DOCUMENT_IDENTIFIER}, ["textDocument"]),
    ),
    _notification(
        "textDocument/didSave",
        "Notify the language server that a document was saved",
        _object(
            {
                "textDocument": TEXT_DOCUMENT_IDENTIFIER,
                "text": {"type": "string"},
            },
            ["textDocument"],
        ),
    ),
)


def get_lsp_methods(names: list[str] | None = None) -> list[CatalogMethod]:
    """Return the catalog, or the named subset of it in catalog order.

    Raises:
        ConfigurationError: If a requested name is not in the catalog
    """
    if names is None:
        return list(LSP_METHODS)

    known = {method.name for method in LSP_METHODS}
    unknown = [name for name in names if name not in known]
    if unknown:
        raise ConfigurationError(f"Unknown LSP method(s): {', '.join(unknown)}")

    wanted = set(names)
    return [method for method in LSP_METHODS if method.name in wanted]
