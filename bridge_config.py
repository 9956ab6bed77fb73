#!/usr/bin/env python3

"""
Configuration for the LSP MCP bridge

Loads and validates the list of language servers the bridge launches. A
configuration file looks like:

    {
        "lsps": [
            {
                "id": "typescript",
                "extensions": ["ts", "tsx", "js"],
                "languages": ["typescript", "javascript"],
                "command": "npx",
                "args": ["-y", "typescript-language-server", "--stdio"]
            }
        ],
        "methods": ["textDocument/documentSymbol"],
        "request_timeout": 30,
        "startup_timeout": 30,
        "workspace_root": "/path/to/project"
    }

Only "lsps" is required.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any

from bridge_errors import ConfigurationError
from constants import (
    DEFAULT_EXTENSIONS,
    DEFAULT_LANGUAGES,
    DEFAULT_LSP_COMMAND,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_SERVER_ID,
    DEFAULT_STARTUP_TIMEOUT,
)

logger = logging.getLogger(__name__)


def normalize_language(language: str) -> str:
    """Normalize a language tag for case-insensitive lookup."""
    return language.strip().lower()


def normalize_extension(extension: str) -> str:
    """Normalize a file extension: lowercase, no leading dot."""
    return extension.strip().lower().lstrip(".")


def _dedupe(values: list[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(value for value in values if value))


def _require_string_list(server_id: str, key: str, value: Any) -> list[str]:
    if not isinstance(value, list | tuple) or not all(
        isinstance(item, str) for item in value
    ):
        raise ConfigurationError(
            f"LSP '{server_id}': '{key}' must be a list of strings, got: {value!r}"
        )
    return list(value)


@dataclass(frozen=True)
class ServerSpec:
    """Static configuration for one language server."""

    id: str
    command: str
    args: tuple[str, ...] = ()
    languages: tuple[str, ...] = ()
    extensions: tuple[str, ...] = ()

    def __post_init__(self):
        """Validate and normalize after initialization."""
        if not isinstance(self.id, str) or not self.id.strip():
            raise ConfigurationError("LSP id cannot be empty")
        if not isinstance(self.command, str) or not self.command.strip():
            raise ConfigurationError(f"LSP '{self.id}': command cannot be empty")

        args = _require_string_list(self.id, "args", self.args)
        languages = _require_string_list(self.id, "languages", self.languages)
        extensions = _require_string_list(self.id, "extensions", self.extensions)

        # Frozen dataclass: normalized values are assigned through object
        object.__setattr__(self, "args", tuple(args))
        object.__setattr__(
            self, "languages", _dedupe([normalize_language(lang) for lang in languages])
        )
        object.__setattr__(
            self, "extensions", _dedupe([normalize_extension(ext) for ext in extensions])
        )

    @classmethod
    def from_dict(cls, data: Any) -> "ServerSpec":
        """Build a spec from one entry of the "lsps" list."""
        if not isinstance(data, dict):
            raise ConfigurationError(f"LSP entry must be an object, got: {data!r}")

        missing = [key for key in ("id", "command") if key not in data]
        if missing:
            raise ConfigurationError(
                f"LSP entry {data.get('id', '<unnamed>')!r} is missing required "
                f"fields: {', '.join(missing)}"
            )

        unknown = set(data) - {"id", "command", "args", "languages", "extensions"}
        if unknown:
            raise ConfigurationError(
                f"LSP '{data['id']}': unknown fields: {', '.join(sorted(unknown))}"
            )

        return cls(
            id=data["id"],
            command=data["command"],
            args=data.get("args", []),
            languages=data.get("languages", []),
            extensions=data.get("extensions", []),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize back to the configuration file shape."""
        return {
            "id": self.id,
            "extensions": list(self.extensions),
            "languages": list(self.languages),
            "command": self.command,
            "args": list(self.args),
        }


@dataclass
class BridgeConfig:
    """Complete bridge configuration."""

    servers: list[ServerSpec]
    methods: list[str] | None = None
    request_timeout: float | None = DEFAULT_REQUEST_TIMEOUT
    startup_timeout: float | None = DEFAULT_STARTUP_TIMEOUT
    workspace_root: str = field(default_factory=os.getcwd)

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.servers:
            raise ConfigurationError("Configuration must contain at least one LSP")

        seen: set[str] = set()
        for spec in self.servers:
            if spec.id in seen:
                raise ConfigurationError(f"Duplicate LSP id: {spec.id}")
            seen.add(spec.id)

        for name in ("request_timeout", "startup_timeout"):
            value = getattr(self, name)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int | float):
                raise ConfigurationError(f"'{name}' must be a number, got: {value!r}")
            if value <= 0:
                raise ConfigurationError(f"'{name}' must be positive, got: {value}")

        if self.methods is not None and not all(
            isinstance(method, str) for method in self.methods
        ):
            raise ConfigurationError("'methods' must be a list of strings")

        self.workspace_root = os.path.abspath(os.path.expanduser(self.workspace_root))

    @classmethod
    def from_dict(cls, config_data: Any) -> "BridgeConfig":
        """Parse a configuration dictionary."""
        if not isinstance(config_data, dict):
            raise ConfigurationError("Configuration must be a JSON object")

        if "lsps" not in config_data:
            raise ConfigurationError("Configuration must contain 'lsps' key")

        lsps = config_data["lsps"]
        if not isinstance(lsps, list):
            raise ConfigurationError("'lsps' must be a list")

        servers = [ServerSpec.from_dict(entry) for entry in lsps]

        kwargs: dict[str, Any] = {}
        for key in ("methods", "request_timeout", "startup_timeout", "workspace_root"):
            if key in config_data:
                kwargs[key] = config_data[key]

        if "methods" in kwargs and not isinstance(kwargs["methods"], list | None):
            raise ConfigurationError("'methods' must be a list of strings")
        if "workspace_root" in kwargs and not isinstance(kwargs["workspace_root"], str):
            raise ConfigurationError("'workspace_root' must be a string")

        return cls(servers=servers, **kwargs)

    @classmethod
    def from_command(
        cls,
        command_line: str = DEFAULT_LSP_COMMAND,
        languages: list[str] | None = None,
        extensions: list[str] | None = None,
        **kwargs: Any,
    ) -> "BridgeConfig":
        """Build a single-server configuration from a shell command line.

        The command is passed through ``sh -c``.
        """
        spec = ServerSpec(
            id=DEFAULT_SERVER_ID,
            command="sh",
            args=("-c", command_line),
            languages=tuple(DEFAULT_LANGUAGES if languages is None else languages),
            extensions=tuple(DEFAULT_EXTENSIONS if extensions is None else extensions),
        )
        return cls(servers=[spec], **kwargs)


def load_configuration(config_path: str) -> BridgeConfig:
    """Load and validate a bridge configuration file.

    Raises:
        ConfigurationError: If the file cannot be read or is invalid
    """
    path = os.path.abspath(os.path.expanduser(config_path))
    logger.info(f"Loading configuration from {path}")

    try:
        with open(path, encoding="utf-8") as f:
            config_data = json.load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Configuration file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in configuration file {path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration file {path}: {e}") from e

    config = BridgeConfig.from_dict(config_data)
    logger.info(
        f"Loaded {len(config.servers)} LSP(s): {', '.join(s.id for s in config.servers)}"
    )
    return config
