"""
Tests for ServerRegistry routing lookups.
"""

from unittest.mock import Mock

import pytest

from bridge_config import ServerSpec
from bridge_errors import ConfigurationError
from server_registry import ServerRegistry
from tests.test_fixtures import make_mock_connection


class TestServerRegistry:
    """Test lookups by id, language and extension."""

    def setup_method(self):
        self.logger = Mock()

    def _registry(self, *specs: ServerSpec) -> ServerRegistry:
        return ServerRegistry(
            ((spec, make_mock_connection(spec)) for spec in specs), logger=self.logger
        )

    def test_lookup_by_language_and_extension(self, typescript_spec, python_spec):
        registry = self._registry(typescript_spec, python_spec)

        assert registry.by_language("typescript").spec is typescript_spec
        assert registry.by_language("javascript").spec is typescript_spec
        assert registry.by_language("python").spec is python_spec
        assert registry.by_extension("ts").spec is typescript_spec
        assert registry.by_extension("py").spec is python_spec

    def test_lookups_are_case_insensitive(self, typescript_spec):
        registry = self._registry(typescript_spec)

        assert registry.by_language("TypeScript") is registry.get("typescript")
        assert registry.by_extension("TS") is registry.get("typescript")
        assert registry.by_extension(".ts") is registry.get("typescript")
        assert registry.get("TYPESCRIPT") is registry.get("typescript")

    def test_missing_lookups_return_none(self, typescript_spec):
        registry = self._registry(typescript_spec)

        assert registry.by_language("rust") is None
        assert registry.by_extension("rs") is None
        assert registry.get("rust") is None
        assert "rust" not in registry

    def test_every_claim_is_reachable(self, typescript_spec, python_spec):
        registry = self._registry(typescript_spec, python_spec)

        for spec in (typescript_spec, python_spec):
            for language in spec.languages:
                assert registry.by_language(language).spec.id == spec.id
            for extension in spec.extensions:
                assert registry.by_extension(extension).spec.id == spec.id

    def test_first_registered_wins_overlap(self):
        first = ServerSpec(id="tsserver", command="a", languages=("typescript",), extensions=("ts",))
        second = ServerSpec(id="deno", command="b", languages=("typescript",), extensions=("ts", "tsx"))

        registry = self._registry(first, second)

        assert registry.by_language("typescript").spec.id == "tsserver"
        assert registry.by_extension("ts").spec.id == "tsserver"
        assert registry.by_extension("tsx").spec.id == "deno"
        assert self.logger.warning.call_count == 2

    def test_duplicate_ids_rejected(self, typescript_spec):
        with pytest.raises(ConfigurationError, match="Duplicate LSP id"):
            self._registry(typescript_spec, typescript_spec)

    def test_from_specs_uses_factory(self, typescript_spec, python_spec):
        factory = Mock(side_effect=make_mock_connection)

        registry = ServerRegistry.from_specs([typescript_spec, python_spec], factory)

        assert factory.call_count == 2
        assert registry.ids() == ["typescript", "python"]
        assert len(registry) == 2
        assert [connection.spec.id for connection in registry.all()] == ["typescript", "python"]

    def test_from_specs_rejects_duplicates_before_creating_connections(self, typescript_spec):
        factory = Mock(side_effect=make_mock_connection)

        with pytest.raises(ConfigurationError):
            ServerRegistry.from_specs([typescript_spec, typescript_spec], factory)

        factory.assert_not_called()

    def test_index_views(self, typescript_spec, python_spec):
        registry = self._registry(typescript_spec, python_spec)

        assert registry.languages() == {
            "typescript": "typescript",
            "javascript": "typescript",
            "python": "python",
        }
        assert registry.extensions() == {"ts": "typescript", "js": "typescript", "py": "python"}
        assert registry.spec_for("python") is python_spec
        assert registry.spec_for("rust") is None

    def test_empty_registry(self):
        registry = self._registry()

        assert len(registry) == 0
        assert registry.all() == []
        assert registry.by_language("typescript") is None
