"""
Tests for the lsp-mcp command line.
"""

import json
import logging
from unittest.mock import AsyncMock, patch

import pytest

import lsp_mcp_cli
from bridge_errors import ConfigurationError, StartupError
from constants import (
    DEFAULT_LSP_COMMAND,
    ENV_CONFIG_PATH,
    ENV_LOG_FILE,
    ENV_LOG_LEVEL,
    ENV_REQUEST_TIMEOUT,
)
from lsp_mcp_cli import build_config, create_parser, main, resolve_log_level


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in (ENV_CONFIG_PATH, ENV_LOG_FILE, ENV_LOG_LEVEL, ENV_REQUEST_TIMEOUT):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_file(temp_dir):
    path = temp_dir / "lsps.json"
    path.write_text(
        json.dumps(
            {
                "lsps": [
                    {
                        "id": "typescript",
                        "extensions": ["ts"],
                        "languages": ["typescript"],
                        "command": "typescript-language-server",
                        "args": ["--stdio"],
                    },
                    {
                        "id": "python",
                        "extensions": ["py"],
                        "languages": ["python"],
                        "command": "pyright-langserver",
                        "args": ["--stdio"],
                    },
                ],
                "request_timeout": 12,
            }
        )
    )
    return path


def parse(*argv: str):
    return create_parser().parse_args(list(argv))


class TestResolveLogLevel:
    def test_default_is_warning(self):
        assert resolve_log_level(False) == logging.WARNING

    def test_verbose_wins(self, monkeypatch):
        monkeypatch.setenv(ENV_LOG_LEVEL, "error")

        assert resolve_log_level(True) == logging.DEBUG

    def test_environment_level(self, monkeypatch):
        monkeypatch.setenv(ENV_LOG_LEVEL, "info")

        assert resolve_log_level(False) == logging.INFO

    def test_unknown_environment_level_falls_back(self, monkeypatch):
        monkeypatch.setenv(ENV_LOG_LEVEL, "loud")

        assert resolve_log_level(False) == logging.WARNING


class TestBuildConfig:
    def test_default_single_server(self):
        config = build_config(parse())

        assert len(config.servers) == 1
        assert config.servers[0].args == ("-c", DEFAULT_LSP_COMMAND)
        assert config.methods is None

    def test_custom_lsp_command(self):
        config = build_config(
            parse(
                "--lsp",
                "pyright-langserver --stdio",
                "--language",
                "python",
                "--extension",
                "py",
                "--extension",
                "pyi",
            )
        )
        spec = config.servers[0]

        assert spec.command == "sh"
        assert spec.args == ("-c", "pyright-langserver --stdio")
        assert spec.languages == ("python",)
        assert spec.extensions == ("py", "pyi")

    def test_config_file(self, config_file):
        config = build_config(parse("--config", str(config_file)))

        assert [spec.id for spec in config.servers] == ["typescript", "python"]
        assert config.request_timeout == 12

    def test_flags_override_config_file(self, config_file, temp_dir):
        config = build_config(
            parse(
                "-c",
                str(config_file),
                "-m",
                "textDocument/hover",
                "--request-timeout",
                "3",
                "--workspace",
                str(temp_dir),
            )
        )

        assert config.methods == ["textDocument/hover"]
        assert config.request_timeout == 3
        assert config.workspace_root == str(temp_dir)

    def test_config_path_from_environment(self, config_file, monkeypatch):
        monkeypatch.setenv(ENV_CONFIG_PATH, str(config_file))

        config = build_config(parse())

        assert len(config.servers) == 2

    def test_zero_timeout_disables_deadline(self):
        config = build_config(parse("--request-timeout", "0"))

        assert config.request_timeout is None

    def test_timeout_from_environment(self, monkeypatch):
        monkeypatch.setenv(ENV_REQUEST_TIMEOUT, "4.5")

        assert build_config(parse()).request_timeout == 4.5

    def test_invalid_timeout_from_environment(self, monkeypatch):
        monkeypatch.setenv(ENV_REQUEST_TIMEOUT, "soon")

        with pytest.raises(ConfigurationError, match=ENV_REQUEST_TIMEOUT):
            build_config(parse())

    def test_missing_config_file(self, temp_dir):
        with pytest.raises(ConfigurationError):
            build_config(parse("--config", str(temp_dir / "nope.json")))


class TestMain:
    """Exit codes reported by main()."""

    def _run_main(self, *argv: str, run_bridge: AsyncMock | None = None) -> int:
        run_bridge = run_bridge or AsyncMock(return_value=0)
        with (
            patch("lsp_mcp_cli.load_dotenv"),
            patch("lsp_mcp_cli.setup_logging"),
            patch("lsp_mcp_cli.run_bridge", run_bridge),
        ):
            with pytest.raises(SystemExit) as exc_info:
                main(list(argv))
        return exc_info.value.code

    def test_clean_exit(self):
        run_bridge = AsyncMock(return_value=0)

        assert self._run_main(run_bridge=run_bridge) == 0
        run_bridge.assert_awaited_once()

    def test_signal_exit_code_is_propagated(self):
        assert self._run_main(run_bridge=AsyncMock(return_value=1)) == 1

    def test_invalid_configuration(self, temp_dir):
        assert self._run_main("--config", str(temp_dir / "missing.json")) == 50

    def test_unknown_method(self):
        run_bridge = AsyncMock(side_effect=ConfigurationError("Unknown LSP method(s): x"))

        assert self._run_main("-m", "x", run_bridge=run_bridge) == 50

    def test_startup_failure(self):
        run_bridge = AsyncMock(side_effect=StartupError("lsp", "initialize failed"))

        assert self._run_main(run_bridge=run_bridge) == 51

    def test_unexpected_error(self):
        assert self._run_main(run_bridge=AsyncMock(side_effect=RuntimeError("boom"))) == 60


class TestSetupLogging:
    def test_logs_to_stderr_and_file(self, temp_dir):
        root_logger = logging.getLogger()
        saved_handlers = root_logger.handlers[:]
        saved_level = root_logger.level
        log_file = temp_dir / "bridge.log"
        try:
            lsp_mcp_cli.setup_logging(logging.INFO, str(log_file))
            logging.getLogger("lsp_connection.test").info("hello log file")

            handler_types = {type(handler) for handler in root_logger.handlers}
            assert logging.StreamHandler in handler_types
            assert logging.FileHandler in handler_types
            for handler in root_logger.handlers:
                handler.flush()
            assert "hello log file" in log_file.read_text()
        finally:
            for handler in root_logger.handlers:
                handler.close()
            root_logger.handlers[:] = saved_handlers
            root_logger.setLevel(saved_level)
