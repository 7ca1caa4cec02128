"""Tests for the etag-runner CLI."""

from __future__ import annotations

import os
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from etag_runner import __version__
from etag_runner.cli import app
from etag_runner.updater import CheckResult, UpdaterState


runner = CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Keep the user's config and environment out of CLI tests."""
    for key in list(os.environ):
        if key.startswith("ETAG_RUNNER_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))


@pytest.fixture
def mock_loop():
    with patch("etag_runner.cli.UpdateLoop") as loop_cls, patch("etag_runner.cli.setup_logging"):
        loop_cls.return_value.run_forever.return_value = UpdaterState()
        yield loop_cls


class TestVersion:
    def test_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestRunCommand:
    """Tests for etag-runner run."""

    def test_run_builds_target_and_loop(self, mock_loop, tmp_path):
        result = runner.invoke(
            app,
            [
                "run", "test.lua",
                "--base-url", "https://example.com/raw",
                "--work-dir", str(tmp_path),
                "--interval", "30",
                "--max-cycles", "2",
            ],
        )

        assert result.exit_code == 0, result.output
        target = mock_loop.call_args.args[0]
        config = mock_loop.call_args.kwargs["config"]
        assert target.url == "https://example.com/raw/test.lua"
        assert target.local_path == tmp_path / "test.lua"
        assert config.check_interval == 30
        mock_loop.return_value.run_forever.assert_called_once_with(max_cycles=2)

    def test_run_uses_config_file(self, mock_loop, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("base_url: https://cfg.example.com\ncheck_interval: 5\n")

        result = runner.invoke(app, ["run", "tool.py", "--config", str(config_file)])

        assert result.exit_code == 0, result.output
        config = mock_loop.call_args.kwargs["config"]
        assert config.base_url == "https://cfg.example.com"
        assert config.check_interval == 5

    def test_cli_options_override_config(self, mock_loop, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("check_interval: 5\ninterpreter: lua\n")

        result = runner.invoke(
            app,
            [
                "run", "test.lua",
                "--config", str(config_file),
                "--interval", "120",
                "--interpreter", "craftos --script",
                "--timeout", "10",
            ],
        )

        assert result.exit_code == 0, result.output
        config = mock_loop.call_args.kwargs["config"]
        assert config.check_interval == 120
        assert config.interpreter == "craftos --script"
        assert config.execution_timeout == 10.0

    def test_invalid_filename(self, mock_loop):
        result = runner.invoke(app, ["run", "../escape.lua"])

        assert result.exit_code == 1
        assert "path traversal" in result.output
        mock_loop.assert_not_called()

    def test_missing_config_file(self, mock_loop, tmp_path):
        result = runner.invoke(app, ["run", "test.lua", "--config", str(tmp_path / "nope.yaml")])

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_invalid_option_value(self, mock_loop):
        result = runner.invoke(app, ["run", "test.lua", "--interval=-3"])

        assert result.exit_code == 1
        assert "check_interval" in result.output

    def test_missing_filename(self):
        result = runner.invoke(app, ["run"])
        assert result.exit_code != 0

    def test_run_end_to_end(self, tmp_path):
        """One real cycle: fake HTTP, real file write, real subprocess."""
        session = MagicMock()
        head = MagicMock(status_code=200, ok=True, headers={"ETag": '"abc"'})
        get = MagicMock(status_code=200, ok=True, headers={"ETag": '"abc"'}, content=b"print('ran')\n")
        session.head.return_value = head
        session.get.return_value = get

        with patch("etag_runner.updater.fetcher.requests.Session", return_value=session), \
                patch("etag_runner.cli.setup_logging"):
            result = runner.invoke(
                app,
                [
                    "run", "hello.py",
                    "--base-url", "https://example.com/raw",
                    "--work-dir", str(tmp_path),
                    "--max-cycles", "1",
                ],
            )

        assert result.exit_code == 0, result.output
        assert (tmp_path / "hello.py").read_bytes() == b"print('ran')\n"
        session.head.assert_called_once()


class TestCheckCommand:
    """Tests for etag-runner check."""

    def test_prints_etag(self, tmp_path):
        with patch("etag_runner.cli.Fetcher") as fetcher_cls:
            fetcher = fetcher_cls.return_value.__enter__.return_value
            fetcher.check.return_value = CheckResult(ok=True, etag='"abc"', status_code=200)

            result = runner.invoke(app, ["check", "test.lua", "--base-url", "https://example.com"])

        assert result.exit_code == 0, result.output
        assert 'ETag: "abc"' in result.output
        assert "https://example.com/test.lua" in result.output
        fetcher.check.assert_called_once_with("https://example.com/test.lua")

    def test_missing_etag(self):
        with patch("etag_runner.cli.Fetcher") as fetcher_cls:
            fetcher = fetcher_cls.return_value.__enter__.return_value
            fetcher.check.return_value = CheckResult(ok=True, etag=None, status_code=200)

            result = runner.invoke(app, ["check", "test.lua"])

        assert result.exit_code == 0
        assert "ETag: N/A" in result.output

    def test_check_failure_exits_1(self):
        with patch("etag_runner.cli.Fetcher") as fetcher_cls:
            fetcher = fetcher_cls.return_value.__enter__.return_value
            fetcher.check.return_value = CheckResult(ok=False, error="HTTP 404", status_code=404)

            result = runner.invoke(app, ["check", "test.lua"])

        assert result.exit_code == 1
        assert "HTTP 404" in result.output


class TestConfigCommand:
    """Tests for etag-runner config."""

    def test_show_defaults(self):
        result = runner.invoke(app, ["config", "show"])

        assert result.exit_code == 0
        assert "using defaults" in result.output
        assert "check_interval: 60" in result.output

    def test_show_file(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("check_interval: 10\n")

        result = runner.invoke(app, ["config", "show", "--config", str(config_file)])

        assert result.exit_code == 0
        assert str(config_file) in result.output
        assert "check_interval: 10" in result.output

    def test_validate_ok(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("base_url: https://example.com\n")

        result = runner.invoke(app, ["config", "validate", "--config", str(config_file)])

        assert result.exit_code == 0
        assert "Base URL: https://example.com" in result.output
        assert "complete" in result.output

    def test_validate_bad_value(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("check_interval: -1\n")

        result = runner.invoke(app, ["config", "validate", "--config", str(config_file)])

        assert result.exit_code == 1
        assert "Validation failed" in result.output

    def test_validate_missing_file(self, tmp_path):
        result = runner.invoke(app, ["config", "validate", "--config", str(tmp_path / "x.yaml")])

        assert result.exit_code == 1
        assert "not found" in result.output
