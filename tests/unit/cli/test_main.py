"""Tests for the inkwell entry point."""

from __future__ import annotations

import logging

from typer.testing import CliRunner

from inkwell.cli.main import app

runner = CliRunner()


def test_version_command() -> None:
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert result.output.startswith("inkwell ")


def test_version_flag() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert result.output.startswith("inkwell ")


def test_help_lists_commands() -> None:
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("add", "sources", "remove", "chat", "sessions", "voice"):
        assert command in result.output


def test_verbose_enables_debug_logging(tmp_path) -> None:
    result = runner.invoke(app, ["--verbose", "sources", "--db", str(tmp_path / "x.db")])
    assert result.exit_code == 1
    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("LiteLLM").level == logging.DEBUG

    runner.invoke(app, ["version"])
    assert logging.getLogger().level == logging.WARNING
