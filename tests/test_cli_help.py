# ==============================================================================
# Tests for CLI Help Commands
# ==============================================================================
"""
Tests that all CLI help commands generate the expected output.

Verifies that every command and subcommand in the engagement CLI:
- Exits with code 0 when invoked with --help
- Contains the expected description text
- Lists the expected subcommands or options

These tests use the real app from engagement.app (not minimal Typer apps)
to ensure the full command tree is wired up correctly and that Typer can
introspect all command function signatures without errors.
"""

import pytest
from typer.testing import CliRunner

from engagement.app import app

runner = CliRunner()


# ==============================================================================
# Root App
# ==============================================================================


class TestRootHelp:
    """Tests for the root `engagement --help` output."""

    def test_exit_code(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0

    def test_description(self):
        result = runner.invoke(app, ["--help"])
        assert "Playlist engagement pipeline CLI" in result.output

    def test_lists_all_subcommands(self):
        """Root --help lists every top-level command."""
        result = runner.invoke(app, ["--help"])
        for cmd in ["config", "db", "metrics", "retention", "sweep"]:
            assert cmd in result.output, f"Missing command: {cmd}"


# ==============================================================================
# Command Groups
# ==============================================================================


@pytest.mark.parametrize(
    "group, description, subcommands",
    [
        ("sweep", "Ingestion sweep operations", ["run", "history"]),
        ("metrics", "Engagement metrics", ["link", "user", "daily", "retention"]),
        ("retention", "Retention window maintenance", ["sweep"]),
        ("db", "Database schema management", ["init", "reset"]),
        ("config", "Configuration management", ["show"]),
    ],
)
def test_group_help(group, description, subcommands):
    result = runner.invoke(app, [group, "--help"])
    assert result.exit_code == 0
    assert description in result.output
    for cmd in subcommands:
        assert cmd in result.output, f"Missing subcommand: {group} {cmd}"


# ==============================================================================
# Leaf Commands
# ==============================================================================


class TestSweepRunHelp:
    """Tests for `engagement sweep run --help` output."""

    def test_description(self):
        result = runner.invoke(app, ["sweep", "run", "--help"])
        assert result.exit_code == 0
        assert "Poll recently played tracks" in result.output

    def test_lists_options(self):
        result = runner.invoke(app, ["sweep", "run", "--help"])
        for opt in ["--key", "--workers", "--no-history", "--json"]:
            assert opt in result.output, f"Missing option: {opt}"


class TestSweepHistoryHelp:
    def test_lists_options(self):
        result = runner.invoke(app, ["sweep", "history", "--help"])
        assert result.exit_code == 0
        assert "Show recent sweep summaries" in result.output
        for opt in ["--limit", "--json"]:
            assert opt in result.output, f"Missing option: {opt}"


@pytest.mark.parametrize(
    "command, description",
    [
        (["metrics", "link"], "Show headline metrics"),
        (["metrics", "user"], "Show audience metrics"),
        (["metrics", "daily"], "zero-filled daily series"),
        (["metrics", "retention"], "Show cohort retention"),
    ],
)
def test_metrics_command_help(command, description):
    result = runner.invoke(app, [*command, "--help"])
    assert result.exit_code == 0
    assert description in result.output
    assert "--json" in result.output


@pytest.mark.parametrize("command", [["metrics", "daily"], ["metrics", "retention"]])
def test_series_commands_accept_days(command):
    result = runner.invoke(app, [*command, "--help"])
    assert "--days" in result.output


class TestRetentionSweepHelp:
    def test_description(self):
        result = runner.invoke(app, ["retention", "sweep", "--help"])
        assert result.exit_code == 0
        assert "Mark connections inactive" in result.output
        assert "--key" in result.output


class TestDbHelp:
    def test_init_description(self):
        result = runner.invoke(app, ["db", "init", "--help"])
        assert result.exit_code == 0
        assert "Create the database and schema" in result.output

    def test_reset_lists_options(self):
        result = runner.invoke(app, ["db", "reset", "--help"])
        assert result.exit_code == 0
        assert "Drop and recreate the schema" in result.output
        assert "--yes" in result.output


class TestConfigShowHelp:
    def test_description(self):
        result = runner.invoke(app, ["config", "show", "--help"])
        assert result.exit_code == 0
        assert "Display current configuration" in result.output
        assert "--json" in result.output
