"""Integration tests for CLI commands (using grouped command hierarchy)."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from solgraph_cli import __version__
from solgraph_cli.cli import app
from solgraph_cli.config_manager import load_layout_config, save_section
from solgraph_cli.store import Workspace

runner = CliRunner()


@pytest.fixture
def cli_home(solgraph_home: Path) -> Path:
    """Isolated home with in-process analysis and a short layout."""
    save_section("analysis", {"use_workers": False})
    save_section("layout", {"iterations": 40})
    return solgraph_home


@pytest.fixture
def token_file(fixtures_dir: Path) -> Path:
    return fixtures_dir / "token.sol"


@pytest.fixture
def synced_home(cli_home: Path, token_file: Path) -> Path:
    result = runner.invoke(app, ["sync", str(token_file)])
    assert result.exit_code == 0, result.output
    return cli_home


class TestBasics:
    """Tests for global options and one-shot analysis."""

    def test_version(self):
        """Test --version flag."""
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert f"SolGraph CLI v{__version__}" in result.stdout

    def test_analyze_json(self, cli_home, token_file):
        """Test analyze prints the analysis JSON."""
        result = runner.invoke(app, ["analyze", str(token_file), "--json"])

        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        ids = [f["id"] for f in payload["functions"]]
        assert "Token.mint" in ids
        assert {"source": "Token.transfer", "target": "Token._move"} in payload["edges"]

    def test_analyze_file_without_functions(self, cli_home, temp_dir):
        """A source with no declarations reports that nothing was found."""
        empty = temp_dir / "Empty.sol"
        empty.write_text("pragma solidity ^0.8.0;\n", encoding="utf-8")

        result = runner.invoke(app, ["analyze", str(empty)])

        assert result.exit_code == 0
        assert "No functions found" in result.stdout

    def test_analyze_missing_file(self, cli_home):
        """Test analyze with a missing file."""
        result = runner.invoke(app, ["analyze", "/nonexistent/file.sol"])

        assert result.exit_code != 0


class TestSyncCommand:
    """Tests for 'sg sync'."""

    def test_first_sync(self, cli_home, token_file):
        """Test the first sync fills the panel."""
        result = runner.invoke(app, ["sync", str(token_file)])

        assert result.exit_code == 0
        assert "+7" in result.stdout
        panel = Workspace.load().active_panel
        assert len(panel.nodes) == 7
        assert panel.code == token_file.read_text(encoding="utf-8")

    def test_second_sync_is_noop(self, synced_home, token_file):
        """Test syncing unchanged source reports no changes."""
        result = runner.invoke(app, ["sync", str(token_file)])

        assert result.exit_code == 0
        assert "no changes" in result.stdout

    def test_removed_function_is_trashed(self, synced_home, temp_dir, token_file):
        """Test a renamed function trashes the old node."""
        edited = temp_dir / "token.sol"
        edited.write_text(token_file.read_text(encoding="utf-8").replace("function mint(", "function issue("), encoding="utf-8")

        result = runner.invoke(app, ["sync", str(edited)])

        assert result.exit_code == 0
        panel = Workspace.load().active_panel
        assert panel.trashed_node_ids == ["Token.mint"]
        assert panel.get_node("Token.issue") is not None

    def test_sync_json_reports_diff(self, synced_home, temp_dir, token_file):
        """--json prints the sync diff, and re-adding a function un-trashes it."""
        edited = temp_dir / "token.sol"
        edited.write_text(token_file.read_text(encoding="utf-8").replace("function mint(", "function issue("), encoding="utf-8")
        runner.invoke(app, ["sync", str(edited)])

        result = runner.invoke(app, ["sync", str(token_file), "--json"])

        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert set(payload) == {"addedNodes", "addedEdges", "removedNodes", "removedEdges", "at"}
        assert payload["removedNodes"] == 1
        assert Workspace.load().active_panel.trashed_node_ids == ["Token.issue"]

    def test_sync_unknown_panel(self, cli_home, token_file):
        """Test sync into a missing panel."""
        result = runner.invoke(app, ["sync", str(token_file), "--panel", "Nope"])

        assert result.exit_code == 1
        assert "Panel not found" in result.stdout

    def test_functions_listing(self, synced_home):
        """Test the functions listing with a query."""
        result = runner.invoke(app, ["functions", "--query", "mint"])

        assert result.exit_code == 0
        assert "mint()" in result.stdout

    def test_functions_bad_visibility(self, cli_home):
        """Test functions rejects unknown visibility filters."""
        result = runner.invoke(app, ["functions", "--visibility", "secret"])

        assert result.exit_code != 0


class TestPanelCommands:
    """Tests for 'sg panel ...'."""

    def test_create_and_list(self, cli_home):
        """Test panel create and list."""
        result = runner.invoke(app, ["panel", "create", "Audit"])
        assert result.exit_code == 0
        assert "Created panel 'Audit'" in result.stdout

        result = runner.invoke(app, ["panel", "list"])
        assert result.exit_code == 0
        assert "Audit" in result.stdout
        assert Workspace.load().active_panel.name == "Audit"

    def test_cannot_delete_last_panel(self, cli_home):
        """Test the last panel cannot be deleted."""
        result = runner.invoke(app, ["panel", "delete", "Default"])

        assert result.exit_code == 1
        assert "Cannot delete the last panel." in result.stdout

    def test_duplicate_rename_use_delete(self, synced_home):
        """Test the panel lifecycle commands together."""
        assert runner.invoke(app, ["panel", "duplicate", "Default"]).exit_code == 0
        assert runner.invoke(app, ["panel", "rename", "Default Copy", "Fork"]).exit_code == 0
        assert runner.invoke(app, ["panel", "use", "Default"]).exit_code == 0

        ws = Workspace.load()
        assert [p.name for p in ws.panels] == ["Default", "Fork"]
        assert ws.active_panel.name == "Default"
        assert len(ws.find_panel("Fork").nodes) == 7

        assert runner.invoke(app, ["panel", "delete", "Fork"]).exit_code == 0
        assert [p.name for p in Workspace.load().panels] == ["Default"]


class TestNodeCommands:
    """Tests for 'sg node ...'."""

    def test_locate(self, synced_home):
        """Test node locate prints line and column."""
        result = runner.invoke(app, ["node", "locate", "Token.mint"])

        assert result.exit_code == 0
        assert "Token.mint() at line 40, column 14" in result.stdout

    def test_locate_unknown(self, synced_home):
        """Test node locate with an unknown id."""
        result = runner.invoke(app, ["node", "locate", "Token.nothing"])

        assert result.exit_code == 1

    def test_inspect(self, synced_home):
        """Test node inspect shows callers and visibility."""
        result = runner.invoke(app, ["node", "inspect", "Token._move"])

        assert result.exit_code == 0
        assert "Callers (2)" in result.stdout
        assert "private" in result.stdout

    def test_trash_restore(self, synced_home):
        """Test node trash and restore."""
        assert runner.invoke(app, ["node", "trash", "Token.mint"]).exit_code == 0
        assert Workspace.load().active_panel.trashed_node_ids == ["Token.mint"]

        result = runner.invoke(app, ["node", "restore", "Token.mint"])
        assert result.exit_code == 0
        assert Workspace.load().active_panel.trashed_node_ids == []

        assert runner.invoke(app, ["node", "restore", "Token.mint"]).exit_code == 1

    def test_blacklist_toggle(self, synced_home):
        """Test node blacklist toggles."""
        result = runner.invoke(app, ["node", "blacklist", "Token.mint"])
        assert "Blacklisted" in result.stdout

        result = runner.invoke(app, ["node", "blacklist", "Token.mint"])
        assert "Un-blacklisted" in result.stdout

    def test_move(self, synced_home):
        """Test node move with negative coordinates."""
        result = runner.invoke(app, ["node", "move", "Token.mint", "--", "10", "-20"])

        assert result.exit_code == 0
        position = Workspace.load().active_panel.get_node("Token.mint").position
        assert (position.x, position.y) == (10.0, -20.0)


class TestNoteCommands:
    """Tests for 'sg note ...'."""

    def test_set_and_list(self, synced_home):
        """Test note set and list with a query."""
        result = runner.invoke(app, ["note", "set", "Token.mint", "check access control"])
        assert result.exit_code == 0
        assert "Saved note on Token.mint" in result.stdout

        result = runner.invoke(app, ["note", "list", "--query", "access"])
        assert result.exit_code == 0
        assert "check access control" in result.stdout

    def test_list_empty(self, cli_home):
        """Test note list with no notes."""
        result = runner.invoke(app, ["note", "list"])

        assert result.exit_code == 0
        assert "No notes found." in result.stdout

    def test_delete(self, synced_home):
        """Test note delete."""
        runner.invoke(app, ["note", "set", "Token.mint", "x"])

        assert runner.invoke(app, ["note", "delete", "Token.mint"]).exit_code == 0
        assert runner.invoke(app, ["note", "delete", "Token.mint"]).exit_code == 1


class TestShareAndSnapshots:
    """Tests for read-only sharing and snapshot export/import."""

    def test_read_only_blocks_mutations(self, synced_home, token_file):
        """Test read-only sharing blocks mutating commands."""
        assert runner.invoke(app, ["share", "read"]).exit_code == 0

        result = runner.invoke(app, ["note", "set", "Token.mint", "nope"])
        assert result.exit_code == 1
        assert "read-only" in result.stdout

        result = runner.invoke(app, ["sync", str(token_file)])
        assert result.exit_code == 1

        assert runner.invoke(app, ["share", "normal"]).exit_code == 0
        assert runner.invoke(app, ["note", "set", "Token.mint", "ok"]).exit_code == 0

    def test_bad_permission(self, cli_home):
        """Test share rejects unknown permissions."""
        assert runner.invoke(app, ["share", "owner"]).exit_code != 0

    def test_snapshot_round_trip(self, synced_home):
        """Test snapshot export then import adds a panel."""
        snapshot = runner.invoke(app, ["export", "snapshot"]).stdout.strip()

        result = runner.invoke(app, ["import", "snapshot", snapshot])

        assert result.exit_code == 0
        assert "Imported panel" in result.stdout
        ws = Workspace.load()
        assert len(ws.panels) == 2
        assert ws.panels[0].id != ws.panels[1].id
        assert len(ws.active_panel.nodes) == 7

    def test_invalid_snapshot(self, cli_home):
        """Test import with an invalid snapshot."""
        result = runner.invoke(app, ["import", "snapshot", "not-a-snapshot"])

        assert result.exit_code == 1
        assert "Invalid panel snapshot" in result.stdout


class TestExportCommands:
    """Tests for 'sg export dot/json'."""

    def test_export_dot(self, synced_home, temp_dir):
        """Test export dot writes a digraph."""
        output = temp_dir / "graph.dot"

        result = runner.invoke(app, ["export", "dot", "-o", str(output)])

        assert result.exit_code == 0
        assert output.read_text(encoding="utf-8").startswith('digraph "Default"')

    def test_export_json(self, synced_home, temp_dir):
        """Test export json writes the graph."""
        output = temp_dir / "graph.json"

        result = runner.invoke(app, ["export", "json", "-o", str(output)])

        assert result.exit_code == 0
        assert len(json.loads(output.read_text(encoding="utf-8"))["nodes"]) == 7


class TestConfigCommands:
    """Tests for 'sg config ...'."""

    def test_set_and_show(self, cli_home):
        """Test config set and show."""
        result = runner.invoke(app, ["config", "set", "layout", "iterations", "30"])
        assert result.exit_code == 0
        assert load_layout_config()["iterations"] == 30

        result = runner.invoke(app, ["config", "show"])
        assert result.exit_code == 0
        assert "layout.iterations" in result.stdout

    def test_set_unknown_key(self, cli_home):
        """Test config set with an unknown key."""
        assert runner.invoke(app, ["config", "set", "layout", "gravity", "1"]).exit_code != 0

    def test_set_bad_value(self, cli_home):
        """Test config set with a bad value."""
        assert runner.invoke(app, ["config", "set", "analysis", "use_workers", "maybe"]).exit_code != 0

    def test_reset(self, cli_home):
        """Test config reset restores defaults."""
        result = runner.invoke(app, ["config", "reset", "layout"])

        assert result.exit_code == 0
        assert load_layout_config()["iterations"] == 520
