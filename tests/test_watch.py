"""Tests for watch-mode helpers (debounce and file re-sync)."""

import threading
import time
from pathlib import Path

import pytest

from solgraph_cli.cli_watch import Debouncer, FileSyncer
from solgraph_cli.coordinator import AnalysisCoordinator
from solgraph_cli.models import ParseResult
from solgraph_cli.store import Workspace


class TestDebouncer:
    def test_burst_runs_once(self):
        """A burst of triggers runs the callback once."""
        calls = []
        done = threading.Event()

        def callback():
            calls.append(time.monotonic())
            done.set()

        debouncer = Debouncer(callback, 0.05)
        for _ in range(5):
            debouncer.trigger()

        assert done.wait(timeout=2)
        time.sleep(0.1)
        assert len(calls) == 1

    def test_cancel(self):
        """A cancelled trigger never runs."""
        calls = []
        debouncer = Debouncer(lambda: calls.append(1), 0.05)

        debouncer.trigger()
        debouncer.cancel()
        time.sleep(0.1)

        assert calls == []


@pytest.fixture
def source_file(temp_dir: Path, token_source: str) -> Path:
    path = temp_dir / "Token.sol"
    path.write_text(token_source, encoding="utf-8")
    return path


@pytest.fixture
def syncer(solgraph_home, workspace: Workspace, source_file: Path):
    coordinator = AnalysisCoordinator(use_workers=False)
    synced = []
    syncer = FileSyncer(workspace, coordinator, source_file, workspace.active_panel_id, on_synced=synced.append)
    syncer.synced_stats = synced
    yield syncer
    coordinator.shutdown()


class TestFileSyncer:
    def test_sync_applies_and_saves(self, syncer, solgraph_home):
        """A file sync merges the result and saves the workspace."""
        future = syncer.sync()

        assert isinstance(future.result(timeout=5), ParseResult)
        panel = syncer.workspace.active_panel
        assert len(panel.nodes) == 7
        assert syncer.sync_count == 1
        assert syncer.synced_stats[0].added_nodes == 7
        assert (solgraph_home / "workspace.json").exists()

    def test_unchanged_content_is_skipped(self, syncer):
        """Unchanged file content is not re-analyzed."""
        syncer.sync()

        assert syncer.sync() is None
        assert syncer.sync_count == 1

    def test_edit_is_merged(self, syncer, source_file):
        """An edited file is merged into the panel."""
        syncer.sync()
        source_file.write_text(
            source_file.read_text(encoding="utf-8").replace("function mint(", "function issue("),
            encoding="utf-8",
        )

        syncer.sync()

        panel = syncer.workspace.active_panel
        assert panel.trashed_node_ids == ["Token.mint"]
        assert "function issue(" in panel.code
        assert syncer.sync_count == 2

    def test_missing_file(self, syncer, source_file):
        """A deleted file is skipped."""
        source_file.unlink()

        assert syncer.sync() is None
        assert syncer.sync_count == 0

    def test_closed_coordinator(self, syncer):
        """A closed coordinator skips the sync."""
        syncer.coordinator.shutdown()

        assert syncer.sync() is None
