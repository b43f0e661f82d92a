"""Watch mode: re-sync a panel whenever its Solidity file changes."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future
from pathlib import Path
from typing import Callable, Optional

import typer
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .cli_common import console, fail, load_workspace, open_coordinator, print_sync_stats, resolve_panel
from .config_manager import load_sync_config
from .coordinator import AnalysisCoordinator
from .errors import AnalysisSuperseded, CoordinatorClosed, SolGraphError
from .models import ParseResult
from .store import Workspace

logger = logging.getLogger(__name__)


class Debouncer:
    """Run *callback* once, *delay* seconds after the last :meth:`trigger`."""

    def __init__(self, callback: Callable[[], None], delay: float) -> None:
        self.callback = callback
        self.delay = delay
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()

    def trigger(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.delay, self.callback)
            self._timer.daemon = True
            self._timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None


class FileSyncer:
    """Analyze a file through the coordinator and merge results into a panel.

    Unchanged content is skipped.  Superseded analyses are ignored; only the
    latest result for the panel is applied.
    """

    def __init__(
        self,
        workspace: Workspace,
        coordinator: AnalysisCoordinator,
        file_path: Path,
        panel_id: str,
        on_synced: Optional[Callable[..., None]] = None,
    ) -> None:
        self.workspace = workspace
        self.coordinator = coordinator
        self.file_path = file_path
        self.panel_id = panel_id
        self.on_synced = on_synced
        self.sync_count = 0
        self._last_code: Optional[str] = None
        self._apply_lock = threading.Lock()

    def sync(self) -> Optional["Future[ParseResult]"]:
        try:
            code = self.file_path.read_text(encoding="utf-8", errors="ignore")
        except OSError as exc:
            logger.warning("Could not read %s: %s", self.file_path, exc)
            return None
        if code == self._last_code:
            logger.debug("No content change in %s", self.file_path)
            return None
        self._last_code = code

        try:
            future = self.coordinator.submit(code, channel=self.panel_id)
        except CoordinatorClosed:
            return None
        future.add_done_callback(lambda done: self._apply(code, done))
        return future

    def _apply(self, code: str, done: "Future[ParseResult]") -> None:
        try:
            result = done.result()
        except (AnalysisSuperseded, CoordinatorClosed) as exc:
            logger.debug("Skipping stale analysis: %s", exc)
            return
        with self._apply_lock:
            try:
                self.workspace.set_code(code, self.panel_id)
                stats = self.workspace.sync_from_parse_result(result, self.panel_id)
                self.workspace.save()
            except SolGraphError as exc:
                logger.warning("Sync failed: %s", exc)
                return
            self.sync_count += 1
        if self.on_synced is not None:
            self.on_synced(stats)


class _SourceChangeHandler(FileSystemEventHandler):
    def __init__(self, target: Path, debouncer: Debouncer) -> None:
        self.target = target
        self.debouncer = debouncer

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        paths = [getattr(event, "src_path", None), getattr(event, "dest_path", None)]
        if any(p and Path(p).resolve() == self.target for p in paths):
            self.debouncer.trigger()


def watch(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Solidity file to watch."),
    panel: Optional[str] = typer.Option(None, "--panel", "-p", help="Panel name or id (default: active)."),
    interval: Optional[float] = typer.Option(None, "--interval", "-i", help="Debounce interval in seconds."),
):
    """👀 Watch mode — auto-sync a panel when its source file changes.

    Example:
      sg watch contracts/Token.sol
      sg watch contracts/Token.sol --panel Token --interval 2
    """
    target = file.resolve()
    delay = interval if interval is not None else float(load_sync_config().get("debounce_seconds", 0.9))

    ws = load_workspace()
    if not ws.can_mutate:
        fail("Workspace is shared read-only.")
    try:
        target_panel = resolve_panel(ws, panel)
    except SolGraphError as exc:
        fail(str(exc))

    coordinator = open_coordinator()
    syncer = FileSyncer(ws, coordinator, target, target_panel.id, on_synced=lambda stats: print_sync_stats(stats, target_panel))
    debouncer = Debouncer(syncer.sync, delay)

    console.print(f"\n[bold green]👀 Watching[/bold green] [cyan]{target}[/cyan] for changes...")
    console.print(f"[dim]  Debounce:  {delay}s")
    console.print(f"  Panel:     {target_panel.name}")
    console.print("  Press Ctrl+C to stop[/dim]\n")

    syncer.sync()

    observer = Observer()
    observer.schedule(_SourceChangeHandler(target, debouncer), str(target.parent), recursive=False)
    observer.start()

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print(f"\n[yellow]Stopped watching.[/yellow] Synced {syncer.sync_count} time(s).")
    finally:
        debouncer.cancel()
        observer.stop()
        observer.join()
        coordinator.shutdown()
