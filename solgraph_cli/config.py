"""Configuration paths for the local SolGraph workspace."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(os.environ.get("SOLGRAPH_HOME", str(Path.home() / ".solgraph"))).expanduser()
WORKSPACE_FILE = BASE_DIR / "workspace.json"
CONFIG_FILE = BASE_DIR / "config.toml"
SUPPORTED_EXTENSIONS = {".sol"}

WORKSPACE_VERSION = 1
DEFAULT_PANEL_NAME = "Default"


def ensure_base_dirs() -> None:
    """Create the base directory for local storage if needed."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)
