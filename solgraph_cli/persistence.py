"""JSON persistence for the workspace document and panel snapshots.

Workspace document (version 1)::

    {"version": 1, "activePanelId": "...", "sharePermission": "normal",
     "panels": [Panel, ...]}

Loading is forgiving: older documents missing annotation fields are filled
in, duplicate nodes/edges are dropped, and anything unreadable yields
``None`` so the caller can start from a fresh workspace.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import WORKSPACE_FILE, WORKSPACE_VERSION, ensure_base_dirs
from .errors import SnapshotError
from .models import Panel

logger = logging.getLogger(__name__)

SHARE_PERMISSIONS = ("normal", "read")


@dataclass
class WorkspaceDocument:
    active_panel_id: str
    panels: List[Panel] = field(default_factory=list)
    share_permission: str = "normal"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": WORKSPACE_VERSION,
            "activePanelId": self.active_panel_id,
            "sharePermission": self.share_permission,
            "panels": [p.to_dict() for p in self.panels],
        }


def _panel_or_none(data: Any) -> Optional[Panel]:
    if not isinstance(data, dict) or not data.get("id") or not data.get("name"):
        return None
    try:
        return Panel.from_dict(data)
    except (KeyError, TypeError, ValueError) as exc:
        logger.warning("Skipping malformed panel %r: %s", data.get("id"), exc)
        return None


def parse_document(payload: Any) -> Optional[WorkspaceDocument]:
    """Validate and normalise a decoded workspace document."""
    if not isinstance(payload, dict) or payload.get("version") != WORKSPACE_VERSION:
        return None
    raw_panels = payload.get("panels")
    if not isinstance(raw_panels, list) or not raw_panels:
        return None

    panels = [p for p in (_panel_or_none(raw) for raw in raw_panels) if p is not None]
    if not panels:
        return None

    active = payload.get("activePanelId")
    if not any(p.id == active for p in panels):
        active = panels[0].id

    permission = payload.get("sharePermission")
    if permission not in SHARE_PERMISSIONS:
        permission = "normal"
    return WorkspaceDocument(active_panel_id=active, panels=panels, share_permission=permission)


def load_workspace(path: Optional[Path] = None) -> Optional[WorkspaceDocument]:
    """Load the workspace document, or ``None`` if missing or invalid."""
    path = path or WORKSPACE_FILE
    if not path.exists():
        return None
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable workspace %s: %s", path, exc)
        return None
    document = parse_document(payload)
    if document is None:
        logger.warning("Ignoring invalid workspace document %s", path)
        return None
    logger.info("Loaded workspace with %d panels from %s", len(document.panels), path)
    return document


def save_workspace(document: WorkspaceDocument, path: Optional[Path] = None) -> Path:
    if path is None:
        ensure_base_dirs()
        path = WORKSPACE_FILE
    else:
        path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(document.to_dict(), indent=2), encoding="utf-8")
    logger.info("Saved workspace to %s", path)
    return path


# ===================================================================
# Panel snapshots
# ===================================================================

def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _b64url_decode(text: str) -> bytes:
    text = text.strip()
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def export_panel_snapshot(panel: Panel) -> str:
    """Encode *panel* as unpadded base64url JSON."""
    return _b64url_encode(json.dumps(panel.to_dict(), separators=(",", ":")).encode("utf-8"))


def import_panel_snapshot(snapshot: str) -> Panel:
    """Decode a snapshot produced by :func:`export_panel_snapshot`.

    Raises:
        SnapshotError: The text is not a valid panel snapshot.
    """
    try:
        payload = json.loads(_b64url_decode(snapshot).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError, ValueError) as exc:
        raise SnapshotError(f"Invalid panel snapshot: {exc}") from exc

    panel = _panel_or_none(payload)
    if panel is None:
        raise SnapshotError("Invalid panel snapshot: missing panel id or name")
    return panel
