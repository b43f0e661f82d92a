"""Exception hierarchy for SolGraph."""

from __future__ import annotations


class SolGraphError(Exception):
    """Base class for all SolGraph errors."""


class AnalysisSuperseded(SolGraphError):
    """A newer analysis request replaced this one before it completed."""


class CoordinatorClosed(SolGraphError):
    """The analysis coordinator was shut down."""


class PanelNotFound(SolGraphError, KeyError):
    """No panel with the requested id exists in the workspace."""

    def __str__(self) -> str:
        return f"Panel not found: {self.args[0] if self.args else '?'}"


class ReadOnlyWorkspace(SolGraphError):
    """The workspace is opened with the read-only share permission."""


class SnapshotError(SolGraphError, ValueError):
    """A panel snapshot could not be decoded."""
