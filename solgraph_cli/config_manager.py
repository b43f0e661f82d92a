"""Configuration manager for SolGraph CLI using TOML files."""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict

import toml

from .config import CONFIG_FILE

logger = logging.getLogger(__name__)


# Defaults for each known section
DEFAULT_CONFIGS: Dict[str, Dict[str, Any]] = {
    "layout": {
        "iterations": 520,
        "charge": -420.0,
        "link_distance": 160.0,
        "link_strength": 0.9,
        "collide_radius": 150.0,
        "radial_strength": 0.05,
        "max_radius": 520.0,
    },
    "analysis": {
        "use_workers": True,
        "max_workers": 1,
    },
    "sync": {
        "debounce_seconds": 0.9,
    },
}


def load_full_config() -> Dict[str, Any]:
    """Load the entire TOML config (all sections)."""
    if not CONFIG_FILE.exists():
        return {}
    try:
        with open(CONFIG_FILE, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", CONFIG_FILE, exc)
        return {}


def _save_full_config(config: Dict[str, Any]) -> bool:
    """Write entire config dict to TOML file, preserving all sections."""
    try:
        CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
        with open(CONFIG_FILE, "w", encoding="utf-8") as f:
            toml.dump(config, f)
        return True
    except OSError as exc:
        logger.warning("Could not write config %s: %s", CONFIG_FILE, exc)
        return False


def load_section(name: str) -> Dict[str, Any]:
    """Return section *name* with defaults filled in for missing keys."""
    merged = copy.deepcopy(DEFAULT_CONFIGS.get(name, {}))
    section = load_full_config().get(name)
    if isinstance(section, dict):
        merged.update(section)
    return merged


def load_layout_config() -> Dict[str, Any]:
    """Load the ``[layout]`` section (force simulation parameters)."""
    return load_section("layout")


def load_analysis_config() -> Dict[str, Any]:
    """Load the ``[analysis]`` section (worker pool settings)."""
    return load_section("analysis")


def load_sync_config() -> Dict[str, Any]:
    """Load the ``[sync]`` section (watch-mode debounce)."""
    return load_section("sync")


def save_section(name: str, values: Dict[str, Any]) -> bool:
    """Merge *values* into section *name*, preserving other sections.

    Returns:
        True if saved successfully.
    """
    config = load_full_config()
    section = config.get(name)
    if not isinstance(section, dict):
        section = {}
    section.update(values)
    config[name] = section
    return _save_full_config(config)


def clear_section(name: str) -> bool:
    """Remove section *name* from config, resetting it to defaults."""
    config = load_full_config()
    config.pop(name, None)
    return _save_full_config(config)


def coerce_value(section: str, key: str, raw: str) -> Any:
    """Convert a command-line string to the type of the key's default.

    Raises:
        KeyError: Unknown section or key.
        ValueError: *raw* does not parse as the expected type.
    """
    defaults = DEFAULT_CONFIGS[section]
    if key not in defaults:
        raise KeyError(f"{section}.{key}")
    default = defaults[key]
    if isinstance(default, bool):
        lowered = raw.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
        raise ValueError(f"Expected a boolean, got '{raw}'")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return raw
