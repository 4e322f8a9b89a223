"""Centralized configuration store for the office tools.

Reads and writes per-tool JSON config files in data/config/.
Each tool gets a single JSON file keyed by tool name (e.g., "evidence-workbench.json").
Tools load catalog values with fallback to their hardcoded defaults.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

CONFIG_DIR = Path(__file__).resolve().parent.parent / "data" / "config"


def _config_path(tool_name: str) -> Path:
    # Tool names are used as file stems; keep them to a safe alphabet
    safe_name = "".join(c for c in tool_name if c.isalnum() or c in "-_")
    return CONFIG_DIR / f"{safe_name}.json"


def load_config(tool_name: str) -> dict | None:
    """Load a tool's JSON config. Returns None if missing or unreadable."""
    path = _config_path(tool_name)
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text())
    except (json.JSONDecodeError, OSError):
        return None
    return data if isinstance(data, dict) else None


def save_config(tool_name: str, config: dict) -> None:
    """Write a tool's config to JSON. Creates dir if needed."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    _config_path(tool_name).write_text(json.dumps(config, indent=2, ensure_ascii=False))


def get_config_value(tool_name: str, key: str, default: Any) -> Any:
    """Get a single key from a tool's config, with fallback to default.

    The override must have the same JSON type as the default; a mismatched
    value (e.g. a list where a dict is expected) is ignored.
    """
    config = load_config(tool_name)
    if config is None or key not in config:
        return default
    value = config[key]
    if default is not None and not isinstance(value, type(default)):
        return default
    return value


def set_config_value(tool_name: str, key: str, value: Any) -> None:
    """Set a single key in a tool's config, preserving other keys."""
    config = load_config(tool_name) or {}
    config[key] = value
    save_config(tool_name, config)
