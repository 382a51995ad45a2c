"""Persisted host settings (last opened diagram)."""

from __future__ import annotations

from pathlib import Path

CONFIG_FILE_NAME = ".mermaidview.cfg"


def config_file_path() -> Path:
    return Path.home() / CONFIG_FILE_NAME


def load_last_path(cfg_path: Path | None = None) -> Path | None:
    """Resolve the diagram to reopen when no CLI path is provided."""
    cfg_path = cfg_path or config_file_path()
    try:
        if not cfg_path.exists():
            return None
        raw = cfg_path.read_text(encoding="utf-8").strip()
        if not raw:
            return None
        candidate = Path(raw).expanduser()
        if candidate.is_file():
            return candidate.resolve()
    except (OSError, ValueError):
        # Unreadable config simply means there is nothing to reopen.
        return None
    return None


def save_last_path(path: Path, cfg_path: Path | None = None) -> bool:
    cfg_path = cfg_path or config_file_path()
    try:
        cfg_path.write_text(str(path.resolve()) + "\n", encoding="utf-8")
    except OSError:
        return False
    return True
