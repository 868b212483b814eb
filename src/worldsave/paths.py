from __future__ import annotations

from pathlib import Path

from platformdirs import user_data_dir

SAVE_DIRECTORY_NAME = "GameSaves"


def default_save_root(app_name: str = "WorldSave") -> Path:
    """Return the platform-specific directory saves are written to.

    Linux: ~/.local/share/<app>/GameSaves
    macOS: ~/Library/Application Support/<app>/GameSaves
    Windows: %LOCALAPPDATA%\\<app>\\GameSaves
    """
    return Path(user_data_dir(appname=app_name, appauthor=False)) / SAVE_DIRECTORY_NAME


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path
