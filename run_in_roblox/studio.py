"""Roblox Studio installation lookup.

Each path is resolved with priority:
1. Config file (studio.path / studio.plugins_dir)
2. Environment (ROBLOX_STUDIO_PATH / ROBLOX_STUDIO_PLUGINS)
3. Platform default
"""

import getpass
import os
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import RunnerConfig
from .errors import StudioNotFoundError

STUDIO_PATH_ENV = "ROBLOX_STUDIO_PATH"
PLUGINS_PATH_ENV = "ROBLOX_STUDIO_PLUGINS"

WINDOWS_EXECUTABLE = "RobloxStudioBeta.exe"
MACOS_APPLICATION = Path("/Applications/RobloxStudio.app/Contents/MacOS/RobloxStudio")
VINEGAR = "vinegar"


def _windows_defaults() -> tuple[Optional[Path], Optional[Path]]:
    local_app_data = os.environ.get("LOCALAPPDATA")
    if not local_app_data:
        return None, None
    roblox = Path(local_app_data) / "Roblox"

    candidates = [
        version / WINDOWS_EXECUTABLE
        for version in (roblox / "Versions").glob("*")
        if (version / WINDOWS_EXECUTABLE).is_file()
    ]
    # Newest install wins
    candidates.sort(key=lambda p: p.stat().st_mtime, reverse=True)
    return (candidates[0] if candidates else None), roblox / "Plugins"


def _macos_defaults() -> tuple[Optional[Path], Optional[Path]]:
    app = MACOS_APPLICATION if MACOS_APPLICATION.exists() else None
    return app, Path.home() / "Documents" / "Roblox" / "Plugins"


def _linux_defaults() -> tuple[Optional[Path], Optional[Path]]:
    vinegar = shutil.which(VINEGAR)
    plugins = (
        Path.home()
        / ".local/share/vinegar/prefixes/studio/drive_c/users"
        / getpass.getuser()
        / "AppData/Local/Roblox/Plugins"
    )
    return (Path(vinegar) if vinegar else None), plugins


def _platform_defaults() -> tuple[Optional[Path], Optional[Path]]:
    if sys.platform == "win32":
        return _windows_defaults()
    if sys.platform == "darwin":
        return _macos_defaults()
    return _linux_defaults()


@dataclass(frozen=True)
class RobloxStudio:
    """A located Studio install."""

    application_path: Path
    plugins_path: Path

    @property
    def is_vinegar(self) -> bool:
        """Studio is reached through the vinegar Wine wrapper."""
        return VINEGAR in str(self.application_path).lower()

    @classmethod
    def locate(cls, config: Optional[RunnerConfig] = None) -> "RobloxStudio":
        """Find Studio and its plugins folder.

        Raises:
            StudioNotFoundError: If no executable or plugins folder is known,
                or the executable path does not exist
        """
        config = config or RunnerConfig()
        env_app = os.environ.get(STUDIO_PATH_ENV)
        env_plugins = os.environ.get(PLUGINS_PATH_ENV)

        app = config.studio_path or (Path(env_app).expanduser() if env_app else None)
        plugins = config.plugins_dir or (
            Path(env_plugins).expanduser() if env_plugins else None
        )

        if app is None or plugins is None:
            default_app, default_plugins = _platform_defaults()
            app = app or default_app
            plugins = plugins or default_plugins

        if app is None:
            raise StudioNotFoundError(
                "Could not locate a Roblox Studio installation. "
                f"Set {STUDIO_PATH_ENV} or studio.path in the config file."
            )
        if not app.exists():
            raise StudioNotFoundError(f"Roblox Studio not found at {app}")
        if plugins is None:
            raise StudioNotFoundError(
                "Could not locate the Roblox Studio plugins folder. "
                f"Set {PLUGINS_PATH_ENV} or studio.plugins_dir in the config file."
            )

        return cls(application_path=app, plugins_path=plugins)
