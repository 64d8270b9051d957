"""Configuration loading.

Config files are YAML. Search order:
1. Explicit path (--config)
2. ./run-in-roblox.yml
3. ~/.run-in-roblox/config.yml

Strings may reference environment variables as ${VAR} or ${VAR:-default}.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

LOCAL_CONFIG_NAME = "run-in-roblox.yml"


def home_config_path() -> Path:
    return Path.home() / ".run-in-roblox" / "config.yml"


def local_config_path() -> Path:
    return Path(LOCAL_CONFIG_NAME)


# ${VAR} or ${VAR:-default}
_ENV_REF = re.compile(r"\$\{(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?::-(?P<default>[^}]*))?\}")


def _substitute(match: re.Match) -> str:
    # Shell semantics: the default also covers a variable set to ""
    value = os.environ.get(match.group("name"))
    if value:
        return value
    return match.group("default") or ""


def _expand_env_vars(value: Any) -> Any:
    """Expand environment references in every string of a parsed YAML tree."""
    if isinstance(value, dict):
        return {key: _expand_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_expand_env_vars(item) for item in value]
    if isinstance(value, str):
        return _ENV_REF.sub(_substitute, value)
    return value


def _optional_path(value: Any) -> Optional[Path]:
    if not value:
        return None
    return Path(str(value)).expanduser()


@dataclass
class RunnerConfig:
    """Parsed configuration object."""

    # Studio overrides (None = autodetect)
    studio_path: Optional[Path] = None
    plugins_dir: Optional[Path] = None

    # Relay port, 0 picks a free one per run
    port: int = 0

    debug: bool = False
    log_level: str = "info"
    color: bool = True

    _raw: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "RunnerConfig":
        """Create config from dictionary."""
        data = _expand_env_vars(data)

        studio = data.get("studio", {}) or {}
        logger = data.get("logger", {}) or {}

        return cls(
            studio_path=_optional_path(studio.get("path")),
            plugins_dir=_optional_path(studio.get("plugins_dir")),
            port=int(data.get("port", 0) or 0),
            debug=bool(data.get("debug", False)),
            log_level=logger.get("level", "info"),
            color=bool(data.get("color", True)),
            _raw=data,
        )

    @classmethod
    def load(cls, path: Path) -> "RunnerConfig":
        """Load config from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)


def find_config_path(explicit_path: Optional[str] = None) -> Path:
    """Find the config file to use.

    Returns the home config path when nothing exists yet, so new files
    land there.
    """
    if explicit_path:
        return Path(explicit_path)

    local = local_config_path()
    if local.exists():
        return local

    return home_config_path()


def load_config(explicit_path: Optional[str] = None) -> RunnerConfig:
    """Load configuration, or defaults if no file exists."""
    path = find_config_path(explicit_path)
    if path.exists():
        return RunnerConfig.load(path)
    return RunnerConfig()
