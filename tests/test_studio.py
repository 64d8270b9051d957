"""Tests for Studio lookup."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from run_in_roblox.config import RunnerConfig
from run_in_roblox.errors import StudioNotFoundError
from run_in_roblox.studio import (
    PLUGINS_PATH_ENV,
    STUDIO_PATH_ENV,
    RobloxStudio,
    _windows_defaults,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv(STUDIO_PATH_ENV, raising=False)
    monkeypatch.delenv(PLUGINS_PATH_ENV, raising=False)


@pytest.fixture
def install(tmp_path):
    """A Studio executable and plugins folder that exist on disk."""
    app = tmp_path / "RobloxStudio"
    app.write_text("")
    plugins = tmp_path / "plugins"
    plugins.mkdir()
    return app, plugins


class TestLocate:
    def test_config_wins(self, monkeypatch, install):
        app, plugins = install
        monkeypatch.setenv(STUDIO_PATH_ENV, "/env/studio")
        monkeypatch.setenv(PLUGINS_PATH_ENV, "/env/plugins")
        config = RunnerConfig(studio_path=app, plugins_dir=plugins)

        studio = RobloxStudio.locate(config)
        assert studio.application_path == app
        assert studio.plugins_path == plugins

    def test_env_over_default(self, monkeypatch, install):
        app, plugins = install
        monkeypatch.setenv(STUDIO_PATH_ENV, str(app))
        monkeypatch.setenv(PLUGINS_PATH_ENV, str(plugins))

        with patch("run_in_roblox.studio._platform_defaults") as defaults:
            studio = RobloxStudio.locate()
            defaults.assert_not_called()

        assert studio.application_path == app
        assert studio.plugins_path == plugins

    def test_platform_default_fills_gaps(self, monkeypatch, install):
        app, _ = install
        monkeypatch.setenv(STUDIO_PATH_ENV, str(app))
        with patch(
            "run_in_roblox.studio._platform_defaults",
            return_value=(Path("/default/studio"), Path("/default/plugins")),
        ):
            studio = RobloxStudio.locate()

        assert studio.application_path == app
        assert studio.plugins_path == Path("/default/plugins")

    def test_not_found(self):
        with patch("run_in_roblox.studio._platform_defaults", return_value=(None, None)):
            with pytest.raises(StudioNotFoundError):
                RobloxStudio.locate()

    def test_configured_path_missing(self, tmp_path):
        config = RunnerConfig(studio_path=tmp_path / "gone", plugins_dir=tmp_path)
        with pytest.raises(StudioNotFoundError, match="not found at"):
            RobloxStudio.locate(config)

    def test_env_path_missing(self, monkeypatch, tmp_path):
        monkeypatch.setenv(STUDIO_PATH_ENV, str(tmp_path / "gone"))
        monkeypatch.setenv(PLUGINS_PATH_ENV, str(tmp_path))
        with pytest.raises(StudioNotFoundError, match="not found at"):
            RobloxStudio.locate()

    def test_plugins_not_found(self, install):
        app, _ = install
        config = RunnerConfig(studio_path=app)
        with patch("run_in_roblox.studio._platform_defaults", return_value=(None, None)):
            with pytest.raises(StudioNotFoundError, match="plugins"):
                RobloxStudio.locate(config)

    def test_windows_picks_newest_version(self, monkeypatch, tmp_path):
        monkeypatch.setenv("LOCALAPPDATA", str(tmp_path))
        versions = tmp_path / "Roblox" / "Versions"
        for i, name in enumerate(["version-old", "version-new"]):
            exe = versions / name / "RobloxStudioBeta.exe"
            exe.parent.mkdir(parents=True)
            exe.write_text("")
            os.utime(exe, (1000 + i, 1000 + i))
        (versions / "version-empty").mkdir()

        app, plugins = _windows_defaults()
        assert app == versions / "version-new" / "RobloxStudioBeta.exe"
        assert plugins == tmp_path / "Roblox" / "Plugins"

    def test_windows_without_local_app_data(self, monkeypatch):
        monkeypatch.delenv("LOCALAPPDATA", raising=False)
        assert _windows_defaults() == (None, None)


class TestVinegar:
    def test_detects_vinegar(self):
        studio = RobloxStudio(Path("/usr/bin/vinegar"), Path("/plugins"))
        assert studio.is_vinegar

    def test_plain_install(self):
        studio = RobloxStudio(Path("C:/Roblox/RobloxStudioBeta.exe"), Path("/plugins"))
        assert not studio.is_vinegar
