"""Tests for the configuration layer."""

import json
from pathlib import Path

import pytest

from skinsync.config import Config
from skinsync.exceptions import SkinSyncConfigError


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "SKINSYNC_PROJECTS_ROOT",
        "SKINSYNC_FTP_TIMEOUT",
        "SKINSYNC_MAX_RETRIES",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestConfig:
    """Tests for Config."""

    def test_defaults(self, tmp_path, clean_env):
        config = Config(config_dir=tmp_path)

        assert config.projects_root == Path.home() / "skinsync" / "projects"
        assert config.ftp_timeout == 180.0
        assert config.max_retries == 3
        assert config.progress_every == 10

    def test_config_file(self, tmp_path, clean_env):
        (tmp_path / "config.json").write_text(
            json.dumps(
                {"projectsRoot": str(tmp_path / "p"), "ftpTimeout": 30, "maxRetries": 5}
            )
        )
        config = Config(config_dir=tmp_path)

        assert config.projects_root == tmp_path / "p"
        assert config.ftp_timeout == 30.0
        assert config.max_retries == 5

    def test_environment_overrides_file(self, tmp_path, clean_env):
        (tmp_path / "config.json").write_text(json.dumps({"ftpTimeout": 30}))
        clean_env.setenv("SKINSYNC_FTP_TIMEOUT", "45")
        clean_env.setenv("SKINSYNC_PROJECTS_ROOT", str(tmp_path / "env"))

        config = Config(config_dir=tmp_path)

        assert config.ftp_timeout == 45.0
        assert config.projects_root == tmp_path / "env"

    def test_invalid_number(self, tmp_path, clean_env):
        clean_env.setenv("SKINSYNC_MAX_RETRIES", "many")
        with pytest.raises(SkinSyncConfigError, match="maxRetries"):
            Config(config_dir=tmp_path).max_retries

    def test_non_positive_number(self, tmp_path, clean_env):
        clean_env.setenv("SKINSYNC_FTP_TIMEOUT", "0")
        with pytest.raises(SkinSyncConfigError, match="positive"):
            Config(config_dir=tmp_path).ftp_timeout

    def test_malformed_file_uses_defaults(self, tmp_path, clean_env):
        (tmp_path / "config.json").write_text("{broken")
        assert Config(config_dir=tmp_path).max_retries == 3

    def test_save_projects_root(self, tmp_path, clean_env):
        config_dir = tmp_path / "cfg"
        config = Config(config_dir=config_dir)
        config.save_projects_root(tmp_path / "projects")

        data = json.loads((config_dir / "config.json").read_text())
        assert data["projectsRoot"] == str(tmp_path / "projects")
        assert Config(config_dir=config_dir).projects_root == tmp_path / "projects"
