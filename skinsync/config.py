"""Application configuration for SkinSync.

Values are resolved in this order: environment variables, the JSON config
file at ``~/.config/skinsync/config.json``, built-in defaults.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from .exceptions import SkinSyncConfigError
from .utils import DEFAULT_FTP_TIMEOUT, DEFAULT_MAX_ATTEMPTS, DEFAULT_PROGRESS_EVERY

logger = logging.getLogger(__name__)

ENV_PROJECTS_ROOT = "SKINSYNC_PROJECTS_ROOT"
ENV_FTP_TIMEOUT = "SKINSYNC_FTP_TIMEOUT"
ENV_MAX_RETRIES = "SKINSYNC_MAX_RETRIES"


class Config:
    """Configuration manager for SkinSync."""

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_dir: Directory holding config.json. Defaults to
                        ~/.config/skinsync/
        """
        if config_dir is None:
            config_dir = Path.home() / ".config" / "skinsync"
        self.config_dir = config_dir
        self._data: Optional[dict[str, Any]] = None

    def get_config_path(self) -> Path:
        """Get the path of the JSON config file."""
        return self.config_dir / "config.json"

    def _load(self) -> dict[str, Any]:
        if self._data is not None:
            return self._data

        config_path = self.get_config_path()
        self._data = {}
        if config_path.exists():
            try:
                with open(config_path, encoding="utf-8") as f:
                    loaded = json.load(f)
                if isinstance(loaded, dict):
                    self._data = loaded
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Failed to read config file {config_path}: {e}")
        return self._data

    def _get(self, env_name: str, key: str) -> Optional[Any]:
        value = os.environ.get(env_name)
        if value:
            return value
        return self._load().get(key)

    @property
    def projects_root(self) -> Path:
        """Directory holding one sub-directory per project."""
        value = self._get(ENV_PROJECTS_ROOT, "projectsRoot")
        if value:
            return Path(value).expanduser()
        return Path.home() / "skinsync" / "projects"

    @property
    def ftp_timeout(self) -> float:
        """Per-connection FTP timeout in seconds."""
        return self._get_number(ENV_FTP_TIMEOUT, "ftpTimeout", DEFAULT_FTP_TIMEOUT)

    @property
    def max_retries(self) -> int:
        """Maximum attempts per transport operation."""
        return int(
            self._get_number(ENV_MAX_RETRIES, "maxRetries", DEFAULT_MAX_ATTEMPTS)
        )

    @property
    def progress_every(self) -> int:
        """Progress callback interval (in files)."""
        return int(self._load().get("progressEvery", DEFAULT_PROGRESS_EVERY))

    def _get_number(self, env_name: str, key: str, default: float) -> float:
        value = self._get(env_name, key)
        if value is None:
            return default
        try:
            number = float(value)
        except (TypeError, ValueError) as e:
            raise SkinSyncConfigError(
                f"Invalid value for {key}: {value!r} (expected a number)"
            ) from e
        if number <= 0:
            raise SkinSyncConfigError(f"Invalid value for {key}: must be positive")
        return number

    def save_projects_root(self, projects_root: Path) -> None:
        """Persist the projects root in the config file."""
        data = dict(self._load())
        data["projectsRoot"] = str(projects_root)
        self.config_dir.mkdir(parents=True, exist_ok=True)
        with open(self.get_config_path(), "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
        self._data = data


config = Config()
