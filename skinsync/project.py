"""Project model supplied by the project-management layer.

A project directory looks like::

    <projects_root>/<project_key>/
        config.json     project configuration (written by the project manager)
        local/          working copy of the remote skin
        logs/           per-day operation logs
        .skinsync/      sync metadata and the raw baseline mirror
"""

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

from .exceptions import SkinSyncConfigError
from .utils import RESERVED_PREFIX, normalize_remote_path

CONFIG_FILE = "config.json"
LOCAL_DIR = "local"
LOGS_DIR = "logs"
METADATA_DIR = RESERVED_PREFIX


class SolutionType(str, Enum):
    """Storefront platforms a project can target."""

    CAFE24 = "cafe24"
    """Cafe24 skin, synced over FTP"""

    GODOMALL = "godomall"
    """Godomall skin, synced over FTP"""

    MAKESHOP = "makeshop"
    """MakeShop skin, deployed through the browser upload flow"""

    @property
    def uses_ftp(self) -> bool:
        """Whether projects of this type are synced over FTP."""
        return self in (SolutionType.CAFE24, SolutionType.GODOMALL)

    @property
    def deploy_mode(self) -> str:
        """Label of the deploy channel for this solution type."""
        if self.uses_ftp:
            return f"{self.value}-delta"
        return f"{self.value}-playwright"

    @classmethod
    def from_string(cls, value: str) -> "SolutionType":
        try:
            return cls(value.strip().lower())
        except ValueError as e:
            supported = ", ".join(t.value for t in cls)
            raise SkinSyncConfigError(
                f"Unsupported solution type: {value} (supported: {supported})"
            ) from e


@dataclass
class FtpCredential:
    """FTP login data for a project."""

    host: str
    user: str
    password: str
    port: int = 21

    def __post_init__(self):
        self.host = (self.host or "").strip()
        self.user = (self.user or "").strip()
        self.password = self.password or ""
        self.port = int(self.port or 21)

    @property
    def is_complete(self) -> bool:
        """Whether host, user and password are all present."""
        return bool(self.host and self.user and self.password)

    def missing_fields(self) -> list[str]:
        missing = []
        if not self.host:
            missing.append("host")
        if not self.user:
            missing.append("user")
        if not self.password:
            missing.append("password")
        return missing


@dataclass
class Project:
    """A storefront skin project and where its files live."""

    key: str
    solution_type: SolutionType
    project_path: Path
    credential: FtpCredential
    remote_path: str = "/"
    name: str = ""
    skin_id: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.project_path, str):
            self.project_path = Path(self.project_path)
        if isinstance(self.solution_type, str):
            self.solution_type = SolutionType.from_string(self.solution_type)
        self.remote_path = normalize_remote_path(self.remote_path)
        if not self.name:
            self.name = self.key

    @property
    def local_path(self) -> Path:
        """Working copy root."""
        return self.project_path / LOCAL_DIR

    @property
    def logs_path(self) -> Path:
        return self.project_path / LOGS_DIR

    @property
    def metadata_path(self) -> Path:
        """Private directory for sync metadata and the raw mirror."""
        return self.project_path / METADATA_DIR

    @property
    def raw_mirror_path(self) -> Path:
        return self.metadata_path / "raw"

    @classmethod
    def from_dict(cls, data: dict[str, Any], project_path: Path) -> "Project":
        """Create a Project from a stored project configuration.

        Args:
            data: Parsed config.json (camelCase keys)
            project_path: Directory of the project

        Returns:
            Project instance
        """
        key = data.get("projectKey") or project_path.name
        solution_type = data.get("solutionType")
        if not solution_type:
            raise SkinSyncConfigError(f"Project {key} has no solutionType")

        credential = FtpCredential(
            host=data.get("ftpHost", ""),
            user=data.get("ftpUser", ""),
            password=_secret_value(data.get("ftpPassword")),
            port=data.get("ftpPort") or 21,
        )

        return cls(
            key=key,
            solution_type=SolutionType.from_string(solution_type),
            project_path=project_path,
            credential=credential,
            remote_path=data.get("ftpRemotePath") or "/",
            name=data.get("name", ""),
            skin_id=data.get("skinId"),
        )


def _secret_value(secret: Union[dict[str, Any], str, None]) -> str:
    """Extract the plain value of a stored secret.

    Secrets are stored as ``{"value": ..., "encrypted": bool}``. Decryption is
    handled by the project manager; encrypted secrets cannot be used here.
    """
    if secret is None:
        return ""
    if isinstance(secret, str):
        return secret
    if secret.get("encrypted"):
        raise SkinSyncConfigError(
            "FTP password is encrypted; decrypt it before running sync operations"
        )
    return secret.get("value", "")


def load_project(projects_root: Path, project_key: str) -> Project:
    """Load a project from ``<projects_root>/<project_key>/config.json``.

    Raises:
        SkinSyncConfigError: If the project does not exist or its config
            cannot be parsed
    """
    project_path = Path(projects_root) / project_key
    config_path = project_path / CONFIG_FILE

    if not config_path.is_file():
        raise SkinSyncConfigError(f"Project not found: {project_key}")

    try:
        with open(config_path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise SkinSyncConfigError(
            f"Failed to read project config {config_path}: {e}"
        ) from e

    if not isinstance(data, dict):
        raise SkinSyncConfigError(f"Invalid project config: {config_path}")

    # Metadata is keyed by directory name, so the two must agree
    config_key = data.get("projectKey")
    if config_key and config_key != project_path.name:
        raise SkinSyncConfigError(
            f"Project key {config_key!r} in {config_path} does not match "
            f"its directory {project_path.name!r}"
        )

    return Project.from_dict(data, project_path)
