"""Durable sync metadata.

This module provides the metadata store used by the sync engine and the
documents kept in it: the baseline record, the sync-rule state that tracks
files SkinSync introduced on the server, and the per-channel deploy
manifests.
"""

import json
import logging
from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Protocol

from ..exceptions import SkinSyncConfigError
from ..utils import RESERVED_PREFIX, normalize_paths, utc_now_iso
from .scanner import FileFingerprint, SnapshotMap

logger = logging.getLogger(__name__)

BASELINE_DOCUMENT = "baseline"
SYNC_RULES_DOCUMENT = "sync-rules"
DEPLOY_MANIFEST_PREFIX = "deploy-manifest-"


class MetadataStore(Protocol):
    """Read/write access to per-project JSON documents."""

    def read(self, project_key: str, name: str) -> Optional[dict]:
        """Return the document, or None if it was never written.

        Raises:
            SkinSyncConfigError: If the document exists but cannot be parsed
        """
        ...

    def write(self, project_key: str, name: str, data: dict) -> None:
        ...

    def delete(self, project_key: str, name: str) -> bool:
        """Delete the document; return False if it did not exist."""
        ...


class JsonMetadataStore:
    """Stores documents as JSON files.

    Documents live at ``<projects_root>/<project_key>/.skinsync/<name>.json``.
    """

    def __init__(self, projects_root: Path, metadata_dir: str = RESERVED_PREFIX):
        self.projects_root = Path(projects_root)
        self.metadata_dir = metadata_dir

    def _get_document_path(self, project_key: str, name: str) -> Path:
        return self.projects_root / project_key / self.metadata_dir / f"{name}.json"

    def read(self, project_key: str, name: str) -> Optional[dict]:
        path = self._get_document_path(project_key, name)
        if not path.exists():
            logger.debug(f"No metadata document at {path}")
            return None

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise SkinSyncConfigError(
                f"Failed to read metadata document {path}: {e}"
            ) from e

        if not isinstance(data, dict):
            raise SkinSyncConfigError(f"Invalid metadata document: {path}")
        return data

    def write(self, project_key: str, name: str, data: dict) -> None:
        path = self._get_document_path(project_key, name)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
        tmp_path.replace(path)
        logger.debug(f"Saved metadata document {path}")

    def delete(self, project_key: str, name: str) -> bool:
        path = self._get_document_path(project_key, name)
        if path.exists():
            path.unlink()
            return True
        return False


class InMemoryMetadataStore:
    """Keeps documents in a dictionary. Used in tests."""

    def __init__(self) -> None:
        self.documents: dict[tuple[str, str], dict] = {}

    def read(self, project_key: str, name: str) -> Optional[dict]:
        data = self.documents.get((project_key, name))
        return deepcopy(data) if data is not None else None

    def write(self, project_key: str, name: str, data: dict) -> None:
        self.documents[(project_key, name)] = deepcopy(data)

    def delete(self, project_key: str, name: str) -> bool:
        return self.documents.pop((project_key, name), None) is not None


@dataclass
class Baseline:
    """The file set that existed right after the last initial sync."""

    created_at: str
    """ISO timestamp of the capture"""

    remote_path: str
    """Remote directory the files were downloaded from"""

    files: list[str] = field(default_factory=list)
    """Sorted relative paths of the downloaded files"""

    def __post_init__(self):
        self.files = normalize_paths(self.files)

    def contains(self, relative_path: str) -> bool:
        return relative_path in self.file_set

    @property
    def file_set(self) -> frozenset[str]:
        return frozenset(self.files)

    def to_dict(self) -> dict:
        return {
            "createdAt": self.created_at,
            "remotePath": self.remote_path,
            "files": list(self.files),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Baseline":
        return cls(
            created_at=data.get("createdAt", ""),
            remote_path=data.get("remotePath", "/"),
            files=list(data.get("files", [])),
        )


@dataclass
class SyncRuleState:
    """Remote files SkinSync added after the baseline.

    Only these files may ever be deleted from the server.
    """

    tracked_new_server_files: set[str] = field(default_factory=set)

    def to_dict(self) -> dict:
        return {"trackedNewServerFiles": normalize_paths(self.tracked_new_server_files)}

    @classmethod
    def from_dict(cls, data: dict) -> "SyncRuleState":
        return cls(
            tracked_new_server_files=set(
                normalize_paths(data.get("trackedNewServerFiles", []))
            )
        )


@dataclass
class DeltaManifest:
    """Fingerprints pushed by the last successful deploy of a channel."""

    updated_at: str
    files: SnapshotMap = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "updatedAt": self.updated_at,
            "files": {
                path: self.files[path].to_dict() for path in sorted(self.files)
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DeltaManifest":
        files: dict[str, Any] = data.get("files") or {}
        return cls(
            updated_at=data.get("updatedAt", ""),
            files={
                path: FileFingerprint.from_dict(value)
                for path, value in files.items()
                if isinstance(value, dict)
            },
        )


class SyncRuleStateStore:
    """Persists the SyncRuleState of one project.

    No business logic lives here; callers decide membership.
    """

    def __init__(self, store: MetadataStore, project_key: str):
        self.store = store
        self.project_key = project_key

    def read(self) -> SyncRuleState:
        data = self.store.read(self.project_key, SYNC_RULES_DOCUMENT)
        if data is None:
            return SyncRuleState()
        return SyncRuleState.from_dict(data)

    def write(self, state: SyncRuleState) -> None:
        self.store.write(self.project_key, SYNC_RULES_DOCUMENT, state.to_dict())
        logger.debug(
            f"Saved sync rules for {self.project_key} with "
            f"{len(state.tracked_new_server_files)} tracked file(s)"
        )

    def clear(self) -> None:
        self.write(SyncRuleState())


class DeltaManifestStore:
    """Persists one DeltaManifest per deploy channel of a project."""

    def __init__(self, store: MetadataStore, project_key: str):
        self.store = store
        self.project_key = project_key

    def _document_name(self, channel: str) -> str:
        return f"{DEPLOY_MANIFEST_PREFIX}{channel}"

    def read(self, channel: str) -> Optional[DeltaManifest]:
        data = self.store.read(self.project_key, self._document_name(channel))
        if data is None:
            return None
        return DeltaManifest.from_dict(data)

    def write(self, channel: str, files: SnapshotMap) -> DeltaManifest:
        manifest = DeltaManifest(updated_at=utc_now_iso(), files=dict(files))
        self.store.write(
            self.project_key, self._document_name(channel), manifest.to_dict()
        )
        logger.debug(
            f"Saved deploy manifest {channel} for {self.project_key} "
            f"with {len(files)} file(s)"
        )
        return manifest
