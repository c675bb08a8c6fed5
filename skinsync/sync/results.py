"""Result types returned by the sync engine.

Every operation returns one of these objects, including on partial
failure. ``to_dict()`` produces the camelCase shape consumed by the UI and
the project log.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class LifecycleState(str, Enum):
    """Project lifecycle, derived from the presence of a baseline."""

    UNINITIALIZED = "uninitialized"
    """Initial sync never completed"""

    SYNCED = "synced"
    """A baseline exists"""


class OperationStatus(str, Enum):
    """Outcome category of an operation that did not raise."""

    SUCCESS = "success"
    """Everything that had to be done was done"""

    PARTIAL = "partial"
    """Done, but some items could not be handled (see the result lists)"""

    SKIPPED = "skipped"
    """Nothing was sent to the server (see ``skip_reason``)"""


class SkipReason(str, Enum):
    """Why an auto-upload did not reach the server."""

    INCOMPLETE_CREDENTIALS = "incomplete-credentials"
    NOT_FTP_PROJECT = "not-ftp-project"
    NO_CHANGES = "no-changes"
    NOT_INITIALIZED = "not-initialized"


@dataclass
class InitialSyncResult:
    """Result of an initial sync."""

    project_key: str
    solution_type: str
    mode: str
    """``ftp`` for downloaded projects, ``manual`` for browser-deployed ones"""

    message: str
    local_path: str
    synced_at: str
    remote_path: Optional[str] = None
    file_count: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "projectKey": self.project_key,
            "solutionType": self.solution_type,
            "mode": self.mode,
            "message": self.message,
            "remotePath": self.remote_path,
            "localPath": self.local_path,
            "fileCount": self.file_count,
            "syncedAt": self.synced_at,
        }


@dataclass
class AutoUploadResult:
    """Result of uploading changed files after a local save."""

    project_key: str
    status: OperationStatus
    message: str
    started_at: str
    finished_at: str
    remote_path: Optional[str] = None
    skip_reason: Optional[SkipReason] = None

    uploaded: list[str] = field(default_factory=list)
    """Paths uploaded to the server"""

    deleted_remote: list[str] = field(default_factory=list)
    """Tracked-new paths deleted from the server"""

    restored_protected: list[str] = field(default_factory=list)
    """Baseline paths deleted locally and restored from the mirror"""

    unrecoverable_protected: list[str] = field(default_factory=list)
    """Baseline paths deleted locally whose mirror copy is missing"""

    skipped_untracked: list[str] = field(default_factory=list)
    """Deleted paths that were never pushed by SkinSync (not deleted remotely)"""

    skipped_delete_failed: list[str] = field(default_factory=list)
    """Tracked-new paths the server refused to delete"""

    @property
    def uploaded_count(self) -> int:
        return len(self.uploaded)

    @property
    def deleted_count(self) -> int:
        return len(self.deleted_remote)

    def to_dict(self) -> dict[str, Any]:
        return {
            "projectKey": self.project_key,
            "status": self.status.value,
            "skipReason": self.skip_reason.value if self.skip_reason else None,
            "message": self.message,
            "remotePath": self.remote_path,
            "uploadedCount": self.uploaded_count,
            "deletedCount": self.deleted_count,
            "uploaded": list(self.uploaded),
            "deletedRemote": list(self.deleted_remote),
            "restoredProtected": list(self.restored_protected),
            "unrecoverableProtected": list(self.unrecoverable_protected),
            "skippedUntracked": list(self.skipped_untracked),
            "skippedDeleteFailed": list(self.skipped_delete_failed),
            "startedAt": self.started_at,
            "finishedAt": self.finished_at,
        }


@dataclass
class DeployResult:
    """Result of a manifest-based delta deploy."""

    project_key: str
    solution_type: str
    mode: str
    message: str
    started_at: str
    finished_at: str
    remote_path: str
    uploaded: list[str] = field(default_factory=list)
    unchanged_count: int = 0
    first_deploy: bool = False
    """True if no manifest existed, so every file counted as changed"""

    @property
    def uploaded_count(self) -> int:
        return len(self.uploaded)

    def to_dict(self) -> dict[str, Any]:
        return {
            "projectKey": self.project_key,
            "solutionType": self.solution_type,
            "mode": self.mode,
            "message": self.message,
            "remotePath": self.remote_path,
            "uploadedCount": self.uploaded_count,
            "uploaded": list(self.uploaded),
            "unchangedCount": self.unchanged_count,
            "firstDeploy": self.first_deploy,
            "startedAt": self.started_at,
            "finishedAt": self.finished_at,
        }


@dataclass
class RestoreResult:
    """Result of restoring the local copy and the server to the baseline."""

    project_key: str
    status: OperationStatus
    message: str
    started_at: str
    finished_at: str
    remote_path: str
    restored_local: list[str] = field(default_factory=list)
    removed_local: list[str] = field(default_factory=list)
    missing_from_mirror: list[str] = field(default_factory=list)
    uploaded: list[str] = field(default_factory=list)
    deleted_remote: list[str] = field(default_factory=list)

    @property
    def restored_count(self) -> int:
        return len(self.restored_local)

    @property
    def deleted_count(self) -> int:
        return len(self.deleted_remote)

    def to_dict(self) -> dict[str, Any]:
        return {
            "projectKey": self.project_key,
            "status": self.status.value,
            "message": self.message,
            "remotePath": self.remote_path,
            "restoredCount": self.restored_count,
            "removedLocalCount": len(self.removed_local),
            "uploadedCount": len(self.uploaded),
            "deletedCount": self.deleted_count,
            "restoredLocal": list(self.restored_local),
            "removedLocal": list(self.removed_local),
            "missingFromMirror": list(self.missing_from_mirror),
            "deletedRemote": list(self.deleted_remote),
            "startedAt": self.started_at,
            "finishedAt": self.finished_at,
        }


@dataclass
class PendingChanges:
    """Local changes since the last deploy, without touching the server."""

    project_key: str
    state: LifecycleState
    channel: str
    upserted: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    tracked_new_server_files: list[str] = field(default_factory=list)
    baseline_file_count: int = 0
    last_deployed_at: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "projectKey": self.project_key,
            "state": self.state.value,
            "channel": self.channel,
            "upserted": list(self.upserted),
            "deleted": list(self.deleted),
            "trackedNewServerFiles": list(self.tracked_new_server_files),
            "baselineFileCount": self.baseline_file_count,
            "lastDeployedAt": self.last_deployed_at,
        }
