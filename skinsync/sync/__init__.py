"""Sync engine for SkinSync - baseline, auto-upload, deploy and restore."""

from .baseline import BaselineStore, LocalRestoreReport
from .comparator import SnapshotDiff, diff_snapshots
from .engine import SyncEngine
from .results import (
    AutoUploadResult,
    DeployResult,
    InitialSyncResult,
    LifecycleState,
    OperationStatus,
    PendingChanges,
    RestoreResult,
    SkipReason,
)
from .scanner import (
    FileFingerprint,
    SnapshotCollector,
    SnapshotMap,
    strip_reserved,
)
from .state import (
    Baseline,
    DeltaManifest,
    DeltaManifestStore,
    InMemoryMetadataStore,
    JsonMetadataStore,
    MetadataStore,
    SyncRuleState,
    SyncRuleStateStore,
)

__all__ = [
    "SyncEngine",
    "BaselineStore",
    "LocalRestoreReport",
    "SnapshotDiff",
    "diff_snapshots",
    "FileFingerprint",
    "SnapshotCollector",
    "SnapshotMap",
    "strip_reserved",
    "Baseline",
    "DeltaManifest",
    "DeltaManifestStore",
    "InMemoryMetadataStore",
    "JsonMetadataStore",
    "MetadataStore",
    "SyncRuleState",
    "SyncRuleStateStore",
    "AutoUploadResult",
    "DeployResult",
    "InitialSyncResult",
    "LifecycleState",
    "OperationStatus",
    "PendingChanges",
    "RestoreResult",
    "SkipReason",
]
