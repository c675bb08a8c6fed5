"""Core sync engine: initial sync, auto-upload, deploy and restore."""

import logging
from pathlib import Path
from typing import Iterable, Optional

from ..exceptions import (
    SkinSyncBaselineMissingError,
    SkinSyncConfigError,
    SkinSyncUnsupportedError,
)
from ..output import OutputFormatter
from ..progress import CancellationToken, ProgressCallback
from ..project import Project
from ..transport import FtpTransport
from ..utils import is_inside, is_reserved_path, normalize_paths, utc_now_iso
from .baseline import BaselineStore
from .comparator import diff_snapshots
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
from .scanner import SnapshotCollector, SnapshotMap, strip_reserved
from .state import (
    DeltaManifestStore,
    MetadataStore,
    SyncRuleState,
    SyncRuleStateStore,
)

logger = logging.getLogger(__name__)


class SyncEngine:
    """Orchestrates transport, snapshots, baseline and sync-rule state.

    Callers must not run two operations on the same project at the same
    time: every operation reads and then rewrites the project's metadata.
    """

    def __init__(
        self,
        transport: FtpTransport,
        store: MetadataStore,
        output: Optional[OutputFormatter] = None,
        collector: Optional[SnapshotCollector] = None,
    ):
        """Initialize sync engine.

        Args:
            transport: FTP transport
            store: Metadata store for baselines, sync rules and manifests
            output: Output formatter for displaying progress/status
            collector: Snapshot collector (a default one is created if omitted)
        """
        self.transport = transport
        self.store = store
        self.output = output or OutputFormatter()
        self.collector = collector or SnapshotCollector()

    # =========================
    # Per-project collaborators
    # =========================

    def baseline_store(self, project: Project) -> BaselineStore:
        return BaselineStore(
            self.store,
            project.key,
            project.local_path,
            project.raw_mirror_path,
            collector=self.collector,
        )

    def rule_state_store(self, project: Project) -> SyncRuleStateStore:
        return SyncRuleStateStore(self.store, project.key)

    def manifest_store(self, project: Project) -> DeltaManifestStore:
        return DeltaManifestStore(self.store, project.key)

    def lifecycle_state(self, project: Project) -> LifecycleState:
        """Derive the lifecycle state from the presence of a baseline."""
        if self.baseline_store(project).read() is None:
            return LifecycleState.UNINITIALIZED
        return LifecycleState.SYNCED

    # =========================
    # Helpers
    # =========================

    def _info(self, message: str) -> None:
        if not self.output.quiet:
            self.output.info(message)

    def _require_ftp(self, project: Project, operation: str) -> None:
        if not project.solution_type.uses_ftp:
            raise SkinSyncUnsupportedError(
                f"{operation} is only available for FTP projects "
                f"({project.key} is a {project.solution_type.value} project)"
            )

    def _require_credential(self, project: Project, operation: str) -> None:
        missing = project.credential.missing_fields()
        if missing:
            raise SkinSyncConfigError(
                f"{operation} needs FTP credentials for {project.key}; "
                f"missing: {', '.join(missing)}"
            )

    def _snapshot(self, project: Project) -> SnapshotMap:
        return strip_reserved(self.collector.collect(project.local_path))

    def _resolve_upload_set(
        self, project: Project, relative_paths: Iterable[str]
    ) -> list[tuple[Path, str]]:
        """Resolve relative paths to existing regular files inside the working copy."""
        local_root = project.local_path
        files: list[tuple[Path, str]] = []
        for relative_path in relative_paths:
            if is_reserved_path(relative_path):
                logger.debug(f"Not uploading reserved path {relative_path}")
                continue
            absolute_path = local_root / relative_path
            if not is_inside(absolute_path, local_root):
                logger.warning(f"Not uploading {relative_path}: outside working copy")
                continue
            if absolute_path.is_symlink() or not absolute_path.is_file():
                logger.debug(f"Not uploading {relative_path}: not a regular file")
                continue
            files.append((absolute_path, relative_path))
        return files

    # =========================
    # Initial sync
    # =========================

    def initial_sync(
        self,
        project: Project,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> InitialSyncResult:
        """Download the remote skin into the working copy and capture the baseline.

        Args:
            project: Project to sync
            progress_callback: Optional ``callback(done, total, path)``
            cancel_token: Optional cancellation token

        Returns:
            InitialSyncResult

        Raises:
            SkinSyncConfigError: If FTP credentials are incomplete
            SkinSyncTransportError: If the download fails
        """
        solution = project.solution_type.value

        if not project.solution_type.uses_ftp:
            message = (
                f"{solution} skins are not downloaded over FTP; copy the skin "
                f"files into {project.local_path} manually"
            )
            return InitialSyncResult(
                project_key=project.key,
                solution_type=solution,
                mode="manual",
                message=message,
                local_path=str(project.local_path),
                synced_at=utc_now_iso(),
            )

        self._require_credential(project, "Initial sync")
        remote_path = project.remote_path
        self._info(
            f"Downloading {remote_path} from {project.credential.host} "
            f"into {project.local_path}"
        )

        file_count = self.transport.download_tree(
            project.credential,
            remote_path,
            project.local_path,
            progress_callback=progress_callback,
            cancel_token=cancel_token,
        )
        baseline = self.baseline_store(project).capture(remote_path)

        message = (
            f"Initial sync complete: {file_count} file(s) downloaded from "
            f"{remote_path}, baseline has {len(baseline.files)} file(s)"
        )
        logger.info(f"{project.key}: {message}")
        return InitialSyncResult(
            project_key=project.key,
            solution_type=solution,
            mode="ftp",
            message=message,
            local_path=str(project.local_path),
            synced_at=baseline.created_at,
            remote_path=remote_path,
            file_count=file_count,
        )

    # =========================
    # Auto-upload
    # =========================

    def auto_upload_changed_files(
        self,
        project: Project,
        upserted_paths: Iterable[str],
        deleted_paths: Iterable[str],
        progress_callback: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AutoUploadResult:
        """Push locally changed files and propagate safe deletions.

        Deleting a baseline file is treated as an accident: the file is
        restored from the raw mirror and uploaded again. A deletion is sent
        to the server only for files SkinSync itself uploaded after the
        baseline. Other deletions are reported and skipped.

        Args:
            project: Project whose working copy changed
            upserted_paths: Relative paths created or modified locally
            deleted_paths: Relative paths deleted locally
            progress_callback: Optional ``callback(done, total, path)``
            cancel_token: Optional cancellation token

        Returns:
            AutoUploadResult; missing credentials produce a SKIPPED result
            rather than an error
        """
        started_at = utc_now_iso()

        if not project.solution_type.uses_ftp:
            return AutoUploadResult(
                project_key=project.key,
                status=OperationStatus.SKIPPED,
                skip_reason=SkipReason.NOT_FTP_PROJECT,
                message=(
                    f"Auto-upload skipped: {project.solution_type.value} projects "
                    "are deployed through the browser upload flow"
                ),
                started_at=started_at,
                finished_at=utc_now_iso(),
            )

        baseline_store = self.baseline_store(project)
        rules_store = self.rule_state_store(project)
        baseline = baseline_store.read()
        if baseline is None:
            # Without a baseline nothing can be told apart from original files
            message = (
                f"Auto-upload skipped: {project.key} has no baseline; "
                "run the initial sync first"
            )
            logger.warning(message)
            return AutoUploadResult(
                project_key=project.key,
                status=OperationStatus.SKIPPED,
                skip_reason=SkipReason.NOT_INITIALIZED,
                message=message,
                started_at=started_at,
                finished_at=utc_now_iso(),
                remote_path=project.remote_path,
            )
        baseline_files = baseline.file_set
        rules = rules_store.read()
        logger.debug(
            f"{project.key}: auto-upload with {len(baseline_files)} protected file(s)"
        )

        upserts = set(normalize_paths(upserted_paths))
        deletions = []
        for relative_path in normalize_paths(deleted_paths):
            if self._resolve_upload_set(project, [relative_path]):
                # Still present locally: treat as a change, not a deletion
                upserts.add(relative_path)
            else:
                deletions.append(relative_path)

        # Protected baseline files are restored, never deleted remotely
        protected = [p for p in deletions if p in baseline_files]
        restored: list[str] = []
        unrecoverable: list[str] = []
        if protected:
            report = baseline_store.restore_files_to_local(protected)
            restored = report.restored
            unrecoverable = sorted(report.missing + report.outside_root)
            upserts.update(restored)
            for relative_path in restored:
                logger.info(
                    f"{project.key}: baseline file {relative_path} was deleted "
                    "locally and has been restored from the baseline"
                )
            for relative_path in unrecoverable:
                logger.warning(
                    f"{project.key}: baseline file {relative_path} was deleted "
                    "locally and cannot be restored (missing from the mirror)"
                )

        to_delete: list[str] = []
        skipped_untracked: list[str] = []
        for relative_path in deletions:
            if relative_path in baseline_files:
                continue
            if relative_path in rules.tracked_new_server_files:
                to_delete.append(relative_path)
            else:
                skipped_untracked.append(relative_path)
                logger.info(
                    f"{project.key}: not deleting {relative_path} remotely, "
                    "it is not a tracked new file"
                )

        upload_files = self._resolve_upload_set(project, sorted(upserts))

        def build_result(
            status: OperationStatus,
            message: str,
            skip_reason: Optional[SkipReason] = None,
            uploaded: Optional[list[str]] = None,
            deleted: Optional[list[str]] = None,
            delete_failed: Optional[list[str]] = None,
        ) -> AutoUploadResult:
            return AutoUploadResult(
                project_key=project.key,
                status=status,
                message=message,
                started_at=started_at,
                finished_at=utc_now_iso(),
                remote_path=project.remote_path,
                skip_reason=skip_reason,
                uploaded=uploaded or [],
                deleted_remote=deleted or [],
                restored_protected=restored,
                unrecoverable_protected=unrecoverable,
                skipped_untracked=skipped_untracked,
                skipped_delete_failed=delete_failed or [],
            )

        if not project.credential.is_complete:
            message = _compose_auto_upload_message(
                [], [], restored, unrecoverable, skipped_untracked, []
            )
            message = f"Auto-upload skipped: FTP credentials incomplete. {message}"
            logger.warning(f"{project.key}: {message}")
            return build_result(
                OperationStatus.SKIPPED, message, SkipReason.INCOMPLETE_CREDENTIALS
            )

        if not upload_files and not to_delete:
            message = _compose_auto_upload_message(
                [], [], restored, unrecoverable, skipped_untracked, []
            )
            status = (
                OperationStatus.PARTIAL if unrecoverable else OperationStatus.SKIPPED
            )
            return build_result(status, message, SkipReason.NO_CHANGES)

        uploaded: list[str] = []
        if upload_files:
            upload_result = self.transport.upload_files(
                project.credential,
                project.remote_path,
                upload_files,
                progress_callback=progress_callback,
                cancel_token=cancel_token,
            )
            uploaded = list(upload_result.paths)

        # Tracked-new must be persisted before any remote delete
        tracked = set(rules.tracked_new_server_files)
        tracked.update(uploaded)
        tracked.difference_update(baseline_files)
        if uploaded:
            rules_store.write(SyncRuleState(tracked_new_server_files=tracked))

        deleted: list[str] = []
        if to_delete:
            delete_result = self.transport.delete_files(
                project.credential,
                project.remote_path,
                to_delete,
                progress_callback=progress_callback,
                cancel_token=cancel_token,
            )
            deleted = list(delete_result.paths)
        delete_failed = [p for p in to_delete if p not in deleted]

        tracked.difference_update(deleted)
        rules_store.write(SyncRuleState(tracked_new_server_files=tracked))

        message = _compose_auto_upload_message(
            uploaded, deleted, restored, unrecoverable, skipped_untracked, delete_failed
        )
        status = (
            OperationStatus.PARTIAL
            if unrecoverable or delete_failed
            else OperationStatus.SUCCESS
        )
        logger.info(f"{project.key}: {message}")
        return build_result(
            status,
            message,
            uploaded=uploaded,
            deleted=deleted,
            delete_failed=delete_failed,
        )

    # =========================
    # Deploy
    # =========================

    def pending_changes(self, project: Project) -> PendingChanges:
        """Compare the working copy against the last deploy without uploading."""
        channel = project.solution_type.value
        baseline = self.baseline_store(project).read()
        manifest = self.manifest_store(project).read(channel)
        diff = diff_snapshots(
            manifest.files if manifest is not None else {}, self._snapshot(project)
        )
        rules = self.rule_state_store(project).read()
        return PendingChanges(
            project_key=project.key,
            state=(
                LifecycleState.SYNCED
                if baseline is not None
                else LifecycleState.UNINITIALIZED
            ),
            channel=channel,
            upserted=diff.upserted,
            deleted=diff.deleted,
            tracked_new_server_files=sorted(rules.tracked_new_server_files),
            baseline_file_count=len(baseline.files) if baseline is not None else 0,
            last_deployed_at=manifest.updated_at if manifest is not None else None,
        )

    def deploy(
        self,
        project: Project,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> DeployResult:
        """Upload files changed since the last deploy of this solution type.

        Deploy never deletes remote files.

        Args:
            project: Project to deploy
            progress_callback: Optional ``callback(done, total, path)``
            cancel_token: Optional cancellation token

        Returns:
            DeployResult

        Raises:
            SkinSyncUnsupportedError: For browser-deployed solution types
            SkinSyncConfigError: If FTP credentials are incomplete
        """
        self._require_ftp(project, "Deploy")
        self._require_credential(project, "Deploy")

        started_at = utc_now_iso()
        channel = project.solution_type.value
        manifest_store = self.manifest_store(project)
        manifest = manifest_store.read(channel)
        previous: SnapshotMap = manifest.files if manifest is not None else {}

        snapshot = self._snapshot(project)
        changed = diff_snapshots(previous, snapshot).upserted
        upload_files = self._resolve_upload_set(project, changed)
        self._info(
            f"Deploy plan for {project.key}: {len(upload_files)} changed file(s), "
            f"{len(snapshot) - len(changed)} unchanged"
        )

        uploaded: list[str] = []
        if upload_files:
            upload_result = self.transport.upload_files(
                project.credential,
                project.remote_path,
                upload_files,
                progress_callback=progress_callback,
                cancel_token=cancel_token,
            )
            uploaded = list(upload_result.paths)

        # Changed files that were not uploaded keep their old fingerprint so
        # the next deploy picks them up again
        new_manifest = dict(snapshot)
        for relative_path in changed:
            if relative_path in uploaded:
                continue
            if relative_path in previous:
                new_manifest[relative_path] = previous[relative_path]
            else:
                new_manifest.pop(relative_path, None)
        manifest_store.write(channel, new_manifest)

        unchanged = len(snapshot) - len(changed)
        if uploaded:
            message = (
                f"Deployed {len(uploaded)} changed file(s) to {project.remote_path} "
                f"({unchanged} unchanged)"
            )
        else:
            message = (
                f"No changes since the last deploy ({unchanged} file(s) unchanged)"
            )
        logger.info(f"{project.key}: {message}")

        return DeployResult(
            project_key=project.key,
            solution_type=channel,
            mode=project.solution_type.deploy_mode,
            message=message,
            started_at=started_at,
            finished_at=utc_now_iso(),
            remote_path=project.remote_path,
            uploaded=uploaded,
            unchanged_count=unchanged,
            first_deploy=manifest is None,
        )

    # =========================
    # Restore
    # =========================

    def restore_initial(
        self,
        project: Project,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> RestoreResult:
        """Restore the working copy and the server to the baseline.

        The working copy becomes identical to the initial download, every
        baseline file is uploaded again and the files SkinSync added to the
        server since the baseline are deleted. Baseline files are never
        deleted remotely.

        Args:
            project: Project to restore
            progress_callback: Optional ``callback(done, total, path)``
            cancel_token: Optional cancellation token

        Returns:
            RestoreResult

        Raises:
            SkinSyncUnsupportedError: For browser-deployed solution types
            SkinSyncBaselineMissingError: If the initial sync never ran
            SkinSyncConfigError: If FTP credentials are incomplete
        """
        self._require_ftp(project, "Restore")
        baseline_store = self.baseline_store(project)
        baseline = baseline_store.read()
        if baseline is None:
            raise SkinSyncBaselineMissingError(
                f"No baseline recorded for {project.key}; run the initial sync first"
            )
        self._require_credential(project, "Restore")
        rules_store = self.rule_state_store(project)
        rules = rules_store.read()

        started_at = utc_now_iso()
        if baseline.remote_path != project.remote_path:
            logger.warning(
                f"{project.key}: baseline was captured from {baseline.remote_path}, "
                f"restoring to {project.remote_path}"
            )

        report = baseline_store.replace_local_with_baseline(baseline.files)

        upload_files: list[tuple[Path, str]] = []
        for relative_path in baseline.files:
            source = baseline_store.mirror_file(relative_path)
            if source is not None:
                upload_files.append((source, relative_path))

        deletable = sorted(rules.tracked_new_server_files - baseline.file_set)
        self._info(
            f"Restoring {project.key}: uploading {len(upload_files)} baseline "
            f"file(s), deleting {len(deletable)} tracked new file(s)"
        )

        uploaded: list[str] = []
        if upload_files:
            upload_result = self.transport.upload_files(
                project.credential,
                project.remote_path,
                upload_files,
                progress_callback=progress_callback,
                cancel_token=cancel_token,
            )
            uploaded = list(upload_result.paths)

        deleted: list[str] = []
        if deletable:
            delete_result = self.transport.delete_files(
                project.credential,
                project.remote_path,
                deletable,
                progress_callback=progress_callback,
                cancel_token=cancel_token,
            )
            deleted = list(delete_result.paths)

        rules_store.clear()

        message = (
            f"Restored {len(report.restored)} file(s) to the baseline, "
            f"removed {len(report.removed)} local file(s), "
            f"deleted {len(deleted)} remote file(s)"
        )
        if report.missing:
            message += f"; {len(report.missing)} file(s) missing from the mirror"
        not_deleted = [p for p in deletable if p not in deleted]
        if not_deleted:
            message += f"; {len(not_deleted)} remote file(s) could not be deleted"
        logger.info(f"{project.key}: {message}")

        return RestoreResult(
            project_key=project.key,
            status=(
                OperationStatus.PARTIAL
                if report.missing or not_deleted
                else OperationStatus.SUCCESS
            ),
            message=message,
            started_at=started_at,
            finished_at=utc_now_iso(),
            remote_path=project.remote_path,
            restored_local=report.restored,
            removed_local=report.removed,
            missing_from_mirror=report.missing,
            uploaded=uploaded,
            deleted_remote=deleted,
        )


def _compose_auto_upload_message(
    uploaded: list[str],
    deleted: list[str],
    restored: list[str],
    unrecoverable: list[str],
    skipped_untracked: list[str],
    delete_failed: list[str],
) -> str:
    parts = [f"Uploaded {len(uploaded)} file(s)"]
    if deleted:
        parts.append(f"deleted {len(deleted)} remote file(s)")
    if restored:
        parts.append(f"restored {len(restored)} protected file(s)")
    if unrecoverable:
        parts.append(
            f"{len(unrecoverable)} protected file(s) could not be restored: "
            f"{', '.join(unrecoverable)}"
        )
    if skipped_untracked:
        parts.append(
            f"skipped {len(skipped_untracked)} deletion(s) of untracked file(s)"
        )
    if delete_failed:
        parts.append(f"{len(delete_failed)} remote deletion(s) refused by the server")
    return ", ".join(parts)
