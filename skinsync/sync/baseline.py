"""Baseline capture and restore.

The baseline consists of two parts: a JSON record of the file set that
existed right after the initial sync, and a raw byte mirror of those files.
The mirror is the source of truth for restores and is never touched by
later edits.
"""

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from ..utils import RESERVED_PREFIX, is_inside, normalize_paths, utc_now_iso
from .scanner import SnapshotCollector, strip_reserved
from .state import BASELINE_DOCUMENT, Baseline, MetadataStore, SyncRuleStateStore

logger = logging.getLogger(__name__)


@dataclass
class LocalRestoreReport:
    """Outcome of restoring files from the raw mirror."""

    restored: list[str] = field(default_factory=list)
    """Paths copied from the mirror into the working copy"""

    missing: list[str] = field(default_factory=list)
    """Requested paths without a regular file in the mirror"""

    outside_root: list[str] = field(default_factory=list)
    """Requested paths resolving outside the working copy"""

    removed: list[str] = field(default_factory=list)
    """Working copy files deleted because they are not in the baseline"""


def _ignore_reserved(_directory: str, names: list[str]) -> list[str]:
    return [name for name in names if name.startswith(RESERVED_PREFIX)]


class BaselineStore:
    """Captures, reads and restores the baseline of one project."""

    def __init__(
        self,
        store: MetadataStore,
        project_key: str,
        local_root: Path,
        mirror_root: Path,
        collector: Optional[SnapshotCollector] = None,
    ):
        """Initialize baseline store.

        Args:
            store: Metadata store holding the baseline record
            project_key: Key of the project
            local_root: Working copy directory
            mirror_root: Directory of the raw byte mirror
            collector: Snapshot collector (a default one is created if omitted)
        """
        self.store = store
        self.project_key = project_key
        self.local_root = Path(local_root)
        self.mirror_root = Path(mirror_root)
        self.collector = collector or SnapshotCollector()
        self.rule_state = SyncRuleStateStore(store, project_key)

    def capture(self, remote_path: str) -> Baseline:
        """Freeze the current working copy as the baseline.

        Replaces the raw mirror with a byte copy of the working copy,
        persists the baseline record and resets the sync-rule state.

        Args:
            remote_path: Remote directory the working copy was downloaded from

        Returns:
            The new Baseline
        """
        if self.mirror_root.exists():
            shutil.rmtree(self.mirror_root)
        self.mirror_root.parent.mkdir(parents=True, exist_ok=True)
        if self.local_root.is_dir():
            shutil.copytree(self.local_root, self.mirror_root, ignore=_ignore_reserved)
        else:
            self.mirror_root.mkdir(parents=True)

        snapshot = strip_reserved(self.collector.collect(self.local_root))
        baseline = Baseline(
            created_at=utc_now_iso(),
            remote_path=remote_path,
            files=sorted(snapshot),
        )
        self.store.write(self.project_key, BASELINE_DOCUMENT, baseline.to_dict())
        self.rule_state.clear()

        logger.info(
            f"Captured baseline for {self.project_key} "
            f"with {len(baseline.files)} file(s)"
        )
        return baseline

    def read(self) -> Optional[Baseline]:
        """Load the baseline, or None if the initial sync never ran."""
        data = self.store.read(self.project_key, BASELINE_DOCUMENT)
        if data is None:
            return None
        return Baseline.from_dict(data)

    def mirror_file(self, relative_path: str) -> Optional[Path]:
        """Return the mirror copy of a path if it exists as a regular file."""
        source = self.mirror_root / relative_path
        if not is_inside(source, self.mirror_root):
            return None
        if source.is_symlink() or not source.is_file():
            return None
        return source

    def restore_files_to_local(self, paths: Iterable[str]) -> LocalRestoreReport:
        """Copy files from the raw mirror over the working copy.

        Paths outside the working copy and paths missing from the mirror
        are reported, not raised.

        Args:
            paths: Relative paths to restore

        Returns:
            LocalRestoreReport
        """
        report = LocalRestoreReport()

        for relative_path in normalize_paths(paths):
            target = self.local_root / relative_path
            if not is_inside(target, self.local_root):
                report.outside_root.append(relative_path)
                continue

            source = self.mirror_file(relative_path)
            if source is None:
                report.missing.append(relative_path)
                continue

            if target.is_dir() and not target.is_symlink():
                shutil.rmtree(target)
            elif target.is_symlink():
                target.unlink()
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, target)
            report.restored.append(relative_path)

        if report.missing:
            logger.warning(
                f"{len(report.missing)} file(s) missing from the baseline mirror: "
                f"{', '.join(report.missing)}"
            )
        logger.debug(f"Restored {len(report.restored)} file(s) from the mirror")
        return report

    def replace_local_with_baseline(self, paths: Iterable[str]) -> LocalRestoreReport:
        """Make the working copy contain exactly ``paths``, restored from the mirror.

        Every file under the working copy that is not in ``paths`` is deleted
        (reserved directories are left alone), directories left empty are
        removed, and ``paths`` are restored.

        Args:
            paths: Relative paths of the baseline

        Returns:
            LocalRestoreReport including the removed paths
        """
        keep = set(normalize_paths(paths))
        removed: list[str] = []

        if self.local_root.is_dir():
            for dirpath, dirnames, filenames in os.walk(self.local_root):
                dirnames[:] = [
                    d for d in dirnames if not d.startswith(RESERVED_PREFIX)
                ]
                current = Path(dirpath)
                # Symlinked directories are listed in dirnames but not followed
                linked_dirs = [d for d in dirnames if (current / d).is_symlink()]
                dirnames[:] = [d for d in dirnames if d not in linked_dirs]
                entries = filenames + linked_dirs
                for name in entries:
                    entry = current / name
                    relative_path = entry.relative_to(self.local_root).as_posix()
                    if relative_path in keep and not entry.is_symlink():
                        continue
                    entry.unlink()
                    removed.append(relative_path)

            self._prune_empty_dirs()

        report = self.restore_files_to_local(keep)
        report.removed = sorted(removed)
        logger.info(
            f"Replaced working copy with baseline: {len(report.restored)} restored, "
            f"{len(report.removed)} removed"
        )
        return report

    def _prune_empty_dirs(self) -> None:
        for dirpath, _dirnames, _filenames in os.walk(self.local_root, topdown=False):
            current = Path(dirpath)
            parts = current.relative_to(self.local_root).parts
            if not parts or any(p.startswith(RESERVED_PREFIX) for p in parts):
                continue
            if not any(current.iterdir()):
                current.rmdir()
