"""Local snapshot collection for change detection."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..utils import is_reserved_path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileFingerprint:
    """Cheap identity surrogate for a file's content.

    Two equal fingerprints mean the file is considered unchanged. This is
    not a hash: a rewrite that keeps both the size and the millisecond
    modification time is not detected.
    """

    mtime: int
    """Last modification time in whole milliseconds"""

    size: int
    """File size in bytes"""

    @classmethod
    def from_stat(cls, stat: Any) -> "FileFingerprint":
        return cls(mtime=stat.st_mtime_ns // 1_000_000, size=stat.st_size)

    def to_dict(self) -> dict:
        return {"mtime": self.mtime, "size": self.size}

    @classmethod
    def from_dict(cls, data: dict) -> "FileFingerprint":
        return cls(mtime=int(data.get("mtime", 0)), size=int(data.get("size", 0)))


SnapshotMap = dict[str, FileFingerprint]
"""Relative POSIX path -> fingerprint, regular files only."""


class SnapshotCollector:
    """Walks a local directory and fingerprints every regular file.

    Examples:
        >>> collector = SnapshotCollector()
        >>> snapshot = collector.collect(Path("/projects/shop/local"))
        >>> snapshot["css/main.css"].size
        2048
    """

    def collect(self, local_root: Path) -> SnapshotMap:
        """Recursively fingerprint all regular files under ``local_root``.

        Symlinks and other non-regular entries are ignored. Entries that
        cannot be read are skipped instead of aborting the walk.

        Args:
            local_root: Directory to scan

        Returns:
            SnapshotMap keyed by path relative to ``local_root``
        """
        local_root = Path(local_root)
        snapshot: SnapshotMap = {}
        if not local_root.is_dir():
            logger.debug(f"Snapshot root does not exist: {local_root}")
            return snapshot

        self._walk(local_root, local_root, snapshot)
        logger.debug(f"Collected {len(snapshot)} file(s) under {local_root}")
        return snapshot

    def _walk(self, directory: Path, base_path: Path, snapshot: SnapshotMap) -> None:
        try:
            items = list(directory.iterdir())
        except OSError as e:
            logger.debug(f"Skipping unreadable directory {directory}: {e}")
            return

        for item in items:
            try:
                if item.is_symlink():
                    continue
                if item.is_dir():
                    self._walk(item, base_path, snapshot)
                elif item.is_file():
                    # Use as_posix() to ensure forward slashes on all platforms
                    relative_path = item.relative_to(base_path).as_posix()
                    snapshot[relative_path] = FileFingerprint.from_stat(item.stat())
            except OSError as e:
                logger.debug(f"Skipping unreadable entry {item}: {e}")
                continue


def strip_reserved(snapshot: SnapshotMap) -> SnapshotMap:
    """Drop entries that live in reserved internal-state directories."""
    return {
        path: fingerprint
        for path, fingerprint in snapshot.items()
        if not is_reserved_path(path)
    }
