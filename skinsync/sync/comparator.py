"""Snapshot comparison for delta uploads and baseline protection."""

from dataclasses import dataclass, field

from .scanner import SnapshotMap


@dataclass
class SnapshotDiff:
    """Difference between two snapshots."""

    upserted: list[str] = field(default_factory=list)
    """Paths that are new or whose fingerprint changed, sorted"""

    deleted: list[str] = field(default_factory=list)
    """Paths that disappeared, sorted"""

    @property
    def has_changes(self) -> bool:
        return bool(self.upserted or self.deleted)


def diff_snapshots(before: SnapshotMap, after: SnapshotMap) -> SnapshotDiff:
    """Compare two snapshots.

    This function is pure: it only looks at the two maps.

    Args:
        before: Earlier snapshot
        after: Later snapshot

    Returns:
        SnapshotDiff with lexicographically sorted path lists

    Examples:
        >>> from skinsync.sync.scanner import FileFingerprint
        >>> a = {"x.txt": FileFingerprint(1, 10)}
        >>> b = {"x.txt": FileFingerprint(2, 10), "y.txt": FileFingerprint(1, 1)}
        >>> diff_snapshots(a, b).upserted
        ['x.txt', 'y.txt']
        >>> diff_snapshots(b, a).deleted
        ['y.txt']
    """
    upserted = sorted(
        path
        for path, fingerprint in after.items()
        if before.get(path) != fingerprint
    )
    deleted = sorted(path for path in before if path not in after)
    return SnapshotDiff(upserted=upserted, deleted=deleted)
