"""Utility functions for SkinSync."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

# =============================================================================
# Constants for transport operations
# =============================================================================

# Per-connection FTP timeout (seconds)
DEFAULT_FTP_TIMEOUT: float = 180.0

# Attempts per transport operation
DEFAULT_MAX_ATTEMPTS: int = 3

# Linear backoff step: attempt * DEFAULT_RETRY_BACKOFF seconds
DEFAULT_RETRY_BACKOFF: float = 1.5

# Progress callbacks fire on the first, the last and every Nth item
DEFAULT_PROGRESS_EVERY: int = 10

# Directories with this prefix hold internal state and are never synced
RESERVED_PREFIX: str = ".skinsync"


# =============================================================================
# Timestamp utilities
# =============================================================================


def utc_now_iso() -> str:
    """Return the current UTC time as an ISO 8601 string with a ``Z`` suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


# =============================================================================
# Path utilities
# =============================================================================


def normalize_relative_path(raw_path: Optional[str]) -> Optional[str]:
    """Normalize a workspace-relative path to POSIX form.

    Backslashes become forward slashes, leading slashes and ``.`` segments
    are dropped. Paths that are empty or climb out of the root with ``..``
    are rejected.

    Args:
        raw_path: Path as received from a caller

    Returns:
        Normalized relative path, or None if the path is unusable

    Examples:
        >>> normalize_relative_path("/css/main.css")
        'css/main.css'
        >>> normalize_relative_path("./a//b.txt")
        'a/b.txt'
        >>> normalize_relative_path("../outside.txt") is None
        True
    """
    if raw_path is None:
        return None

    parts = []
    for part in raw_path.replace("\\", "/").split("/"):
        if part in ("", "."):
            continue
        if part == "..":
            return None
        parts.append(part)

    if not parts:
        return None
    return "/".join(parts)


def normalize_paths(raw_paths) -> list[str]:
    """Normalize, de-duplicate and sort a collection of relative paths."""
    normalized = {normalize_relative_path(p) for p in raw_paths or []}
    normalized.discard(None)
    return sorted(normalized)


def normalize_remote_path(raw_path: Optional[str]) -> str:
    """Normalize a remote FTP directory path.

    Examples:
        >>> normalize_remote_path("")
        '/'
        >>> normalize_remote_path("skin/base")
        '/skin/base'
    """
    trimmed = (raw_path or "").strip()
    if not trimmed or trimmed == ".":
        return "/"
    return trimmed if trimmed.startswith("/") else f"/{trimmed}"


def join_remote_path(base_path: str, name: str) -> str:
    """Join a remote directory and a relative name with single slashes.

    Examples:
        >>> join_remote_path("/", "a.txt")
        '/a.txt'
        >>> join_remote_path("/skin/", "css/main.css")
        '/skin/css/main.css'
    """
    trimmed = base_path.rstrip("/")
    name = name.lstrip("/")
    if not trimmed:
        return f"/{name}"
    return f"{trimmed}/{name}"


def remote_parent_dir(remote_file_path: str) -> str:
    """Return the parent directory of a remote file path.

    Examples:
        >>> remote_parent_dir("/skin/css/main.css")
        '/skin/css'
        >>> remote_parent_dir("/a.txt")
        '/'
    """
    normalized = remote_file_path
    while "//" in normalized:
        normalized = normalized.replace("//", "/")
    idx = normalized.rfind("/")
    if idx <= 0:
        return "/"
    return normalized[:idx]


def is_reserved_path(relative_path: str) -> bool:
    """Check whether any directory of a relative path is reserved."""
    directories = relative_path.split("/")[:-1]
    return any(part.startswith(RESERVED_PREFIX) for part in directories)


def is_inside(path: Path, root: Path) -> bool:
    """Check that ``path`` resolves strictly inside ``root``."""
    resolved = path.resolve()
    resolved_root = root.resolve()
    return resolved != resolved_root and resolved.is_relative_to(resolved_root)
