"""FTP transport for SkinSync.

Every public operation opens a fresh connection, retries transient failures
with a linear backoff and closes the connection on every exit path.
"""

from __future__ import annotations

import ftplib
import logging
import re
import shutil
import socket
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Optional, TypeVar

from .exceptions import (
    SkinSyncAuthenticationError,
    SkinSyncConfigError,
    SkinSyncError,
    SkinSyncNetworkError,
    SkinSyncRemotePathError,
    SkinSyncTransportError,
)
from .progress import (
    CancellationToken,
    ProgressCallback,
    ProgressReporter,
    check_cancelled,
)
from .project import FtpCredential
from .utils import (
    DEFAULT_FTP_TIMEOUT,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_PROGRESS_EVERY,
    DEFAULT_RETRY_BACKOFF,
    join_remote_path,
    normalize_relative_path,
    normalize_remote_path,
    remote_parent_dir,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# 421 service closing, 425 can't open data connection, 426 transfer aborted
TRANSIENT_REPLY_CODES = frozenset({"421", "425", "426"})

# Replies meaning the server does not implement a command
UNSUPPORTED_REPLY_CODES = frozenset({"500", "501", "502", "504"})

TRANSIENT_OS_ERRORS = (
    TimeoutError,
    socket.timeout,
    ConnectionResetError,
    ConnectionAbortedError,
    BrokenPipeError,
    EOFError,
)

_TRANSIENT_MESSAGE = re.compile(r"data connection|socket closed|timed out", re.I)
_DOS_DATE = re.compile(r"^\d{2}-\d{2}-\d{2,4}$")


def reply_code(error: BaseException) -> str:
    """Extract the three-digit FTP reply code from an ftplib error."""
    return str(error)[:3]


def is_transient_error(error: BaseException) -> bool:
    """Check if an error is worth retrying on a fresh connection.

    Timeouts, resets, broken pipes, closed sockets and passive data channel
    failures are transient. Everything else is not.
    """
    if isinstance(error, TRANSIENT_OS_ERRORS):
        return True
    if isinstance(error, ftplib.error_temp) and (
        reply_code(error) in TRANSIENT_REPLY_CODES
    ):
        return True
    if isinstance(error, (ftplib.Error, OSError)):
        return bool(_TRANSIENT_MESSAGE.search(str(error)))
    return False


def is_permission_denied(error: BaseException) -> bool:
    """Check if an error is a 550-class "permission denied" reply."""
    if not isinstance(error, ftplib.error_perm):
        return False
    return reply_code(error) == "550" or "permission denied" in str(error).lower()


@dataclass
class RemoteEntry:
    """A single entry of a remote directory listing."""

    name: str
    is_dir: bool = False
    is_file: bool = False


@dataclass
class TransferResult:
    """Outcome of an upload or delete batch."""

    remote_path: str
    """Normalized remote root the batch ran against"""

    paths: list[str] = field(default_factory=list)
    """Relative paths that were transferred successfully, in order"""

    started_at: str = ""
    finished_at: str = ""

    @property
    def count(self) -> int:
        return len(self.paths)


def parse_list_line(line: str) -> Optional[RemoteEntry]:
    """Parse one line of a ``LIST`` reply (Unix or DOS style).

    Examples:
        >>> parse_list_line("drwxr-xr-x 2 ftp ftp 4096 Jan 01 12:00 css")
        RemoteEntry(name='css', is_dir=True, is_file=False)
        >>> parse_list_line("01-02-24  10:30AM       <DIR>          img")
        RemoteEntry(name='img', is_dir=True, is_file=False)
        >>> parse_list_line("total 8") is None
        True
    """
    parts = line.split(None, 8)
    if len(parts) == 9 and parts[0][:1] in ("d", "-", "l"):
        kind = parts[0][0]
        name = parts[8]
        if kind == "l":
            return RemoteEntry(name=name.split(" -> ")[0])
        return RemoteEntry(name=name, is_dir=kind == "d", is_file=kind == "-")

    parts = line.split(None, 3)
    if len(parts) == 4 and _DOS_DATE.match(parts[0]):
        is_dir = parts[2].upper() == "<DIR>"
        return RemoteEntry(name=parts[3], is_dir=is_dir, is_file=not is_dir)

    return None


def _is_safe_name(name: str) -> bool:
    return name not in ("", ".", "..") and "/" not in name and "\\" not in name


def _empty_directory(target: Path) -> None:
    target.mkdir(parents=True, exist_ok=True)
    for entry in target.iterdir():
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()


class FtpTransport:
    """Retrying FTP client used by the sync engine."""

    def __init__(
        self,
        timeout: float = DEFAULT_FTP_TIMEOUT,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_backoff: float = DEFAULT_RETRY_BACKOFF,
        progress_every: int = DEFAULT_PROGRESS_EVERY,
        ftp_factory: Callable[..., ftplib.FTP] = ftplib.FTP,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the transport.

        Args:
            timeout: Per-connection timeout in seconds (default: 180)
            max_attempts: Attempts per operation on transient errors (default: 3)
            retry_backoff: Backoff step in seconds; attempt N waits N * step
            progress_every: Report progress every N files
            ftp_factory: Callable creating an ``ftplib.FTP``-compatible object
            sleep: Sleep function used between attempts
        """
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.retry_backoff = retry_backoff
        self.progress_every = progress_every
        self._ftp_factory = ftp_factory
        self._sleep = sleep

    # =========================
    # Connection handling
    # =========================

    def _open(self, credential: FtpCredential) -> ftplib.FTP:
        ftp = self._ftp_factory(timeout=self.timeout)
        try:
            ftp.connect(credential.host, credential.port)
            ftp.login(credential.user, credential.password)
            ftp.set_pasv(True)
        except BaseException:
            self._close(ftp)
            raise
        return ftp

    def _close(self, ftp: ftplib.FTP) -> None:
        if getattr(ftp, "sock", None) is None:
            ftp.close()
            return
        try:
            ftp.quit()
        except ftplib.all_errors:
            ftp.close()

    def _translate_error(
        self, operation: str, error: BaseException, attempt: int
    ) -> SkinSyncTransportError:
        if is_transient_error(error):
            return SkinSyncNetworkError(
                f"{operation} failed after {attempt} attempt(s): {error}"
            )
        if isinstance(error, ftplib.error_perm) and reply_code(error) == "530":
            return SkinSyncAuthenticationError(f"FTP login rejected: {error}")
        return SkinSyncTransportError(f"{operation} failed: {error}")

    def _run(
        self,
        operation: str,
        credential: FtpCredential,
        action: Callable[[ftplib.FTP], T],
    ) -> T:
        """Run ``action`` on a fresh connection with retry logic.

        Args:
            operation: Operation name used in log and error messages
            credential: FTP login data
            action: Callable receiving the connected client

        Returns:
            Whatever ``action`` returns

        Raises:
            SkinSyncNetworkError: If transient errors persist on every attempt
            SkinSyncTransportError: On any non-transient FTP or socket error
        """
        if not credential.host:
            raise SkinSyncConfigError("FTP host is empty")

        for attempt in range(1, self.max_attempts + 1):
            try:
                ftp = self._open(credential)
                try:
                    return action(ftp)
                finally:
                    self._close(ftp)
            except SkinSyncError:
                raise
            except ftplib.all_errors as e:
                if is_transient_error(e) and attempt < self.max_attempts:
                    delay = attempt * self.retry_backoff
                    logger.warning(
                        "%s: transient error on attempt %d/%d (%s), retrying in %.1fs",
                        operation,
                        attempt,
                        self.max_attempts,
                        e,
                        delay,
                    )
                    self._sleep(delay)
                    continue
                raise self._translate_error(operation, e, attempt) from e

        # Only reachable with max_attempts < 1, which __init__ prevents
        raise SkinSyncNetworkError(f"{operation} failed after all retry attempts")

    # =========================
    # Listing
    # =========================

    def _list_entries(self, ftp: ftplib.FTP, remote_dir: str) -> list[RemoteEntry]:
        """List a remote directory, preferring MLSD over parsing LIST."""
        try:
            listing = list(ftp.mlsd(remote_dir))
        except ftplib.error_perm as e:
            if reply_code(e) not in UNSUPPORTED_REPLY_CODES:
                raise
            logger.debug(f"MLSD not supported ({e}), falling back to LIST")
            return self._list_entries_fallback(ftp, remote_dir)

        entries = []
        for name, facts in listing:
            kind = facts.get("type", "").lower()
            if kind in ("cdir", "pdir") or name in (".", ".."):
                continue
            entries.append(
                RemoteEntry(name=name, is_dir=kind == "dir", is_file=kind == "file")
            )
        return entries

    def _list_entries_fallback(
        self, ftp: ftplib.FTP, remote_dir: str
    ) -> list[RemoteEntry]:
        lines: list[str] = []
        ftp.cwd(remote_dir)
        ftp.retrlines("LIST", lines.append)
        ftp.cwd("/")

        entries = []
        for line in lines:
            entry = parse_list_line(line)
            if entry is not None and entry.name not in (".", ".."):
                entries.append(entry)
        return entries

    # =========================
    # Download Operations
    # =========================

    def download_tree(
        self,
        credential: FtpCredential,
        remote_path: str,
        local_dir: Path,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> int:
        """Download a remote directory tree into ``local_dir``.

        The remote path is listed first; if it is not accessible nothing is
        touched locally. Otherwise ``local_dir`` is emptied and the tree is
        downloaded depth-first. Directories and files the account may not
        read are skipped.

        Args:
            credential: FTP login data
            remote_path: Remote directory to download
            local_dir: Local destination directory
            progress_callback: Optional ``callback(done, total, path)``; total
                is 0 because the tree size is unknown upfront
            cancel_token: Optional cancellation token checked between files

        Returns:
            Number of files downloaded

        Raises:
            SkinSyncRemotePathError: If the remote path cannot be listed
        """
        remote_path = normalize_remote_path(remote_path)
        local_dir = Path(local_dir)

        def action(ftp: ftplib.FTP) -> int:
            try:
                self._list_entries(ftp, remote_path)
            except ftplib.error_perm as e:
                raise SkinSyncRemotePathError(
                    f"Remote path is not accessible: {remote_path} ({e})"
                ) from e

            _empty_directory(local_dir)
            reporter = ProgressReporter(progress_callback, 0, self.progress_every)
            return self._download_recursive(
                ftp, remote_path, local_dir, "", reporter, cancel_token, 0
            )

        count = self._run("Download", credential, action)
        logger.info(f"Downloaded {count} file(s) from {remote_path} to {local_dir}")
        return count

    def _download_recursive(
        self,
        ftp: ftplib.FTP,
        remote_dir: str,
        local_dir: Path,
        prefix: str,
        reporter: ProgressReporter,
        cancel_token: Optional[CancellationToken],
        count: int,
    ) -> int:
        local_dir.mkdir(parents=True, exist_ok=True)

        try:
            entries = self._list_entries(ftp, remote_dir)
        except ftplib.error_perm as e:
            if is_permission_denied(e):
                logger.debug(f"Skipping unreadable directory {remote_dir}: {e}")
                return count
            raise

        for entry in entries:
            check_cancelled(cancel_token)
            if not _is_safe_name(entry.name):
                logger.debug(f"Skipping unsafe remote name {entry.name!r}")
                continue

            remote_entry = join_remote_path(remote_dir, entry.name)
            local_entry = local_dir / entry.name
            relative = f"{prefix}{entry.name}"

            if entry.is_dir:
                count = self._download_recursive(
                    ftp,
                    remote_entry,
                    local_entry,
                    f"{relative}/",
                    reporter,
                    cancel_token,
                    count,
                )
                continue

            if not entry.is_file:
                continue

            try:
                self._download_file(ftp, remote_entry, local_entry)
            except ftplib.error_perm as e:
                if is_permission_denied(e):
                    logger.debug(f"Skipping unreadable file {remote_entry}: {e}")
                    continue
                raise

            count += 1
            reporter.report(count, relative)

        return count

    def _download_file(
        self, ftp: ftplib.FTP, remote_file: str, local_file: Path
    ) -> None:
        logger.debug(f"Downloading {remote_file} -> {local_file}")
        try:
            with open(local_file, "wb") as f:
                ftp.retrbinary(f"RETR {remote_file}", f.write)
        except BaseException:
            local_file.unlink(missing_ok=True)
            raise

    # =========================
    # Upload Operations
    # =========================

    def _ensure_remote_dir(
        self, ftp: ftplib.FTP, remote_dir: str, known_dirs: set[str]
    ) -> None:
        """Create ``remote_dir`` and its parents, ignoring MKD failures.

        A failing MKD usually means the directory exists already; if it
        really is missing the following STOR fails instead.
        """
        current = ""
        for part in remote_dir.strip("/").split("/"):
            if not part:
                continue
            current = f"{current}/{part}"
            if current in known_dirs:
                continue
            try:
                ftp.mkd(current)
            except ftplib.error_perm as e:
                logger.debug(f"MKD {current}: {e}")
            known_dirs.add(current)

    def upload_files(
        self,
        credential: FtpCredential,
        remote_path: str,
        files: Iterable[tuple[Path, str]],
        progress_callback: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> TransferResult:
        """Upload local files below a remote root, one at a time.

        Args:
            credential: FTP login data
            remote_path: Remote root directory
            files: ``(local_absolute_path, relative_path)`` pairs
            progress_callback: Optional ``callback(done, total, path)``
            cancel_token: Optional cancellation token checked between files

        Returns:
            TransferResult listing the uploaded relative paths
        """
        remote_path = normalize_remote_path(remote_path)
        started_at = utc_now_iso()
        items = []
        for local_path, relative_path in files:
            normalized = normalize_relative_path(relative_path)
            if normalized is None:
                logger.warning(f"Ignoring invalid upload path {relative_path!r}")
                continue
            items.append((Path(local_path), normalized))

        if not items:
            return TransferResult(remote_path, [], started_at, utc_now_iso())

        def action(ftp: ftplib.FTP) -> list[str]:
            uploaded: list[str] = []
            known_dirs: set[str] = set()
            reporter = ProgressReporter(
                progress_callback, len(items), self.progress_every
            )
            self._ensure_remote_dir(ftp, remote_path, known_dirs)

            for local_path, relative_path in items:
                check_cancelled(cancel_token)
                remote_file = join_remote_path(remote_path, relative_path)
                self._ensure_remote_dir(ftp, remote_parent_dir(remote_file), known_dirs)
                logger.debug(f"Uploading {local_path} -> {remote_file}")
                with open(local_path, "rb") as f:
                    ftp.storbinary(f"STOR {remote_file}", f)
                uploaded.append(relative_path)
                reporter.report(len(uploaded), relative_path)
            return uploaded

        uploaded = self._run("Upload", credential, action)
        logger.info(f"Uploaded {len(uploaded)} file(s) to {remote_path}")
        return TransferResult(remote_path, uploaded, started_at, utc_now_iso())

    # =========================
    # Delete Operations
    # =========================

    def delete_files(
        self,
        credential: FtpCredential,
        remote_path: str,
        relative_paths: Iterable[str],
        progress_callback: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> TransferResult:
        """Delete files below a remote root.

        Files the account may not delete are skipped and left out of the
        result.

        Args:
            credential: FTP login data
            remote_path: Remote root directory
            relative_paths: Paths relative to ``remote_path``
            progress_callback: Optional ``callback(done, total, path)``
            cancel_token: Optional cancellation token checked between files

        Returns:
            TransferResult listing the deleted relative paths
        """
        remote_path = normalize_remote_path(remote_path)
        started_at = utc_now_iso()
        items = [
            p
            for p in (normalize_relative_path(raw) for raw in relative_paths)
            if p is not None
        ]

        if not items:
            return TransferResult(remote_path, [], started_at, utc_now_iso())

        def action(ftp: ftplib.FTP) -> list[str]:
            deleted: list[str] = []
            reporter = ProgressReporter(
                progress_callback, len(items), self.progress_every
            )
            for relative_path in items:
                check_cancelled(cancel_token)
                remote_file = join_remote_path(remote_path, relative_path)
                try:
                    ftp.delete(remote_file)
                except ftplib.error_perm as e:
                    if is_permission_denied(e):
                        logger.warning(f"Skipping remote delete of {remote_file}: {e}")
                        continue
                    raise
                deleted.append(relative_path)
                reporter.report(len(deleted), relative_path)
            return deleted

        deleted = self._run("Delete", credential, action)
        logger.info(f"Deleted {len(deleted)} file(s) from {remote_path}")
        return TransferResult(remote_path, deleted, started_at, utc_now_iso())
