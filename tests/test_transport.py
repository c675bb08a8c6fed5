"""Tests for the FTP transport."""

import ftplib
import socket
from unittest.mock import Mock, call

import pytest

from skinsync.exceptions import (
    SkinSyncAuthenticationError,
    SkinSyncCancelledError,
    SkinSyncConfigError,
    SkinSyncNetworkError,
    SkinSyncRemotePathError,
    SkinSyncTransportError,
)
from skinsync.progress import CancellationToken
from skinsync.project import FtpCredential
from skinsync.transport import (
    FtpTransport,
    RemoteEntry,
    is_permission_denied,
    is_transient_error,
    parse_list_line,
)


class FakeFTP:
    """In-memory stand-in for ``ftplib.FTP``."""

    def __init__(self, files=None, denied=(), mlsd_supported=True):
        self.files = dict(files or {})
        self.dirs = {"/"}
        for path in self.files:
            parts = path.strip("/").split("/")[:-1]
            for i in range(1, len(parts) + 1):
                self.dirs.add("/" + "/".join(parts[:i]))
        self.denied = set(denied)
        self.mlsd_supported = mlsd_supported
        self.sock = object()
        self.cwd_path = "/"
        self.connected = None
        self.logged_in = None
        self.closed = False

    def connect(self, host, port):
        self.connected = (host, port)

    def login(self, user, password):
        self.logged_in = (user, password)

    def set_pasv(self, value):
        self.passive = value

    def _children(self, path):
        prefix = path.rstrip("/") + "/"
        children = {}
        for candidate in list(self.files) + list(self.dirs):
            if candidate.startswith(prefix) and candidate != prefix:
                rest = candidate[len(prefix) :]
                name = rest.split("/")[0]
                is_dir = "/" in rest or candidate in self.dirs
                children[name] = children.get(name, False) or is_dir
        return sorted(children.items())

    def _check_dir(self, path):
        if path in self.denied:
            raise ftplib.error_perm("550 Permission denied")
        if path not in self.dirs:
            raise ftplib.error_perm("550 No such file or directory")

    def mlsd(self, path="", facts=()):
        if not self.mlsd_supported:
            raise ftplib.error_perm("500 Unknown command MLSD")
        self._check_dir(path)
        listing = [(".", {"type": "cdir"}), ("..", {"type": "pdir"})]
        for name, is_dir in self._children(path):
            listing.append((name, {"type": "dir" if is_dir else "file"}))
        return iter(listing)

    def cwd(self, path):
        self._check_dir(path)
        self.cwd_path = path

    def retrlines(self, command, callback):
        for name, is_dir in self._children(self.cwd_path):
            kind = "d" if is_dir else "-"
            callback(f"{kind}rw-r--r--   1 ftp ftp   10 Jan 01 12:00 {name}")

    def retrbinary(self, command, callback):
        path = command[len("RETR ") :]
        if path in self.denied:
            raise ftplib.error_perm("550 Permission denied")
        callback(self.files[path])

    def storbinary(self, command, fp):
        path = command[len("STOR ") :]
        parent = path.rsplit("/", 1)[0] or "/"
        if parent not in self.dirs:
            raise ftplib.error_perm("553 Could not create file")
        self.files[path] = fp.read()

    def mkd(self, path):
        if path in self.dirs:
            raise ftplib.error_perm("550 File exists")
        self.dirs.add(path)
        return path

    def delete(self, path):
        if path in self.denied:
            raise ftplib.error_perm("550 Permission denied")
        if path not in self.files:
            raise ftplib.error_perm("550 No such file")
        del self.files[path]

    def quit(self):
        self.closed = True

    def close(self):
        self.closed = True


@pytest.fixture
def credential():
    return FtpCredential(host="ftp.example.com", user="user", password="pw")


@pytest.fixture
def sleep():
    return Mock()


def make_transport(fake, sleep=None, **kwargs):
    return FtpTransport(
        ftp_factory=lambda timeout: fake, sleep=sleep or Mock(), **kwargs
    )


class TestHelpers:
    """Tests for listing parsers and error classification."""

    def test_parse_unix_line(self):
        entry = parse_list_line("-rw-r--r-- 1 ftp ftp 10 Jan 01 12:00 my file.txt")
        assert entry == RemoteEntry(name="my file.txt", is_dir=False, is_file=True)

    def test_parse_dos_line(self):
        entry = parse_list_line("01-02-24  10:30AM       1234 main.css")
        assert entry == RemoteEntry(name="main.css", is_dir=False, is_file=True)

    def test_parse_symlink_line(self):
        entry = parse_list_line("lrwxrwxrwx 1 ftp ftp 4 Jan 01 12:00 link -> target")
        assert entry.name == "link"
        assert not entry.is_dir and not entry.is_file

    def test_parse_garbage(self):
        assert parse_list_line("total 12") is None

    def test_transient_errors(self):
        assert is_transient_error(socket.timeout("timed out"))
        assert is_transient_error(ConnectionResetError())
        assert is_transient_error(ftplib.error_temp("425 Can't open data connection"))
        assert is_transient_error(ftplib.error_temp("421 Service not available"))

    def test_non_transient_errors(self):
        assert not is_transient_error(ftplib.error_perm("530 Login incorrect"))
        assert not is_transient_error(ftplib.error_temp("450 File busy"))
        assert not is_transient_error(ValueError("boom"))

    def test_permission_denied(self):
        assert is_permission_denied(ftplib.error_perm("550 Permission denied"))
        assert is_permission_denied(ftplib.error_perm("553 permission denied"))
        assert not is_permission_denied(ftplib.error_perm("530 Login incorrect"))
        assert not is_permission_denied(ftplib.error_temp("450 busy"))


class TestDownloadTree:
    """Tests for FtpTransport.download_tree."""

    def test_download(self, credential, tmp_path):
        fake = FakeFTP({"/skin/a.txt": b"A", "/skin/b/c.txt": b"C"})
        local = tmp_path / "local"
        local.mkdir()
        (local / "stale.txt").write_text("old")
        (local / "old").mkdir()

        count = make_transport(fake).download_tree(credential, "skin", local)

        assert count == 2
        assert (local / "a.txt").read_bytes() == b"A"
        assert (local / "b" / "c.txt").read_bytes() == b"C"
        assert not (local / "stale.txt").exists()
        assert not (local / "old").exists()
        assert fake.connected == ("ftp.example.com", 21)
        assert fake.logged_in == ("user", "pw")
        assert fake.closed

    def test_inaccessible_remote_path(self, credential, tmp_path):
        fake = FakeFTP({"/skin/a.txt": b"A"})
        local = tmp_path / "local"
        local.mkdir()
        (local / "keep.txt").write_text("keep")

        with pytest.raises(SkinSyncRemotePathError):
            make_transport(fake).download_tree(credential, "/missing", local)

        assert (local / "keep.txt").exists()
        assert fake.closed

    def test_permission_denied_entries_skipped(self, credential, tmp_path):
        fake = FakeFTP(
            {
                "/a.txt": b"A",
                "/secret.txt": b"S",
                "/private/x.txt": b"X",
            },
            denied={"/secret.txt", "/private"},
        )
        local = tmp_path / "local"

        count = make_transport(fake).download_tree(credential, "/", local)

        assert count == 1
        assert (local / "a.txt").exists()
        assert not (local / "secret.txt").exists()
        assert not (local / "private" / "x.txt").exists()

    def test_list_fallback(self, credential, tmp_path):
        fake = FakeFTP(
            {"/skin/a.txt": b"A", "/skin/css/main.css": b"M"}, mlsd_supported=False
        )
        local = tmp_path / "local"

        count = make_transport(fake).download_tree(credential, "/skin", local)

        assert count == 2
        assert (local / "css" / "main.css").read_bytes() == b"M"

    def test_progress(self, credential, tmp_path):
        fake = FakeFTP({"/a.txt": b"A", "/b.txt": b"B"})
        callback = Mock()

        make_transport(fake, progress_every=10).download_tree(
            credential, "/", tmp_path / "local", progress_callback=callback
        )

        callback.assert_called_once_with(1, 0, "a.txt")

    def test_cancelled(self, credential, tmp_path):
        fake = FakeFTP({"/a.txt": b"A"})
        token = CancellationToken()
        token.cancel()
        sleep = Mock()

        with pytest.raises(SkinSyncCancelledError):
            make_transport(fake, sleep=sleep).download_tree(
                credential, "/", tmp_path / "local", cancel_token=token
            )

        sleep.assert_not_called()
        assert fake.closed

    def test_empty_host(self, tmp_path):
        factory = Mock()
        transport = FtpTransport(ftp_factory=factory)

        with pytest.raises(SkinSyncConfigError):
            transport.download_tree(FtpCredential("", "u", "p"), "/", tmp_path)

        factory.assert_not_called()


class TestUploadFiles:
    """Tests for FtpTransport.upload_files."""

    def test_upload_creates_directories(self, credential, tmp_path):
        fake = FakeFTP({"/skin/index.html": b"I"})
        (tmp_path / "a.txt").write_bytes(b"A")
        (tmp_path / "c.txt").write_bytes(b"C")

        result = make_transport(fake).upload_files(
            credential,
            "/skin",
            [(tmp_path / "a.txt", "a.txt"), (tmp_path / "c.txt", "new/deep/c.txt")],
        )

        assert result.paths == ["a.txt", "new/deep/c.txt"]
        assert result.count == 2
        assert result.remote_path == "/skin"
        assert result.started_at and result.finished_at
        assert fake.files["/skin/a.txt"] == b"A"
        assert fake.files["/skin/new/deep/c.txt"] == b"C"

    def test_upload_nothing_does_not_connect(self, credential):
        factory = Mock()
        transport = FtpTransport(ftp_factory=factory)

        result = transport.upload_files(credential, "/", [])

        assert result.paths == []
        factory.assert_not_called()

    def test_upload_ignores_invalid_paths(self, credential, tmp_path):
        fake = FakeFTP()
        (tmp_path / "a.txt").write_bytes(b"A")

        result = make_transport(fake).upload_files(
            credential, "/", [(tmp_path / "a.txt", "../a.txt")]
        )

        assert result.paths == []
        assert fake.files == {}

    def test_upload_progress(self, credential, tmp_path):
        fake = FakeFTP()
        files = []
        for i in range(3):
            path = tmp_path / f"{i}.txt"
            path.write_text(str(i))
            files.append((path, f"{i}.txt"))
        callback = Mock()

        make_transport(fake, progress_every=10).upload_files(
            credential, "/", files, progress_callback=callback
        )

        assert callback.call_args_list == [call(1, 3, "0.txt"), call(3, 3, "2.txt")]


class TestDeleteFiles:
    """Tests for FtpTransport.delete_files."""

    def test_delete(self, credential):
        fake = FakeFTP({"/skin/a.txt": b"A", "/skin/b.txt": b"B"})

        result = make_transport(fake).delete_files(credential, "/skin", ["a.txt"])

        assert result.paths == ["a.txt"]
        assert "/skin/a.txt" not in fake.files
        assert "/skin/b.txt" in fake.files

    def test_permission_denied_skipped(self, credential):
        fake = FakeFTP(
            {"/a.txt": b"A", "/locked.txt": b"L"}, denied={"/locked.txt"}
        )

        result = make_transport(fake).delete_files(
            credential, "/", ["locked.txt", "a.txt"]
        )

        assert result.paths == ["a.txt"]
        assert "/locked.txt" in fake.files

    def test_other_errors_raise(self, credential):
        fake = FakeFTP()
        fake.delete = Mock(side_effect=ftplib.error_perm("553 Not allowed"))

        with pytest.raises(SkinSyncTransportError):
            make_transport(fake).delete_files(credential, "/", ["a.txt"])


class TestRetry:
    """Tests for the retry loop."""

    def test_always_transient_makes_three_attempts(self, credential, sleep):
        clients = []

        def factory(timeout):
            client = Mock(spec=ftplib.FTP)
            client.connect.side_effect = ConnectionResetError("reset by peer")
            clients.append(client)
            return client

        transport = FtpTransport(ftp_factory=factory, sleep=sleep)

        with pytest.raises(SkinSyncNetworkError, match="3 attempt"):
            transport.delete_files(credential, "/", ["a.txt"])

        assert len(clients) == 3
        assert sleep.call_args_list == [call(1.5), call(3.0)]

    def test_recovers_after_transient_error(self, credential, sleep):
        fake = FakeFTP({"/a.txt": b"A"})
        failing = Mock(spec=ftplib.FTP)
        failing.connect.side_effect = socket.timeout("timed out")
        clients = [failing, fake]

        transport = FtpTransport(
            ftp_factory=lambda timeout: clients.pop(0), sleep=sleep
        )
        result = transport.delete_files(credential, "/", ["a.txt"])

        assert result.paths == ["a.txt"]
        sleep.assert_called_once_with(1.5)

    def test_login_rejected_is_not_retried(self, credential, sleep):
        factory = Mock()
        client = factory.return_value
        client.login.side_effect = ftplib.error_perm("530 Login incorrect")

        transport = FtpTransport(ftp_factory=factory, sleep=sleep)

        with pytest.raises(SkinSyncAuthenticationError):
            transport.delete_files(credential, "/", ["a.txt"])

        assert factory.call_count == 1
        sleep.assert_not_called()

    def test_timeout_passed_to_factory(self, credential):
        factory = Mock()
        factory.return_value = FakeFTP({"/a.txt": b"A"})

        FtpTransport(timeout=42, ftp_factory=factory).delete_files(
            credential, "/", ["a.txt"]
        )

        factory.assert_called_once_with(timeout=42)
