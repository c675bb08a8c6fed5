"""Unit tests for utility functions."""

import re
from pathlib import Path

from skinsync.utils import (
    is_inside,
    is_reserved_path,
    join_remote_path,
    normalize_paths,
    normalize_relative_path,
    normalize_remote_path,
    remote_parent_dir,
    utc_now_iso,
)


class TestUtcNowIso:
    """Tests for utc_now_iso function."""

    def test_format(self):
        """Test that timestamps are UTC with millisecond precision."""
        value = utc_now_iso()
        assert re.match(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$", value)


class TestNormalizeRelativePath:
    """Tests for normalize_relative_path function."""

    def test_plain_path(self):
        assert normalize_relative_path("css/main.css") == "css/main.css"

    def test_backslashes(self):
        """Test Windows separators are converted."""
        assert normalize_relative_path("css\\main.css") == "css/main.css"

    def test_leading_slash_and_dot_segments(self):
        assert normalize_relative_path("/./a//b.txt") == "a/b.txt"

    def test_parent_segment_rejected(self):
        assert normalize_relative_path("a/../b.txt") is None

    def test_empty_rejected(self):
        assert normalize_relative_path("") is None
        assert normalize_relative_path("/") is None
        assert normalize_relative_path(None) is None


class TestNormalizePaths:
    """Tests for normalize_paths function."""

    def test_sorted_and_deduplicated(self):
        result = normalize_paths(["b.txt", "a.txt", "/b.txt", "../x", ""])
        assert result == ["a.txt", "b.txt"]

    def test_none(self):
        assert normalize_paths(None) == []


class TestRemotePaths:
    """Tests for remote path helpers."""

    def test_normalize_remote_path(self):
        assert normalize_remote_path("") == "/"
        assert normalize_remote_path(None) == "/"
        assert normalize_remote_path(" skin ") == "/skin"
        assert normalize_remote_path("/skin") == "/skin"

    def test_join_remote_path(self):
        assert join_remote_path("/", "a.txt") == "/a.txt"
        assert join_remote_path("/skin", "css/main.css") == "/skin/css/main.css"
        assert join_remote_path("/skin/", "/a.txt") == "/skin/a.txt"

    def test_remote_parent_dir(self):
        assert remote_parent_dir("/skin/css/main.css") == "/skin/css"
        assert remote_parent_dir("/a.txt") == "/"
        assert remote_parent_dir("//skin//a.txt") == "/skin"


class TestReservedPaths:
    """Tests for is_reserved_path function."""

    def test_reserved_directory(self):
        assert is_reserved_path(".skinsync/baseline.json")
        assert is_reserved_path("a/.skinsync-tmp/file.txt")

    def test_regular_paths(self):
        assert not is_reserved_path("css/main.css")
        # Only directory segments are reserved
        assert not is_reserved_path(".skinsync")


class TestIsInside:
    """Tests for is_inside function."""

    def test_inside(self, tmp_path):
        assert is_inside(tmp_path / "a" / "b.txt", tmp_path)

    def test_root_itself_is_not_inside(self, tmp_path):
        assert not is_inside(tmp_path, tmp_path)

    def test_escape(self, tmp_path):
        assert not is_inside(tmp_path / ".." / "x.txt", tmp_path)

    def test_symlink_escape(self, tmp_path):
        root = tmp_path / "root"
        root.mkdir()
        outside = tmp_path / "outside"
        outside.mkdir()
        (root / "link").symlink_to(outside)
        assert not is_inside(root / "link" / "x.txt", root)

    def test_relative_root(self):
        assert is_inside(Path("a/b"), Path("a"))
