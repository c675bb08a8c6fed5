"""Tests for baseline capture and restore."""

import os

import pytest

from skinsync.sync import (
    BaselineStore,
    InMemoryMetadataStore,
    SyncRuleState,
    SyncRuleStateStore,
)


@pytest.fixture
def metadata():
    return InMemoryMetadataStore()


@pytest.fixture
def local_root(tmp_path):
    root = tmp_path / "project" / "local"
    root.mkdir(parents=True)
    (root / "a.txt").write_text("A")
    (root / "b").mkdir()
    (root / "b" / "c.txt").write_text("C")
    return root


@pytest.fixture
def baseline_store(metadata, local_root, tmp_path):
    mirror = tmp_path / "project" / ".skinsync" / "raw"
    return BaselineStore(metadata, "shop", local_root, mirror)


class TestCapture:
    """Tests for BaselineStore.capture."""

    def test_capture_records_files(self, baseline_store):
        baseline = baseline_store.capture("/skin")

        assert baseline.files == ["a.txt", "b/c.txt"]
        assert baseline.remote_path == "/skin"
        assert baseline_store.read().files == ["a.txt", "b/c.txt"]

    def test_capture_mirrors_bytes(self, baseline_store):
        baseline_store.capture("/")

        assert (baseline_store.mirror_root / "a.txt").read_text() == "A"
        assert (baseline_store.mirror_root / "b" / "c.txt").read_text() == "C"

    def test_capture_preserves_mtime(self, baseline_store, local_root):
        os.utime(local_root / "a.txt", (1_600_000_000, 1_600_000_000))
        baseline_store.capture("/")

        mirrored = baseline_store.mirror_root / "a.txt"
        assert int(mirrored.stat().st_mtime) == 1_600_000_000

    def test_capture_skips_reserved_dirs(self, baseline_store, local_root):
        (local_root / ".skinsync").mkdir()
        (local_root / ".skinsync" / "x.json").write_text("{}")

        baseline = baseline_store.capture("/")

        assert baseline.files == ["a.txt", "b/c.txt"]
        assert not (baseline_store.mirror_root / ".skinsync").exists()

    def test_capture_replaces_previous_mirror(self, baseline_store, local_root):
        baseline_store.capture("/")
        (local_root / "a.txt").unlink()
        baseline_store.capture("/")

        assert not (baseline_store.mirror_root / "a.txt").exists()

    def test_capture_resets_sync_rules(self, baseline_store, metadata):
        rules = SyncRuleStateStore(metadata, "shop")
        rules.write(SyncRuleState({"new.txt"}))

        baseline_store.capture("/")

        assert rules.read().tracked_new_server_files == set()

    def test_read_without_capture(self, baseline_store):
        assert baseline_store.read() is None


class TestRestoreFilesToLocal:
    """Tests for BaselineStore.restore_files_to_local."""

    def test_restore_deleted_file(self, baseline_store, local_root):
        baseline_store.capture("/")
        (local_root / "b" / "c.txt").unlink()
        (local_root / "b").rmdir()

        report = baseline_store.restore_files_to_local(["b/c.txt"])

        assert report.restored == ["b/c.txt"]
        assert (local_root / "b" / "c.txt").read_text() == "C"

    def test_restore_overwrites_edits(self, baseline_store, local_root):
        baseline_store.capture("/")
        (local_root / "a.txt").write_text("edited")

        baseline_store.restore_files_to_local(["a.txt"])

        assert (local_root / "a.txt").read_text() == "A"

    def test_missing_from_mirror(self, baseline_store):
        baseline_store.capture("/")
        report = baseline_store.restore_files_to_local(["missing.txt"])
        assert report.missing == ["missing.txt"]
        assert report.restored == []

    def test_outside_root(self, baseline_store, local_root, tmp_path):
        baseline_store.capture("/")
        outside = tmp_path / "outside"
        outside.mkdir()
        (local_root / "escape").symlink_to(outside)

        report = baseline_store.restore_files_to_local(["escape/a.txt"])

        assert report.outside_root == ["escape/a.txt"]
        assert not (outside / "a.txt").exists()


class TestReplaceLocalWithBaseline:
    """Tests for BaselineStore.replace_local_with_baseline."""

    def test_round_trip(self, baseline_store, local_root):
        baseline = baseline_store.capture("/")
        (local_root / "a.txt").write_text("edited")
        (local_root / "b" / "c.txt").unlink()
        (local_root / "new").mkdir()
        (local_root / "new" / "d.txt").write_text("D")

        report = baseline_store.replace_local_with_baseline(baseline.files)

        assert report.removed == ["new/d.txt"]
        assert report.restored == ["a.txt", "b/c.txt"]
        assert (local_root / "a.txt").read_text() == "A"
        assert (local_root / "b" / "c.txt").read_text() == "C"
        assert not (local_root / "new").exists()
        assert baseline_store.collector.collect(local_root).keys() == set(
            baseline.files
        )

    def test_reserved_dirs_untouched(self, baseline_store, local_root):
        baseline = baseline_store.capture("/")
        (local_root / ".skinsync").mkdir()
        (local_root / ".skinsync" / "state.json").write_text("{}")

        report = baseline_store.replace_local_with_baseline(baseline.files)

        assert report.removed == []
        assert (local_root / ".skinsync" / "state.json").exists()

    def test_symlinks_removed(self, baseline_store, local_root, tmp_path):
        baseline = baseline_store.capture("/")
        outside = tmp_path / "outside"
        outside.mkdir()
        (outside / "keep.txt").write_text("K")
        (local_root / "linkdir").symlink_to(outside)

        report = baseline_store.replace_local_with_baseline(baseline.files)

        assert "linkdir" in report.removed
        assert not (local_root / "linkdir").exists()
        assert (outside / "keep.txt").exists()
