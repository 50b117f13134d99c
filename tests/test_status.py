"""Tests for three-way status."""

import tempfile
from pathlib import Path

import pytest

from xanosync.project import ProjectContext
from xanosync.sync.fetch import FetchedObject, FetchResult
from xanosync.sync.status import (
    FileStatus,
    StatusDetail,
    StatusEntry,
    classify,
    compare_three_way,
)
from xanosync.sync.store import TrackedObject
from xanosync.utils import compute_sha256


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def context(temp_dir):
    """Create a project context rooted in the temporary directory."""
    return ProjectContext(root=temp_dir, workspace_id=1)


def tracked(content, path="functions/calc.xs", object_id=5):
    return TrackedObject(
        id=object_id,
        type="function",
        path=path,
        sha256=compute_sha256(content),
        original="",
    )


def remote(content, name="calc", object_id=5):
    return FetchedObject(id=object_id, type="function", name=name, xanoscript=content)


class TestClassify:
    """Tests for the per-path decision table."""

    def test_all_agree(self):
        """Test identical content everywhere."""
        outcome = classify(compute_sha256("a"), tracked("a"), remote("a"))
        assert outcome == (FileStatus.UNCHANGED, None)

    @pytest.mark.parametrize(
        "local,stored,current,detail",
        [
            ("b", "a", "a", StatusDetail.LOCAL),
            ("a", "a", "b", StatusDetail.REMOTE),
            ("b", "a", "c", StatusDetail.BOTH),
        ],
    )
    def test_modified(self, local, stored, current, detail):
        """Test which side a modification is attributed to."""
        outcome = classify(compute_sha256(local), tracked(stored), remote(current))
        assert outcome == (FileStatus.MODIFIED, detail)

    def test_deleted_sides(self):
        """Test deletion on either side."""
        assert classify(compute_sha256("a"), tracked("a"), None) == (
            FileStatus.DELETED,
            StatusDetail.REMOTE,
        )
        assert classify(None, tracked("a"), remote("a")) == (
            FileStatus.DELETED,
            StatusDetail.LOCAL,
        )

    def test_new_and_remote_only(self):
        """Test paths present on one side only."""
        assert classify(compute_sha256("a"), None, None) == (FileStatus.NEW, None)
        assert classify(None, None, remote("a")) == (FileStatus.REMOTE_ONLY, None)

    def test_untracked_with_remote(self):
        """Test a local file matching an unsynced remote object."""
        assert classify(compute_sha256("a"), None, remote("a")) == (
            FileStatus.MODIFIED,
            StatusDetail.LOCAL,
        )

    def test_gone_everywhere(self):
        """Test that a store entry with no file and no remote is not reported."""
        assert classify(None, tracked("a"), None) is None


class TestStatusEntry:
    """Tests for StatusEntry."""

    def test_indicator(self):
        """Test the listing markers."""
        entry = StatusEntry("a.xs", FileStatus.MODIFIED, StatusDetail.BOTH)
        assert entry.indicator == "M!"
        assert StatusEntry("a.xs", FileStatus.NEW).indicator == "A "
        assert StatusEntry("a.xs", FileStatus.UNCHANGED).indicator == "  "

    def test_to_dict(self):
        """Test that empty fields are omitted."""
        entry = StatusEntry("a.xs", FileStatus.NEW)
        assert entry.to_dict() == {"path": "a.xs", "status": "new"}


class TestCompareThreeWay:
    """Tests for compare_three_way."""

    def write(self, root, path, content):
        file_path = root / path
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(content, encoding="utf-8")

    def test_mixed_workspace(self, context):
        """Test a project with one path in each state."""
        self.write(context.root, "functions/calc.xs", "calc v2")
        self.write(context.root, "functions/fresh.xs", "fresh")
        objects = [tracked("calc v1")]
        fetched = FetchResult(
            objects=[remote("calc v1"), remote("other", name="other", object_id=6)]
        )

        entries = compare_three_way(context, objects, fetched)

        by_path = {entry.path: entry for entry in entries}
        assert by_path["functions/calc.xs"].status == FileStatus.MODIFIED
        assert by_path["functions/calc.xs"].detail == StatusDetail.LOCAL
        assert by_path["functions/fresh.xs"].status == FileStatus.NEW
        assert by_path["functions/other.xs"].status == FileStatus.REMOTE_ONLY
        assert by_path["functions/other.xs"].id == 6
        assert [entry.path for entry in entries] == sorted(by_path)

    def test_path_filter(self, context):
        """Test limiting the comparison to a directory."""
        self.write(context.root, "functions/a.xs", "a")
        self.write(context.root, "tables/user.xs", "user")

        entries = compare_three_way(context, [], FetchResult(), paths=["tables/"])

        assert [entry.path for entry in entries] == ["tables/user.xs"]
