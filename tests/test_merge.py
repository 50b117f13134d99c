"""Tests for three-way merging."""

import shutil
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from xanosync.exceptions import XanoSyncError
from xanosync.sync.merge import MergeResult, merge_three_way

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="needs git")

BASE = "one\ntwo\nthree\nfour\nfive\n"


class TestMergeThreeWay:
    """Tests for merge_three_way."""

    @requires_git
    def test_disjoint_edits(self):
        """Test that edits to different lines combine cleanly."""
        local = BASE.replace("one", "ONE")
        remote = BASE.replace("five", "FIVE")

        result = merge_three_way(local, BASE, remote)

        assert result.clean
        assert result.content == "ONE\ntwo\nthree\nfour\nFIVE\n"

    @requires_git
    def test_overlapping_edits(self):
        """Test that conflicting edits keep both sides between markers."""
        result = merge_three_way("x = 2\n", "x = 1\n", "x = 3\n")

        assert result.conflicts == 1
        assert not result.clean
        assert "<<<<<<< local" in result.content
        assert "x = 2" in result.content
        assert "x = 3" in result.content
        assert ">>>>>>> remote" in result.content

    @patch("xanosync.sync.merge.subprocess.run")
    def test_command_line(self, mock_run):
        """Test that sides are labelled and the result read from stdout."""
        mock_run.return_value = subprocess.CompletedProcess(
            args=[], returncode=0, stdout="merged\n", stderr=""
        )

        result = merge_three_way("local\n", "base\n", "remote\n")

        assert result == MergeResult(content="merged\n", conflicts=0)
        command = mock_run.call_args.args[0]
        assert command[:3] == ["git", "merge-file", "-p"]
        assert command[3:9] == ["-L", "local", "-L", "base", "-L", "remote"]
        assert [Path(name).name for name in command[9:]] == [
            "local.xs",
            "base.xs",
            "remote.xs",
        ]

    @patch("xanosync.sync.merge.subprocess.run")
    def test_git_error(self, mock_run):
        """Test that a failing git run is a sync error."""
        mock_run.return_value = subprocess.CompletedProcess(
            args=[], returncode=255, stdout="", stderr="error: bad input\n"
        )

        with pytest.raises(XanoSyncError, match="bad input"):
            merge_three_way("a\n", "b\n", "c\n")

    @patch("xanosync.sync.merge.subprocess.run")
    def test_git_missing(self, mock_run):
        """Test that a missing git executable is a sync error."""
        mock_run.side_effect = FileNotFoundError("git")

        with pytest.raises(XanoSyncError, match="git merge-file failed"):
            merge_three_way("a\n", "b\n", "c\n")
