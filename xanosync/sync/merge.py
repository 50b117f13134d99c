"""Three-way merge of local edits with remote changes."""

import logging
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path

from ..exceptions import XanoSyncError

logger = logging.getLogger(__name__)

MERGE_TIMEOUT = 30


@dataclass
class MergeResult:
    """Merged content and the number of conflict hunks left in it."""

    content: str
    conflicts: int = 0

    @property
    def clean(self) -> bool:
        return self.conflicts == 0


def merge_three_way(local: str, base: str, remote: str) -> MergeResult:
    """Merge remote changes into local content with ``git merge-file``.

    Conflicting hunks are kept in the result between ``<<<<<<< local`` and
    ``>>>>>>> remote`` markers.

    Args:
        local: Current content of the local file
        base: Content both sides started from (the last synced snapshot)
        remote: Content currently on the server

    Returns:
        MergeResult

    Raises:
        XanoSyncError: If git is not available or the merge cannot run
    """
    with tempfile.TemporaryDirectory(prefix="xanosync-merge-") as tmpdir:
        files = []
        for label, content in (("local", local), ("base", base), ("remote", remote)):
            file_path = Path(tmpdir) / f"{label}.xs"
            file_path.write_text(content, encoding="utf-8")
            files.append(str(file_path))

        try:
            completed = subprocess.run(
                [
                    "git",
                    "merge-file",
                    "-p",
                    "-L",
                    "local",
                    "-L",
                    "base",
                    "-L",
                    "remote",
                    *files,
                ],
                capture_output=True,
                encoding="utf-8",
                timeout=MERGE_TIMEOUT,
            )
        except (subprocess.SubprocessError, OSError) as e:
            raise XanoSyncError(f"git merge-file failed: {e}") from e

    # Exit status is the number of conflicts; errors are reported as 255
    if completed.returncode < 0 or completed.returncode > 127:
        message = completed.stderr.strip() or f"exit status {completed.returncode}"
        raise XanoSyncError(f"git merge-file failed: {message}")

    logger.debug(f"Merged with {completed.returncode} conflict(s)")
    return MergeResult(content=completed.stdout, conflicts=completed.returncode)
