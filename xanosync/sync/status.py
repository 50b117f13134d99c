"""Three-way status: local files vs the object store vs the workspace."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from ..utils import compute_file_sha256
from .fetch import FetchedObject, FetchResult
from .scanner import XsScanner
from .store import TrackedObject

if TYPE_CHECKING:
    from ..project import ProjectContext


class FileStatus(str, Enum):
    """Classification of one path."""

    UNCHANGED = "unchanged"
    """Local, stored and remote content agree"""

    MODIFIED = "modified"
    """Content differs on at least one side"""

    DELETED = "deleted"
    """Tracked, but gone on one side"""

    NEW = "new"
    """Local file that was never synced"""

    REMOTE_ONLY = "remote_only"
    """Remote object that was never pulled"""


class StatusDetail(str, Enum):
    """Which side changed."""

    LOCAL = "local"
    REMOTE = "remote"
    BOTH = "both"


_INDICATORS: dict[tuple[FileStatus, Optional[StatusDetail]], str] = {
    (FileStatus.MODIFIED, StatusDetail.LOCAL): "M ",
    (FileStatus.MODIFIED, StatusDetail.REMOTE): "M↓",
    (FileStatus.MODIFIED, StatusDetail.BOTH): "M!",
    (FileStatus.DELETED, StatusDetail.LOCAL): "D ",
    (FileStatus.DELETED, StatusDetail.REMOTE): "D↑",
    (FileStatus.NEW, None): "A ",
    (FileStatus.REMOTE_ONLY, None): "R ",
}


@dataclass
class StatusEntry:
    """Status of one path."""

    path: str
    status: FileStatus
    detail: Optional[StatusDetail] = None
    id: Optional[int] = None
    type: Optional[str] = None

    @property
    def indicator(self) -> str:
        """Two-character marker used in listings."""
        return _INDICATORS.get((self.status, self.detail), "  ")

    def to_dict(self) -> dict:
        data: dict = {"path": self.path, "status": self.status.value}
        if self.detail is not None:
            data["detail"] = self.detail.value
        if self.id is not None:
            data["id"] = self.id
        if self.type is not None:
            data["type"] = self.type
        return data


def classify(
    local_hash: Optional[str],
    synced: Optional[TrackedObject],
    remote: Optional[FetchedObject],
) -> Optional[tuple[FileStatus, Optional[StatusDetail]]]:
    """Classify one path from its three states.

    Args:
        local_hash: Hash of the local file, or None when it is missing
        synced: Store entry, if any
        remote: Remote object, if any

    Returns:
        (status, detail), or None for paths that should not be reported
    """
    local = local_hash is not None

    if local and synced and remote:
        local_matches = local_hash == synced.sha256
        remote_matches = synced.sha256 == remote.sha256
        if local_matches and remote_matches:
            return FileStatus.UNCHANGED, None
        if remote_matches:
            return FileStatus.MODIFIED, StatusDetail.LOCAL
        if local_matches:
            return FileStatus.MODIFIED, StatusDetail.REMOTE
        return FileStatus.MODIFIED, StatusDetail.BOTH
    if local and synced:
        return FileStatus.DELETED, StatusDetail.REMOTE
    if local and remote:
        return FileStatus.MODIFIED, StatusDetail.LOCAL
    if local:
        return FileStatus.NEW, None
    if synced and remote:
        return FileStatus.DELETED, StatusDetail.LOCAL
    if remote:
        return FileStatus.REMOTE_ONLY, None
    # Tracked but gone on both sides, or nowhere at all
    return None


def _local_hash(file_path: Path) -> Optional[str]:
    """Hash a local file; an unreadable file gets a hash matching nothing."""
    if not file_path.is_file():
        return None
    try:
        return compute_file_sha256(file_path)
    except (OSError, UnicodeDecodeError):
        return ""


def _selected(path: str, filters: Optional[list[str]]) -> bool:
    if not filters:
        return True
    for prefix in filters:
        prefix = prefix.rstrip("/")
        if prefix in ("", ".") or path == prefix or path.startswith(prefix + "/"):
            return True
    return False


def compare_three_way(
    context: ProjectContext,
    objects: list[TrackedObject],
    fetched: FetchResult,
    paths: Optional[list[str]] = None,
) -> list[StatusEntry]:
    """Compare every known path across local files, store and remote.

    Paths come from the store, from the generated paths of the fetched
    objects and from the ``.xs`` files under the type directories.

    Args:
        context: Project context
        objects: Store entries (the last synced state)
        fetched: Current remote state
        paths: Optional project-relative files or directories to limit to

    Returns:
        Entries sorted by path
    """
    synced_by_path = {obj.path: obj for obj in objects}
    remote_by_path = fetched.by_path(context)
    local_files = XsScanner(context).scan()

    candidates = set(synced_by_path) | set(remote_by_path) | set(local_files)
    entries: list[StatusEntry] = []

    for path in sorted(candidates):
        if not _selected(path, paths):
            continue

        file_path = context.absolute(path)
        local_hash = _local_hash(file_path)
        synced = synced_by_path.get(path)
        remote = remote_by_path.get(path)

        outcome = classify(local_hash, synced, remote)
        if outcome is None:
            continue
        status, detail = outcome
        entries.append(
            StatusEntry(
                path=path,
                status=status,
                detail=detail,
                id=remote.id if remote else (synced.id if synced else None),
                type=remote.type if remote else (synced.type if synced else None),
            )
        )

    return entries
