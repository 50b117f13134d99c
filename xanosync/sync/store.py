"""Object store and metadata caches.

The object store (``.xano/objects.json``) records, for every locally
materialized remote object, its identity, its path and the hash of its
source at the last successful push or pull. Drift is always recomputed
from live file hashes; the stored ``status`` is informational only.

Two smaller caches sit next to it: ``groups.json`` maps API group names to
canonical identifiers and ``endpoints.json`` maps verbs to endpoint
patterns, so live API calls can be routed without refetching metadata.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any, Optional

from ..utils import STATE_DIR_NAME, compute_file_sha256

logger = logging.getLogger(__name__)

OBJECTS_FILE = "objects.json"
GROUPS_FILE = "groups.json"
ENDPOINTS_FILE = "endpoints.json"

STATUS_UNCHANGED = "unchanged"
STATUS_CHANGED = "changed"
STATUS_NOT_FOUND = "notfound"


@dataclass
class TrackedObject:
    """A remote object mirrored as a local file."""

    id: int
    """Remote numeric identity"""

    type: str
    """Object type (function, api_endpoint, table, ...)"""

    path: str
    """Relative file path, unique within the store"""

    sha256: str
    """Content hash at the last successful sync"""

    original: str
    """Base64 snapshot of the content at the last successful sync"""

    status: str = STATUS_UNCHANGED
    """Last computed classification (informational only)"""

    staged: bool = False
    """Reserved; always False"""

    def to_dict(self) -> dict:
        """Convert to a dictionary for JSON serialization."""
        return {
            "id": self.id,
            "original": self.original,
            "path": self.path,
            "sha256": self.sha256,
            "staged": self.staged,
            "status": self.status,
            "type": self.type,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TrackedObject":
        """Create a TrackedObject from a dictionary."""
        return cls(
            id=int(data["id"]),
            type=data["type"],
            path=data["path"],
            sha256=data.get("sha256", ""),
            original=data.get("original", ""),
            status=data.get("status", STATUS_UNCHANGED),
            staged=bool(data.get("staged", False)),
        )


def _write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
        f.write("\n")


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        logger.debug(f"No cache file at {path}")
        return default
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Failed to load {path}: {e}")
        return default


class ObjectStore:
    """Reads and writes the metadata files under ``.xano/``."""

    def __init__(self, root: Path):
        """Initialize the store.

        Args:
            root: Project root directory
        """
        self.root = root
        self.state_dir = root / STATE_DIR_NAME

    @property
    def objects_file(self) -> Path:
        return self.state_dir / OBJECTS_FILE

    def has_objects(self) -> bool:
        """Check whether ``objects.json`` exists."""
        return self.objects_file.exists()

    def load(self) -> list[TrackedObject]:
        """Load tracked objects in stored order.

        Returns:
            Tracked objects, or an empty list when the file is missing or
            unreadable
        """
        data = _read_json(self.objects_file, [])
        if not isinstance(data, list):
            logger.warning(f"Ignoring malformed {self.objects_file}")
            return []

        objects: list[TrackedObject] = []
        for entry in data:
            try:
                objects.append(TrackedObject.from_dict(entry))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed object entry {entry!r}: {e}")
        logger.debug(f"Loaded {len(objects)} tracked objects")
        return objects

    def save(self, objects: list[TrackedObject]) -> None:
        """Persist tracked objects, preserving order."""
        _write_json(self.objects_file, [obj.to_dict() for obj in objects])
        logger.debug(f"Saved {len(objects)} tracked objects to {self.objects_file}")

    def load_groups(self) -> dict[str, dict]:
        """Load ``{group name: {canonical, id}}``."""
        data = _read_json(self.state_dir / GROUPS_FILE, {})
        return data if isinstance(data, dict) else {}

    def save_groups(self, groups: dict[str, dict]) -> None:
        _write_json(self.state_dir / GROUPS_FILE, groups)

    def load_endpoints(self) -> dict[str, list[dict]]:
        """Load ``{VERB: [{canonical, id, pattern}]}``."""
        data = _read_json(self.state_dir / ENDPOINTS_FILE, {})
        return data if isinstance(data, dict) else {}

    def save_endpoints(self, endpoints: dict[str, list[dict]]) -> None:
        _write_json(self.state_dir / ENDPOINTS_FILE, endpoints)


def upsert_object(
    objects: list[TrackedObject],
    path: str,
    id: int,
    type: str,
    sha256: str,
    original: str,
    status: str = STATUS_UNCHANGED,
) -> list[TrackedObject]:
    """Insert or replace the entry for ``path``.

    The caller supplies the complete new identity and hash; nothing is
    merged from the previous entry.

    Args:
        objects: Current entries
        path: Relative file path (the key)
        id: Remote id
        type: Object type
        sha256: Content hash of the synced content
        original: Base64 snapshot of the synced content
        status: Status to record

    Returns:
        New list with the entry replaced in place or appended
    """
    entry = TrackedObject(
        id=id, type=type, path=path, sha256=sha256, original=original, status=status
    )
    result = list(objects)
    for index, existing in enumerate(result):
        if existing.path == path:
            result[index] = entry
            return result
    result.append(entry)
    return result


def find_by_path(objects: list[TrackedObject], path: str) -> Optional[TrackedObject]:
    for obj in objects:
        if obj.path == path:
            return obj
    return None


def find_by_id(
    objects: list[TrackedObject], object_type: str, object_id: int
) -> Optional[TrackedObject]:
    for obj in objects:
        if obj.type == object_type and obj.id == object_id:
            return obj
    return None


def find_by_type(objects: list[TrackedObject], object_type: str) -> list[TrackedObject]:
    return [obj for obj in objects if obj.type == object_type]


def remove_by_path(objects: list[TrackedObject], path: str) -> list[TrackedObject]:
    return [obj for obj in objects if obj.path != path]


def update_status(objects: list[TrackedObject], root: Path) -> list[TrackedObject]:
    """Recompute ``status`` from the live files.

    Args:
        objects: Tracked entries
        root: Project root

    Returns:
        Entries with status set to notfound, changed or unchanged
    """
    for obj in objects:
        file_path = root / obj.path
        if not file_path.exists():
            obj.status = STATUS_NOT_FOUND
            continue
        try:
            changed = compute_file_sha256(file_path) != obj.sha256
        except (OSError, UnicodeDecodeError):
            changed = True
        obj.status = STATUS_CHANGED if changed else STATUS_UNCHANGED
    return objects


def find_api_group_for_endpoint(
    objects: list[TrackedObject], endpoint_path: str
) -> Optional[TrackedObject]:
    """Find the API group that owns an endpoint file.

    Endpoints live in ``{apis}/{group}/{file}.xs``. The group is tracked
    either as ``{apis}/{group}.xs`` (default naming) or as
    ``{apis}/{group}/api_group.xs`` (VS Code naming).

    Args:
        objects: Tracked entries
        endpoint_path: Relative path of the endpoint file

    Returns:
        The api_group entry, or None
    """
    parts = PurePosixPath(endpoint_path).parts
    if len(parts) < 3:
        return None

    group_dir = PurePosixPath(*parts[:-1])
    group_name = parts[-2]
    candidates = (
        (group_dir.parent / f"{group_name}.xs").as_posix(),
        (group_dir / "api_group.xs").as_posix(),
    )

    groups = find_by_type(objects, "api_group")
    for candidate in candidates:
        for group in groups:
            if group.path == candidate:
                return group

    suffix = f"/{group_name}.xs"
    for group in groups:
        if group.path.endswith(suffix):
            return group
    return None
