"""Search indexes used for identifier resolution.

Two interchangeable implementations exist. :class:`PersistedIndex` reads
the precomputed ``.xano/search.json``, where every name variant has been
computed once. :class:`LazyIndex` derives the same lookups from
``objects.json`` on the fly and is used when no search file exists.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any, Optional

from ..sync.paths import sanitize, sanitize_path, snake_case
from ..sync.store import ObjectStore, TrackedObject
from ..utils import STATE_DIR_NAME, XS_EXTENSION

logger = logging.getLogger(__name__)

SEARCH_FILE = "search.json"


def strip_extension(path: str) -> str:
    return path[: -len(XS_EXTENSION)] if path.endswith(XS_EXTENSION) else path


def basename(path: str) -> str:
    """File name of ``path`` without the ``.xs`` extension."""
    return strip_extension(PurePosixPath(path).name)


@dataclass
class SearchEntry:
    """One indexed object with all of its precomputed name variants."""

    path: str
    type: Optional[str]
    basename: str
    sanitized_basename: str
    snake_basename: str
    path_no_ext: str
    sanitized_path_no_ext: str
    snake_path_no_ext: str

    @classmethod
    def from_path(cls, path: str, object_type: Optional[str]) -> "SearchEntry":
        base = basename(path)
        path_no_ext = strip_extension(path)
        return cls(
            path=path,
            type=object_type,
            basename=base,
            sanitized_basename=sanitize(base),
            snake_basename=snake_case(base),
            path_no_ext=path_no_ext,
            sanitized_path_no_ext=sanitize_path(path_no_ext),
            snake_path_no_ext=sanitize_path(path_no_ext, snake_case),
        )

    def to_dict(self) -> dict:
        return {
            "basename": self.basename,
            "path": self.path,
            "pathNoExt": self.path_no_ext,
            "sanitizedBasename": self.sanitized_basename,
            "sanitizedPathNoExt": self.sanitized_path_no_ext,
            "snakeBasename": self.snake_basename,
            "snakePathNoExt": self.snake_path_no_ext,
            "type": self.type,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SearchEntry":
        entry = cls.from_path(data["path"], data.get("type"))
        # Stored variants win so an index written by another release stays usable
        entry.basename = data.get("basename", entry.basename)
        entry.sanitized_basename = data.get(
            "sanitizedBasename", entry.sanitized_basename
        )
        entry.snake_basename = data.get("snakeBasename", entry.snake_basename)
        entry.path_no_ext = data.get("pathNoExt", entry.path_no_ext)
        entry.sanitized_path_no_ext = data.get(
            "sanitizedPathNoExt", entry.sanitized_path_no_ext
        )
        entry.snake_path_no_ext = data.get("snakePathNoExt", entry.snake_path_no_ext)
        return entry


class SearchIndex(ABC):
    """Lookup interface the resolver works against."""

    @abstractmethod
    def entries(self) -> list[SearchEntry]:
        """All indexed objects in store order."""

    @abstractmethod
    def by_path(self, path: str) -> Optional[SearchEntry]:
        """Entry with exactly this path."""

    @abstractmethod
    def by_basename(self, name: str) -> list[SearchEntry]:
        """Entries whose file name (without extension) is ``name``."""

    @abstractmethod
    def by_sanitized(self, name: str) -> list[SearchEntry]:
        """Entries whose sanitized file name is ``name``."""

    @abstractmethod
    def table_path(self, name: str) -> Optional[str]:
        """Path of the table file named ``name`` (plain or sanitized)."""

    def functions(self) -> list[SearchEntry]:
        return [entry for entry in self.entries() if entry.type == "function"]


class LazyIndex(SearchIndex):
    """Index computed from store entries in memory."""

    def __init__(self, objects: list[TrackedObject]):
        self._entries: list[SearchEntry] = []
        self._by_path: dict[str, SearchEntry] = {}
        self._by_basename: dict[str, list[SearchEntry]] = {}
        self._by_sanitized: dict[str, list[SearchEntry]] = {}

        for obj in objects:
            entry = SearchEntry.from_path(obj.path, obj.type)
            self._entries.append(entry)
            self._by_path.setdefault(entry.path, entry)
            self._by_basename.setdefault(entry.basename, []).append(entry)
            self._by_sanitized.setdefault(entry.sanitized_basename, []).append(entry)

    @classmethod
    def from_store(cls, root: Path) -> "LazyIndex":
        return cls(ObjectStore(root).load())

    def entries(self) -> list[SearchEntry]:
        return list(self._entries)

    def by_path(self, path: str) -> Optional[SearchEntry]:
        return self._by_path.get(path)

    def by_basename(self, name: str) -> list[SearchEntry]:
        return list(self._by_basename.get(name, []))

    def by_sanitized(self, name: str) -> list[SearchEntry]:
        return list(self._by_sanitized.get(name, []))

    def table_path(self, name: str) -> Optional[str]:
        sanitized = sanitize(name)
        for entry in self._entries:
            if entry.type != "table":
                continue
            if entry.basename == name or entry.sanitized_basename == sanitized:
                return entry.path
        return None


class PersistedIndex(SearchIndex):
    """Index backed by the data of ``.xano/search.json``."""

    def __init__(self, data: dict[str, Any]):
        self.data = data
        self._entries = [
            SearchEntry.from_dict(item) for item in data.get("objects", [])
        ]
        self._by_path = {entry.path: entry for entry in self._entries}

    @classmethod
    def load(cls, root: Path) -> Optional["PersistedIndex"]:
        data = load_search_data(root)
        return cls(data) if data is not None else None

    def _resolve(self, refs: list[dict]) -> list[SearchEntry]:
        result = []
        for ref in refs:
            entry = self._by_path.get(ref.get("path", ""))
            if entry is not None:
                result.append(entry)
        return result

    def entries(self) -> list[SearchEntry]:
        return list(self._entries)

    def by_path(self, path: str) -> Optional[SearchEntry]:
        if path in self.data.get("byPath", {}):
            return self._by_path.get(path)
        return None

    def by_basename(self, name: str) -> list[SearchEntry]:
        return self._resolve(self.data.get("byBasename", {}).get(name, []))

    def by_sanitized(self, name: str) -> list[SearchEntry]:
        return self._resolve(self.data.get("bySanitized", {}).get(name, []))

    def table_path(self, name: str) -> Optional[str]:
        tables = self.data.get("tables", {})
        return tables.get(name) or tables.get(sanitize(name))


# =============================================================================
# search.json maintenance
# =============================================================================


def search_index_path(root: Path) -> Path:
    return root / STATE_DIR_NAME / SEARCH_FILE


def _empty_data() -> dict[str, Any]:
    return {
        "byBasename": {},
        "byPath": {},
        "bySanitized": {},
        "functions": [],
        "objects": [],
        "tables": {},
    }


def _ref(entry: SearchEntry) -> dict:
    return {"path": entry.path, "type": entry.type}


def add_search_entry(
    data: dict[str, Any], path: str, object_type: Optional[str]
) -> dict[str, Any]:
    """Add one object to search data.

    Args:
        data: Search data (modified in place)
        path: Relative file path
        object_type: Object type, if known

    Returns:
        The same data, for chaining
    """
    entry = SearchEntry.from_path(path, object_type)
    item = entry.to_dict()
    ref = _ref(entry)

    data["objects"].append(item)
    data["byPath"][path] = ref
    data["byBasename"].setdefault(entry.basename, []).append(ref)
    data["bySanitized"].setdefault(entry.sanitized_basename, []).append(ref)
    if entry.snake_basename != entry.sanitized_basename:
        data["bySanitized"].setdefault(entry.snake_basename, []).append(ref)

    if object_type == "table":
        data["tables"].setdefault(entry.basename, path)
        data["tables"].setdefault(entry.sanitized_basename, path)
    elif object_type == "function":
        data["functions"].append(item)
    return data


def remove_search_entry(data: dict[str, Any], path: str) -> dict[str, Any]:
    """Remove every trace of ``path`` from search data.

    Args:
        data: Search data (modified in place)
        path: Relative file path

    Returns:
        The same data, for chaining
    """
    data["objects"] = [item for item in data["objects"] if item["path"] != path]
    data["functions"] = [item for item in data["functions"] if item["path"] != path]
    data["byPath"].pop(path, None)

    for key in ("byBasename", "bySanitized"):
        mapping = data[key]
        for name in list(mapping):
            refs = [ref for ref in mapping[name] if ref["path"] != path]
            if refs:
                mapping[name] = refs
            else:
                del mapping[name]

    data["tables"] = {
        name: table_path
        for name, table_path in data["tables"].items()
        if table_path != path
    }
    return data


def build_search_data(objects: list[TrackedObject]) -> dict[str, Any]:
    """Precompute all lookups for a list of store entries."""
    data = _empty_data()
    for obj in objects:
        add_search_entry(data, obj.path, obj.type)
    return data


def load_search_data(root: Path) -> Optional[dict[str, Any]]:
    """Read ``search.json``.

    Returns:
        Search data, or None when the file is missing or unreadable
    """
    path = search_index_path(root)
    if not path.exists():
        return None
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Ignoring unreadable search index {path}: {e}")
        return None
    if not isinstance(data, dict):
        return None
    base = _empty_data()
    base.update(data)
    return base


def write_search_data(root: Path, data: dict[str, Any]) -> Path:
    path = search_index_path(root)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False)
        f.write("\n")
    return path


def save_search_index(root: Path, objects: list[TrackedObject]) -> Path:
    """Rebuild ``search.json`` from store entries.

    Returns:
        Path of the written file
    """
    path = write_search_data(root, build_search_data(objects))
    logger.debug(f"Indexed {len(objects)} objects into {path}")
    return path


def open_index(root: Path) -> SearchIndex:
    """Return the persisted index when available, else a lazy one."""
    persisted = PersistedIndex.load(root)
    if persisted is not None:
        return persisted
    logger.debug("No search index, building one from objects.json")
    return LazyIndex.from_store(root)
