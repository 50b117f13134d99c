"""Local file discovery for push, pull and status."""

from __future__ import annotations

import logging
import os
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Optional

from ..utils import XS_EXTENSION, compute_file_sha256, dedupe
from .detector import types_for_input
from .paths import TYPE_DIRECTORIES, type_directory
from .store import TrackedObject

if TYPE_CHECKING:
    from ..project import ProjectContext

logger = logging.getLogger(__name__)


def _is_within(path: str, base: str) -> bool:
    base_parts = PurePosixPath(base).parts
    return PurePosixPath(path).parts[: len(base_parts)] == base_parts


class XsScanner:
    """Finds ``.xs`` files below the configured type directories.

    All paths handed in and returned are project-relative POSIX strings.

    Examples:
        >>> scanner = XsScanner(context)
        >>> scanner.changed_files(objects)
        ['functions/calc_total.xs']
    """

    def __init__(self, context: ProjectContext):
        """Initialize the scanner.

        Args:
            context: Project context (root and type directories)
        """
        self.context = context
        self.root = context.root

    def type_directories(self) -> list[str]:
        """Configured directories of every known type, outermost first."""
        directories = dedupe(
            [
                directory
                for directory in (
                    type_directory(object_type, self.context.paths)
                    for object_type in TYPE_DIRECTORIES
                )
                if directory
            ]
        )
        # Nested directories are covered by their parents
        result: list[str] = []
        for directory in sorted(directories, key=lambda d: len(PurePosixPath(d).parts)):
            if not any(_is_within(directory, parent) for parent in result):
                result.append(directory)
        return result

    @staticmethod
    def _normalize(input_path: str) -> str:
        """Strip ``./`` and trailing slashes from a project-relative path."""
        normalized = PurePosixPath(input_path.strip()).as_posix()
        return "" if normalized == "." else normalized.rstrip("/")

    def walk(self, directory: str) -> list[str]:
        """List ``.xs`` files below a project-relative directory.

        Args:
            directory: Directory to walk

        Returns:
            Sorted relative file paths (empty when the directory is missing)
        """
        base = self.root / directory if directory else self.root
        if not base.is_dir():
            return []

        files: list[str] = []
        for dirpath, dirnames, filenames in os.walk(base):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            for filename in sorted(filenames):
                if filename.endswith(XS_EXTENSION):
                    file_path = Path(dirpath) / filename
                    files.append(file_path.relative_to(self.root).as_posix())
        return files

    def scan(self) -> list[str]:
        """List every ``.xs`` file under the configured type directories."""
        files: list[str] = []
        for directory in self.type_directories():
            files.extend(self.walk(directory))
        return dedupe(files)

    def is_changed(self, obj: TrackedObject) -> bool:
        """Check whether a tracked file exists and differs from its hash.

        A file that cannot be read counts as changed so that the failure
        surfaces when it is pushed.
        """
        file_path = self.root / obj.path
        if not file_path.is_file():
            return False
        try:
            return compute_file_sha256(file_path) != obj.sha256
        except (OSError, UnicodeDecodeError) as e:
            logger.debug(f"Cannot hash {obj.path}: {e}")
            return True

    def changed_files(
        self, objects: list[TrackedObject], prefix: Optional[str] = None
    ) -> list[str]:
        """List tracked files whose content changed since the last sync.

        Args:
            objects: Store entries
            prefix: Only consider paths below this directory

        Returns:
            Changed relative paths in store order
        """
        dir_prefix = f"{prefix}/" if prefix else ""
        return [
            obj.path
            for obj in objects
            if obj.path.startswith(dir_prefix) and self.is_changed(obj)
        ]

    def untracked_files(
        self, objects: list[TrackedObject], directory: Optional[str] = None
    ) -> list[str]:
        """List ``.xs`` files with no store entry.

        Args:
            objects: Store entries
            directory: Walk only this directory (defaults to all type
                directories)

        Returns:
            Untracked relative paths
        """
        known = {obj.path for obj in objects}
        candidates = self.walk(directory) if directory is not None else self.scan()
        return [path for path in candidates if path not in known]

    def orphans(self, objects: list[TrackedObject]) -> list[TrackedObject]:
        """Return tracked entries whose file no longer exists."""
        return [obj for obj in objects if not (self.root / obj.path).exists()]

    def is_api_group_file(self, path: str) -> bool:
        """Check for ``{apis}/{group}.xs`` or ``{apis}/{group}/api_group.xs``."""
        apis = self.context.paths.get("apis", "apis")
        file_path = PurePosixPath(path)
        return file_path.name == "api_group.xs" or file_path.parent.as_posix() == apis

    def groups_first(self, paths: list[str]) -> list[str]:
        """Order API group files ahead of the endpoints that need them."""
        return sorted(paths, key=lambda path: not self.is_api_group_file(path))

    def ensure_api_group_file(self, directory: str) -> Optional[str]:
        """Create ``api_group.xs`` for a new group directory under ``apis``.

        Nothing happens when the directory is not a direct child of the
        apis directory, or when a group file already exists for it.

        Args:
            directory: Relative directory

        Returns:
            Relative path of the created file, or None
        """
        apis = self.context.paths.get("apis", "apis")
        group_dir = PurePosixPath(directory)
        if group_dir.parent.as_posix() != apis:
            return None

        full_dir = self.root / directory
        group_file = full_dir / "api_group.xs"
        flat_group_file = self.root / apis / f"{group_dir.name}{XS_EXTENSION}"
        if group_file.exists() or flat_group_file.exists():
            return None

        full_dir.mkdir(parents=True, exist_ok=True)
        group_name = " ".join(word.capitalize() for word in group_dir.name.split("_"))
        group_file.write_text(f'api_group "{group_name}" {{\n}}\n', encoding="utf-8")
        logger.debug(f"Created {group_file}")
        return f"{directory}/api_group.xs"

    def expand_push(
        self, inputs: list[str], objects: list[TrackedObject]
    ) -> tuple[list[str], list[str]]:
        """Expand push arguments into candidate files.

        A file is taken as-is. A directory yields its changed tracked files
        and its untracked files; when that finds nothing, the directory is
        mapped to object types and every changed or untracked file of those
        types is taken.

        Args:
            inputs: User-supplied files or directories
            objects: Store entries

        Returns:
            Tuple of (candidate paths, created API group files)
        """
        result: list[str] = []
        created: list[str] = []

        for raw in inputs:
            path = self._normalize(raw)
            full_path = self.root / path

            if full_path.is_file():
                result.append(path)
                continue

            if not (full_path.is_dir() or raw.endswith("/")):
                logger.debug(f"Nothing to push for {raw}")
                continue

            group_file = self.ensure_api_group_file(path) if path else None
            if group_file:
                created.append(group_file)

            found = self.changed_files(objects, prefix=path or None)
            found += self.untracked_files(objects, directory=path)
            if found:
                result.extend(found)
                continue

            types = types_for_input(path or ".", self.context.paths)
            if not types:
                continue
            result.extend(
                obj.path
                for obj in objects
                if obj.type in types and self.is_changed(obj)
            )
            for object_type in types:
                directory = type_directory(object_type, self.context.paths)
                if directory:
                    result.extend(self.untracked_files(objects, directory=directory))

        return self.groups_first(dedupe(created + result)), created

    def expand_pull(self, inputs: list[str], objects: list[TrackedObject]) -> list[str]:
        """Expand pull arguments into target paths.

        A ``.xs`` path is a single file (which may be untracked). Anything
        else is mapped to object types first and otherwise treated as a
        directory prefix.

        Args:
            inputs: User-supplied files or directories
            objects: Store entries

        Returns:
            Target paths
        """
        result: list[str] = []

        for raw in inputs:
            path = self._normalize(raw)

            if path.endswith(XS_EXTENSION):
                result.append(path)
                continue

            types = types_for_input(path or ".", self.context.paths)
            if types:
                result.extend(obj.path for obj in objects if obj.type in types)
                continue

            prefix = f"{path}/" if path else ""
            result.extend(obj.path for obj in objects if obj.path.startswith(prefix))

        return dedupe(result)

    def clean_local(self, keep: set[str]) -> list[str]:
        """Delete untracked ``.xs`` files and prune emptied directories.

        Args:
            keep: Relative paths to keep

        Returns:
            Deleted relative paths
        """
        deleted: list[str] = []
        for path in self.scan():
            if path in keep:
                continue
            (self.root / path).unlink()
            deleted.append(path)
            logger.debug(f"Deleted local file {path}")

        for directory in self.type_directories():
            base = self.root / directory
            if not base.is_dir():
                continue
            for dirpath, _, _ in sorted(os.walk(base), key=lambda w: -len(w[0])):
                current = Path(dirpath)
                if current != base and not any(current.iterdir()):
                    current.rmdir()
        return deleted
