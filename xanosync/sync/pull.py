"""Pull engine: download remote XanoScript into local files."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from ..exceptions import XanoAPIError, XanoSyncError
from ..output import OutputFormatter
from ..utils import (
    compute_sha256,
    decode_base64,
    encode_base64,
    extract_xanoscript,
)
from .fetch import FetchedObject, FetchResult, fetch_all, sync_metadata
from .merge import merge_three_way
from .scanner import XsScanner
from .store import (
    STATUS_CHANGED,
    ObjectStore,
    TrackedObject,
    find_api_group_for_endpoint,
    find_by_path,
    upsert_object,
)

if TYPE_CHECKING:
    from ..api import XanoClient
    from ..project import ProjectContext

logger = logging.getLogger(__name__)

CONFLICT_MESSAGE = (
    "Local changes exist. Use --force to overwrite or --merge to attempt a merge."
)
MERGE_CONFLICT_MESSAGE = "Merged with conflicts - please resolve manually"


@dataclass
class PullResult:
    """Outcome of a pull run."""

    pulled: list[str] = field(default_factory=list)
    merged: list[str] = field(default_factory=list)
    """Files with local edits that were merged with the remote version"""

    skipped: list[dict] = field(default_factory=list)
    """``{"path", "message"}`` per skipped target (conflicts, untracked)"""

    errors: list[dict] = field(default_factory=list)
    """``{"path", "message"}`` per failed target"""

    merge_conflicts: list[str] = field(default_factory=list)
    deleted_local: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "deleted_local": self.deleted_local,
            "errors": self.errors,
            "merge_conflicts": self.merge_conflicts,
            "merged": self.merged,
            "pulled": self.pulled,
            "skipped": self.skipped,
        }


class _Skip(Exception):
    """A target left alone on purpose."""


class PullEngine:
    """Writes remote source into tracked files.

    Local edits are never overwritten without ``force``: a file whose hash
    differs from the hash recorded at its last sync is skipped, or merged
    with the remote version when ``merge`` is set.
    """

    def __init__(
        self,
        client: XanoClient,
        context: ProjectContext,
        output: Optional[OutputFormatter] = None,
    ):
        """Initialize the pull engine.

        Args:
            client: Metadata API client
            context: Project context
            output: Output formatter
        """
        self.client = client
        self.context = context
        self.output = output or OutputFormatter()
        self.store = ObjectStore(context.root)
        self.scanner = XsScanner(context)

    def pull(
        self,
        paths: Optional[list[str]] = None,
        force: bool = False,
        clean: bool = False,
        sync: bool = False,
        merge: bool = False,
        fetched: Optional[FetchResult] = None,
    ) -> PullResult:
        """Pull remote content into local files.

        Without ``paths`` every tracked object is pulled from one bulk
        fetch. Explicit paths are fetched one object at a time.

        Args:
            paths: Project-relative files or directories (all tracked
                objects when empty)
            force: Overwrite files with local changes
            clean: Delete untracked ``.xs`` files afterwards
            sync: Refresh metadata before pulling
            merge: Merge remote changes into files with local changes
            fetched: Result of a bulk fetch that already ran

        Returns:
            PullResult
        """
        result = PullResult()

        # Hashes recorded before any metadata refresh decide what counts
        # as a local edit.
        baseline = self.store.load()

        if fetched is None and (sync or not self.store.has_objects()):
            self.output.info("Syncing metadata from Xano...")
            _, fetched = sync_metadata(self.client, self.context, self.output)
        elif fetched is None and not paths:
            self.output.info("Fetching XanoScript from Xano...")
            fetched = fetch_all(self.client, output=self.output)

        objects = self.store.load()
        fetched_by_key = {obj.key: obj for obj in fetched.objects} if fetched else {}

        targets = (
            self.scanner.expand_pull(paths, objects)
            if paths
            else [obj.path for obj in objects]
        )

        if not targets:
            self.output.info("No files to pull.")
        else:
            self.output.info(f"Pulling {len(targets)} file(s) from Xano...")

        for path in targets:
            obj = find_by_path(objects, path)
            if obj is None:
                result.skipped.append({"path": path, "message": "Not tracked"})
                self.output.info(f"  - {path}: Not tracked")
                continue

            try:
                objects, merge_conflicts = self._pull_file(
                    obj,
                    objects,
                    baseline,
                    fetched_by_key.get(f"{obj.type}:{obj.id}"),
                    force,
                    merge,
                )
            except _Skip as e:
                result.skipped.append({"path": path, "message": str(e)})
                self.output.warning(f"  - {path}: {e}")
                objects = self._keep_baseline(objects, baseline, path)
                continue
            except XanoSyncError as e:
                result.errors.append({"path": path, "message": str(e)})
                self.output.error(f"{path}: {e}")
                continue

            if merge_conflicts is None:
                result.pulled.append(path)
                self.output.info(f"  ✓ {path}")
            elif merge_conflicts:
                result.merged.append(path)
                result.merge_conflicts.append(path)
                self.output.warning(f"  ! {path}: {MERGE_CONFLICT_MESSAGE}")
            else:
                result.merged.append(path)
                self.output.info(f"  ✓ {path} (merged)")

        self.store.save(objects)

        if clean:
            keep = {obj.path for obj in objects}
            result.deleted_local = self.scanner.clean_local(keep)
            if result.deleted_local:
                self.output.info(
                    f"Deleted {len(result.deleted_local)} local files not on Xano"
                )

        return result

    @staticmethod
    def _keep_baseline(
        objects: list[TrackedObject], baseline: list[TrackedObject], path: str
    ) -> list[TrackedObject]:
        """Put back the last-sync hash of a skipped file after a metadata refresh."""
        current = find_by_path(objects, path)
        previous = find_by_path(baseline, path)
        if current is None or previous is None:
            return objects
        return upsert_object(
            objects,
            path,
            id=current.id,
            type=current.type,
            sha256=previous.sha256,
            original=previous.original,
            status=previous.status,
        )

    def _remote_content(
        self,
        obj: TrackedObject,
        objects: list[TrackedObject],
        fetched: Optional[FetchedObject],
    ) -> str:
        if fetched is not None:
            return fetched.xanoscript

        apigroup_id = None
        if obj.type == "api_endpoint":
            group = find_api_group_for_endpoint(objects, obj.path)
            apigroup_id = group.id if group else None

        try:
            response = self.client.get_object(obj.type, obj.id, apigroup_id=apigroup_id)
        except XanoAPIError as e:
            raise XanoSyncError(e.message) from e

        content = extract_xanoscript(response.get("xanoscript"))
        if content is None:
            raise XanoSyncError("No XanoScript returned from API")
        return content

    def _pull_file(
        self,
        obj: TrackedObject,
        objects: list[TrackedObject],
        baseline: list[TrackedObject],
        fetched: Optional[FetchedObject],
        force: bool,
        merge: bool,
    ) -> tuple[list[TrackedObject], Optional[int]]:
        """Write one target and return the updated store entries.

        Returns:
            Tuple of (store entries, number of merge conflicts or None when
            the remote content was written as-is)

        Raises:
            _Skip: If local changes would be overwritten
            XanoSyncError: If the remote content cannot be obtained or the
                file cannot be read or written
        """
        content = self._remote_content(obj, objects, fetched)
        file_path = self.context.absolute(obj.path)
        remote_hash = compute_sha256(content)

        if file_path.exists() and not force:
            try:
                local_content = file_path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                raise XanoSyncError(f"Cannot read local file: {e}") from e

            local_hash = compute_sha256(local_content)
            previous = find_by_path(baseline, obj.path) or obj
            if local_hash != previous.sha256 and local_hash != remote_hash:
                if not merge or not previous.original:
                    raise _Skip(CONFLICT_MESSAGE)
                return self._merge_file(obj, objects, previous, local_content, content)

        self._write(obj.path, content)

        return (
            upsert_object(
                objects,
                obj.path,
                id=obj.id,
                type=obj.type,
                sha256=remote_hash,
                original=encode_base64(content),
            ),
            None,
        )

    def _merge_file(
        self,
        obj: TrackedObject,
        objects: list[TrackedObject],
        previous: TrackedObject,
        local_content: str,
        content: str,
    ) -> tuple[list[TrackedObject], int]:
        """Merge remote changes into a locally edited file.

        The store records the remote version as synced, so the merged file
        shows up as a local change to push.
        """
        try:
            base = decode_base64(previous.original)
        except ValueError as e:
            raise XanoSyncError(f"Cannot decode last synced snapshot: {e}") from e

        merged = merge_three_way(local_content, base, content)
        self._write(obj.path, merged.content)

        return (
            upsert_object(
                objects,
                obj.path,
                id=obj.id,
                type=obj.type,
                sha256=compute_sha256(content),
                original=encode_base64(content),
                status=STATUS_CHANGED,
            ),
            merged.conflicts,
        )

    def _write(self, path: str, content: str) -> None:
        file_path = self.context.absolute(path)
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise XanoSyncError(f"Cannot write local file: {e}") from e
        logger.debug(f"Wrote {path}")
