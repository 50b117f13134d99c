"""Push engine: upload local XanoScript files to the workspace."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Callable, Optional

from ..exceptions import XanoAPIError, XanoSyncError
from ..output import OutputFormatter
from ..utils import compute_sha256, encode_base64, extract_xanoscript
from .detector import (
    detect_type,
    extract_api_details,
    extract_name,
    validate_single_block,
)
from .fetch import sync_metadata
from .scanner import XsScanner
from .store import (
    ObjectStore,
    TrackedObject,
    find_api_group_for_endpoint,
    find_by_path,
    remove_by_path,
    upsert_object,
)

if TYPE_CHECKING:
    from ..api import XanoClient
    from ..project import ProjectContext

logger = logging.getLogger(__name__)

# Types the server sometimes rejects on update with "name is already
# being used"; these are deleted and created again.
RECREATE_TYPES = frozenset(
    {
        "addon",
        "agent",
        "agent_trigger",
        "function",
        "mcp_server",
        "mcp_server_trigger",
        "middleware",
        "task",
        "tool",
    }
)

# PostgreSQL error codes -> (explanation, recovery)
SQL_ERROR_EXPLANATIONS: dict[str, tuple[str, str]] = {
    "22P02": (
        "Invalid text representation - data type mismatch",
        "The column type change is incompatible with existing data (e.g., int "
        "→ uuid). Delete the table in Xano admin panel and re-push, or migrate "
        "data manually.",
    ),
    "42P01": ("Table does not exist", 'Run "xanosync pull --sync" to refresh metadata'),
    "42P07": ("Table already exists", 'Run "xanosync pull --sync" to refresh metadata'),
    "22001": (
        "String data is too long for the column",
        "Increase the column length or truncate the data",
    ),
    "22003": (
        "Numeric value out of range",
        "Change the column type to support larger numbers or adjust the data",
    ),
    "22007": (
        "Invalid datetime format",
        "Check date/time values match the expected format",
    ),
    "22008": (
        "Datetime field overflow - value doesn't fit in target type",
        "The column type change is incompatible with existing data (e.g., "
        "timestamp → date loses time info). Delete the table in Xano admin "
        "panel and re-push, or migrate data manually.",
    ),
    "22012": (
        "Division by zero",
        "Check computed columns or constraints for division operations",
    ),
    "23502": (
        "NOT NULL constraint violation",
        "Existing rows have NULL values in a column that is now NOT NULL. "
        "Provide default values or update existing data first.",
    ),
    "23503": (
        "Foreign key constraint violation",
        "Referenced data doesn't exist or would be orphaned",
    ),
    "23505": (
        "Unique constraint violation",
        "Duplicate values exist for a column that requires uniqueness",
    ),
    "23514": (
        "Check constraint violation",
        "Data doesn't meet the column's validation rules",
    ),
    "42701": (
        "Duplicate column name",
        "A column with this name already exists in the table",
    ),
    "42703": (
        "Column does not exist",
        "Referenced column name not found. Check spelling and case sensitivity.",
    ),
}

# Codes that mean existing table data no longer fits a changed schema
SCHEMA_MIGRATION_CODES = frozenset({"22P02", "22003", "22007", "22008"})

_SQL_ERROR_RE = re.compile(r"SQL Error:\s*([A-Z0-9]+)(?:,\s*([A-Z_]+))?", re.IGNORECASE)

INVALID_SCHEMA_HINT = (
    " - This usually means the file has invalid XanoScript syntax or structure. "
    "Check for: multiple blocks in one file, mismatched braces, or unsupported "
    "syntax."
)


def explain_sql_error(error: str, object_type: str) -> str:
    """Add an explanation and a recovery hint to a server SQL error.

    Args:
        error: Error message from the server
        object_type: Type of the object being pushed

    Returns:
        The explained message, or ``error`` unchanged when it carries no
        SQL error code
    """
    match = _SQL_ERROR_RE.search(error)
    if not match:
        return error

    code = match.group(1).upper()
    name = match.group(2) or ""
    info = SQL_ERROR_EXPLANATIONS.get(code)
    if info is None:
        suffix = f" - {name}" if name else ""
        return f"{error}\n    (SQL Error Code: {code}{suffix})"

    explanation, recovery = info
    message = f"SQL Error {code}: {explanation}"
    if object_type == "table" and code in SCHEMA_MIGRATION_CODES:
        message += (
            "\n\n    SCHEMA MIGRATION CONFLICT: Existing data is incompatible "
            "with new schema."
            f"\n    Recovery: {recovery}"
            "\n\n    Note: xanosync cannot automatically drop/recreate tables."
            "\n    To force the schema change, delete the table in Xano admin "
            'panel, then run "xanosync push".'
        )
    else:
        message += f"\n    Recovery: {recovery}"
    return message


def _describe_api_error(error: XanoAPIError, object_type: str) -> str:
    message = error.message
    if "Invalid schema" in message:
        return message + INVALID_SCHEMA_HINT
    if "SQL Error" in message:
        return explain_sql_error(message, object_type)
    return message


def _group_name(path: str) -> str:
    parts = PurePosixPath(path).parts
    return parts[-2] if len(parts) >= 3 else "unknown"


@dataclass
class PushResult:
    """Outcome of a push run."""

    pushed: list[str] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)
    """``{"path", "message"}`` per failed file"""

    deleted: list[str] = field(default_factory=list)
    orphans: list[TrackedObject] = field(default_factory=list)
    """Tracked entries whose file is missing"""

    created_groups: list[str] = field(default_factory=list)
    """api_group.xs files created for new group directories"""

    @property
    def schema_errors(self) -> int:
        return sum(
            1
            for error in self.errors
            if "SQL Error" in error["message"] or "SCHEMA MIGRATION" in error["message"]
        )

    def to_dict(self) -> dict:
        return {
            "deleted": self.deleted,
            "errors": self.errors,
            "orphans": [obj.path for obj in self.orphans],
            "pushed": self.pushed,
        }


class PushEngine:
    """Uploads changed and new files and reconciles the object store.

    Each file is handled independently: a failure is recorded and the
    store entry for that path is left untouched.
    """

    def __init__(
        self,
        client: XanoClient,
        context: ProjectContext,
        output: Optional[OutputFormatter] = None,
    ):
        """Initialize the push engine.

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
        # endpoint id -> apigroup id, filled by a sync or on demand
        self._api_group_cache: Optional[dict[int, int]] = None

    def push(
        self,
        paths: Optional[list[str]] = None,
        clean: bool = False,
        validate_blocks: bool = True,
        sync: bool = False,
        confirm_delete: Optional[Callable[[int], bool]] = None,
    ) -> PushResult:
        """Push files to the workspace.

        Args:
            paths: Project-relative files or directories (all changes when
                empty)
            clean: Delete remote objects whose local file is missing
            validate_blocks: Reject files with more than one top-level block
            sync: Refresh metadata before pushing
            confirm_delete: Asked with the orphan count when orphans exist
                and ``clean`` is not set; deletes them when it returns True

        Returns:
            PushResult
        """
        result = PushResult()

        if sync or not self.store.has_objects():
            self.output.info("Syncing metadata from Xano...")
            _, fetched = sync_metadata(self.client, self.context, self.output)
            self._api_group_cache = {
                obj.id: obj.apigroup_id
                for obj in fetched.objects
                if obj.type == "api_endpoint" and obj.apigroup_id
            }

        objects = self.store.load()

        if paths:
            candidates, result.created_groups = self.scanner.expand_push(paths, objects)
            for created in result.created_groups:
                self.output.info(f"  Created {created}")
        else:
            candidates = self.scanner.groups_first(
                self.scanner.changed_files(objects)
                + self.scanner.untracked_files(objects)
            )

        result.orphans = self.scanner.orphans(objects)

        if not candidates and not result.orphans:
            self.output.info("No changes to push.")
            return result

        if candidates:
            self.output.info(f"Pushing {len(candidates)} file(s) to Xano...")

        for path in candidates:
            try:
                objects = self._push_file(path, objects, validate_blocks)
            except XanoSyncError as e:
                self._record_error(result, path, str(e))
                continue
            result.pushed.append(path)
            self.output.info(f"  ✓ {path}")

        if result.orphans:
            if clean:
                objects = self._delete_orphans(result, objects)
            elif confirm_delete is None:
                self._report_orphans(result.orphans)
            else:
                self._report_orphans(result.orphans, hint=False)
                if confirm_delete(len(result.orphans)):
                    objects = self._delete_orphans(result, objects)
                else:
                    self.output.info(
                        'Skipped. Use "xanosync push --clean" to delete them later.'
                    )

        self.store.save(objects)
        self._refresh_search_index(objects)
        return result

    def _record_error(self, result: PushResult, path: str, message: str) -> None:
        result.errors.append({"path": path, "message": message})
        self.output.error(f"{path}: {message}")
        logger.debug(f"Push failed for {path}: {message}")

    def _refresh_search_index(self, objects: list[TrackedObject]) -> None:
        from ..resolve.index import save_search_index, search_index_path

        if search_index_path(self.context.root).exists():
            save_search_index(self.context.root, objects)

    def _endpoint_group_id(
        self, objects: list[TrackedObject], path: str, new: bool
    ) -> int:
        group = find_api_group_for_endpoint(objects, path)
        if group is not None:
            return group.id
        if new:
            raise XanoSyncError(
                "Cannot find API group for new endpoint. "
                f'Expected "{_group_name(path)}.xs" file in apis directory. '
                'Create the API group first or run "xanosync pull --sync".'
            )
        raise XanoSyncError(
            f'Cannot find API group for endpoint. Expected "{_group_name(path)}.xs" '
            'file in apis directory. Run "xanosync pull --sync" to fetch API groups.'
        )

    def _push_file(
        self, path: str, objects: list[TrackedObject], validate_blocks: bool
    ) -> list[TrackedObject]:
        """Push one file and return the updated store entries.

        Raises:
            XanoSyncError: If the file cannot be pushed
        """
        file_path = self.context.absolute(path)
        if not file_path.is_file():
            raise XanoSyncError("File not found")

        try:
            content = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise XanoSyncError(f"Cannot read file: {e}") from e

        if validate_blocks:
            block_error = validate_single_block(content)
            if block_error:
                raise XanoSyncError(block_error)

        existing = find_by_path(objects, path)
        if existing is not None:
            object_id, object_type, returned = self._update(existing, content, objects)
        else:
            object_id, object_type, returned = self._create(path, content, objects)

        # The remote object exists at this point and stays tracked even
        # when the write-back fails.
        if returned:
            try:
                file_path.write_text(returned, encoding="utf-8")
                content = returned
            except OSError as e:
                self.output.warning(f"{path}: server version not written back: {e}")

        return upsert_object(
            objects,
            path,
            id=object_id,
            type=object_type,
            sha256=compute_sha256(content),
            original=encode_base64(content),
        )

    def _update(
        self, existing: TrackedObject, content: str, objects: list[TrackedObject]
    ) -> tuple[int, str, Optional[str]]:
        """Update a tracked object, recreating it on a name conflict.

        Returns:
            Tuple of (id, type, source to write back or None)
        """
        object_type = existing.type
        apigroup_id = None
        if object_type == "api_endpoint":
            apigroup_id = self._endpoint_group_id(objects, existing.path, new=False)

        try:
            self.client.update_object(
                object_type, existing.id, content, apigroup_id=apigroup_id
            )
        except XanoAPIError as e:
            if (
                "name is already being used" in e.message
                and object_type in RECREATE_TYPES
            ):
                return self._recreate(existing, content)
            if "Unable to locate" in e.message:
                raise XanoSyncError(
                    f"{e.message} (ID: {existing.id}, type: {object_type}). The object "
                    "may have been deleted from Xano. Run \"xanosync pull --sync\" to "
                    "refresh mappings."
                ) from e
            if "apigroup_id is required" in e.message:
                raise XanoSyncError(f"{e.message} (path: {existing.path})") from e
            raise XanoSyncError(_describe_api_error(e, object_type)) from e

        return existing.id, object_type, None

    def _recreate(
        self, existing: TrackedObject, content: str
    ) -> tuple[int, str, Optional[str]]:
        """Delete and create an object again under a new id."""
        object_type = existing.type
        logger.debug(f"Recreating {object_type} {existing.id} for {existing.path}")

        try:
            self.client.delete_object(object_type, existing.id)
        except XanoAPIError as e:
            raise XanoSyncError(f"Failed to delete for recreate: {e.message}") from e

        try:
            response = self.client.create_object(object_type, content)
        except XanoAPIError as e:
            raise XanoSyncError(f"Deleted but failed to recreate: {e.message}") from e

        new_id = response.get("id") if isinstance(response, dict) else None
        if not new_id:
            raise XanoSyncError("No ID returned after recreate")

        return new_id, object_type, extract_xanoscript(response.get("xanoscript"))

    def _create(
        self, path: str, content: str, objects: list[TrackedObject]
    ) -> tuple[int, str, Optional[str]]:
        """Create an untracked file as a new remote object."""
        object_type = detect_type(content)
        if object_type is None:
            raise XanoSyncError(
                "Cannot detect XanoScript type from content. Ensure file starts "
                "with a valid keyword (function, query, table, task, addon, "
                "middleware, etc.)"
            )

        apigroup_id = None
        details = None
        test_name = None
        if object_type == "api_endpoint":
            apigroup_id = self._endpoint_group_id(objects, path, new=True)
            details = extract_api_details(content)
            if details:
                duplicate = self._find_endpoint(
                    objects, details.verb, details.path, path
                )
                if duplicate:
                    raise XanoSyncError(
                        f"Duplicate endpoint: {details.verb} /{details.path} is "
                        f'already defined in "{duplicate}". Delete one of the '
                        "conflicting files."
                    )
        elif object_type == "workflow_test":
            test_name = extract_name(content)
            if test_name:
                duplicate = self._find_workflow_test(objects, test_name, path)
                if duplicate:
                    raise XanoSyncError(
                        f'Duplicate workflow test: "{test_name}" is already defined in '
                        f'"{duplicate}". Xano uses the test NAME (not filename) for '
                        "uniqueness. Rename the test or delete one of the conflicting "
                        "files."
                    )

        try:
            response = self.client.create_object(
                object_type, content, apigroup_id=apigroup_id
            )
        except XanoAPIError as e:
            if (
                e.status_code == 409
                or "already exists" in e.message
                or "Duplicate record" in e.message
            ):
                if details is not None:
                    message = (
                        f"Endpoint {details.verb} /{details.path} already exists on "
                        'Xano. Run "xanosync pull --sync" to update mappings, then '
                        "delete the duplicate local file."
                    )
                elif test_name:
                    message = (
                        f'Workflow test "{test_name}" already exists on Xano (Xano '
                        'uses NAME for uniqueness). Run "xanosync pull --sync" to '
                        "update mappings, then rename or delete the duplicate."
                    )
                else:
                    message = (
                        'Object already exists on Xano. Run "xanosync pull --sync" '
                        "to update mappings."
                    )
                raise XanoSyncError(message) from e
            raise XanoSyncError(_describe_api_error(e, object_type)) from e

        new_id = response.get("id") if isinstance(response, dict) else None
        if not new_id:
            raise XanoSyncError("No ID returned from API")

        return new_id, object_type, extract_xanoscript(response.get("xanoscript"))

    def _read_tracked(self, obj: TrackedObject) -> Optional[str]:
        file_path = self.context.absolute(obj.path)
        if not file_path.is_file():
            return None
        try:
            return file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.debug(f"Cannot read {obj.path}: {e}")
            return None

    def _find_endpoint(
        self, objects: list[TrackedObject], verb: str, path: str, exclude: str
    ) -> Optional[str]:
        """Find a tracked endpoint file declaring the same verb and path."""
        wanted = path.lstrip("/").lower()
        for obj in objects:
            if obj.type != "api_endpoint" or obj.path == exclude:
                continue
            content = self._read_tracked(obj)
            details = extract_api_details(content) if content else None
            if (
                details
                and details.verb == verb.upper()
                and details.path.lstrip("/").lower() == wanted
            ):
                return obj.path
        return None

    def _find_workflow_test(
        self, objects: list[TrackedObject], name: str, exclude: str
    ) -> Optional[str]:
        """Find a tracked workflow test file declaring the same name."""
        for obj in objects:
            if obj.type != "workflow_test" or obj.path == exclude:
                continue
            content = self._read_tracked(obj)
            declared = extract_name(content) if content else None
            if declared and declared.lower() == name.lower():
                return obj.path
        return None

    def _group_id_for_orphan(
        self, obj: TrackedObject, objects: list[TrackedObject]
    ) -> Optional[int]:
        group = find_api_group_for_endpoint(objects, obj.path)
        if group is not None:
            return group.id
        if self._api_group_cache is None:
            self.output.info("  Fetching API group mappings from Xano...")
            self._api_group_cache = {
                endpoint["id"]: endpoint["apigroup_id"]
                for endpoint in self.client.list_api_endpoints()
                if endpoint.get("apigroup_id")
            }
        return self._api_group_cache.get(obj.id)

    def _delete_orphans(
        self, result: PushResult, objects: list[TrackedObject]
    ) -> list[TrackedObject]:
        self.output.info(
            f"Deleting {len(result.orphans)} orphan object(s) from Xano..."
        )

        for obj in result.orphans:
            try:
                apigroup_id = None
                if obj.type == "api_endpoint":
                    apigroup_id = self._group_id_for_orphan(obj, objects)
                    if apigroup_id is None:
                        self._record_error(
                            result,
                            obj.path,
                            f"Cannot delete {obj.path}: API group not found locally "
                            "or on Xano",
                        )
                        continue
                self.client.delete_object(obj.type, obj.id, apigroup_id=apigroup_id)
            except XanoAPIError as e:
                self._record_error(
                    result, obj.path, f"Failed to delete {obj.path}: {e.message}"
                )
                continue

            objects = remove_by_path(objects, obj.path)
            result.deleted.append(obj.path)
            self.output.info(f"  ✓ Deleted {obj.path}")

        return objects

    def _report_orphans(self, orphans: list[TrackedObject], hint: bool = True) -> None:
        self.output.warning(
            f"{len(orphans)} file(s) deleted locally but still exist on Xano"
        )
        for obj in orphans[:10]:
            self.output.warning(f"  - {obj.path}")
        if len(orphans) > 10:
            self.output.warning(f"  ... and {len(orphans) - 10} more")
        if hint:
            self.output.warning(
                'Use "xanosync push --clean" to delete these from Xano.'
            )
