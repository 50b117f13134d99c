"""Bulk fetch of remote objects and diffing against the object store."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from rich.progress import Progress, SpinnerColumn, TextColumn

from ..output import OutputFormatter
from ..utils import compute_sha256, encode_base64, extract_xanoscript
from .detector import extract_canonical
from .paths import PathObject, generate_path
from .store import STATUS_UNCHANGED, ObjectStore, TrackedObject, upsert_object

if TYPE_CHECKING:
    from ..api import XanoClient
    from ..project import ProjectContext

logger = logging.getLogger(__name__)

# Collections fetched after groups and endpoints, in order
SIMPLE_COLLECTIONS: tuple[tuple[str, str], ...] = (
    ("task", "tasks"),
    ("workflow_test", "workflow tests"),
    ("addon", "addons"),
    ("middleware", "middlewares"),
    ("agent", "agents"),
    ("agent_trigger", "agent triggers"),
    ("tool", "tools"),
    ("mcp_server", "MCP servers"),
    ("mcp_server_trigger", "MCP server triggers"),
)


@dataclass
class FetchedObject:
    """A remote object together with its XanoScript source."""

    id: int
    type: str
    name: str
    xanoscript: str
    apigroup_id: Optional[int] = None
    apigroup_name: Optional[str] = None
    path: Optional[str] = None
    """Endpoint URL pattern (api_endpoint only)"""

    verb: Optional[str] = None
    table_id: Optional[int] = None
    table_name: Optional[str] = None

    @property
    def key(self) -> str:
        return f"{self.type}:{self.id}"

    @property
    def sha256(self) -> str:
        return compute_sha256(self.xanoscript)

    def to_path_object(self) -> PathObject:
        return PathObject(
            id=self.id,
            type=self.type,
            name=self.name,
            group=self.apigroup_name,
            path=self.path,
            verb=self.verb,
            table=self.table_name,
        )


@dataclass
class FetchResult:
    """Everything a bulk fetch returns."""

    objects: list[FetchedObject] = field(default_factory=list)
    api_groups: dict[str, dict] = field(default_factory=dict)
    """``{group name: {canonical, id}}`` for groups.json"""

    endpoints: dict[str, list[dict]] = field(default_factory=dict)
    """``{VERB: [{canonical, id, pattern}]}`` for endpoints.json"""

    def by_path(self, context: ProjectContext) -> dict[str, FetchedObject]:
        """Index fetched objects by their generated path."""
        return {object_path(obj, context): obj for obj in self.objects}


@dataclass
class DiffResult:
    """Outcome of comparing fetched objects against the store."""

    new: list[FetchedObject] = field(default_factory=list)
    updated: list[FetchedObject] = field(default_factory=list)
    removed: list[TrackedObject] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.new or self.updated or self.removed)

    @property
    def total(self) -> int:
        return len(self.new) + len(self.updated) + len(self.removed)


def object_path(obj: FetchedObject, context: ProjectContext) -> str:
    """Generate the local path for a fetched object."""
    return generate_path(
        obj.to_path_object(), context.paths, context.naming, context.strategy
    )


def _wanted(object_type: str, types: Optional[list[str]]) -> bool:
    return types is None or object_type in types


def _fetched(
    item: dict[str, Any], object_type: str, **extra: Any
) -> FetchedObject | None:
    xanoscript = extract_xanoscript(item.get("xanoscript"))
    if not xanoscript:
        return None
    return FetchedObject(
        id=item["id"],
        type=object_type,
        name=item.get("name") or str(item["id"]),
        xanoscript=xanoscript,
        **extra,
    )


def fetch_all(
    client: XanoClient,
    types: Optional[list[str]] = None,
    output: Optional[OutputFormatter] = None,
) -> FetchResult:
    """Fetch all objects of the workspace, collection by collection.

    API groups are fetched first whenever groups or endpoints are wanted,
    since endpoints need the group names and canonicals. Tables are
    fetched whenever tables or table triggers are wanted, for the trigger
    table names. Items without XanoScript source are skipped, but every
    endpoint is recorded in the endpoint map.

    Args:
        client: Metadata API client
        types: Object types to fetch (all when None)
        output: Output formatter

    Returns:
        FetchResult with objects in fetch order
    """
    out = output or OutputFormatter()
    result = FetchResult()

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=out.err_console,
        transient=True,
        disable=out.quiet or out.json_output,
    ) as progress:
        task = progress.add_task("Fetching...", total=None)

        def fetch(object_type: str, label: str, **kwargs: Any) -> list[dict]:
            progress.update(task, description=f"Fetching {label}...")
            items = client.list_all(object_type, **kwargs)
            logger.debug(f"Fetched {len(items)} {label}")
            return items

        groups: dict[int, str] = {}
        canonicals: dict[int, str] = {}
        if _wanted("api_group", types) or _wanted("api_endpoint", types):
            for group in fetch("api_group", "API groups"):
                groups[group["id"]] = group["name"]
                xanoscript = extract_xanoscript(group.get("xanoscript"))
                canonical = (
                    extract_canonical(xanoscript) if xanoscript else None
                ) or group.get("guid")
                result.api_groups[group["name"]] = {
                    "canonical": canonical,
                    "id": group["id"],
                }
                if canonical:
                    canonicals[group["id"]] = canonical
                if _wanted("api_group", types):
                    obj = _fetched(group, "api_group")
                    if obj:
                        result.objects.append(obj)
            out.info(f"  Found {len(groups)} API groups")

        if _wanted("function", types):
            items = fetch("function", "functions")
            result.objects.extend(
                obj for obj in (_fetched(i, "function") for i in items) if obj
            )
            out.info(f"  Found {len(items)} functions")

        if _wanted("api_endpoint", types):
            count = 0
            for group_id, group_name in groups.items():
                for endpoint in fetch(
                    "api_endpoint",
                    f"API endpoints ({group_name})",
                    apigroup_id=group_id,
                ):
                    count += 1
                    verb = str(endpoint.get("verb") or "GET").upper()
                    obj = _fetched(
                        endpoint,
                        "api_endpoint",
                        apigroup_id=group_id,
                        apigroup_name=group_name,
                        path=endpoint.get("name"),
                        verb=verb,
                    )
                    if obj:
                        result.objects.append(obj)
                    canonical = canonicals.get(group_id)
                    if canonical:
                        result.endpoints.setdefault(verb, []).append(
                            {
                                "canonical": canonical,
                                "id": endpoint["id"],
                                "pattern": endpoint.get("name"),
                            }
                        )
            out.info(f"  Found {count} API endpoints")

        tables: dict[int, str] = {}
        if _wanted("table", types) or _wanted("table_trigger", types):
            items = fetch("table", "tables")
            for table in items:
                tables[table["id"]] = table["name"]
                if _wanted("table", types):
                    obj = _fetched(table, "table")
                    if obj:
                        result.objects.append(obj)
            out.info(f"  Found {len(items)} tables")

        if _wanted("table_trigger", types):
            items = fetch("table_trigger", "table triggers")
            for trigger in items:
                obj = _fetched(
                    trigger,
                    "table_trigger",
                    table_id=trigger.get("table_id"),
                    table_name=tables.get(trigger.get("table_id"), "unknown"),
                )
                if obj:
                    result.objects.append(obj)
            out.info(f"  Found {len(items)} table triggers")

        for object_type, label in SIMPLE_COLLECTIONS:
            if not _wanted(object_type, types):
                continue
            items = fetch(object_type, label)
            result.objects.extend(
                obj for obj in (_fetched(i, object_type) for i in items) if obj
            )
            out.info(f"  Found {len(items)} {label}")

    logger.debug(f"Fetched {len(result.objects)} objects with source")
    return result


def diff(existing: list[TrackedObject], fetched: list[FetchedObject]) -> DiffResult:
    """Compare stored objects with fetched ones by ``type:id``.

    Only content hashes are compared, so diffing a fetch against a store
    rebuilt from that same fetch yields no changes.

    Args:
        existing: Current store entries
        fetched: Freshly fetched objects

    Returns:
        DiffResult of new, updated and removed objects
    """
    existing_by_key = {f"{obj.type}:{obj.id}": obj for obj in existing}
    fetched_keys = set()
    result = DiffResult()

    for obj in fetched:
        fetched_keys.add(obj.key)
        stored = existing_by_key.get(obj.key)
        if stored is None:
            result.new.append(obj)
        elif stored.sha256 != obj.sha256:
            result.updated.append(obj)

    for key, stored in existing_by_key.items():
        if key not in fetched_keys:
            result.removed.append(stored)

    return result


def rebuild_objects(
    fetched: list[FetchedObject], context: ProjectContext
) -> list[TrackedObject]:
    """Build a fresh store from fetched objects.

    Args:
        fetched: Objects from a bulk fetch
        context: Project context (paths, naming, strategy)

    Returns:
        Store entries with generated paths and status unchanged
    """
    objects: list[TrackedObject] = []
    for obj in fetched:
        path = object_path(obj, context)
        if any(existing.path == path for existing in objects):
            logger.warning(f"{obj.key} maps to {path}, which is already taken")
        objects = upsert_object(
            objects,
            path,
            id=obj.id,
            type=obj.type,
            sha256=obj.sha256,
            original=encode_base64(obj.xanoscript),
            status=STATUS_UNCHANGED,
        )
    return objects


def sync_metadata(
    client: XanoClient,
    context: ProjectContext,
    output: Optional[OutputFormatter] = None,
) -> tuple[DiffResult, FetchResult]:
    """Fetch everything and replace the local metadata caches.

    Writes objects.json, groups.json, endpoints.json and search.json.
    Source files are not touched.

    Args:
        client: Metadata API client
        context: Project context
        output: Output formatter

    Returns:
        Tuple of (diff against the previous store, fetch result)
    """
    from ..resolve.index import save_search_index

    store = ObjectStore(context.root)
    existing = store.load()

    fetch_result = fetch_all(client, output=output)
    changes = diff(existing, fetch_result.objects)
    objects = rebuild_objects(fetch_result.objects, context)

    store.save(objects)
    store.save_groups(fetch_result.api_groups)
    store.save_endpoints(fetch_result.endpoints)
    save_search_index(context.root, objects)

    logger.debug(
        f"Sync: {len(changes.new)} new, {len(changes.updated)} updated, "
        f"{len(changes.removed)} removed"
    )
    return changes, fetch_result
