"""CLI interface for xanosync."""

import logging
from pathlib import Path
from typing import Any, Optional

import click

from .api import XanoClient
from .config import config
from .exceptions import XanoAPIError, XanoConfigError, XanoError
from .output import OutputFormatter
from .project import (
    ProjectContext,
    find_project_root,
    get_default_paths,
    load_project,
    save_project,
)
from .resolve import (
    Resolver,
    add_search_entry,
    load_search_data,
    open_index,
    remove_search_entry,
    resolve_refs,
    save_search_index,
    write_search_data,
)
from .sync import (
    FileStatus,
    ObjectStore,
    PullEngine,
    PushEngine,
    StatusDetail,
    StatusEntry,
    compare_three_way,
    detect_type,
    fetch_all,
    find_by_path,
    sync_metadata,
)
from .sync.paths import NAMING_MODES
from .utils import STATE_DIR_NAME, XS_EXTENSION

logger = logging.getLogger(__name__)


def to_project_paths(
    context: ProjectContext, paths: tuple[str, ...], cwd: Optional[Path] = None
) -> list[str]:
    """Convert command line paths to project-relative POSIX paths.

    A trailing slash is kept so that engines can tell an explicit
    directory from a type name.

    Args:
        context: Project context
        paths: Paths as typed, relative to ``cwd``
        cwd: Base directory (defaults to the current directory)

    Returns:
        Project-relative paths

    Raises:
        XanoConfigError: If a path lies outside the project
    """
    base = cwd or Path.cwd()
    result = []
    for raw in paths:
        try:
            relative = context.relative(base / raw)
        except ValueError as e:
            raise XanoConfigError(
                f"{raw} is outside the project at {context.root}"
            ) from e
        if raw.endswith("/") and relative != ".":
            relative += "/"
        result.append(relative)
    return result


def _open_project() -> tuple[ProjectContext, XanoClient]:
    """Load the project and build an API client for it."""
    context = load_project()
    client = XanoClient(workspace_id=context.workspace_id, branch=context.branch)
    return context, client


def _fail(ctx: Any, out: OutputFormatter, error: Exception) -> None:
    out.error(str(error))
    ctx.exit(1)


def _confirm_orphan_deletion(count: int) -> bool:
    try:
        return click.confirm(
            f"Delete these {count} object(s) from Xano?", default=False
        )
    except click.Abort:
        return False


@click.group()
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option()
@click.pass_context
def main(ctx: Any, quiet: bool, json: bool, verbose: bool) -> None:
    """xanosync - Mirror a Xano workspace as local XanoScript files."""
    ctx.ensure_object(dict)
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["verbose"] = verbose

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("xanosync").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.option(
    "--access-token",
    prompt="Enter your Xano metadata API access token",
    hide_input=True,
    help="Metadata API access token",
)
@click.option(
    "--instance-origin",
    prompt="Enter your Xano instance origin (e.g. https://x1.xano.io)",
    help="Instance origin URL",
)
@click.option(
    "--workspace-id",
    "-w",
    type=int,
    prompt="Enter the workspace ID",
    help="Workspace ID",
)
@click.option("--branch", "-b", default="", help="Branch label (default: live)")
@click.option("--workspace-name", default="", help="Workspace display name")
@click.option(
    "--naming",
    type=click.Choice(NAMING_MODES),
    default="default",
    help="File naming mode (default: default)",
)
@click.option(
    "--directory",
    "-d",
    type=click.Path(file_okay=False),
    default=".",
    help="Project directory (default: current directory)",
)
@click.pass_context
def init(
    ctx: Any,
    access_token: str,
    instance_origin: str,
    workspace_id: int,
    branch: str,
    workspace_name: str,
    naming: str,
    directory: str,
) -> None:
    """Initialize a xanosync project.

    Stores credentials in ~/.config/xanosync/config and writes
    .xano/config.json in the project directory.
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        out.info("Validating credentials...")
        client = XanoClient(
            workspace_id=workspace_id,
            branch=branch,
            access_token=access_token,
            instance_origin=instance_origin,
        )
        try:
            client.list_objects("api_group", per_page=1)
            out.success("✓ Credentials are valid")
        except XanoAPIError as e:
            out.error(f"Credential validation failed: {e}")
            if not click.confirm("Save configuration anyway?", default=False):
                out.warning("Configuration cancelled.")
                ctx.exit(1)
        finally:
            client.close()

        config.save_credentials(access_token, instance_origin)

        root = Path(directory).resolve()
        context = ProjectContext(
            root=root,
            workspace_id=workspace_id,
            branch=branch,
            workspace_name=workspace_name,
            paths=get_default_paths(),
            naming=naming,
        )
        project_config = save_project(context)
    except XanoConfigError as e:
        _fail(ctx, out, e)
        return

    out.print_summary(
        "Initialization Complete",
        [
            ("Credentials", str(config.get_config_path())),
            ("Project config", str(project_config)),
            ("Workspace", str(workspace_id)),
            ("Branch", branch or "live"),
            ("Note", 'Run "xanosync pull --sync" to download the workspace'),
        ],
    )


@main.command()
@click.pass_context
def sync(ctx: Any) -> None:
    """Sync metadata from Xano without pulling code files.

    Rebuilds .xano/objects.json, groups.json, endpoints.json and
    search.json from the remote workspace.
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        context, client = _open_project()
        out.info("Syncing metadata from Xano...")
        out.info(f"  Workspace: {context.workspace_name or context.workspace_id}")
        out.info(f"  Branch: {context.branch or 'live'}")
        out.info("")

        with client:
            changes, _ = sync_metadata(client, context, out)
        objects = ObjectStore(context.root).load()
    except XanoError as e:
        _fail(ctx, out, e)
        return

    if out.json_output:
        out.output_json(
            {
                "objects": len(objects),
                "new": len(changes.new),
                "updated": len(changes.updated),
                "removed": len(changes.removed),
            }
        )
        return

    out.print("")
    out.print(f"Synced {len(objects)} objects")
    if changes.has_changes:
        parts = []
        if changes.new:
            parts.append(f"{len(changes.new)} new")
        if changes.updated:
            parts.append(f"{len(changes.updated)} updated")
        if changes.removed:
            parts.append(f"{len(changes.removed)} removed")
        out.print(f"  Changes: {', '.join(parts)}")
    out.print("")
    out.print('Metadata synced. Run "xanosync pull" to download code files.')


@main.command()
@click.argument("paths", nargs=-1)
@click.option("--clean", is_flag=True, help="Delete remote objects with no local file")
@click.option(
    "--force", "-f", is_flag=True, help="Do not ask before leaving remote orphans"
)
@click.option("--sync", "sync_first", is_flag=True, help="Sync metadata first")
@click.option(
    "--no-validate-blocks",
    is_flag=True,
    help="Allow files containing more than one top-level block",
)
@click.pass_context
def push(
    ctx: Any,
    paths: tuple[str, ...],
    clean: bool,
    force: bool,
    sync_first: bool,
    no_validate_blocks: bool,
) -> None:
    """Push local changes to Xano.

    PATHS: Files, directories or type names (default: all changes)

    Examples:
        xanosync push                          # All changed and new files
        xanosync push functions/calc_total.xs  # One file
        xanosync push apis/                    # A directory
        xanosync push --clean                  # Also delete remote orphans

    Without --clean or --force, files deleted locally are listed and you
    are asked whether to delete them from Xano.
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        context, client = _open_project()
        with client:
            engine = PushEngine(client, context, out)
            result = engine.push(
                paths=to_project_paths(context, paths) or None,
                clean=clean,
                validate_blocks=not no_validate_blocks,
                sync=sync_first,
                confirm_delete=(
                    None
                    if force or out.quiet or out.json_output
                    else _confirm_orphan_deletion
                ),
            )
    except KeyboardInterrupt:
        out.warning("\nPush cancelled by user")
        ctx.exit(130)
        return
    except XanoError as e:
        _fail(ctx, out, e)
        return

    if out.json_output:
        out.output_json(result.to_dict())
    elif result.pushed or result.errors or result.deleted:
        out.print("")
        out.print(
            f"Summary: {len(result.pushed)} pushed, {len(result.errors)} failed, "
            f"{len(result.deleted)} deleted"
        )
        if result.schema_errors:
            out.warning(
                f"\n{result.schema_errors} file(s) failed with database errors. "
                "Existing records may not fit the new schema; fix or migrate "
                "the data in Xano and push again."
            )

    if result.errors:
        ctx.exit(1)


@main.command()
@click.argument("paths", nargs=-1)
@click.option("--force", "-f", is_flag=True, help="Overwrite files with local changes")
@click.option(
    "--merge", is_flag=True, help="Merge remote changes into files with local changes"
)
@click.option("--clean", is_flag=True, help="Delete local files not on Xano")
@click.option("--sync", "sync_first", is_flag=True, help="Sync metadata first")
@click.pass_context
def pull(
    ctx: Any,
    paths: tuple[str, ...],
    force: bool,
    merge: bool,
    clean: bool,
    sync_first: bool,
) -> None:
    """Pull code from Xano into local files.

    PATHS: Files, directories or type names (default: all tracked objects)

    Files with local edits are skipped unless --force is given. With
    --merge they are merged with the remote version using git merge-file,
    the last synced content being the common base.
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        context, client = _open_project()
        with client:
            engine = PullEngine(client, context, out)
            result = engine.pull(
                paths=to_project_paths(context, paths) or None,
                force=force,
                clean=clean,
                sync=sync_first,
                merge=merge,
            )
    except KeyboardInterrupt:
        out.warning("\nPull cancelled by user")
        ctx.exit(130)
        return
    except XanoError as e:
        _fail(ctx, out, e)
        return

    if out.json_output:
        out.output_json(result.to_dict())
    else:
        out.print("")
        out.print(
            f"Pulled: {len(result.pulled)}, Skipped: {len(result.skipped)}, "
            f"Errors: {len(result.errors)}"
        )
        if result.merged:
            out.print(f"Merged: {len(result.merged)}")
        if result.merge_conflicts:
            out.warning(
                f"{len(result.merge_conflicts)} file(s) contain merge conflicts. "
                "Resolve the conflict markers, then push."
            )
        conflicts = [s for s in result.skipped if s["message"] != "Not tracked"]
        if conflicts and not force:
            out.warning(
                f"{len(conflicts)} file(s) have local changes. "
                "Use --force to overwrite them or --merge to merge them."
            )

    if result.errors:
        ctx.exit(1)


_STATUS_SECTIONS: list[tuple[str, FileStatus, Optional[StatusDetail]]] = [
    ("Modified locally (push to sync):", FileStatus.MODIFIED, StatusDetail.LOCAL),
    ("Modified remotely (pull to sync):", FileStatus.MODIFIED, StatusDetail.REMOTE),
    (
        "Conflicts (both local and remote changed):",
        FileStatus.MODIFIED,
        StatusDetail.BOTH,
    ),
    ("New (local only, push to add):", FileStatus.NEW, None),
    ("Deleted locally:", FileStatus.DELETED, StatusDetail.LOCAL),
    ("Deleted remotely:", FileStatus.DELETED, StatusDetail.REMOTE),
    ("Remote only (pull to download):", FileStatus.REMOTE_ONLY, None),
]


def print_status(out: OutputFormatter, entries: list[StatusEntry]) -> None:
    """Print status entries grouped by section, with a summary and hints."""
    changed = [e for e in entries if e.status != FileStatus.UNCHANGED]
    if not changed:
        out.print("All files in sync.")
        return

    for title, status, detail in _STATUS_SECTIONS:
        section = [e for e in changed if e.status == status and e.detail == detail]
        if not section:
            continue
        out.print(title)
        for entry in section:
            out.print(f"  {entry.indicator} {entry.path}")
        out.print("")

    unchanged = len(entries) - len(changed)
    out.print(
        f"{unchanged}/{len(entries)} files in sync, {len(changed)} with differences"
    )

    local = any(
        e.status == FileStatus.NEW
        or (e.status == FileStatus.MODIFIED and e.detail == StatusDetail.LOCAL)
        for e in changed
    )
    remote = any(
        e.status == FileStatus.REMOTE_ONLY
        or (e.status == FileStatus.MODIFIED and e.detail == StatusDetail.REMOTE)
        for e in changed
    )
    both = any(e.detail == StatusDetail.BOTH for e in changed)
    if local:
        out.print("")
        out.print('Run "xanosync push" to push local changes to Xano')
    if remote:
        out.print("")
        out.print('Run "xanosync pull" to download remote changes')
    if both:
        out.print("")
        out.print("Resolve conflicts manually before syncing")


@main.command()
@click.argument("paths", nargs=-1)
@click.pass_context
def status(ctx: Any, paths: tuple[str, ...]) -> None:
    """Show differences between local files, metadata and Xano.

    PATHS: Optional files or directories to limit the report to
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        context, client = _open_project()
        out.info("Fetching remote state from Xano...")
        with client:
            fetched = fetch_all(client, output=OutputFormatter(quiet=True))
        objects = ObjectStore(context.root).load()
        entries = compare_three_way(
            context, objects, fetched, to_project_paths(context, paths) or None
        )
    except XanoError as e:
        _fail(ctx, out, e)
        return

    if out.json_output:
        out.output_json([entry.to_dict() for entry in entries])
        return

    out.print("")
    out.print(f"Workspace: {context.workspace_name or context.workspace_id}")
    out.print(f"Branch: {context.branch or 'live'}")
    out.print("")
    print_status(out, entries)


@main.command()
@click.argument("identifier", required=False)
@click.option("--all", "show_all", is_flag=True, help="Show every match")
@click.option(
    "--refs",
    "refs_file",
    type=click.Path(exists=True, dir_okay=False),
    help="Resolve the tables and functions referenced by a file",
)
@click.pass_context
def resolve(
    ctx: Any, identifier: Optional[str], show_all: bool, refs_file: Optional[str]
) -> None:
    """Resolve an identifier to a workspace file path.

    IDENTIFIER: Function name, endpoint, table, or path

    Examples:
        xanosync resolve brands_POST
        xanosync resolve my_function
        xanosync resolve Discord/GetMessageByID
        xanosync resolve --refs functions/calc_total.xs
    """
    out: OutputFormatter = ctx.obj["out"]

    if not identifier and not refs_file:
        out.error("Provide an IDENTIFIER or --refs FILE")
        ctx.exit(1)
        return

    root = find_project_root()
    if root is None:
        out.error('Not in a xano project. Run "xanosync init" first.')
        ctx.exit(1)
        return

    index = open_index(root)

    if refs_file:
        source = Path(refs_file).read_text(encoding="utf-8")
        refs = resolve_refs(source, index)
        if out.json_output:
            out.output_json([ref.to_dict() for ref in refs])
            return
        if not refs:
            out.print("No references found.")
        for ref in refs:
            target = ref.path or "(unresolved)"
            out.print(
                f"  {ref.line}:{ref.column}  {ref.kind} {ref.target} → {target}"
            )
        return

    matches = Resolver(index).resolve(identifier)
    if not matches:
        if out.json_output:
            out.output_json({"error": "not_found", "query": identifier})
        else:
            out.error(f'No workspace object found for "{identifier}"')
        ctx.exit(1)
        return

    if out.json_output:
        if show_all:
            out.output_json([match.to_dict() for match in matches])
        else:
            out.output_json(matches[0].to_dict())
        return

    best = matches[0]
    out.print(f"{best.name} ({best.type or 'unknown'})")
    out.print(f"File: {best.path}")
    others = matches[1:]
    if others:
        out.print("")
        out.print(f"{len(others)} additional matches:")
        for match in others if show_all else others[:10]:
            out.print(f"  {match.path}")
        if not show_all and len(others) > 10:
            out.print(f"  ... and {len(others) - 10} more (use --all)")


def _incremental_index(
    context: ProjectContext, data: dict, relative: str, is_directory: bool
) -> int:
    """Refresh the search entries below one path and return how many changed."""
    objects = ObjectStore(context.root).load()
    updated = 0

    if is_directory:
        prefix = "" if relative == "." else relative.rstrip("/") + "/"
        tracked = {obj.path for obj in objects}
        for obj in objects:
            if obj.path.startswith(prefix):
                remove_search_entry(data, obj.path)
                add_search_entry(data, obj.path, obj.type)
                updated += 1
        stale = [
            item["path"]
            for item in data["objects"]
            if item["path"].startswith(prefix) and item["path"] not in tracked
        ]
        for path in stale:
            remove_search_entry(data, path)
            updated += 1
        return updated

    path = relative if relative.endswith(XS_EXTENSION) else relative + XS_EXTENSION
    remove_search_entry(data, path)

    obj = find_by_path(objects, path)
    file_path = context.absolute(path)
    if obj is not None:
        add_search_entry(data, path, obj.type)
        return 1
    if file_path.is_file():
        add_search_entry(
            data, path, detect_type(file_path.read_text(encoding="utf-8"))
        )
        return 1
    return 0


@main.command()
@click.argument("path", required=False)
@click.pass_context
def index(ctx: Any, path: Optional[str]) -> None:
    """Build or update the search index used by resolve.

    PATH: Optional file or directory to update incrementally
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        context = load_project()
        objects = ObjectStore(context.root).load()

        if not path:
            save_search_index(context.root, objects)
            out.success(
                f"Indexed {len(objects)} objects → {STATE_DIR_NAME}/search.json"
            )
            return

        data = load_search_data(context.root)
        if data is None:
            save_search_index(context.root, objects)
            out.success(
                f"No search index found, full rebuild: {len(objects)} objects"
            )
            return

        relative = to_project_paths(context, (path,))[0]
        is_directory = path.endswith("/") or context.absolute(relative).is_dir()
        updated = _incremental_index(context, data, relative, is_directory)
        write_search_data(context.root, data)
    except XanoError as e:
        _fail(ctx, out, e)
        return

    noun = "entry" if updated == 1 else "entries"
    out.success(f"Updated {updated} {noun} in search index")


if __name__ == "__main__":
    main()
