"""Mapping from remote objects to local file paths.

Two naming schemes exist. The default, clean-name scheme sanitizes names
with :func:`sanitize`. The VS Code compatible schemes use :func:`snake_case`
and group endpoints under a folder holding ``api_group.xs``; the legacy
``vscode_id`` variant additionally prefixes every file with the remote id.
"""

import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Callable, Optional

NAMING_MODES = ("default", "vscode", "vscode_name", "vscode_id")
VSCODE_MODES = ("vscode", "vscode_name", "vscode_id")

# Object type -> (paths key, fallback directory)
TYPE_DIRECTORIES: dict[str, tuple[str, str]] = {
    "addon": ("addOns", "addons"),
    "agent": ("agents", "agents"),
    "agent_trigger": ("agentTriggers", "agents/triggers"),
    "api_endpoint": ("apis", "apis"),
    "api_group": ("apis", "apis"),
    "function": ("functions", "functions"),
    "mcp_server": ("mcpServers", "mcp_servers"),
    "mcp_server_trigger": ("mcpServerTriggers", "mcp_servers/triggers"),
    "middleware": ("middlewares", "middlewares"),
    "realtime_channel": ("realtimeChannels", "realtime"),
    "realtime_trigger": ("realtimeTriggers", "realtime/triggers"),
    "table": ("tables", "tables"),
    "table_trigger": ("tableTriggers", "tables/triggers"),
    "task": ("tasks", "tasks"),
    "tool": ("tools", "tools"),
    "workflow_test": ("workflowTests", "workflow_tests"),
}

_ID_PREFIX = re.compile(r"^(\d+)_")


def sanitize(name: str) -> str:
    """Sanitize a name segment for use as a file name.

    Examples:
        >>> sanitize("calcTotal")
        'calc_total'
        >>> sanitize("Send Email - v2")
        'send_email_v2'
    """
    result = re.sub(r"((?<!^)[A-Z][a-z]+)", r"_\1", name)
    result = result.lower()
    result = re.sub(r"[\s-]+", "_", result)
    result = re.sub(r"[^a-z0-9_]", "_", result)
    result = re.sub(r"_+", "_", result)
    return result.strip("_")


def snake_case(name: str) -> str:
    """Convert a name to snake_case the way lodash ``snakeCase`` does.

    Examples:
        >>> snake_case("MyFunctionName")
        'my_function_name'
        >>> snake_case("API Endpoint")
        'api_endpoint'
    """
    result = re.sub(r"([a-z])([A-Z])", r"\1_\2", name)
    result = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", result)
    result = re.sub(r"[\s\-./]+", "_", result)
    result = re.sub(r"[^a-zA-Z0-9_]", "", result)
    result = result.lower()
    result = re.sub(r"_+", "_", result)
    return result.strip("_")


def sanitize_path(name: str, sanitize_fn: Callable[[str], str] = sanitize) -> str:
    """Sanitize every ``/``-separated segment of a name.

    Examples:
        >>> sanitize_path("User/Security Events/Log Auth")
        'user/security_events/log_auth'
    """
    segments = (sanitize_fn(segment.strip()) for segment in name.split("/"))
    return "/".join(segment for segment in segments if segment)


@dataclass
class PathObject:
    """Object metadata the path generator works from."""

    id: int
    type: str
    name: str
    group: Optional[str] = None
    """Owning API group display name (api_endpoint only)"""

    path: Optional[str] = None
    """Endpoint URL pattern, e.g. ``users/{id}`` (api_endpoint only)"""

    verb: Optional[str] = None
    """HTTP verb (api_endpoint only)"""

    table: Optional[str] = None
    """Owning table name (table_trigger only)"""


@dataclass(frozen=True)
class ResolverContext:
    """Information handed to :class:`PathStrategy` hooks."""

    default: str
    """What the built-in rule would produce"""

    naming: str
    type: str


class PathStrategy:
    """Override points for path generation.

    Subclass and reference the class from ``.xano/config.json`` as
    ``"pathStrategy": "package.module:ClassName"``. Returning None from
    either hook defers to the built-in behaviour.
    """

    def resolve_path(
        self, obj: PathObject, paths: dict[str, str], context: ResolverContext
    ) -> Optional[str]:
        """Return a full relative path for ``obj``, or None to defer."""
        return None

    def sanitize(self, name: str, context: ResolverContext) -> Optional[str]:
        """Return a sanitized name segment, or None to defer."""
        return None


def type_directory(object_type: str, paths: dict[str, str]) -> Optional[str]:
    """Return the configured directory for an object type."""
    entry = TYPE_DIRECTORIES.get(object_type)
    if entry is None:
        return None
    key, fallback = entry
    if object_type == "table_trigger" and not paths.get(key) and paths.get("tables"):
        return f"{paths['tables']}/triggers"
    return paths.get(key) or fallback


def _make_sanitizer(
    naming: str, object_type: str, strategy: Optional[PathStrategy]
) -> Callable[[str], str]:
    base = snake_case if naming in VSCODE_MODES else sanitize
    if strategy is None:
        return base

    def wrapped(name: str) -> str:
        default = base(name)
        custom = strategy.sanitize(
            name, ResolverContext(default=default, naming=naming, type=object_type)
        )
        return custom if custom is not None else default

    return wrapped


def _default_path(
    obj: PathObject, paths: dict[str, str], s: Callable[[str], str]
) -> str:
    def sp(name: str) -> str:
        return sanitize_path(name, s)

    if obj.type == "api_endpoint":
        directory = type_directory("api_endpoint", paths)
        group = sp(obj.group or "default")
        verb = (obj.verb or "GET").upper()
        return f"{directory}/{group}/{s(obj.path or obj.name)}_{verb}.xs"

    directory = type_directory(obj.type, paths)
    if directory is None:
        return f"{sp(obj.name)}.xs"
    return f"{directory}/{sp(obj.name)}.xs"


def _vscode_path(
    obj: PathObject, paths: dict[str, str], s: Callable[[str], str], include_id: bool
) -> str:
    def with_id(name: str) -> str:
        return f"{obj.id}_{name}" if include_id else name

    if obj.type == "api_endpoint":
        group = s(obj.group or "default")
        verb = (obj.verb or "GET").upper()
        filename = with_id(f"{s(obj.path or obj.name)}_{verb}")
        return f"{type_directory('api_endpoint', paths)}/{group}/{filename}.xs"

    if obj.type == "api_group":
        return f"{type_directory('api_group', paths)}/{s(obj.name)}/api_group.xs"

    if obj.type == "function":
        # Function names may carry folders: "User/Auth/Login"
        parts = obj.name.split("/")
        folders = "/".join(s(part) for part in parts[:-1])
        filename = with_id(s(parts[-1])) + ".xs"
        directory = type_directory("function", paths)
        if folders:
            return f"{directory}/{folders}/{filename}"
        return f"{directory}/{filename}"

    directory = type_directory(obj.type, paths)
    if directory is None:
        return f"{with_id(s(obj.name))}.xs"
    return f"{directory}/{with_id(s(obj.name))}.xs"


def generate_path(
    obj: PathObject,
    paths: dict[str, str],
    naming: str = "default",
    strategy: Optional[PathStrategy] = None,
) -> str:
    """Generate the relative file path for a remote object.

    The result depends only on the arguments, so repeated syncs never move
    unchanged objects.

    Args:
        obj: Object metadata
        paths: Type directories (see ``project.DEFAULT_PATHS``)
        naming: Naming mode
        strategy: Optional override hooks

    Returns:
        Relative POSIX path ending in ``.xs``
    """
    s = _make_sanitizer(naming, obj.type, strategy)

    if naming in VSCODE_MODES:
        default = _vscode_path(obj, paths, s, include_id=naming == "vscode_id")
    else:
        default = _default_path(obj, paths, s)

    if strategy is not None:
        custom = strategy.resolve_path(
            obj, paths, ResolverContext(default=default, naming=naming, type=obj.type)
        )
        if custom:
            return custom

    return default


def detect_naming_mode(files: list[str]) -> str:
    """Guess the VS Code naming mode from existing file names.

    Any id-prefixed file (``123_name.xs``) means ``vscode_id``; the
    per-group ``api_group.xs`` files are ignored.

    Args:
        files: File paths or names

    Returns:
        ``"vscode_id"`` or ``"vscode_name"``
    """
    for file_path in files:
        filename = PurePosixPath(file_path).name
        if filename == "api_group.xs":
            continue
        if _ID_PREFIX.match(filename):
            return "vscode_id"
    return "vscode_name"


def extract_id_from_filename(filename: str) -> Optional[int]:
    """Return the numeric id prefix of ``123_name.xs``, if any."""
    match = _ID_PREFIX.match(PurePosixPath(filename).name)
    return int(match.group(1)) if match else None
