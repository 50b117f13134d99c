"""Project discovery and the per-command project context.

A project is a directory containing ``.xano/config.json`` (initialized),
or one of the legacy markers ``xano.json`` / ``xano.js``. Commands build a
:class:`ProjectContext` once and pass it to every engine; engines never
look at the working directory themselves.
"""

import importlib
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from .exceptions import XanoConfigError
from .sync.paths import NAMING_MODES, PathStrategy
from .utils import STATE_DIR_NAME

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "config.json"
PROJECT_MARKERS = ("xano.json", "xano.js")

DEFAULT_PATHS: dict[str, str] = {
    "addOns": "addons",
    "agents": "agents",
    "agentTriggers": "agents/triggers",
    "apis": "apis",
    "functions": "functions",
    "mcpServers": "mcp_servers",
    "mcpServerTriggers": "mcp_servers/triggers",
    "middlewares": "middlewares",
    "realtimeChannels": "realtime",
    "realtimeTriggers": "realtime/triggers",
    "tables": "tables",
    "tableTriggers": "tables/triggers",
    "tasks": "tasks",
    "tools": "tools",
    "workflowTests": "workflow_tests",
}

# Keys written by older releases
LEGACY_PATH_KEYS: dict[str, str] = {
    "addons": "addOns",
    "triggers": "tableTriggers",
    "workflow_tests": "workflowTests",
}


def get_default_paths() -> dict[str, str]:
    """Return a fresh copy of the default type directories."""
    return dict(DEFAULT_PATHS)


def normalize_paths(paths: Optional[dict[str, Any]]) -> dict[str, str]:
    """Merge user path overrides over the defaults.

    Legacy keys are renamed, trailing slashes removed and non-string
    values ignored.

    Args:
        paths: Raw ``paths`` mapping from a config file

    Returns:
        Complete path mapping
    """
    result = get_default_paths()
    for key, value in (paths or {}).items():
        if not isinstance(value, str) or not value.strip():
            continue
        result[LEGACY_PATH_KEYS.get(key, key)] = value.strip().rstrip("/")
    return result


@dataclass
class ProjectContext:
    """Everything an engine needs to know about the current project."""

    root: Path
    """Absolute project root"""

    workspace_id: int
    """Remote workspace id"""

    branch: str = ""
    """Remote branch label (empty for the live branch)"""

    workspace_name: str = ""
    """Display name of the workspace"""

    instance_name: str = ""
    """Display name of the instance"""

    paths: dict[str, str] = field(default_factory=get_default_paths)
    """Type directories relative to the root"""

    naming: str = "default"
    """File naming mode (default, vscode, vscode_name, vscode_id)"""

    strategy: Optional[PathStrategy] = None
    """Optional path/sanitizer override hooks"""

    strategy_ref: Optional[str] = None
    """Import reference the strategy was loaded from"""

    @property
    def state_dir(self) -> Path:
        """Directory holding the metadata caches."""
        return self.root / STATE_DIR_NAME

    def absolute(self, relative_path: str) -> Path:
        """Resolve a project-relative POSIX path."""
        return self.root / relative_path

    def relative(self, path: Path) -> str:
        """Return ``path`` relative to the root using forward slashes."""
        return path.resolve().relative_to(self.root.resolve()).as_posix()

    def to_dict(self) -> dict:
        """Serialize to the ``.xano/config.json`` layout."""
        data: dict[str, Any] = {
            "branch": self.branch,
            "instanceName": self.instance_name,
            "naming": self.naming,
            "paths": self.paths,
            "workspaceId": self.workspace_id,
            "workspaceName": self.workspace_name,
        }
        if self.strategy_ref:
            data["pathStrategy"] = self.strategy_ref
        return data


def find_project_root(start: Optional[Path] = None) -> Optional[Path]:
    """Walk up from ``start`` looking for a project marker.

    Args:
        start: Directory to start from (defaults to the current directory)

    Returns:
        The project root, or None when no marker is found
    """
    current = (start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        if (directory / STATE_DIR_NAME / CONFIG_FILE_NAME).is_file():
            return directory
        for marker in PROJECT_MARKERS:
            if (directory / marker).is_file():
                return directory
    return None


def is_initialized(root: Path) -> bool:
    """Check whether ``.xano/config.json`` exists under root."""
    return (root / STATE_DIR_NAME / CONFIG_FILE_NAME).is_file()


def load_strategy(reference: str) -> PathStrategy:
    """Import a :class:`PathStrategy` subclass from ``"module:Class"``.

    Args:
        reference: Import reference

    Returns:
        An instance of the referenced strategy

    Raises:
        XanoConfigError: If the reference cannot be imported or is not
            a PathStrategy
    """
    module_name, _, attr = reference.partition(":")
    if not module_name or not attr:
        raise XanoConfigError(
            f"Invalid pathStrategy '{reference}': expected 'module:ClassName'"
        )
    try:
        module = importlib.import_module(module_name)
        strategy_cls = getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise XanoConfigError(f"Cannot load pathStrategy '{reference}': {e}") from e

    strategy = strategy_cls()
    if not isinstance(strategy, PathStrategy):
        raise XanoConfigError(
            f"pathStrategy '{reference}' must subclass xanosync.PathStrategy"
        )
    return strategy


def _read_json(path: Path) -> dict:
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise XanoConfigError(f"Failed to read {path}: {e}") from e
    if not isinstance(data, dict):
        raise XanoConfigError(f"Failed to read {path}: expected a JSON object")
    return data


def load_project(start: Optional[Path] = None) -> ProjectContext:
    """Build the project context for a command invocation.

    Args:
        start: Directory to search from (defaults to the current directory)

    Returns:
        ProjectContext for the enclosing project

    Raises:
        XanoConfigError: If no project is found, the project is not
            initialized or its configuration cannot be read
    """
    root = find_project_root(start)
    if root is None:
        raise XanoConfigError('Not in a xano project. Run "xanosync init" first.')
    if not is_initialized(root):
        raise XanoConfigError(
            f'Project at {root} is not initialized. Run "xanosync init" first.'
        )

    data = _read_json(root / STATE_DIR_NAME / CONFIG_FILE_NAME)

    # xano.json may carry path and naming overrides
    overrides: dict = {}
    xano_json = root / "xano.json"
    if xano_json.is_file():
        overrides = _read_json(xano_json)

    workspace_id = data.get("workspaceId")
    if workspace_id is None:
        raise XanoConfigError(".xano/config.json is missing workspaceId")

    raw_paths = dict(data.get("paths") or {})
    raw_paths.update(overrides.get("paths") or {})

    naming = overrides.get("naming") or data.get("naming") or "default"
    if naming not in NAMING_MODES:
        raise XanoConfigError(
            f"Unknown naming mode '{naming}'. "
            f"Expected one of: {', '.join(NAMING_MODES)}"
        )

    strategy_ref = overrides.get("pathStrategy") or data.get("pathStrategy")
    strategy = load_strategy(strategy_ref) if strategy_ref else None

    context = ProjectContext(
        root=root,
        workspace_id=int(workspace_id),
        branch=data.get("branch") or "",
        workspace_name=data.get("workspaceName") or "",
        instance_name=data.get("instanceName") or "",
        paths=normalize_paths(raw_paths),
        naming=naming,
        strategy=strategy,
        strategy_ref=strategy_ref,
    )
    logger.debug(
        f"Loaded project at {root} (workspace {context.workspace_id}, "
        f"branch '{context.branch}', naming {context.naming})"
    )
    return context


def save_project(context: ProjectContext) -> Path:
    """Write ``.xano/config.json`` for a context.

    Args:
        context: Project context to persist

    Returns:
        Path of the written config file
    """
    context.state_dir.mkdir(parents=True, exist_ok=True)
    config_path = context.state_dir / CONFIG_FILE_NAME
    with open(config_path, "w", encoding="utf-8") as f:
        json.dump(context.to_dict(), f, indent=2, sort_keys=True)
        f.write("\n")
    return config_path
