"""XanoScript type sniffing.

Object types are inferred from the leading keyword of the first
significant line (not blank, not a ``//`` comment). This is keyword
matching only; no XanoScript parsing happens here.
"""

import re
from pathlib import PurePosixPath
from typing import NamedTuple, Optional

# Ordered (keyword, object type) rules. The first rule whose keyword,
# followed by a space, starts the line wins.
TYPE_RULES: tuple[tuple[str, str], ...] = (
    ("function", "function"),
    ("table", "table"),
    ("table_trigger", "table_trigger"),
    ("query", "api_endpoint"),
    ("api_group", "api_group"),
    ("middleware", "middleware"),
    ("addon", "addon"),
    ("task", "task"),
    ("workflow_test", "workflow_test"),
    ("agent", "agent"),
    ("agent_trigger", "agent_trigger"),
    ("tool", "tool"),
    ("mcp_server", "mcp_server"),
    ("mcp_server_trigger", "mcp_server_trigger"),
    ("realtime_channel", "realtime_channel"),
    ("realtime_trigger", "realtime_trigger"),
)

BLOCK_KEYWORDS: tuple[str, ...] = tuple(keyword for keyword, _ in TYPE_RULES)

OBJECT_TYPES: tuple[str, ...] = tuple(object_type for _, object_type in TYPE_RULES)

HTTP_VERBS = ("GET", "POST", "PUT", "DELETE", "PATCH")

_NAME_RE = re.compile(
    r"^(" + "|".join(BLOCK_KEYWORDS) + r")\s+"
    r'(?:"([^"]+)"|([a-zA-Z_][a-zA-Z0-9_]*))',
    re.IGNORECASE,
)
_API_RE = re.compile(r"^query\s+(GET|POST|PUT|DELETE|PATCH)\s+([^\s(]+)", re.IGNORECASE)
_CANONICAL_RE = re.compile(r'\bcanonical\s*=\s*"([^"]+)"')


class ApiDetails(NamedTuple):
    """Verb and URL pattern declared by a ``query`` block."""

    verb: str
    path: str


class Block(NamedTuple):
    """A top-level block declaration found in a file."""

    keyword: str
    line: int
    name: str


def _first_significant_line(content: str) -> Optional[str]:
    for line in content.strip().splitlines():
        clean = line.strip()
        if clean and not clean.startswith("//"):
            return clean
    return None


def detect_type(content: str) -> Optional[str]:
    """Detect the object type declared by XanoScript source.

    Args:
        content: File content

    Returns:
        Object type, or None when no rule matches
    """
    line = _first_significant_line(content)
    if line is None:
        return None
    for keyword, object_type in TYPE_RULES:
        if line.startswith(keyword + " "):
            return object_type
    return None


def extract_name(content: str) -> Optional[str]:
    """Extract the declared object name.

    Examples:
        >>> extract_name('function "calc_total" {')
        'calc_total'
    """
    line = _first_significant_line(content)
    if line is None:
        return None
    match = _NAME_RE.match(line)
    if not match:
        return None
    return match.group(2) or match.group(3)


def extract_api_details(content: str) -> Optional[ApiDetails]:
    """Extract verb and path from an endpoint declaration.

    Examples:
        >>> extract_api_details("query POST auth/login {")
        ApiDetails(verb='POST', path='auth/login')
    """
    line = _first_significant_line(content)
    if line is None:
        return None
    match = _API_RE.match(line)
    if not match:
        return None
    return ApiDetails(verb=match.group(1).upper(), path=match.group(2))


def extract_canonical(content: str) -> Optional[str]:
    """Extract the ``canonical = "..."`` value of an API group."""
    match = _CANONICAL_RE.search(content)
    return match.group(1) if match else None


def count_blocks(content: str) -> list[Block]:
    """List the top-level block declarations in a file.

    Braces inside string literals are ignored when tracking depth, and
    property assignments such as ``api_group = "x"`` are not counted.

    Args:
        content: File content

    Returns:
        One Block per top-level declaration
    """
    blocks: list[Block] = []
    depth = 0
    in_string = False
    quote = ""

    for line_number, line in enumerate(content.split("\n"), start=1):
        depth_before = depth
        stripped = line.strip()

        if depth_before == 0 and stripped and not stripped.startswith("//"):
            for keyword in BLOCK_KEYWORDS:
                if not stripped.startswith(keyword + " "):
                    continue
                match = re.match(
                    rf'^{keyword}\s+(?:"([^"]+)"|([a-zA-Z_/][a-zA-Z0-9_/]*))',
                    stripped,
                    re.IGNORECASE,
                )
                if match:
                    name = match.group(1) or match.group(2) or "(unnamed)"
                    blocks.append(Block(keyword=keyword, line=line_number, name=name))
                break

        previous = ""
        for char in line:
            if previous == "\\":
                previous = ""
                continue
            if char in ('"', "'") and not in_string:
                in_string, quote = True, char
            elif in_string and char == quote:
                in_string, quote = False, ""
            elif not in_string:
                if char == "{":
                    depth += 1
                elif char == "}":
                    depth -= 1
            previous = char

    return blocks


def validate_single_block(content: str) -> Optional[str]:
    """Check that a file declares exactly one top-level block.

    Returns:
        None when valid, otherwise an error message
    """
    blocks = count_blocks(content)
    if not blocks:
        return (
            "No valid XanoScript block found. File must start with a keyword "
            "like function, table, query, task, agent, tool, mcp_server, etc."
        )
    if len(blocks) > 1:
        listing = "\n".join(f'  Line {b.line}: {b.keyword} "{b.name}"' for b in blocks)
        return (
            "Multiple XanoScript blocks found in single file (only one allowed):\n"
            f"{listing}\n\nSplit into separate files - "
            f"one {blocks[0].keyword} per file."
        )
    return None


def _is_within(path: str, base: str) -> bool:
    path_parts = PurePosixPath(path).parts
    base_parts = PurePosixPath(base).parts
    return path_parts[: len(base_parts)] == base_parts


# Paths key -> object types stored under it
_PATH_KEY_TYPES: dict[str, tuple[str, ...]] = {
    "addOns": ("addon",),
    "agents": ("agent",),
    "agentTriggers": ("agent_trigger",),
    "apis": ("api_endpoint", "api_group"),
    "functions": ("function",),
    "mcpServers": ("mcp_server",),
    "mcpServerTriggers": ("mcp_server_trigger",),
    "middlewares": ("middleware",),
    "realtimeChannels": ("realtime_channel",),
    "realtimeTriggers": ("realtime_trigger",),
    "tables": ("table",),
    "tableTriggers": ("table_trigger",),
    "tasks": ("task",),
    "tools": ("tool",),
    "workflowTests": ("workflow_test",),
}


def types_for_input(input_path: str, paths: dict[str, str]) -> Optional[list[str]]:
    """Map a user-supplied path to the object types it covers.

    A configured directory matches when the input is that directory, lies
    inside it, or contains it. ``tables`` therefore also selects table
    triggers stored under ``tables/triggers``.

    Args:
        input_path: Project-relative path (trailing slash allowed)
        paths: Type directories

    Returns:
        Matching object types, or None when no directory matches
    """
    normalized = input_path.strip().rstrip("/")
    if not normalized:
        return None

    types: list[str] = []
    for key, base in paths.items():
        if not base or key not in _PATH_KEY_TYPES:
            continue
        if _is_within(normalized, base) or _is_within(base, normalized):
            for object_type in _PATH_KEY_TYPES[key]:
                if object_type not in types:
                    types.append(object_type)
    return types or None
