"""Keyword scans for cross-object references inside XanoScript."""

import re
from typing import NamedTuple

DB_OPERATIONS = (
    "add",
    "add_or_edit",
    "del",
    "edit",
    "get",
    "get_all",
    "query",
    "query_all",
)

# Longer operation names first so "get_all" is not read as "get"
_DB_REF_RE = re.compile(
    r"\bdb\.("
    + "|".join(sorted(DB_OPERATIONS, key=len, reverse=True))
    + r")\s+([A-Za-z_]\w*)"
)
_FUNCTION_RUN_RE = re.compile(
    r'\bfunction\.run\s+(?:"([^"]+)"|([A-Za-z_][\w/]*))'
)


class DbRef(NamedTuple):
    """A ``db.<operation> <table>`` statement."""

    operation: str
    table: str
    line: int
    column: int


class FunctionRunRef(NamedTuple):
    """A ``function.run "<name>"`` statement."""

    name: str
    line: int
    column: int


def _code_lines(source: str):
    """Yield (line number, line) for lines that are not comments."""
    for number, line in enumerate(source.splitlines(), start=1):
        if line.lstrip().startswith("//"):
            continue
        yield number, line


def extract_db_refs(source: str) -> list[DbRef]:
    """Find database operations and the tables they touch.

    Args:
        source: XanoScript source

    Returns:
        References in source order, with 1-based line and column
    """
    refs = []
    for number, line in _code_lines(source):
        for match in _DB_REF_RE.finditer(line):
            refs.append(
                DbRef(
                    operation=match.group(1),
                    table=match.group(2),
                    line=number,
                    column=match.start() + 1,
                )
            )
    return refs


def extract_function_run_refs(source: str) -> list[FunctionRunRef]:
    """Find ``function.run`` calls.

    Quoted names are returned without their quotes. Bare identifiers are
    accepted as well.

    Args:
        source: XanoScript source

    Returns:
        References in source order, with 1-based line and column
    """
    refs = []
    for number, line in _code_lines(source):
        for match in _FUNCTION_RUN_RE.finditer(line):
            refs.append(
                FunctionRunRef(
                    name=match.group(1) or match.group(2),
                    line=number,
                    column=match.start() + 1,
                )
            )
    return refs
