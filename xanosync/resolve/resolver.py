"""Resolution of identifiers and references to workspace files."""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from ..sync.paths import sanitize, sanitize_path, snake_case
from .index import SearchEntry, SearchIndex
from .references import (
    DbRef,
    FunctionRunRef,
    extract_db_refs,
    extract_function_run_refs,
)

logger = logging.getLogger(__name__)

MATCH_EXACT_PATH = "exact_path"
MATCH_BASENAME = "basename"
MATCH_SANITIZED = "sanitized"

_ENDPOINT_RE = re.compile(r"^(.+?)_(GET|POST|PUT|DELETE|PATCH)$", re.IGNORECASE)


@dataclass
class ResolvedObject:
    """A workspace object matched by an identifier."""

    path: str
    match_type: str
    """One of ``exact_path``, ``basename`` or ``sanitized``"""

    name: str
    type: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "filePath": self.path,
            "matchType": self.match_type,
            "name": self.name,
            "type": self.type,
        }


@dataclass
class ResolvedRef:
    """A reference found in a source file and the file it points to."""

    kind: str
    """``db`` or ``function``"""

    target: str
    line: int
    column: int
    path: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "column": self.column,
            "kind": self.kind,
            "line": self.line,
            "path": self.path,
            "target": self.target,
        }


class _Matches:
    """Ordered results of one resolution tier, unique by path."""

    def __init__(self) -> None:
        self.items: list[ResolvedObject] = []
        self._seen: set[str] = set()

    def add(self, entries: list[SearchEntry], match_type: str) -> None:
        for entry in entries:
            if entry.path in self._seen:
                continue
            self._seen.add(entry.path)
            self.items.append(
                ResolvedObject(
                    path=entry.path,
                    match_type=match_type,
                    name=entry.basename,
                    type=entry.type,
                )
            )


def _suffix_match(entry: SearchEntry, sanitized: str, snake: str) -> bool:
    return (
        entry.path_no_ext.endswith(sanitized)
        or entry.path_no_ext.endswith(snake)
        or entry.sanitized_path_no_ext.endswith(sanitized)
        or entry.snake_path_no_ext.endswith(snake)
    )


class Resolver:
    """Resolves free-form identifiers against a search index.

    Tiers are tried in order and the first one producing any match wins:

    1. exact path, with or without ``.xs``
    2. file name
    3. sanitized or snake_case file name
    4. endpoint pattern ``<path>_<VERB>``
    5. path suffix, for queries containing ``/``
    """

    def __init__(self, index: SearchIndex):
        self.index = index

    def resolve(self, query: str) -> list[ResolvedObject]:
        """Resolve an identifier.

        Args:
            query: A path, file name, object name or endpoint pattern

        Returns:
            Matches of the first successful tier, empty when nothing matches
        """
        matches = _Matches()

        candidates = [query] if query.endswith(".xs") else [query, f"{query}.xs"]
        for candidate in candidates:
            entry = self.index.by_path(candidate)
            if entry is not None:
                matches.add([entry], MATCH_EXACT_PATH)
                return matches.items

        matches.add(self.index.by_basename(query), MATCH_BASENAME)
        if matches.items:
            return matches.items

        sanitized = sanitize(query)
        snake = snake_case(query)
        matches.add(self.index.by_sanitized(sanitized), MATCH_SANITIZED)
        if snake != sanitized:
            matches.add(self.index.by_sanitized(snake), MATCH_SANITIZED)
        if matches.items:
            return matches.items

        endpoint = _ENDPOINT_RE.match(query)
        if endpoint:
            pattern = f"{sanitize(endpoint.group(1))}_{endpoint.group(2).upper()}"
            matches.add(self.index.by_basename(pattern), MATCH_SANITIZED)
            matches.add(self.index.by_sanitized(pattern), MATCH_SANITIZED)
            if matches.items:
                return matches.items

        if "/" in query:
            sanitized_path = sanitize_path(query)
            snake_path = sanitize_path(query, snake_case)
            matches.add(
                [
                    entry
                    for entry in self.index.entries()
                    if _suffix_match(entry, sanitized_path, snake_path)
                ],
                MATCH_SANITIZED,
            )

        logger.debug(f"Resolved {query!r} to {len(matches.items)} object(s)")
        return matches.items


def resolve_db_ref(ref: DbRef, index: SearchIndex) -> Optional[str]:
    """Path of the table a ``db.*`` statement touches."""
    return index.table_path(ref.table)


def resolve_function_ref(ref: FunctionRunRef, index: SearchIndex) -> Optional[str]:
    """Path of the function a ``function.run`` call invokes.

    Full-name suffix matches win over a match on the last name segment.
    """
    functions = index.functions()
    sanitized = sanitize_path(ref.name)
    snake = sanitize_path(ref.name, snake_case)
    for entry in functions:
        if _suffix_match(entry, sanitized, snake):
            return entry.path

    last = ref.name.split("/")[-1]
    last_sanitized = sanitize(last)
    last_snake = snake_case(last)
    for entry in functions:
        if (
            entry.basename in (last_sanitized, last_snake)
            or entry.sanitized_basename == last_sanitized
            or entry.snake_basename == last_snake
        ):
            return entry.path
    return None


def resolve_refs(source: str, index: SearchIndex) -> list[ResolvedRef]:
    """Resolve every table and function reference in a source file.

    Args:
        source: XanoScript source
        index: Search index to resolve against

    Returns:
        Database references followed by function calls, each with the
        resolved path or None
    """
    resolved = [
        ResolvedRef(
            kind="db",
            target=ref.table,
            line=ref.line,
            column=ref.column,
            path=resolve_db_ref(ref, index),
        )
        for ref in extract_db_refs(source)
    ]
    resolved.extend(
        ResolvedRef(
            kind="function",
            target=ref.name,
            line=ref.line,
            column=ref.column,
            path=resolve_function_ref(ref, index),
        )
        for ref in extract_function_run_refs(source)
    )
    return resolved
