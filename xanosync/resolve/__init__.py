"""Identifier resolution and the workspace search index."""

from .index import (
    LazyIndex,
    PersistedIndex,
    SearchEntry,
    SearchIndex,
    add_search_entry,
    build_search_data,
    load_search_data,
    open_index,
    remove_search_entry,
    save_search_index,
    search_index_path,
    write_search_data,
)
from .references import (
    DbRef,
    FunctionRunRef,
    extract_db_refs,
    extract_function_run_refs,
)
from .resolver import (
    ResolvedObject,
    ResolvedRef,
    Resolver,
    resolve_db_ref,
    resolve_function_ref,
    resolve_refs,
)

__all__ = [
    "SearchEntry",
    "SearchIndex",
    "LazyIndex",
    "PersistedIndex",
    "open_index",
    "search_index_path",
    "build_search_data",
    "save_search_index",
    "load_search_data",
    "write_search_data",
    "add_search_entry",
    "remove_search_entry",
    "DbRef",
    "FunctionRunRef",
    "extract_db_refs",
    "extract_function_run_refs",
    "Resolver",
    "ResolvedObject",
    "ResolvedRef",
    "resolve_db_ref",
    "resolve_function_ref",
    "resolve_refs",
]
