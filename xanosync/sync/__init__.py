"""Synchronization engine for xanosync - object store, fetch, push and pull."""

from .detector import detect_type, types_for_input, validate_single_block
from .fetch import (
    DiffResult,
    FetchedObject,
    FetchResult,
    diff,
    fetch_all,
    rebuild_objects,
    sync_metadata,
)
from .merge import MergeResult, merge_three_way
from .paths import PathObject, PathStrategy, ResolverContext, generate_path
from .pull import PullEngine, PullResult
from .push import PushEngine, PushResult, explain_sql_error
from .scanner import XsScanner
from .status import FileStatus, StatusDetail, StatusEntry, compare_three_way
from .store import (
    ObjectStore,
    TrackedObject,
    find_api_group_for_endpoint,
    find_by_id,
    find_by_path,
    find_by_type,
    remove_by_path,
    update_status,
    upsert_object,
)

__all__ = [
    "ObjectStore",
    "TrackedObject",
    "upsert_object",
    "find_by_path",
    "find_by_id",
    "find_by_type",
    "remove_by_path",
    "update_status",
    "find_api_group_for_endpoint",
    "PathObject",
    "PathStrategy",
    "ResolverContext",
    "generate_path",
    "detect_type",
    "types_for_input",
    "validate_single_block",
    "FetchedObject",
    "FetchResult",
    "DiffResult",
    "fetch_all",
    "diff",
    "rebuild_objects",
    "sync_metadata",
    "XsScanner",
    "PushEngine",
    "PushResult",
    "explain_sql_error",
    "PullEngine",
    "PullResult",
    "MergeResult",
    "merge_three_way",
    "FileStatus",
    "StatusDetail",
    "StatusEntry",
    "compare_three_way",
]
