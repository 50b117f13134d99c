"""xanosync - Mirror a Xano workspace as local XanoScript files."""

from .api import XanoClient
from .exceptions import (
    XanoAPIError,
    XanoAuthenticationError,
    XanoConfigError,
    XanoConflictError,
    XanoError,
    XanoInvalidResponseError,
    XanoNetworkError,
    XanoNotFoundError,
    XanoPermissionError,
    XanoRateLimitError,
    XanoSyncError,
)
from .sync.paths import PathObject, PathStrategy, ResolverContext
from .utils import compute_sha256

__all__ = [
    "XanoClient",
    "XanoError",
    "XanoAPIError",
    "XanoAuthenticationError",
    "XanoConfigError",
    "XanoConflictError",
    "XanoInvalidResponseError",
    "XanoNetworkError",
    "XanoNotFoundError",
    "XanoPermissionError",
    "XanoRateLimitError",
    "XanoSyncError",
    "PathObject",
    "PathStrategy",
    "ResolverContext",
    "compute_sha256",
]
