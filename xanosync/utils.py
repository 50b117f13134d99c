"""Utility functions for hashing and decoding XanoScript content."""

import base64
import hashlib
from pathlib import Path
from typing import Any, Optional

# =============================================================================
# Constants
# =============================================================================

# Page size used for bulk listing of remote collections
DEFAULT_PER_PAGE: int = 1000

# Retry configuration for transient errors
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_DELAY: float = 1.0  # seconds

# Extension of XanoScript source files
XS_EXTENSION: str = ".xs"

# Directory holding the metadata caches, relative to the project root
STATE_DIR_NAME: str = ".xano"


# =============================================================================
# Hashing
# =============================================================================


def compute_sha256(content: str) -> str:
    """Compute the SHA-256 hex digest of text content.

    Args:
        content: Text to hash (encoded as UTF-8)

    Returns:
        Lowercase hex digest
    """
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def compute_file_sha256(path: Path) -> str:
    """Compute the SHA-256 hex digest of a file's text content.

    Args:
        path: File to hash

    Returns:
        Lowercase hex digest
    """
    return compute_sha256(path.read_text(encoding="utf-8"))


# =============================================================================
# Base64 snapshots
# =============================================================================


def encode_base64(content: str) -> str:
    """Encode text content as base64 (UTF-8)."""
    return base64.b64encode(content.encode("utf-8")).decode("ascii")


def decode_base64(encoded: str) -> str:
    """Decode a base64 snapshot back to text."""
    return base64.b64decode(encoded).decode("utf-8")


# =============================================================================
# API payload helpers
# =============================================================================


def extract_xanoscript(value: Any) -> Optional[str]:
    """Extract XanoScript source from an API payload field.

    The metadata API returns source either as a plain string or wrapped
    as ``{"status": "ok", "value": "..."}``.

    Args:
        value: Raw ``xanoscript`` field from an API item

    Returns:
        Source text, or None if no source is available
    """
    if isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        inner = value.get("value")
        if isinstance(inner, str) and inner:
            return inner
    return None


def dedupe(items: list[str]) -> list[str]:
    """Remove duplicates while keeping first-seen order."""
    return list(dict.fromkeys(items))
