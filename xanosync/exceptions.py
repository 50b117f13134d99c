"""Exceptions raised by xanosync."""

from typing import Optional


class XanoError(Exception):
    """Base exception for all xanosync errors."""


class XanoAPIError(XanoError):
    """Raised when the Xano metadata API returns an error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class XanoAuthenticationError(XanoAPIError):
    """Raised when the access token is missing, invalid or expired."""


class XanoPermissionError(XanoAPIError):
    """Raised when the token lacks access to the workspace."""


class XanoNotFoundError(XanoAPIError):
    """Raised when a remote object does not exist."""


class XanoConflictError(XanoAPIError):
    """Raised when the remote rejects a write as a duplicate."""


class XanoRateLimitError(XanoAPIError):
    """Raised when the API rate limit is exceeded."""


class XanoNetworkError(XanoAPIError):
    """Raised on transport failures (DNS, connect, timeouts)."""


class XanoInvalidResponseError(XanoAPIError):
    """Raised when the API answers with something that is not JSON."""


class XanoSyncError(XanoError):
    """Raised when a single file cannot be pushed or pulled.

    Engines catch it per file and record the message; the batch continues.
    """


class XanoConfigError(XanoError):
    """Raised when the project or credentials are missing or unreadable.

    Configuration errors are fatal: commands report them once and exit
    before any batch work starts.
    """
