"""API client for the Xano metadata API."""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from .config import config
from .exceptions import (
    XanoAPIError,
    XanoAuthenticationError,
    XanoConfigError,
    XanoConflictError,
    XanoInvalidResponseError,
    XanoNetworkError,
    XanoNotFoundError,
    XanoPermissionError,
    XanoRateLimitError,
)
from .utils import DEFAULT_MAX_RETRIES, DEFAULT_PER_PAGE, DEFAULT_RETRY_DELAY

logger = logging.getLogger(__name__)

XANOSCRIPT_CONTENT_TYPE = "text/x-xanoscript"

# Object type -> resource path below /workspace/{id}/
RESOURCES: dict[str, str] = {
    "addon": "addon",
    "agent": "agent",
    "agent_trigger": "agent/trigger",
    "api_group": "apigroup",
    "function": "function",
    "mcp_server": "mcp_server",
    "mcp_server_trigger": "mcp_server/trigger",
    "middleware": "middleware",
    "table": "table",
    "table_trigger": "table/trigger",
    "task": "task",
    "tool": "tool",
    "workflow_test": "workflow_test",
}


class XanoClient:
    """Client for the workspace-scoped Xano metadata API.

    Every object type is addressed through the same five verbs (list, get,
    create, update, delete). Source is always exchanged as raw XanoScript.
    API endpoints live below their API group and need its id.
    """

    def __init__(
        self,
        workspace_id: int,
        branch: str = "",
        access_token: str | None = None,
        instance_origin: str | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        timeout: float = 30.0,
    ):
        """Initialize the client.

        Args:
            workspace_id: Remote workspace id
            branch: Branch label (empty for the live branch)
            access_token: Optional token (uses config if not provided)
            instance_origin: Optional origin (uses config if not provided)
            max_retries: Maximum number of retry attempts (default: 3)
            retry_delay: Initial delay between retries in seconds (default: 1.0)
            timeout: Request timeout in seconds (default: 30.0)
        """
        self.workspace_id = workspace_id
        self.branch = branch
        self.access_token = access_token or config.access_token
        self.instance_origin = (instance_origin or config.instance_origin or "").rstrip(
            "/"
        )
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout

        if not self.access_token:
            raise XanoConfigError(
                "Access token not configured. Set XANO_ACCESS_TOKEN or run "
                '"xanosync init".'
            )
        if not self.instance_origin:
            raise XanoConfigError(
                "Instance origin not configured. Set XANO_INSTANCE_ORIGIN or run "
                '"xanosync init".'
            )

        self._client: httpx.Client | None = None

    @property
    def base_url(self) -> str:
        return f"{self.instance_origin}/api:meta/workspace/{self.workspace_id}"

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                headers={
                    "Authorization": f"Bearer {self.access_token}",
                    "Accept": "application/json",
                },
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
            )
        return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def __enter__(self) -> XanoClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _should_retry(self, exception: Exception, attempt: int) -> bool:
        """Determine if a request should be retried.

        Args:
            exception: The exception that occurred
            attempt: Current attempt number (0-based)

        Returns:
            True if the request should be retried, False otherwise
        """
        if attempt >= self.max_retries:
            return False

        if isinstance(exception, (XanoNetworkError, XanoRateLimitError)):
            return True

        if isinstance(exception, httpx.HTTPStatusError):
            return 500 <= exception.response.status_code < 600

        return False

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Calculate delay before next retry using exponential backoff.

        Args:
            attempt: Current attempt number (0-based)

        Returns:
            Delay in seconds
        """
        import random

        base_delay = self.retry_delay * (2**attempt)
        # Jitter: +/- 25% of base delay
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter

    @staticmethod
    def _error_detail(response: httpx.Response) -> str | None:
        """Extract the server's message/error/detail field, if any."""
        if not response.content:
            return None
        try:
            error_data = response.json()
        except ValueError:
            return None
        if isinstance(error_data, dict):
            msg = (
                error_data.get("message")
                or error_data.get("error")
                or error_data.get("detail")
            )
            if msg:
                return str(msg)
        return None

    def _handle_http_error(
        self, e: httpx.HTTPStatusError, attempt: int
    ) -> tuple[Exception, bool]:
        """Handle HTTP errors and determine if retry should occur.

        Args:
            e: The HTTP error exception
            attempt: Current attempt number

        Returns:
            Tuple of (exception to raise, should_retry)
        """
        status_code = e.response.status_code
        detail = self._error_detail(e.response)

        def message(default: str) -> str:
            return f"{default}: {detail}" if detail else default

        if status_code == 401:
            raise XanoAuthenticationError(
                message("Invalid access token or unauthorized access"), status_code
            ) from e
        elif status_code == 403:
            raise XanoPermissionError(
                message("Access forbidden - check your workspace permissions"),
                status_code,
            ) from e
        elif status_code == 404:
            raise XanoNotFoundError(message("Resource not found"), status_code) from e
        elif status_code == 409:
            raise XanoConflictError(message("Conflict"), status_code) from e
        elif status_code == 429:
            error = XanoRateLimitError(
                "Rate limit exceeded - please try again later", status_code
            )
            return (error, attempt < self.max_retries)
        else:
            error = XanoAPIError(
                message(f"API request failed with status {status_code}"), status_code
            )
            should_retry = 500 <= status_code < 600 and attempt < self.max_retries
            return (error, should_retry)

    def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """Make an API request with retry logic.

        Args:
            method: HTTP method
            endpoint: Resource path below the workspace
            **kwargs: Additional arguments passed to httpx

        Returns:
            Response JSON data

        Raises:
            XanoAPIError: If the request fails after all retries
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        params = dict(kwargs.pop("params", None) or {})
        if self.branch:
            params["branch"] = self.branch

        last_exception: Exception | None = None
        client = self._get_client()

        for attempt in range(self.max_retries + 1):
            try:
                logger.debug(f"{method} {url} {params}")
                response = client.request(method, url, params=params, **kwargs)
                response.raise_for_status()

                content_type = response.headers.get("Content-Type", "")
                if response.content and "application/json" not in content_type:
                    if "text/html" in content_type:
                        raise XanoAuthenticationError(
                            "Invalid access token - server returned HTML "
                            "instead of JSON"
                        )
                    raise XanoInvalidResponseError(
                        f"Unexpected response type: {content_type}"
                    )

                if response.content:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise XanoInvalidResponseError(
                            "Invalid JSON response from server - "
                            "check your instance origin and network connection"
                        ) from e
                return {}

            except httpx.HTTPStatusError as e:
                error, should_retry = self._handle_http_error(e, attempt)
                last_exception = error

                if should_retry:
                    if isinstance(error, XanoRateLimitError):
                        retry_after = e.response.headers.get("Retry-After")
                        if retry_after and retry_after.isdigit():
                            delay = float(retry_after)
                        else:
                            delay = self._calculate_retry_delay(attempt)
                    else:
                        delay = self._calculate_retry_delay(attempt)
                    logger.debug(f"Retrying {method} {url} in {delay:.2f}s")
                    time.sleep(delay)
                    continue
                raise error from e
            except XanoAPIError:
                raise
            except httpx.RequestError as e:
                error = XanoNetworkError(f"Network error: {e}")
                last_exception = error
                if self._should_retry(error, attempt):
                    delay = self._calculate_retry_delay(attempt)
                    time.sleep(delay)
                    continue
                raise error from e

        if last_exception:
            raise last_exception
        raise XanoAPIError("Request failed after all retry attempts")

    # =========================
    # Resource routing
    # =========================

    def _resource(self, object_type: str, apigroup_id: int | None = None) -> str:
        """Return the collection path for an object type.

        Raises:
            XanoAPIError: For types the metadata API does not expose, or
                endpoints without a group id
        """
        if object_type == "api_endpoint":
            if not apigroup_id:
                raise XanoAPIError("apigroup_id is required for API endpoints")
            return f"apigroup/{apigroup_id}/api"
        resource = RESOURCES.get(object_type)
        if resource is None:
            raise XanoAPIError(f"Unsupported type: {object_type}")
        return resource

    # =========================
    # Listing
    # =========================

    def list_objects(
        self,
        object_type: str,
        page: int = 1,
        per_page: int = DEFAULT_PER_PAGE,
        apigroup_id: int | None = None,
    ) -> dict:
        """Fetch one page of a collection.

        Args:
            object_type: Object type to list
            page: Page number (1-based)
            per_page: Page size
            apigroup_id: Owning group (api_endpoint only)

        Returns:
            Page dict with ``items`` and, when more pages exist, ``nextPage``
        """
        result = self._request(
            "GET",
            self._resource(object_type, apigroup_id),
            params={"page": page, "per_page": per_page, "include_xanoscript": "true"},
        )
        if isinstance(result, list):
            return {"items": result}
        return result

    def list_all(
        self,
        object_type: str,
        apigroup_id: int | None = None,
        per_page: int = DEFAULT_PER_PAGE,
    ) -> list[dict]:
        """Fetch every item of a collection, following ``nextPage``.

        Args:
            object_type: Object type to list
            apigroup_id: Owning group (api_endpoint only)
            per_page: Page size

        Returns:
            All items in server order
        """
        items: list[dict] = []
        page = 1
        seen: set[int] = set()

        while page not in seen:
            seen.add(page)
            result = self.list_objects(
                object_type, page=page, per_page=per_page, apigroup_id=apigroup_id
            )
            items.extend(result.get("items") or [])
            next_page = result.get("nextPage")
            if not next_page:
                break
            page = int(next_page)

        logger.debug(f"Listed {len(items)} {object_type} item(s)")
        return items

    def list_api_endpoints(self) -> list[dict]:
        """List endpoints of every API group.

        Each item is tagged with ``apigroup_id`` so it can be addressed
        later.

        Returns:
            Endpoint items across all groups
        """
        endpoints: list[dict] = []
        for group in self.list_all("api_group"):
            for endpoint in self.list_all("api_endpoint", apigroup_id=group["id"]):
                endpoint.setdefault("apigroup_id", group["id"])
                endpoints.append(endpoint)
        return endpoints

    # =========================
    # Single object operations
    # =========================

    def get_object(
        self, object_type: str, object_id: int, apigroup_id: int | None = None
    ) -> dict:
        """Fetch one object including its XanoScript source.

        Endpoints without a known group are located through
        :meth:`list_api_endpoints` first.

        Raises:
            XanoNotFoundError: If the endpoint cannot be located
        """
        if object_type == "api_endpoint" and not apigroup_id:
            for endpoint in self.list_api_endpoints():
                if endpoint.get("id") == object_id:
                    apigroup_id = endpoint["apigroup_id"]
                    break
            else:
                raise XanoNotFoundError("Unable to locate request.", 404)

        return self._request(
            "GET",
            f"{self._resource(object_type, apigroup_id)}/{object_id}",
            params={"include_xanoscript": "true"},
        )

    def create_object(
        self, object_type: str, content: str, apigroup_id: int | None = None
    ) -> dict:
        """Create an object from XanoScript source.

        Returns:
            The created object, including its new ``id``
        """
        return self._request(
            "POST",
            self._resource(object_type, apigroup_id),
            params={"include_xanoscript": "true"},
            content=content.encode("utf-8"),
            headers={"Content-Type": XANOSCRIPT_CONTENT_TYPE},
        )

    def update_object(
        self,
        object_type: str,
        object_id: int,
        content: str,
        apigroup_id: int | None = None,
    ) -> dict:
        """Replace an object's source.

        Returns:
            The updated object
        """
        return self._request(
            "PUT",
            f"{self._resource(object_type, apigroup_id)}/{object_id}",
            params={"include_xanoscript": "true"},
            content=content.encode("utf-8"),
            headers={"Content-Type": XANOSCRIPT_CONTENT_TYPE},
        )

    def delete_object(
        self, object_type: str, object_id: int, apigroup_id: int | None = None
    ) -> Any:
        """Delete an object."""
        return self._request(
            "DELETE", f"{self._resource(object_type, apigroup_id)}/{object_id}"
        )
