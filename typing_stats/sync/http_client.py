"""HTTP transport for the remote stats store.

Requests go through one ``requests.Session``. Failures are sorted into
three kinds: authentication problems surface as ``RemoteAuthError`` straight
away, server errors, dropped connections and timeouts are retried with
backoff, and everything else becomes ``RemoteStoreError``.
"""

import gzip
import json
import logging
from typing import Any, Optional

import requests

from .. import __version__
from .protocols import StoreError
from .retry import RetryConfig, retry_with_backoff, RetryExhausted

__all__ = [
    "BaseApiClient",
    "RemoteStoreError",
    "RemoteAuthError",
]

logger = logging.getLogger(__name__)


class RemoteStoreError(StoreError):
    """Remote store request failed."""

    pass


class RemoteAuthError(RemoteStoreError):
    """The sync token was rejected."""

    pass


class _TransientError(Exception):
    """Internal: the request may succeed if repeated."""

    pass


_AUTH_FAILURES = {
    401: "Invalid or expired sync token",
    403: "Device not authorized",
}


class BaseApiClient:
    """Session owner and request helper shared by remote store clients."""

    DEFAULT_RETRY_CONFIG = RetryConfig(max_retries=3, base_delay=1.0, max_delay=30.0)

    USER_AGENT = f"TypingStats/{__version__}"

    def __init__(
        self,
        api_url: str,
        token: Optional[str] = None,
        device_id: Optional[str] = None,
        compress: bool = True,
        timeout: int = 30,
        retry_config: Optional[RetryConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the client.

        Args:
            api_url: Remote store base URL
            token: Sync token sent as a bearer credential
            device_id: This installation's device id
            compress: Gzip request bodies that ask for it
            timeout: Per-request timeout in seconds
            retry_config: Backoff settings for transient failures
            session: Optional requests session (for tests)
        """
        self.api_url = api_url.rstrip("/")
        self.token = token
        self.device_id = device_id
        self.compress = compress
        self.timeout = timeout
        self.retry_config = retry_config or self.DEFAULT_RETRY_CONFIG
        self._session = session or requests.Session()
        self._owns_session = session is None

    def _get_headers(self) -> dict:
        headers = {
            "Accept": "application/json",
            "User-Agent": self.USER_AGENT,
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if self.device_id:
            headers["X-Device-ID"] = self.device_id
        return headers

    def _request_options(
        self, data: Optional[dict], params: Optional[dict], compress: bool
    ) -> dict[str, Any]:
        """Keyword arguments for ``Session.request``."""
        headers = self._get_headers()
        options: dict[str, Any] = {"headers": headers, "timeout": self.timeout}
        if params:
            options["params"] = params
        if data is None:
            return options

        if compress and self.compress:
            headers["Content-Type"] = "application/json"
            headers["Content-Encoding"] = "gzip"
            options["data"] = gzip.compress(json.dumps(data).encode("utf-8"))
        else:
            options["json"] = data
        return options

    @staticmethod
    def _parse_response(response: requests.Response) -> dict:
        """Return the JSON body or raise the matching error."""
        if response.status_code in _AUTH_FAILURES:
            raise RemoteAuthError(_AUTH_FAILURES[response.status_code])
        if response.status_code >= 500:
            raise _TransientError(f"Server error: {response.status_code}")
        if response.status_code >= 400:
            raise RemoteStoreError(f"API error ({response.status_code}): {response.reason}")
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as e:
            raise RemoteStoreError(f"Invalid JSON response: {e}") from e
        if not isinstance(body, dict):
            raise RemoteStoreError(
                f"Expected a JSON object, got {type(body).__name__}"
            )
        return body

    def _send(self, method: str, url: str, options: dict) -> dict:
        """One attempt, with transport failures marked as transient."""
        if self._session is None:
            raise RemoteStoreError("Client is closed")
        try:
            response = self._session.request(method, url, **options)
        except requests.exceptions.ConnectionError as e:
            raise _TransientError(f"Cannot connect to remote store: {e}") from e
        except requests.exceptions.Timeout as e:
            raise _TransientError("Request timed out") from e
        except requests.exceptions.RequestException as e:
            # Bad URL, redirect loop, broken body and the like; retrying won't help
            raise RemoteStoreError(f"Request to {url} failed: {e}") from e
        return self._parse_response(response)

    def _request(
        self,
        method: str,
        endpoint: str,
        data: Optional[dict] = None,
        params: Optional[dict] = None,
        compress: bool = False,
        retry: bool = True,
    ) -> dict:
        """Call ``endpoint`` (relative to ``api_url``) and return its JSON body.

        Raises:
            RemoteAuthError: For 401/403 responses (never retried)
            RemoteStoreError: For any other failure
        """
        url = f"{self.api_url}/{endpoint.lstrip('/')}"
        options = self._request_options(data, params, compress)

        try:
            if not retry:
                return self._send(method, url, options)
            return retry_with_backoff(
                lambda: self._send(method, url, options),
                config=self.retry_config,
                retryable_exceptions=(_TransientError,),
            )
        except _TransientError as e:
            raise RemoteStoreError(str(e)) from e
        except RetryExhausted as e:
            logger.debug(f"{method} {endpoint} gave up after {e.attempts} attempts")
            raise RemoteStoreError(str(e.last_error or e)) from e.last_error

    def set_token(self, token: Optional[str]) -> None:
        self.token = token

    def fail_fast(self, timeout: int = 5) -> None:
        """Single attempt with a short timeout from now on (used on shutdown)."""
        self.retry_config = RetryConfig(max_retries=0)
        self.timeout = min(self.timeout, timeout)

    def is_reachable(self) -> bool:
        """True if the store answers its health endpoint."""
        try:
            self._request("GET", "health", retry=False)
            return True
        except RemoteStoreError:
            return False

    def close(self) -> None:
        """Close the session if we created it."""
        if self._owns_session and self._session is not None:
            self._session.close()
        self._session = None

    def __enter__(self) -> "BaseApiClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
