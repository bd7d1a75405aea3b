"""Base HTTP client for Convex Bridge.

This module provides a base async HTTP client with connection pooling,
rate limiting and error mapping shared by the Convex and geocoding clients.
"""

import asyncio
import time
from typing import Any
from urllib.parse import urljoin

import httpx

from convex_migration.client.exceptions import (
    APIError,
    AuthenticationError,
    AuthorizationError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ServerError,
)
from convex_migration.utils.logging import (
    get_logger,
    log_api_request,
    sanitize_payload,
    should_log_payloads,
    truncate_payload,
)

logger = get_logger(__name__)


class BaseAPIClient:
    """Base async HTTP client with rate limiting and error handling.

    This client provides:
    - Connection pooling
    - Rate limiting
    - Request/response logging
    - Mapping of HTTP error statuses to exceptions
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        verify_ssl: bool = True,
        timeout: int = 30,
        rate_limit: int = 20,
        log_payloads: bool = False,
        max_payload_size: int = 10000,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize base API client.

        Args:
            base_url: Base URL for API requests
            token: Bearer token; no Authorization header is sent when None
            verify_ssl: Whether to verify SSL certificates
            timeout: Request timeout in seconds
            rate_limit: Maximum requests per second (0 disables)
            log_payloads: Enable request/response payload logging at DEBUG level
            max_payload_size: Maximum payload size (chars) to log before truncation
            transport: Optional custom httpx transport
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.verify_ssl = verify_ssl

        self.log_payloads = log_payloads
        self.max_payload_size = max_payload_size

        self.rate_limit = rate_limit
        self._rate_limit_lock = asyncio.Lock()
        self._last_request_time: float = 0
        self._min_request_interval = 1.0 / rate_limit if rate_limit > 0 else 0

        self.client = httpx.AsyncClient(
            headers=self._build_headers(),
            timeout=httpx.Timeout(timeout, connect=10.0),
            verify=verify_ssl,
            follow_redirects=True,
            transport=transport,
        )

        logger.debug("client_initialized", base_url=self.base_url, rate_limit=rate_limit)

    def _build_headers(self) -> dict[str, str]:
        """Build HTTP headers for requests."""
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _build_url(self, endpoint: str) -> str:
        """Build full URL from endpoint."""
        endpoint = endpoint.lstrip("/")
        return urljoin(f"{self.base_url}/", endpoint)

    async def _rate_limit_wait(self) -> None:
        """Implement rate limiting by waiting if necessary."""
        if self._min_request_interval > 0:
            async with self._rate_limit_lock:
                now = time.time()
                time_since_last = now - self._last_request_time

                if time_since_last < self._min_request_interval:
                    await asyncio.sleep(self._min_request_interval - time_since_last)

                self._last_request_time = time.time()

    @staticmethod
    def _error_message(error_data: dict[str, Any]) -> str:
        return str(
            error_data.get("errorMessage")
            or error_data.get("error_message")
            or error_data.get("detail")
            or error_data.get("message")
            or "Unknown error"
        )

    def _handle_error_response(self, response: httpx.Response) -> None:
        """Raise the exception matching an error response.

        Raises:
            AuthenticationError: For 401 responses
            AuthorizationError: For 403 responses
            NotFoundError: For 404 responses
            RateLimitError: For 429 responses
            ServerError: For 5xx responses
            APIError: For other error responses
        """
        status_code = response.status_code

        try:
            error_data = response.json()
        except ValueError:
            error_data = {"detail": response.text}

        if not isinstance(error_data, dict):
            error_data = {"detail": str(error_data)}

        error_message = self._error_message(error_data)

        if status_code == 401:
            raise AuthenticationError(
                message="Authentication failed", status_code=status_code, response=error_data
            )
        elif status_code == 403:
            raise AuthorizationError(
                message="Authorization failed", status_code=status_code, response=error_data
            )
        elif status_code == 404:
            raise NotFoundError(
                message="Resource not found", status_code=status_code, response=error_data
            )
        elif status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                message="Rate limit exceeded",
                status_code=status_code,
                response=error_data,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        elif 500 <= status_code < 600:
            raise ServerError(
                message=f"Server error: {error_message}",
                status_code=status_code,
                response=error_data,
            )
        else:
            raise APIError(
                message=f"API error: {error_message}",
                status_code=status_code,
                response=error_data,
            )

    async def request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
    ) -> Any:
        """Make an HTTP request with rate limiting and error handling.

        Args:
            method: HTTP method
            endpoint: API endpoint path
            params: Query parameters
            json_data: JSON request body

        Returns:
            Decoded JSON response body

        Raises:
            NetworkError: For network-related errors
            Various APIError subclasses: For API errors
        """
        url = self._build_url(endpoint)

        await self._rate_limit_wait()

        if should_log_payloads(logger, self.log_payloads) and json_data is not None:
            logger.debug(
                "api_request_payload",
                method=method,
                url=url,
                payload=truncate_payload(sanitize_payload(json_data), self.max_payload_size),
            )

        start_time = time.time()

        try:
            response = await self.client.request(method=method, url=url, params=params, json=json_data)
        except httpx.TimeoutException as e:
            logger.error("timeout_error", method=method, url=url, error=str(e))
            raise NetworkError(f"Request timeout: {str(e)}") from e
        except httpx.TransportError as e:
            logger.error("network_error", method=method, url=url, error=str(e))
            raise NetworkError(f"Network error: {str(e)}") from e

        log_api_request(
            logger,
            method=method,
            url=url,
            status_code=response.status_code,
            duration_ms=(time.time() - start_time) * 1000,
        )

        if should_log_payloads(logger, self.log_payloads) and response.text:
            logger.debug(
                "api_response_payload",
                method=method,
                url=url,
                status_code=response.status_code,
                payload=response.text[: self.max_payload_size],
            )

        if response.status_code >= 400:
            self._handle_error_response(response)

        return response.json() if response.text else {}

    async def get(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        """Make a GET request."""
        return await self.request("GET", endpoint, params=params)

    async def post(
        self,
        endpoint: str,
        json_data: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Make a POST request."""
        return await self.request("POST", endpoint, params=params, json_data=json_data)

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        await self.client.aclose()
        logger.debug("client_closed", base_url=self.base_url)

    async def __aenter__(self) -> "BaseAPIClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()
