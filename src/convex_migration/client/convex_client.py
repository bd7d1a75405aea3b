"""Convex target client.

Calls Convex queries and mutations through the deployment's HTTP function
API (``/api/query`` and ``/api/mutation``).
"""

import json
from typing import Any

import httpx

from convex_migration.client.base_client import BaseAPIClient
from convex_migration.client.exceptions import ConvexFunctionError
from convex_migration.config import TargetConfig
from convex_migration.migration.extractor import Page
from convex_migration.utils.logging import get_logger
from convex_migration.utils.retry import retry_api_call, retry_mutation

logger = get_logger(__name__)

# Status used by the HTTP function API when the function itself threw.
FUNCTION_ERROR_STATUS = 560


class ConvexTargetClient(BaseAPIClient):
    """Client for a Convex deployment.

    Every call posts ``{"path", "args", "format": "json"}`` and unwraps the
    ``{"status": "success", "value": ...}`` envelope. A ``status: error``
    envelope, whether sent with 200 or 560, raises
    :class:`ConvexFunctionError`, which is never retried.
    """

    def __init__(
        self,
        config: TargetConfig,
        rate_limit: int = 20,
        log_payloads: bool = False,
        max_payload_size: int = 10000,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize Convex client.

        Args:
            config: Convex deployment configuration
            rate_limit: Maximum requests per second
            log_payloads: Enable request/response payload logging
            max_payload_size: Maximum payload size to log before truncation
            transport: Optional custom httpx transport
        """
        super().__init__(
            base_url=config.url,
            token=config.token,
            verify_ssl=config.verify_ssl,
            timeout=config.timeout,
            rate_limit=rate_limit,
            log_payloads=log_payloads,
            max_payload_size=max_payload_size,
            transport=transport,
        )
        logger.info("convex_client_initialized", url=config.url)

    def _handle_error_response(self, response: httpx.Response) -> None:
        if response.status_code == FUNCTION_ERROR_STATUS:
            try:
                body = response.json()
            except ValueError:
                body = {"errorMessage": response.text}
            if not isinstance(body, dict):
                body = {"errorMessage": str(body)}

            raise ConvexFunctionError(
                self._error_message(body),
                function_name=_function_path(response.request),
                status_code=response.status_code,
                response=body,
            )

        super()._handle_error_response(response)

    async def _call(self, kind: str, name: str, args: dict[str, Any] | None) -> Any:
        body = await self.post(
            f"api/{kind}",
            json_data={"path": name, "args": args or {}, "format": "json"},
        )

        if not isinstance(body, dict) or "status" not in body:
            raise ConvexFunctionError("Malformed response envelope", function_name=name, response=body)

        if body["status"] != "success":
            raise ConvexFunctionError(
                str(body.get("errorMessage", "Unknown error")),
                function_name=name,
                response=body,
            )

        return body.get("value")

    @retry_api_call
    async def query(self, name: str, args: dict[str, Any] | None = None) -> Any:
        """Run a Convex query and return its value.

        Args:
            name: Function path, e.g. ``users:viewer``
            args: Function arguments
        """
        return await self._call("query", name, args)

    @retry_mutation
    async def mutation(self, name: str, args: dict[str, Any] | None = None) -> Any:
        """Run a Convex mutation and return its value.

        Args:
            name: Function path, e.g. ``tags:addTagToRecord``
            args: Function arguments
        """
        result = await self._call("mutation", name, args)
        logger.debug("mutation_applied", function=name)
        return result


def _function_path(request: httpx.Request) -> str:
    """The ``path`` a function API request was made for."""
    try:
        return str(json.loads(request.content).get("path") or "unknown")
    except (ValueError, AttributeError):
        return "unknown"


class ConvexPaginatedQuery:
    """Page source over a Convex paginated query.

    The query receives ``paginationOpts: {cursor, numItems}`` next to its
    own arguments and answers with ``page``, ``continueCursor`` and ``isDone``.
    """

    def __init__(self, client: ConvexTargetClient, name: str, args: dict[str, Any] | None = None):
        self.client = client
        self.name = name
        self.args = args or {}

    def describe(self) -> str:
        return f"convex:{self.name}"

    async def fetch_page(self, cursor: Any, page_size: int) -> Page:
        result = await self.client.query(
            self.name,
            {**self.args, "paginationOpts": {"cursor": cursor, "numItems": page_size}},
        )
        return Page(
            records=result.get("page") or [],
            cursor=result.get("continueCursor"),
            is_done=bool(result.get("isDone")),
        )
