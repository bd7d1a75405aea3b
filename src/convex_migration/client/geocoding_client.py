"""Google Geocoding API client."""

from typing import Any

import httpx

from convex_migration.client.base_client import BaseAPIClient
from convex_migration.client.exceptions import GeocodingError
from convex_migration.config import GeocodingConfig
from convex_migration.utils.logging import get_logger
from convex_migration.utils.retry import retry_api_call

logger = get_logger(__name__)

# Statuses meaning "the address resolved to nothing", as opposed to a failed call
EMPTY_RESULT_STATUSES = frozenset({"ZERO_RESULTS"})


class GoogleGeocodingClient(BaseAPIClient):
    """Resolves postal addresses to GeoJSON points."""

    def __init__(
        self,
        config: GeocodingConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(
            base_url=config.url,
            token=None,
            timeout=config.timeout,
            rate_limit=config.rate_limit,
            transport=transport,
        )
        self.api_key = config.api_key

    @retry_api_call
    async def _lookup(self, address: str) -> dict[str, Any]:
        return await self.get("json", params={"address": address, "key": self.api_key})

    async def geocode(self, address: str) -> dict[str, Any] | None:
        """Geocode a single address.

        Args:
            address: Free-form address string

        Returns:
            ``{"coordinates": [lng, lat], "type": "Point"}`` for the first
            match, or None when the address has no match

        Raises:
            GeocodingError: If the service rejects the request
        """
        body = await self._lookup(address)
        status = body.get("status", "OK")

        if status in EMPTY_RESULT_STATUSES:
            return None
        if status != "OK":
            raise GeocodingError(f"Geocoding failed with status {status}: {body.get('error_message', '')}")

        results = body.get("results") or []
        if not results:
            return None

        location = results[0]["geometry"]["location"]
        return {"coordinates": [location["lng"], location["lat"]], "type": "Point"}
