"""MongoDB source client for extracting legacy documents.

Wraps pymongo's asyncio client and exposes keyset-paginated reads over a
collection, so the extractor can treat MongoDB like any other cursor-driven
page source.
"""

from typing import Any

from bson import ObjectId
from pymongo import AsyncMongoClient
from pymongo.errors import PyMongoError

from convex_migration.client.exceptions import SourceStoreError
from convex_migration.config import SourceStoreConfig
from convex_migration.migration.extractor import Page
from convex_migration.utils.logging import get_logger

logger = get_logger(__name__)


def to_object_ids(values: list[str]) -> list[Any]:
    """Convert hex strings to ObjectIds, leaving other ids untouched."""
    return [ObjectId(v) if ObjectId.is_valid(v) else v for v in values]


class MongoSourceClient:
    """Client for the legacy MongoDB database."""

    def __init__(self, config: SourceStoreConfig, client: AsyncMongoClient | None = None):
        """Initialize the source client.

        Args:
            config: Source store configuration
            client: Optional pre-built AsyncMongoClient
        """
        self.config = config
        self.client = client or AsyncMongoClient(
            config.uri, serverSelectionTimeoutMS=config.timeout_ms
        )
        self.db = self.client[config.database]

    async def connect(self) -> None:
        """Verify the server is reachable.

        Raises:
            SourceStoreError: If the ping fails
        """
        try:
            await self.client.admin.command("ping")
        except PyMongoError as e:
            raise SourceStoreError(f"Cannot connect to MongoDB: {e}") from e
        logger.info("mongo_connected", database=self.config.database)

    async def count(self, collection: str, filter: dict[str, Any] | None = None) -> int:
        """Count documents matching ``filter``."""
        try:
            return await self.db[collection].count_documents(filter or {})
        except PyMongoError as e:
            raise SourceStoreError(f"Count failed on {collection}: {e}") from e

    async def fetch_page(
        self,
        collection: str,
        filter: dict[str, Any] | None,
        cursor: Any,
        page_size: int,
    ) -> Page:
        """Fetch one page ordered by ``_id``.

        Args:
            collection: Collection name
            filter: Query filter
            cursor: ``_id`` of the last document of the previous page, or None
            page_size: Maximum documents per page

        Returns:
            Page whose cursor is the last ``_id`` returned
        """
        query = dict(filter or {})
        if cursor is not None:
            query = {"$and": [query, {"_id": {"$gt": cursor}}]} if query else {"_id": {"$gt": cursor}}

        try:
            documents = await self.db[collection].find(query).sort("_id", 1).limit(page_size).to_list(None)
        except PyMongoError as e:
            raise SourceStoreError(f"Read failed on {collection}: {e}") from e

        next_cursor = documents[-1]["_id"] if documents else cursor
        return Page(records=documents, cursor=next_cursor, is_done=len(documents) < page_size)

    async def close(self) -> None:
        """Close the connection pool."""
        await self.client.close()
        logger.debug("mongo_closed")

    async def __aenter__(self) -> "MongoSourceClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


class MongoCollectionSource:
    """Page source over one filtered collection."""

    def __init__(self, client: MongoSourceClient, collection: str, filter: dict[str, Any] | None = None):
        self.client = client
        self.collection = collection
        self.filter = filter or {}

    def describe(self) -> str:
        return f"mongo:{self.collection}"

    async def fetch_page(self, cursor: Any, page_size: int) -> Page:
        return await self.client.fetch_page(self.collection, self.filter, cursor, page_size)

    async def count(self) -> int:
        return await self.client.count(self.collection, self.filter)
