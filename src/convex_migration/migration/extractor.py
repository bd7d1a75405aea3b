"""Cursor-driven extraction of complete record sets.

A page source hands back one bounded page at a time together with an opaque
continuation cursor. The extractor follows the cursor until the source is
exhausted. Any page failure is fatal: downstream duplicate detection needs
the complete set.
"""

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Protocol

from convex_migration.client.exceptions import ExtractionError
from convex_migration.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class Page:
    """One page of records plus the cursor for the next one."""

    records: list[dict[str, Any]] = field(default_factory=list)
    cursor: Any = None
    is_done: bool = False


class PageSource(Protocol):
    """Anything that can serve cursor-paginated pages."""

    def describe(self) -> str: ...

    async def fetch_page(self, cursor: Any, page_size: int) -> Page: ...


class PaginatedExtractor:
    """Pulls every record from a page source in bounded batches."""

    def __init__(self, page_size: int = 500):
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self.page_size = page_size

    async def iter_pages(self, source: PageSource, page_size: int | None = None) -> AsyncIterator[Page]:
        """Yield non-empty pages until the source signals completion.

        Raises:
            ExtractionError: If a page fails or the cursor stops advancing
        """
        size = page_size or self.page_size
        cursor: Any = None
        seen_cursors: set[str] = set()
        pages = 0

        while True:
            try:
                page = await source.fetch_page(cursor, size)
            except ExtractionError:
                raise
            except Exception as e:
                logger.error("page_fetch_failed", source=source.describe(), page=pages + 1, error=str(e))
                raise ExtractionError(f"Failed to fetch page {pages + 1} from {source.describe()}: {e}") from e

            if not page.records:
                break

            pages += 1
            logger.info(
                "page_fetched",
                source=source.describe(),
                page=pages,
                items_this_page=len(page.records),
            )
            yield page

            if page.is_done:
                break

            cursor_key = repr(page.cursor)
            if page.cursor is None or cursor_key in seen_cursors:
                raise ExtractionError(
                    f"Cursor for {source.describe()} did not advance after page {pages}"
                )
            seen_cursors.add(cursor_key)
            cursor = page.cursor

        logger.info("pagination_complete", source=source.describe(), total_pages=pages)

    async def iter_records(
        self, source: PageSource, page_size: int | None = None
    ) -> AsyncIterator[dict[str, Any]]:
        """Stream records one at a time."""
        async for page in self.iter_pages(source, page_size):
            for record in page.records:
                yield record

    async def fetch_all(self, source: PageSource, page_size: int | None = None) -> list[dict[str, Any]]:
        """Return the complete record set of ``source``."""
        records: list[dict[str, Any]] = []
        async for page in self.iter_pages(source, page_size):
            records.extend(page.records)

        logger.info("extraction_complete", source=source.describe(), total_items=len(records))
        return records
