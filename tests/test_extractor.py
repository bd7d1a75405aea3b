"""Tests for cursor-driven extraction."""

import pytest
from conftest import ListPageSource

from convex_migration.client.exceptions import ExtractionError
from convex_migration.migration.extractor import Page, PaginatedExtractor


def _records(n):
    return [{"_id": f"id-{i:03d}"} for i in range(n)]


@pytest.mark.asyncio
async def test_fetch_all_follows_cursor():
    source = ListPageSource(_records(5))

    records = await PaginatedExtractor(page_size=2).fetch_all(source)

    assert [r["_id"] for r in records] == [f"id-{i:03d}" for i in range(5)]
    assert source.requests == [(None, 2), (2, 2), (4, 2)]


@pytest.mark.asyncio
async def test_page_size_override():
    source = ListPageSource(_records(3))

    records = await PaginatedExtractor(page_size=1).fetch_all(source, page_size=10)

    assert len(records) == 3
    assert source.requests == [(None, 10)]


@pytest.mark.asyncio
async def test_empty_source():
    assert await PaginatedExtractor().fetch_all(ListPageSource([])) == []


@pytest.mark.asyncio
async def test_iter_records_streams_every_record():
    extractor = PaginatedExtractor(page_size=2)
    seen = [record["_id"] async for record in extractor.iter_records(ListPageSource(_records(3)))]
    assert seen == ["id-000", "id-001", "id-002"]


class _FailingSource:
    def __init__(self, fail_on_call):
        self.fail_on_call = fail_on_call
        self.calls = 0

    def describe(self):
        return "failing"

    async def fetch_page(self, cursor, page_size):
        self.calls += 1
        if self.calls == self.fail_on_call:
            raise ConnectionError("connection reset")
        return Page(records=[{"_id": self.calls}], cursor=self.calls, is_done=False)


@pytest.mark.asyncio
async def test_page_failure_is_fatal():
    with pytest.raises(ExtractionError, match="page 3"):
        await PaginatedExtractor(page_size=1).fetch_all(_FailingSource(fail_on_call=3))


class _StuckSource:
    def describe(self):
        return "stuck"

    async def fetch_page(self, cursor, page_size):
        return Page(records=[{"_id": 1}], cursor="same", is_done=False)


@pytest.mark.asyncio
async def test_repeating_cursor_is_fatal():
    with pytest.raises(ExtractionError, match="did not advance"):
        await PaginatedExtractor(page_size=1).fetch_all(_StuckSource())


def test_page_size_must_be_positive():
    with pytest.raises(ValueError):
        PaginatedExtractor(page_size=0)
