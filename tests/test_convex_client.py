"""Tests for the Convex HTTP client."""

import json

import httpx
import pytest

from convex_migration.client.convex_client import ConvexPaginatedQuery, ConvexTargetClient
from convex_migration.client.exceptions import (
    APIError,
    AuthenticationError,
    ConvexFunctionError,
)
from convex_migration.config import TargetConfig
from convex_migration.migration.extractor import PaginatedExtractor

CONFIG = TargetConfig(url="https://happy-otter-123.convex.cloud", token="convex-token")


def _client(handler) -> ConvexTargetClient:
    return ConvexTargetClient(CONFIG, rate_limit=0, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_query_posts_function_call_and_unwraps_value():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"status": "success", "value": [{"_id": "t1"}]})

    async with _client(handler) as client:
        result = await client.query("tags:getAll", {"orgId": "org-t1"})

    assert result == [{"_id": "t1"}]
    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == "https://happy-otter-123.convex.cloud/api/query"
    assert request.headers["Authorization"] == "Bearer convex-token"
    assert json.loads(request.content) == {
        "path": "tags:getAll",
        "args": {"orgId": "org-t1"},
        "format": "json",
    }


@pytest.mark.asyncio
async def test_mutation_uses_mutation_endpoint():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json={"status": "success", "value": "new-id"})

    async with _client(handler) as client:
        assert await client.mutation("users:create", {"email": "a@x.com"}) == "new-id"

    assert seen == ["https://happy-otter-123.convex.cloud/api/mutation"]


@pytest.mark.asyncio
async def test_error_envelope_raises_function_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": "error", "errorMessage": "Tag already exists"})

    async with _client(handler) as client:
        with pytest.raises(ConvexFunctionError) as exc_info:
            await client.mutation("tags:createTagFromMongo", {"name": "Hot Lead"})

    assert exc_info.value.function_name == "tags:createTagFromMongo"
    assert "Tag already exists" in str(exc_info.value)


@pytest.mark.asyncio
async def test_malformed_envelope_raises_function_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=["not", "an", "envelope"])

    async with _client(handler) as client:
        with pytest.raises(ConvexFunctionError):
            await client.query("users:viewer")


@pytest.mark.asyncio
async def test_http_400_maps_to_api_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"status": "error", "errorMessage": "ArgumentValidationError"})

    async with _client(handler) as client:
        with pytest.raises(APIError, match="ArgumentValidationError"):
            await client.query("properties:getProperties", {})


@pytest.mark.asyncio
async def test_http_401_maps_to_authentication_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"message": "bad token"})

    async with _client(handler) as client:
        with pytest.raises(AuthenticationError):
            await client.query("users:viewer")


@pytest.mark.asyncio
async def test_function_that_threw_is_not_retried():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(560, json={"status": "error", "errorMessage": "Uncaught Error: no such property"})

    async with _client(handler) as client:
        with pytest.raises(ConvexFunctionError) as exc_info:
            await client.query("properties:getByMongoId", {"mongoId": "legacy-p1"})

    assert len(seen) == 1
    assert exc_info.value.function_name == "properties:getByMongoId"
    assert exc_info.value.status_code == 560
    assert "no such property" in str(exc_info.value)


@pytest.mark.asyncio
async def test_function_error_without_json_body():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(560, text="function crashed")

    async with _client(handler) as client:
        with pytest.raises(ConvexFunctionError, match="function crashed"):
            await client.mutation("tags:addTagToRecord", {"recordId": "p1", "tagId": "t1"})


@pytest.mark.asyncio
async def test_paginated_query_follows_continue_cursor():
    pages = {
        None: {"page": [{"_id": "p1"}, {"_id": "p2"}], "continueCursor": "c1", "isDone": False},
        "c1": {"page": [{"_id": "p3"}], "continueCursor": "c2", "isDone": True},
    }
    seen_opts = []

    def handler(request: httpx.Request) -> httpx.Response:
        args = json.loads(request.content)["args"]
        seen_opts.append(args["paginationOpts"])
        return httpx.Response(200, json={"status": "success", "value": pages[args["paginationOpts"]["cursor"]]})

    async with _client(handler) as client:
        source = ConvexPaginatedQuery(client, "properties:getProperties", {"orgId": "o1", "isDeleted": False})
        records = await PaginatedExtractor(page_size=2).fetch_all(source)

    assert [r["_id"] for r in records] == ["p1", "p2", "p3"]
    assert seen_opts == [{"cursor": None, "numItems": 2}, {"cursor": "c1", "numItems": 2}]
    assert source.describe() == "convex:properties:getProperties"
