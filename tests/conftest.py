"""Shared fixtures: in-memory stand-ins for MongoDB, Convex and the geocoder."""

import itertools
from typing import Any

import pytest

from convex_migration.config import MigrationConfig
from convex_migration.migration.extractor import Page
from convex_migration.migration.mapping import IdentifierMapper
from convex_migration.migration.stats import RunStatistics
from convex_migration.migration.upsert import WriteThrottle

ORG_SOURCE = "team-k1"
ORG_TARGET = "org-t1"
VIEWER_ORG = "org-t1"


def _matches(document: dict[str, Any], filter: dict[str, Any]) -> bool:
    for field, condition in filter.items():
        if field == "$and":
            if not all(_matches(document, clause) for clause in condition):
                return False
            continue
        value = document.get(field)
        if isinstance(condition, dict):
            if "$in" in condition and value not in condition["$in"]:
                return False
            if "$gt" in condition and not (value is not None and str(value) > str(condition["$gt"])):
                return False
        elif value != condition:
            return False
    return True


class FakeMongo:
    """Collections held in memory, served with the MongoSourceClient surface."""

    def __init__(self, collections: dict[str, list[dict[str, Any]]] | None = None):
        self.collections = collections or {}
        self.closed = False

    async def count(self, collection: str, filter: dict[str, Any] | None = None) -> int:
        return len([d for d in self.collections.get(collection, []) if _matches(d, filter or {})])

    async def fetch_page(
        self, collection: str, filter: dict[str, Any] | None, cursor: Any, page_size: int
    ) -> Page:
        query = dict(filter or {})
        if cursor is not None:
            query = {"$and": [query, {"_id": {"$gt": cursor}}]}
        documents = sorted(
            (d for d in self.collections.get(collection, []) if _matches(d, query)),
            key=lambda d: str(d["_id"]),
        )[:page_size]
        next_cursor = documents[-1]["_id"] if documents else cursor
        return Page(records=documents, cursor=next_cursor, is_done=len(documents) < page_size)

    async def close(self) -> None:
        self.closed = True


class FakeConvex:
    """Convex function API over in-memory tables.

    ``fail`` maps a function name to an exception raised whenever it is called.
    """

    def __init__(self, viewer: dict[str, Any] | None = None):
        self.viewer = viewer if viewer is not None else {"_id": "viewer-1", "activeOrgId": VIEWER_ORG}
        self.users: list[dict[str, Any]] = []
        self.properties: list[dict[str, Any]] = []
        self.contacts: list[dict[str, Any]] = []
        self.tags: list[dict[str, Any]] = []
        self.links: list[tuple[str, str]] = []
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.fail: dict[str, Exception] = {}
        self._ids = itertools.count(1)

    def _new_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    def calls_to(self, name: str) -> list[dict[str, Any]]:
        return [args for called, args in self.calls if called == name]

    async def query(self, name: str, args: dict[str, Any] | None = None) -> Any:
        args = args or {}
        self.calls.append((name, args))
        if name in self.fail:
            raise self.fail[name]

        if name == "users:viewer":
            return self.viewer
        if name == "users:getAll":
            return [dict(u) for u in self.users]
        if name == "tags:getAll":
            return [dict(t) for t in self.tags]
        if name == "properties:getProperties":
            return self._paginate(args)
        if name == "properties:getByMongoId":
            return next((p for p in self.properties if p.get("mongoId") == args["mongoId"]), None)
        if name == "contacts:getByMongoId":
            return next((c for c in self.contacts if c.get("mongoId") == args["mongoId"]), None)
        if name == "tags:getTagsForRecord":
            tag_ids = [tag_id for record_id, tag_id in self.links if record_id == args["recordId"]]
            return [{"_id": tag_id} for tag_id in tag_ids]
        raise AssertionError(f"unexpected query {name}")

    def _paginate(self, args: dict[str, Any]) -> dict[str, Any]:
        opts = args["paginationOpts"]
        matching = [
            p
            for p in self.properties
            if p.get("orgId") == args["orgId"] and bool(p.get("isDeleted")) == args["isDeleted"]
        ]
        start = int(opts["cursor"] or 0)
        end = start + opts["numItems"]
        return {
            "page": matching[start:end],
            "continueCursor": str(end),
            "isDone": end >= len(matching),
        }

    async def mutation(self, name: str, args: dict[str, Any] | None = None) -> Any:
        args = args or {}
        self.calls.append((name, args))
        if name in self.fail:
            raise self.fail[name]

        if name == "users:create":
            user_id = self._new_id("user")
            self.users.append({"_id": user_id, **args})
            return user_id
        if name == "users:update":
            user = next(u for u in self.users if u["_id"] == args["id"])
            user.update({k: v for k, v in args.items() if k != "id"})
            return None
        if name == "properties:updateProperty":
            prop = next(p for p in self.properties if p["_id"] == args["id"])
            prop["location"] = args["location"]
            return None
        if name == "tags:createTagFromMongo":
            tag_id = self._new_id("tag")
            self.tags.append({"_id": tag_id, **args})
            return {"status": "success", "data": tag_id}
        if name == "tags:addTagToRecord":
            self.links.append((args["recordId"], args["tagId"]))
            return None
        raise AssertionError(f"unexpected mutation {name}")


class FakeGeocoder:
    """Address to GeoJSON point; unknown addresses have no result."""

    def __init__(self, known: dict[str, tuple[float, float]] | None = None, error: Exception | None = None):
        self.known = known or {}
        self.error = error
        self.requests: list[str] = []

    async def geocode(self, address: str) -> dict[str, Any] | None:
        self.requests.append(address)
        if self.error is not None:
            raise self.error
        if address not in self.known:
            return None
        lng, lat = self.known[address]
        return {"coordinates": [lng, lat], "type": "Point"}


class ListPageSource:
    """Page source over a list, with integer offsets as cursors."""

    def __init__(self, records: list[dict[str, Any]]):
        self.records = records
        self.requests: list[tuple[Any, int]] = []

    def describe(self) -> str:
        return "list"

    async def fetch_page(self, cursor: Any, page_size: int) -> Page:
        self.requests.append((cursor, page_size))
        start = cursor or 0
        chunk = self.records[start : start + page_size]
        end = start + len(chunk)
        return Page(records=chunk, cursor=end, is_done=end >= len(self.records))


@pytest.fixture
def no_delay() -> WriteThrottle:
    return WriteThrottle(delay_ms=0)


@pytest.fixture
def stats() -> RunStatistics:
    return RunStatistics()


@pytest.fixture
def mapper() -> IdentifierMapper:
    return IdentifierMapper(
        organizations={ORG_SOURCE: ORG_TARGET},
        users={"legacy-user-1": "user-target-1"},
        fallback_user_id="user-fallback",
    )


@pytest.fixture
def convex() -> FakeConvex:
    return FakeConvex()


def make_config(**overrides: Any) -> MigrationConfig:
    data: dict[str, Any] = {
        "source": {"uri": "mongodb://localhost:27017", "database": "legacy"},
        "target": {"url": "https://happy-otter-123.convex.cloud", "token": "convex-token"},
        "geocoding": {"api_key": "maps-key"},
        "paths": {"mappings_file": ""},
        "mappings": {
            "organizations": {ORG_SOURCE: ORG_TARGET},
            "users": {"legacy-user-1": "user-target-1"},
            "fallback_user_id": "user-fallback",
        },
        "performance": {"write_delay_ms": 0, "source_page_size": 2, "target_page_size": 2},
    }
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(data.get(key), dict):
            data[key] = {**data[key], **value}
        else:
            data[key] = value
    return MigrationConfig(**data)


@pytest.fixture
def config() -> MigrationConfig:
    return make_config()
