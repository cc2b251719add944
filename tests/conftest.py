"""Pytest configuration for docref tests."""

import logging
import re
from typing import Any, Dict, List, Optional

import bson
import pymongo
import pytest
from pymongo.errors import PyMongoError

# Import from docref
from docref import AsyncDocumentStorage, DocumentStorage
from docref.backends.memory import MemoryBackend
from docref.backends.mongo import AsyncMongoBackend, MongoBackend

# Add fixtures that should be available for all tests here
logging.getLogger("docref").setLevel(logging.DEBUG)


def bson_roundtrip(doc: Dict[str, Any]) -> Dict[str, Any]:
    """What a MongoDB server would store and hand back for doc."""
    return bson.decode(bson.encode(doc))


class FakeResult:
    """Counts returned by fake write operations."""

    def __init__(self, matched_count: int = 0, deleted_count: int = 0) -> None:
        self.matched_count = matched_count
        self.deleted_count = deleted_count


class FakeMongoCollection:
    """
    Minimal in-memory stand-in for a pymongo collection.

    Supports the filters MongoBackend issues: {"_id": id}, {"_id": {"$in": [...]}}
    and {"_id": {"$regex": ...}}. There is no TTL monitor, so expired documents
    stay until deleted, like on a real server between reaper runs.
    Set one of the fail_* attributes to make an operation raise.
    """

    name = "cache"

    def __init__(self) -> None:
        self.docs: Dict[str, Dict[str, Any]] = {}
        self.indexes: List[tuple] = []
        self.fail_find = False
        self.fail_write = False
        self.fail_update = False
        self.fail_delete = False
        self.fail_create_index = False

    def _ids(self, filter: Dict[str, Any]) -> List[str]:
        cond = filter.get("_id")
        if isinstance(cond, dict):
            if "$in" in cond:
                return [doc_id for doc_id in cond["$in"] if doc_id in self.docs]
            if "$regex" in cond:
                regex = re.compile(cond["$regex"])
                return [doc_id for doc_id in self.docs if regex.search(doc_id)]
            raise AssertionError(f"Unsupported filter {filter}")
        return [cond] if cond in self.docs else []

    def find_one(self, filter: Dict[str, Any], projection: Optional[Dict[str, int]] = None):
        if self.fail_find:
            raise RuntimeError("find_one failed")
        ids = self._ids(filter)
        if not ids:
            return None
        doc = self.docs[ids[0]]
        if projection:
            return {k: v for k, v in bson_roundtrip(doc).items() if k == "_id" or projection.get(k)}
        return bson_roundtrip(doc)

    def find(self, filter: Dict[str, Any]):
        if self.fail_find:
            raise RuntimeError("find failed")
        return iter([bson_roundtrip(self.docs[doc_id]) for doc_id in self._ids(filter)])

    def count_documents(self, filter: Dict[str, Any], limit: int = 0) -> int:
        if self.fail_find:
            raise RuntimeError("count_documents failed")
        count = len(self._ids(filter))
        return min(count, limit) if limit else count

    def replace_one(self, filter: Dict[str, Any], doc: Dict[str, Any], upsert: bool = False):
        if self.fail_write:
            raise RuntimeError("replace_one failed")
        doc_id = filter["_id"]
        matched = 1 if doc_id in self.docs else 0
        if matched or upsert:
            self.docs[doc_id] = bson_roundtrip(doc)
        return FakeResult(matched_count=matched)

    def update_one(self, filter: Dict[str, Any], update: Dict[str, Any], upsert: bool = False):
        if self.fail_update:
            raise RuntimeError("update_one failed")
        doc_id = filter["_id"]
        doc = self.docs.get(doc_id)
        matched = 1 if doc is not None else 0
        if doc is None:
            if not upsert:
                return FakeResult(matched_count=0)
            doc = {"_id": doc_id}
            doc.update(update.get("$setOnInsert", {}))
        doc.update(update.get("$set", {}))
        for field in update.get("$unset", {}):
            doc.pop(field, None)
        for field, value in update.get("$addToSet", {}).items():
            members = doc.setdefault(field, [])
            if value not in members:
                members.append(value)
        self.docs[doc_id] = bson_roundtrip(doc)
        return FakeResult(matched_count=matched)

    def delete_many(self, filter: Dict[str, Any]):
        if self.fail_delete:
            raise RuntimeError("delete_many failed")
        ids = self._ids(filter)
        for doc_id in ids:
            del self.docs[doc_id]
        return FakeResult(deleted_count=len(ids))

    def create_index(self, keys, **kwargs):
        if self.fail_create_index:
            raise RuntimeError("create_index failed")
        self.indexes.append((keys, kwargs))
        return "_".join(f"{field}_{direction}" for field, direction in keys)


class FakeMongoDatabase:
    """Database stand-in handing out FakeMongoCollection instances by name."""

    def __init__(self) -> None:
        self.collections: Dict[str, FakeMongoCollection] = {}

    def __getitem__(self, name: str) -> FakeMongoCollection:
        if name not in self.collections:
            self.collections[name] = FakeMongoCollection()
        return self.collections[name]


class FakeAsyncCursor:
    def __init__(self, docs: List[Dict[str, Any]]) -> None:
        self.docs = docs

    async def to_list(self, length: Optional[int] = None) -> List[Dict[str, Any]]:
        return self.docs if length is None else self.docs[:length]


class FakeAsyncMongoCollection:
    """
    pymongo AsyncCollection stand-in: the same fake collection behind coroutines.
    The wrapped FakeMongoCollection is exposed as .sync for setting failure
    switches and inspecting stored documents.
    """

    name = "cache"

    def __init__(self, sync: Optional[FakeMongoCollection] = None) -> None:
        self.sync = sync or FakeMongoCollection()

    async def find_one(self, *args, **kwargs):
        return self.sync.find_one(*args, **kwargs)

    def find(self, filter: Dict[str, Any]) -> FakeAsyncCursor:
        return FakeAsyncCursor(list(self.sync.find(filter)))

    async def count_documents(self, *args, **kwargs):
        return self.sync.count_documents(*args, **kwargs)

    async def replace_one(self, *args, **kwargs):
        return self.sync.replace_one(*args, **kwargs)

    async def update_one(self, *args, **kwargs):
        return self.sync.update_one(*args, **kwargs)

    async def delete_many(self, *args, **kwargs):
        return self.sync.delete_many(*args, **kwargs)

    async def create_index(self, *args, **kwargs):
        return self.sync.create_index(*args, **kwargs)


@pytest.fixture
def memory_backend():
    """Return a fresh memory backend for each test."""
    return MemoryBackend()


@pytest.fixture
def memory_storage(memory_backend):
    """Return a DocumentStorage with memory backend."""
    return DocumentStorage(backend=memory_backend, debug=True)


@pytest.fixture
def fake_collection():
    return FakeMongoCollection()


@pytest.fixture
def fake_db():
    return FakeMongoDatabase()


@pytest.fixture
def fake_mongo_storage(fake_collection):
    """DocumentStorage over MongoBackend and an in-memory fake collection."""
    return DocumentStorage(backend=MongoBackend(collection=fake_collection))


@pytest.fixture
def fake_async_collection(fake_collection):
    return FakeAsyncMongoCollection(fake_collection)


@pytest.fixture
def async_storage(fake_async_collection):
    """AsyncDocumentStorage over AsyncMongoBackend and the fake collection."""
    return AsyncDocumentStorage(backend=AsyncMongoBackend(collection=fake_async_collection))


@pytest.fixture
def mongo_collection(request):
    """Return a collection on a local MongoDB server for testing if one is available.

    The fixture automatically:
    1. Uses a dedicated test database
    2. Drops the collection before and after each test
    3. Uses a worker-specific collection name if tests are run in parallel
    """
    worker_id = getattr(request.config, 'workerinput', {}).get('workerid', '')
    name = f"cache_{worker_id}" if worker_id else "cache"
    try:
        client = pymongo.MongoClient("mongodb://localhost:27017", serverSelectionTimeoutMS=500)
        client.admin.command("ping")  # Check connection
    except PyMongoError as e:
        pytest.skip(f"MongoDB server is not running: {e}")

    collection = client["docref_test"][name]
    collection.drop()

    # Run the test
    yield collection

    # Clean up after the test
    collection.drop()
    client.close()


@pytest.fixture
def mongo_backend(mongo_collection):
    """Return a MongoBackend on the live test collection."""
    return MongoBackend(collection=mongo_collection)


@pytest.fixture
def mongo_storage(mongo_backend):
    """Return a DocumentStorage with a live MongoDB backend."""
    return DocumentStorage(backend=mongo_backend, debug=True)


# Add a marker for MongoDB tests
def pytest_configure(config):
    config.addinivalue_line("markers", "mongodb: mark test as requiring a MongoDB server")
