"""MongoDB backends for docref, over pymongo's synchronous and asyncio clients."""

from typing import Any, Dict, Iterable, List, Optional

from pymongo import ASCENDING, AsyncMongoClient, MongoClient

from ..exceptions import ConfigurationError
from .base import AsyncDocumentBackend, Document, DocumentBackend, logger

# Type aliases to keep signatures readable without importing pymongo types
MongoCollection = Any  # pymongo Collection / AsyncCollection or a compatible object
MongoDatabase = Any  # pymongo Database / AsyncDatabase or a compatible object

DEFAULT_COLLECTION = "cache"
DEFAULT_DATABASE = "docref_cache"


def _resolve_collection(collection: Optional[MongoCollection], db: Optional[MongoDatabase],
                        collection_name: Optional[str]) -> MongoCollection:
    if collection is None and db is None:
        raise ConfigurationError("Either collection or db must be provided")
    if collection is None:
        collection = db[collection_name or DEFAULT_COLLECTION]
    return collection


def _projection(fields: Optional[Iterable[str]]) -> Optional[Dict[str, int]]:
    return {field: 1 for field in fields} if fields else None


def _add_to_set_update(field: str, value: Any, set_fields: Optional[Document],
                       set_on_insert: Optional[Document]) -> Dict[str, Any]:
    update = {"$addToSet": {field: value}}
    if set_fields:
        update["$set"] = dict(set_fields)
    if set_on_insert:
        update["$setOnInsert"] = dict(set_on_insert)
    return update


def _fields_update(set_fields: Optional[Document], unset_fields: Optional[Iterable[str]]) -> Dict[str, Any]:
    update = {}
    if set_fields:
        update["$set"] = dict(set_fields)
    if unset_fields:
        update["$unset"] = {field: "" for field in unset_fields}
    return update


class MongoBackend(DocumentBackend):
    """
    MongoDB backend using a pymongo collection.

    Value and reference documents share the collection and are told apart by
    their id prefix. Expired documents are removed by MongoDB's TTL monitor
    once ensure_ttl_index() has been called; the monitor runs about once a
    minute, so expired documents can linger for a while.
    """

    def __init__(self, collection: Optional[MongoCollection] = None,
                 db: Optional[MongoDatabase] = None,
                 collection_name: Optional[str] = None):
        """
        Initialize with a collection or a database.

        Args:
            collection: Collection to store documents in. Takes precedence over db.
            db: Database to take the collection from when collection is not given
            collection_name: Collection name used with db (default "cache")
        """
        self.collection = _resolve_collection(collection, db, collection_name)

        logger.debug("Initialized MongoBackend with collection %s", getattr(self.collection, "name", self.collection))

    @classmethod
    def from_uri(cls, uri: str, database: str = DEFAULT_DATABASE,
                 collection_name: str = DEFAULT_COLLECTION, **client_kwargs: Any) -> "MongoBackend":
        """
        Build a backend from a MongoDB connection URI.

        Args:
            uri: Connection string, e.g. "mongodb://localhost:27017"
            database: Database name
            collection_name: Collection name
            **client_kwargs: Extra keyword arguments for pymongo.MongoClient
        """
        client = MongoClient(uri, **client_kwargs)
        return cls(db=client[database], collection_name=collection_name)

    def find_one(self, doc_id: str, fields: Optional[Iterable[str]] = None) -> Optional[Document]:
        """Read a document by _id."""
        logger.debug("Mongo FIND_ONE %s", doc_id)
        return self.collection.find_one({"_id": doc_id}, projection=_projection(fields))

    def replace(self, doc_id: str, document: Document) -> None:
        """Replace the document stored at _id, upserting it."""
        logger.debug("Mongo REPLACE %s", doc_id)
        document = dict(document, _id=doc_id)
        self.collection.replace_one({"_id": doc_id}, document, upsert=True)

    def add_to_set(self, doc_id: str, field: str, value: Any,
                   set_fields: Optional[Document] = None,
                   set_on_insert: Optional[Document] = None) -> None:
        """$addToSet upsert, so concurrent additions are never lost."""
        logger.debug("Mongo ADD_TO_SET %s %s %s", doc_id, field, value)
        update = _add_to_set_update(field, value, set_fields, set_on_insert)
        self.collection.update_one({"_id": doc_id}, update, upsert=True)

    def update_fields(self, doc_id: str, set_fields: Optional[Document] = None,
                      unset_fields: Optional[Iterable[str]] = None) -> bool:
        """$set / $unset fields on an existing document."""
        logger.debug("Mongo UPDATE %s set=%s unset=%s", doc_id, set_fields, unset_fields)
        update = _fields_update(set_fields, unset_fields)
        if not update:
            return self.exists(doc_id)
        result = self.collection.update_one({"_id": doc_id}, update)
        return result.matched_count > 0

    def find_matching(self, pattern: str) -> List[Document]:
        """Find documents whose _id matches the regex."""
        logger.debug("Mongo FIND %s", pattern)
        return list(self.collection.find({"_id": {"$regex": pattern}}))

    def exists(self, doc_id: str) -> bool:
        logger.debug("Mongo EXISTS %s", doc_id)
        return self.collection.count_documents({"_id": doc_id}, limit=1) > 0

    def delete(self, *doc_ids: str) -> int:
        """Delete documents by _id in a single round-trip."""
        if not doc_ids:
            return 0

        logger.debug("Mongo DELETE %s", doc_ids)
        result = self.collection.delete_many({"_id": {"$in": list(doc_ids)}})
        return result.deleted_count

    def delete_matching(self, pattern: str) -> int:
        logger.debug("Mongo DELETE_MATCHING %s", pattern)
        result = self.collection.delete_many({"_id": {"$regex": pattern}})
        return result.deleted_count

    def ensure_ttl_index(self, field: str) -> None:
        """Create a TTL index expiring documents at the instant stored in field."""
        logger.debug("Mongo CREATE_INDEX %s", field)
        self.collection.create_index([(field, ASCENDING)], expireAfterSeconds=0, background=True)


class AsyncMongoBackend(AsyncDocumentBackend):
    """
    MongoDB backend on pymongo's asyncio API (AsyncMongoClient / AsyncCollection).

    Issues the same queries as MongoBackend; every call is a coroutine.
    """

    def __init__(self, collection: Optional[MongoCollection] = None,
                 db: Optional[MongoDatabase] = None,
                 collection_name: Optional[str] = None):
        self.collection = _resolve_collection(collection, db, collection_name)

        logger.debug("Initialized AsyncMongoBackend with collection %s",
                     getattr(self.collection, "name", self.collection))

    @classmethod
    def from_uri(cls, uri: str, database: str = DEFAULT_DATABASE,
                 collection_name: str = DEFAULT_COLLECTION, **client_kwargs: Any) -> "AsyncMongoBackend":
        """Build a backend on a new pymongo.AsyncMongoClient."""
        client = AsyncMongoClient(uri, **client_kwargs)
        return cls(db=client[database], collection_name=collection_name)

    async def find_one(self, doc_id: str, fields: Optional[Iterable[str]] = None) -> Optional[Document]:
        logger.debug("Mongo FIND_ONE %s", doc_id)
        return await self.collection.find_one({"_id": doc_id}, projection=_projection(fields))

    async def replace(self, doc_id: str, document: Document) -> None:
        logger.debug("Mongo REPLACE %s", doc_id)
        document = dict(document, _id=doc_id)
        await self.collection.replace_one({"_id": doc_id}, document, upsert=True)

    async def add_to_set(self, doc_id: str, field: str, value: Any,
                         set_fields: Optional[Document] = None,
                         set_on_insert: Optional[Document] = None) -> None:
        logger.debug("Mongo ADD_TO_SET %s %s %s", doc_id, field, value)
        update = _add_to_set_update(field, value, set_fields, set_on_insert)
        await self.collection.update_one({"_id": doc_id}, update, upsert=True)

    async def update_fields(self, doc_id: str, set_fields: Optional[Document] = None,
                            unset_fields: Optional[Iterable[str]] = None) -> bool:
        logger.debug("Mongo UPDATE %s set=%s unset=%s", doc_id, set_fields, unset_fields)
        update = _fields_update(set_fields, unset_fields)
        if not update:
            return await self.exists(doc_id)
        result = await self.collection.update_one({"_id": doc_id}, update)
        return result.matched_count > 0

    async def find_matching(self, pattern: str) -> List[Document]:
        logger.debug("Mongo FIND %s", pattern)
        return await self.collection.find({"_id": {"$regex": pattern}}).to_list()

    async def exists(self, doc_id: str) -> bool:
        logger.debug("Mongo EXISTS %s", doc_id)
        return await self.collection.count_documents({"_id": doc_id}, limit=1) > 0

    async def delete(self, *doc_ids: str) -> int:
        if not doc_ids:
            return 0

        logger.debug("Mongo DELETE %s", doc_ids)
        result = await self.collection.delete_many({"_id": {"$in": list(doc_ids)}})
        return result.deleted_count

    async def delete_matching(self, pattern: str) -> int:
        logger.debug("Mongo DELETE_MATCHING %s", pattern)
        result = await self.collection.delete_many({"_id": {"$regex": pattern}})
        return result.deleted_count

    async def ensure_ttl_index(self, field: str) -> None:
        logger.debug("Mongo CREATE_INDEX %s", field)
        await self.collection.create_index([(field, ASCENDING)], expireAfterSeconds=0, background=True)
