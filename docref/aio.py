"""
asyncio flavour of DocumentStorage.

The components here reuse the document layout, key encoding and error policy
of their synchronous counterparts; only the backend calls are awaited.

Usage:
```python
backend = AsyncMongoBackend.from_uri("mongodb://localhost:27017")
storage = AsyncDocumentStorage(backend)
await storage.initialize()

await storage.set("user:1:profile", {"name": "Ada"}, ttl=60, references=["user:1"])
await storage.invalidate("user:*")
```
"""

from typing import Any, Dict, Iterable, Optional, Set, Union

from .invalidation import WILDCARD, InvalidationEngine, union_keys
from .references import KEYS_FIELD, ReferenceIndex
from .storage import DocumentStorage
from .utils import ensure_list, normalize_ttl
from .values import ValueStore


class AsyncReferenceIndex(ReferenceIndex):
    """ReferenceIndex over an AsyncDocumentBackend."""

    async def add_key(self, reference: str, key: str, ttl: int = 0) -> None:
        set_fields, set_on_insert = self._add_key_update(ttl)
        await self.backend.add_to_set(
            self.codec.reference_id(reference),
            KEYS_FIELD,
            key,
            set_fields=set_fields,
            set_on_insert=set_on_insert,
        )

    async def add_keys(self, references: Iterable[str], key: str, ttl: int = 0) -> int:
        written = 0
        failed = []
        for reference in references:
            try:
                await self.add_key(reference, key, ttl)
                written += 1
            except Exception as e:
                failed.append(reference)
                self._report(reference, key, e)
        self._summarize(key, written, failed)
        return written

    async def lookup(self, reference: str) -> Set[str]:
        return self._keys_of(await self.backend.find_one(self.codec.reference_id(reference), fields=[KEYS_FIELD]))

    async def lookup_by_pattern(self, pattern: str) -> Dict[str, Set[str]]:
        regex = self._pattern(pattern)
        return {doc["_id"]: self._keys_of(doc) for doc in await self.backend.find_matching(regex)}

    async def delete_reference(self, reference_id: str) -> int:
        return await self.backend.delete(reference_id)

    async def delete_references(self, reference_ids: Iterable[str]) -> int:
        reference_ids = list(reference_ids)
        if not reference_ids:
            return 0
        return await self.backend.delete(*reference_ids)


class AsyncValueStore(ValueStore):
    """ValueStore over an AsyncDocumentBackend."""

    async def get(self, key: str) -> Any:
        try:
            doc = await self.backend.find_one(self.codec.value_id(key))
        except Exception as e:
            self.logger.error("Failed to get value for key %s: %s", key, e, exc_info=True)
            return None
        return self._load(key, doc)

    async def set(self, key: str, value: Any, ttl: int = 0,
                  references: Optional[Union[str, Iterable[str]]] = None) -> None:
        ttl = normalize_ttl(ttl)
        value_id, doc = self._build_document(key, value, ttl)
        try:
            await self.backend.replace(value_id, doc)
        except Exception as e:
            self.logger.error("Failed to set value for key %s: %s", key, e, exc_info=True)
            raise

        refs = ensure_list(references)
        if refs:
            await self.references.add_keys(refs, key, ttl)

    async def remove(self, key: str) -> None:
        try:
            await self.backend.delete(self.codec.value_id(key))
        except Exception as e:
            self.logger.error("Failed to remove value for key %s: %s", key, e, exc_info=True)

    async def remove_many(self, keys: Iterable[str]) -> int:
        value_ids = [self.codec.value_id(key) for key in keys]
        if not value_ids:
            return 0
        return await self.backend.delete(*value_ids)

    async def refresh(self, key: str, ttl: int) -> None:
        set_fields, unset_fields = self._expiry_update(normalize_ttl(ttl))
        try:
            await self.backend.update_fields(self.codec.value_id(key), set_fields=set_fields,
                                             unset_fields=unset_fields)
        except Exception as e:
            self.logger.error("Failed to refresh key %s: %s", key, e, exc_info=True)

    async def get_ttl(self, key: str) -> int:
        try:
            doc = await self.backend.find_one(self.codec.value_id(key), fields=[self.expiration.field])
        except Exception as e:
            self.logger.error("Failed to get TTL for key %s: %s", key, e, exc_info=True)
            return 0
        return self._remaining(doc)

    async def exists(self, key: str) -> bool:
        try:
            return await self.backend.exists(self.codec.value_id(key))
        except Exception as e:
            self.logger.error("Failed to check existence of key %s: %s", key, e, exc_info=True)
            return False


class AsyncInvalidationEngine(InvalidationEngine):
    """InvalidationEngine over an AsyncDocumentBackend."""

    async def invalidate(self, references: Union[str, Iterable[str]]) -> int:
        removed = 0
        for reference in ensure_list(references):
            if WILDCARD in reference:
                removed += await self.invalidate_wildcard(reference)
            else:
                removed += await self.invalidate_exact(reference)
        return removed

    async def invalidate_exact(self, reference: str) -> int:
        try:
            keys = await self.references.lookup(reference)
            if not keys:
                self.logger.debug("No cache keys found for reference %s", reference)
                return 0

            removed = await self.values.remove_many(keys)
            await self.references.delete_reference(self.codec.reference_id(reference))
            self.logger.debug("Invalidated %d cache entries for reference %s", removed, reference)
            return removed
        except Exception as e:
            self.logger.error("Failed to invalidate reference %s: %s", reference, e, exc_info=True)
            return 0

    async def invalidate_wildcard(self, pattern: str) -> int:
        try:
            matched = await self.references.lookup_by_pattern(pattern)
            if not matched:
                self.logger.debug("No references match pattern %s", pattern)
                return 0

            removed = await self.values.remove_many(union_keys(matched))
            await self.references.delete_references(matched.keys())
            self.logger.debug("Invalidated %d cache entries across %d references for pattern %s",
                              removed, len(matched), pattern)
            return removed
        except Exception as e:
            self.logger.error("Failed to invalidate by pattern %s: %s", pattern, e, exc_info=True)
            return 0

    async def clear(self) -> int:
        try:
            deleted = await self.backend.delete_matching(self.codec.namespace_pattern())
        except Exception as e:
            self.logger.error("Failed to clear cache: %s", e, exc_info=True)
            raise
        self.logger.info("Cleared %d cache records", deleted)
        return deleted


class AsyncDocumentStorage(DocumentStorage):
    """
    DocumentStorage whose operations are coroutines, for an AsyncDocumentBackend
    such as AsyncMongoBackend.

    Takes the same constructor arguments as DocumentStorage. The TTL index
    cannot be created from __init__; it is created by initialize(), which the
    first set() awaits if the caller has not.
    """

    reference_index_class = AsyncReferenceIndex
    value_store_class = AsyncValueStore
    invalidation_engine_class = AsyncInvalidationEngine

    def _initialize_ttl_index(self) -> None:
        self._ttl_index_pending = True

    async def initialize(self) -> None:
        """Create the TTL index if it was requested. Failures are logged, not raised."""
        if not getattr(self, "_ttl_index_pending", False):
            return
        self._ttl_index_pending = False
        try:
            await self.backend.ensure_ttl_index(self.expiration.field)
        except Exception as e:
            self.logger.warning("Failed to create TTL index on %s: %s", self.expiration.field, e, exc_info=True)

    async def get(self, key: str) -> Any:
        return await self.values.get(key)

    async def set(self, key: str, value: Any, ttl: int = 0,
                  references: Optional[Union[str, Iterable[str]]] = None) -> None:
        await self.initialize()
        await self.values.set(key, value, ttl, references)

    async def remove(self, key: str) -> None:
        await self.values.remove(key)

    async def invalidate(self, references: Union[str, Iterable[str]]) -> int:
        return await self.invalidation.invalidate(references)

    async def clear(self) -> int:
        return await self.invalidation.clear()

    async def refresh(self, key: str, ttl: int) -> None:
        await self.values.refresh(key, ttl)

    async def get_ttl(self, key: str) -> int:
        return await self.values.get_ttl(key)

    async def exists(self, key: str) -> bool:
        return await self.values.exists(key)
