"""Value records: the cached payloads themselves."""

import logging
import pickle
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from .backends.base import Document, DocumentBackend
from .expiration import ExpirationPolicy, utcnow
from .keys import KeyCodec
from .references import ReferenceIndex
from .utils import ensure_list, normalize_ttl


def default_serializer(value: Any) -> bytes:
    """Pickle a payload; BSON stores the bytes as Binary, so nothing is lost on the way."""
    return pickle.dumps(value, protocol=pickle.HIGHEST_PROTOCOL)


default_deserializer = pickle.loads


class ValueStore:
    """
    Stores opaque payloads under encoded value ids.

    Payloads are pickled by default so that tuples, aware datetimes and
    non-string dict keys come back exactly as they were stored. Pass a
    serializer/deserializer pair to store something else, such as JSON text.

    Read paths never raise: a missing key and a failing backend both come back
    as a miss, the latter with an error log entry. The value write in set() is
    the one place where backend errors reach the caller.
    """

    def __init__(self, backend: DocumentBackend, codec: KeyCodec,
                 expiration: ExpirationPolicy, references: ReferenceIndex,
                 logger: logging.Logger,
                 serializer: Optional[Callable[[Any], Any]] = None,
                 deserializer: Optional[Callable[[Any], Any]] = None):
        self.backend = backend
        self.codec = codec
        self.expiration = expiration
        self.references = references
        self.logger = logger
        self.serializer = serializer or default_serializer
        self.deserializer = deserializer or default_deserializer

    def _build_document(self, key: str, value: Any, ttl: int) -> Tuple[str, Document]:
        value_id = self.codec.value_id(key)
        doc = {
            "_id": value_id,
            "value": self.serializer(value),
            "createdAt": utcnow(),
        }
        expire_at = self.expiration.expire_at(ttl)
        if expire_at is not None:
            doc[self.expiration.field] = expire_at
        return value_id, doc

    def _load(self, key: str, doc: Optional[Document]) -> Any:
        if not doc or "value" not in doc:
            return None
        # the reaper may not have run yet
        if self.expiration.is_expired(doc.get(self.expiration.field)):
            self.logger.debug("Value %s is past its expiry, treating as miss", doc.get("_id"))
            return None
        try:
            return self.deserializer(doc["value"])
        except Exception as e:
            self.logger.warning("Failed to deserialize value for key %s: %s", key, e, exc_info=True)
            return None

    def _expiry_update(self, ttl: int) -> Tuple[Optional[Dict[str, Any]], Optional[List[str]]]:
        expire_at = self.expiration.expire_at(ttl)
        if expire_at is not None:
            return {self.expiration.field: expire_at}, None
        return None, [self.expiration.field]

    def _remaining(self, doc: Optional[Document]) -> int:
        if not doc:
            return 0
        return self.expiration.remaining(doc.get(self.expiration.field))

    def get(self, key: str) -> Any:
        """
        Get a cached payload.

        Returns:
            The payload, or None if the key is missing, logically expired
            or the backend failed
        """
        try:
            doc = self.backend.find_one(self.codec.value_id(key))
        except Exception as e:
            self.logger.error("Failed to get value for key %s: %s", key, e, exc_info=True)
            return None
        return self._load(key, doc)

    def set(self, key: str, value: Any, ttl: int = 0,
            references: Optional[Union[str, Iterable[str]]] = None) -> None:
        """
        Store a payload, fully replacing any previous record for the key.

        Args:
            key: Raw cache key
            value: Payload to store
            ttl: Time to live in seconds; 0 or less means no expiry
            references: Optional reference(s) to tag the entry with
        """
        ttl = normalize_ttl(ttl)
        value_id, doc = self._build_document(key, value, ttl)
        try:
            self.backend.replace(value_id, doc)
        except Exception as e:
            self.logger.error("Failed to set value for key %s: %s", key, e, exc_info=True)
            raise

        refs = ensure_list(references)
        if refs:
            self.references.add_keys(refs, key, ttl)

    def remove(self, key: str) -> None:
        """Remove a cached payload. Missing keys are ignored."""
        try:
            self.backend.delete(self.codec.value_id(key))
        except Exception as e:
            self.logger.error("Failed to remove value for key %s: %s", key, e, exc_info=True)

    def remove_many(self, keys: Iterable[str]) -> int:
        """
        Remove the payloads of several raw keys in one call.
        Backend errors propagate.

        Returns:
            Number of value records deleted
        """
        value_ids = [self.codec.value_id(key) for key in keys]
        if not value_ids:
            return 0
        return self.backend.delete(*value_ids)

    def refresh(self, key: str, ttl: int) -> None:
        """Set a new TTL for an existing key, or drop its expiry when ttl <= 0."""
        set_fields, unset_fields = self._expiry_update(normalize_ttl(ttl))
        try:
            self.backend.update_fields(self.codec.value_id(key), set_fields=set_fields, unset_fields=unset_fields)
        except Exception as e:
            self.logger.error("Failed to refresh key %s: %s", key, e, exc_info=True)

    def get_ttl(self, key: str) -> int:
        """Remaining seconds to live; 0 if the key is missing or never expires."""
        try:
            doc = self.backend.find_one(self.codec.value_id(key), fields=[self.expiration.field])
        except Exception as e:
            self.logger.error("Failed to get TTL for key %s: %s", key, e, exc_info=True)
            return 0
        return self._remaining(doc)

    def exists(self, key: str) -> bool:
        """True if a record is stored for key. Does not look at its expiry."""
        try:
            return self.backend.exists(self.codec.value_id(key))
        except Exception as e:
            self.logger.error("Failed to check existence of key %s: %s", key, e, exc_info=True)
            return False
