"""
Main storage implementation for docref.

DocumentStorage is what a caching or request-deduplication layer talks to:
get/set/remove/invalidate/clear plus TTL introspection. It wires the key
codec, value store, reference index and invalidation engine on top of a
DocumentBackend.
"""

import logging
from typing import Any, Callable, Iterable, Optional, Union

from .backends.base import DocumentBackend
from .exceptions import ConfigurationError
from .expiration import ExpirationPolicy
from .invalidation import InvalidationEngine
from .keys import MAX_KEY_LENGTH, REFERENCE_PREFIX, VALUE_PREFIX, KeyCodec
from .references import ReferenceIndex
from .values import ValueStore


class DocumentStorage:
    """
    Cache storage keeping values and reference indices in a document store.

    Key features:
    - Values with optional TTL, expired by the store's own TTL reaper
    - References attached at write time for bulk invalidation
    - Wildcard invalidation ("user:*") over reference names
    - Long keys hashed to a bounded id length

    Usage:
    ```python
    storage = DocumentStorage(MongoBackend(collection=db.cache))

    storage.set("user:1:profile", {"name": "Ada"}, ttl=60, references=["user:1"])
    storage.get("user:1:profile")

    # after user 1 changes
    storage.invalidate("user:1")
    ```
    """

    reference_index_class = ReferenceIndex
    value_store_class = ValueStore
    invalidation_engine_class = InvalidationEngine

    def __init__(
        self,
        backend: Optional[DocumentBackend] = None,
        logger: Optional[logging.Logger] = None,
        value_prefix: str = VALUE_PREFIX,
        reference_prefix: str = REFERENCE_PREFIX,
        max_key_length: int = MAX_KEY_LENGTH,
        serializer: Optional[Callable[[Any], Any]] = None,
        deserializer: Optional[Callable[[Any], Any]] = None,
        strict_patterns: bool = False,
        create_ttl_index: bool = True,
        debug: bool = False,
    ):
        """
        Initialize the storage.

        Args:
            backend: DocumentBackend holding the records, e.g. MongoBackend.
                     Required.
            logger: Logger to report degraded operations to. Defaults to the
                    "docref" logger.
            value_prefix: Id prefix of value records. Default: "v:"
            reference_prefix: Id prefix of reference records. Default: "r:"
            max_key_length: Raw keys longer than this are stored as their
                            sha256 hex digest. Default: 200
            serializer: Function turning payloads into a storable value.
                        Defaults to pickle, which preserves payloads exactly.
            deserializer: Inverse of serializer. Defaults to pickle.loads.
            strict_patterns: When True, wildcard patterns must match the whole
                             reference name. Default: False (prefix match,
                             compatible with data written by other clients)
            create_ttl_index: Ask the backend to reap expired records. Default: True
            debug: When True, enables verbose debug logging. Default: False
        """
        if backend is None:
            raise ConfigurationError("DocumentStorage requires a backend, e.g. MongoBackend(collection=...)")

        self.logger = logger or logging.getLogger("docref")
        if debug:
            self.logger.setLevel(logging.DEBUG)
            # Add a handler if none exists
            if not self.logger.handlers:
                handler = logging.StreamHandler()
                formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
                handler.setFormatter(formatter)
                self.logger.addHandler(handler)
        self.debug = debug

        self.backend = backend
        self.codec = KeyCodec(value_prefix, reference_prefix, max_key_length)
        self.expiration = ExpirationPolicy()
        self.references = self.reference_index_class(backend, self.codec, self.expiration, self.logger,
                                                     strict_patterns=strict_patterns)
        self.values = self.value_store_class(backend, self.codec, self.expiration, self.references, self.logger,
                                             serializer=serializer, deserializer=deserializer)
        self.invalidation = self.invalidation_engine_class(backend, self.codec, self.values, self.references,
                                                           self.logger)

        if create_ttl_index:
            self._initialize_ttl_index()

        self.logger.debug("DocumentStorage initialized with %s backend", backend.__class__.__name__)

    def _initialize_ttl_index(self) -> None:
        try:
            self.backend.ensure_ttl_index(self.expiration.field)
        except Exception as e:
            # the index may already exist with other options
            self.logger.warning("Failed to create TTL index on %s: %s", self.expiration.field, e, exc_info=True)

    def get(self, key: str) -> Any:
        """Cached payload for key, or None on a miss."""
        return self.values.get(key)

    def set(self, key: str, value: Any, ttl: int = 0,
            references: Optional[Union[str, Iterable[str]]] = None) -> None:
        """
        Store value under key.

        Args:
            key: Cache key
            value: Payload; read back exactly as given (pickled unless a serializer is set)
            ttl: Time to live in seconds, 0 or less for no expiry
            references: Optional reference(s) used to invalidate this entry later

        Raises:
            Whatever the backend raised if the value itself could not be written.
            Failures to index references are only logged.
        """
        self.values.set(key, value, ttl, references)

    def remove(self, key: str) -> None:
        """Remove key. Missing keys are ignored."""
        self.values.remove(key)

    def invalidate(self, references: Union[str, Iterable[str]]) -> int:
        """
        Invalidate all entries tagged with the reference(s).

        Args:
            references: A reference, a wildcard pattern such as "user:*", or a list of them

        Returns:
            Number of cache entries removed

        Example:
            ```python
            storage.invalidate("user:1")
            storage.invalidate(["user:*", "team:7"])
            ```
        """
        return self.invalidation.invalidate(references)

    def clear(self) -> int:
        """Delete every value and reference record. Returns the number deleted."""
        return self.invalidation.clear()

    def refresh(self, key: str, ttl: int) -> None:
        """Reset the TTL of key; ttl <= 0 makes it never expire."""
        self.values.refresh(key, ttl)

    def get_ttl(self, key: str) -> int:
        """Remaining seconds to live for key, 0 if missing or without expiry."""
        return self.values.get_ttl(key)

    def exists(self, key: str) -> bool:
        """True if a record for key is currently stored."""
        return self.values.exists(key)
