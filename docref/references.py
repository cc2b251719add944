"""Reference records: reverse index from a reference to the cache keys tagged with it."""

import logging
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from .backends.base import Document, DocumentBackend
from .expiration import ExpirationPolicy, utcnow
from .keys import KeyCodec

KEYS_FIELD = "keys"


class ReferenceIndex:
    """
    Maintains one document per reference holding the raw keys tagged with it.

    Keys are appended with an atomic set-append upsert, so concurrent writers
    never lose each other's keys. The reference's expiry follows the most
    recent write with a positive TTL and may go backwards when writes race.
    """

    def __init__(self, backend: DocumentBackend, codec: KeyCodec,
                 expiration: ExpirationPolicy, logger: logging.Logger,
                 strict_patterns: bool = False):
        self.backend = backend
        self.codec = codec
        self.expiration = expiration
        self.logger = logger
        self.strict_patterns = strict_patterns

    def _add_key_update(self, ttl: int) -> Tuple[Optional[Document], Document]:
        set_fields = None
        expire_at = self.expiration.expire_at(ttl)
        if expire_at is not None:
            set_fields = {self.expiration.field: expire_at}
        return set_fields, {"createdAt": utcnow()}

    @staticmethod
    def _keys_of(doc: Optional[Document]) -> Set[str]:
        if not doc:
            return set()
        return set(doc.get(KEYS_FIELD) or ())

    def _report(self, reference: str, key: str, error: Exception) -> None:
        self.logger.warning("Failed to store reference %s for key %s: %s", reference, key, error, exc_info=True)

    def _summarize(self, key: str, written: int, failed: List[Any]) -> None:
        if failed:
            self.logger.warning("Stored %d of %d references for key %s", written, written + len(failed), key)

    def add_key(self, reference: str, key: str, ttl: int = 0) -> None:
        """Tag key with reference. Backend errors propagate."""
        set_fields, set_on_insert = self._add_key_update(ttl)
        self.backend.add_to_set(
            self.codec.reference_id(reference),
            KEYS_FIELD,
            key,
            set_fields=set_fields,
            set_on_insert=set_on_insert,
        )

    def add_keys(self, references: Iterable[str], key: str, ttl: int = 0) -> int:
        """
        Tag key with every reference. A failing reference is logged and skipped,
        the others are still written.

        Returns:
            Number of references written
        """
        written = 0
        failed = []
        for reference in references:
            try:
                self.add_key(reference, key, ttl)
                written += 1
            except Exception as e:
                failed.append(reference)
                self._report(reference, key, e)
        self._summarize(key, written, failed)
        return written

    def lookup(self, reference: str) -> Set[str]:
        """Raw keys tagged with reference; empty if the reference is unknown."""
        return self._keys_of(self.backend.find_one(self.codec.reference_id(reference), fields=[KEYS_FIELD]))

    def lookup_by_pattern(self, pattern: str) -> Dict[str, Set[str]]:
        """
        Find every reference matching a wildcard pattern such as "user:*".

        Returns:
            Mapping of reference id (as stored) to its raw keys
        """
        regex = self._pattern(pattern)
        return {doc["_id"]: self._keys_of(doc) for doc in self.backend.find_matching(regex)}

    def _pattern(self, pattern: str) -> str:
        regex = self.codec.wildcard_pattern(pattern, anchor_end=self.strict_patterns)
        self.logger.debug("Looking up references matching %s", regex)
        return regex

    def delete_reference(self, reference_id: str) -> int:
        return self.backend.delete(reference_id)

    def delete_references(self, reference_ids: Iterable[str]) -> int:
        reference_ids = list(reference_ids)
        if not reference_ids:
            return 0
        return self.backend.delete(*reference_ids)
