"""Reference-driven invalidation."""

import logging
from typing import Dict, Iterable, Set, Union

from .backends.base import DocumentBackend
from .keys import KeyCodec
from .references import ReferenceIndex
from .utils import ensure_list
from .values import ValueStore

WILDCARD = "*"


def union_keys(matched: Dict[str, Set[str]]) -> Set[str]:
    """All raw keys listed by a set of reference records."""
    keys = set()
    for reference_keys in matched.values():
        keys.update(reference_keys)
    return keys


class InvalidationEngine:
    """
    Removes cache entries by reference.

    Values are deleted before the reference record that points at them. If the
    process dies in between, the leftover reference only lists keys that are
    already gone, and later reads of those keys are misses either way.

    Nothing here is atomic against concurrent writers: a key tagged with a
    reference after the lookup but before the deletes survives that pass.
    """

    def __init__(self, backend: DocumentBackend, codec: KeyCodec,
                 values: ValueStore, references: ReferenceIndex,
                 logger: logging.Logger):
        self.backend = backend
        self.codec = codec
        self.values = values
        self.references = references
        self.logger = logger

    def invalidate(self, references: Union[str, Iterable[str]]) -> int:
        """
        Invalidate every entry tagged with the given reference(s).

        References containing "*" are treated as wildcard patterns. Each
        reference is handled on its own; a failure is logged and the rest
        are still processed.

        Returns:
            Number of value records removed
        """
        removed = 0
        for reference in ensure_list(references):
            if WILDCARD in reference:
                removed += self.invalidate_wildcard(reference)
            else:
                removed += self.invalidate_exact(reference)
        return removed

    def invalidate_exact(self, reference: str) -> int:
        try:
            keys = self.references.lookup(reference)
            if not keys:
                self.logger.debug("No cache keys found for reference %s", reference)
                return 0

            removed = self.values.remove_many(keys)
            self.references.delete_reference(self.codec.reference_id(reference))
            self.logger.debug("Invalidated %d cache entries for reference %s", removed, reference)
            return removed
        except Exception as e:
            self.logger.error("Failed to invalidate reference %s: %s", reference, e, exc_info=True)
            return 0

    def invalidate_wildcard(self, pattern: str) -> int:
        try:
            matched = self.references.lookup_by_pattern(pattern)
            if not matched:
                self.logger.debug("No references match pattern %s", pattern)
                return 0

            removed = self.values.remove_many(union_keys(matched))
            self.references.delete_references(matched.keys())
            self.logger.debug("Invalidated %d cache entries across %d references for pattern %s",
                              removed, len(matched), pattern)
            return removed
        except Exception as e:
            self.logger.error("Failed to invalidate by pattern %s: %s", pattern, e, exc_info=True)
            return 0

    def clear(self) -> int:
        """
        Delete every value and reference record, identified by namespace prefix.
        Backend errors are logged and re-raised.

        Returns:
            Number of records deleted
        """
        try:
            deleted = self.backend.delete_matching(self.codec.namespace_pattern())
        except Exception as e:
            self.logger.error("Failed to clear cache: %s", e, exc_info=True)
            raise
        self.logger.info("Cleared %d cache records", deleted)
        return deleted
