"""Memory backend implementation for docref."""

import copy
import datetime
import re
import threading
from typing import Any, Dict, Iterable, List, Optional

from .base import Document, DocumentBackend, logger


class MemoryBackend(DocumentBackend):
    """
    In-memory backend implementation.
    Useful for testing or applications that don't need persistence.

    Documents are deep-copied on the way in and out, so callers never share
    state with the store.

    This implementation uses a single RLock to protect all operations.
    The _check_expiry method plays the role of the TTL reaper: once
    ensure_ttl_index() has named an expiry field, documents whose expiry has
    passed are dropped the next time they are touched. It assumes the lock is
    already held by the caller.
    """

    def __init__(self):
        """Initialize an empty in-memory document store."""
        self.documents: Dict[str, Document] = {}
        self.ttl_field: Optional[str] = None
        self.lock = threading.RLock()  # For thread safety
        logger.debug("Initialized MemoryBackend")

    def _check_expiry(self, doc_id: str) -> bool:
        """
        Check if a document is expired and delete it if so.

        IMPORTANT: This method assumes the lock is already held!

        Returns:
            True if the document was expired and removed, False otherwise
        """
        if self.ttl_field is None:
            return False
        doc = self.documents.get(doc_id)
        if doc is None:
            return False
        expire_at = doc.get(self.ttl_field)
        if not isinstance(expire_at, datetime.datetime):
            return False
        if expire_at.tzinfo is None:
            expire_at = expire_at.replace(tzinfo=datetime.timezone.utc)
        if expire_at <= datetime.datetime.now(datetime.timezone.utc):
            logger.debug("Document %s expired, removing", doc_id)
            del self.documents[doc_id]
            return True
        return False

    def _sweep(self) -> None:
        # lock must be held
        for doc_id in list(self.documents):
            self._check_expiry(doc_id)

    def find_one(self, doc_id: str, fields: Optional[Iterable[str]] = None) -> Optional[Document]:
        logger.debug("Memory FIND_ONE %s", doc_id)
        with self.lock:
            self._check_expiry(doc_id)
            doc = self.documents.get(doc_id)
            if doc is None:
                return None
            if fields:
                wanted = set(fields) | {"_id"}
                doc = {k: v for k, v in doc.items() if k in wanted}
            return copy.deepcopy(doc)

    def replace(self, doc_id: str, document: Document) -> None:
        logger.debug("Memory REPLACE %s", doc_id)
        stored = copy.deepcopy(dict(document))
        stored["_id"] = doc_id
        with self.lock:
            self.documents[doc_id] = stored

    def add_to_set(self, doc_id: str, field: str, value: Any,
                   set_fields: Optional[Document] = None,
                   set_on_insert: Optional[Document] = None) -> None:
        logger.debug("Memory ADD_TO_SET %s %s %s", doc_id, field, value)
        with self.lock:
            # an expired document is gone, start over with a fresh one
            self._check_expiry(doc_id)

            doc = self.documents.get(doc_id)
            if doc is None:
                doc = {"_id": doc_id}
                if set_on_insert:
                    doc.update(copy.deepcopy(set_on_insert))
                self.documents[doc_id] = doc

            members = doc.setdefault(field, [])
            if value not in members:
                members.append(copy.deepcopy(value))
            if set_fields:
                doc.update(copy.deepcopy(set_fields))

    def update_fields(self, doc_id: str, set_fields: Optional[Document] = None,
                      unset_fields: Optional[Iterable[str]] = None) -> bool:
        logger.debug("Memory UPDATE %s set=%s unset=%s", doc_id, set_fields, unset_fields)
        with self.lock:
            self._check_expiry(doc_id)
            doc = self.documents.get(doc_id)
            if doc is None:
                return False
            if set_fields:
                doc.update(copy.deepcopy(set_fields))
            for field in unset_fields or ():
                doc.pop(field, None)
            return True

    def find_matching(self, pattern: str) -> List[Document]:
        logger.debug("Memory FIND %s", pattern)
        regex = re.compile(pattern)
        with self.lock:
            self._sweep()
            return [copy.deepcopy(doc) for doc_id, doc in self.documents.items() if regex.search(doc_id)]

    def exists(self, doc_id: str) -> bool:
        logger.debug("Memory EXISTS %s", doc_id)
        with self.lock:
            self._check_expiry(doc_id)
            return doc_id in self.documents

    def delete(self, *doc_ids: str) -> int:
        """Delete one or more documents."""
        logger.debug("Memory DELETE %s", doc_ids)
        count = 0
        with self.lock:
            for doc_id in doc_ids:
                if self.documents.pop(doc_id, None) is not None:
                    count += 1
        return count

    def delete_matching(self, pattern: str) -> int:
        logger.debug("Memory DELETE_MATCHING %s", pattern)
        regex = re.compile(pattern)
        with self.lock:
            matched = [doc_id for doc_id in self.documents if regex.search(doc_id)]
            for doc_id in matched:
                del self.documents[doc_id]
        return len(matched)

    def ensure_ttl_index(self, field: str) -> None:
        logger.debug("Memory TTL field %s", field)
        with self.lock:
            self.ttl_field = field
