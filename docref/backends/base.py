"""Base document backend interface for docref."""

import logging
from typing import Any, Dict, Iterable, List, Optional

# Setup logger
logger = logging.getLogger("docref")

# A stored record: a mapping with an "_id" field
Document = Dict[str, Any]


class DocumentBackend:
    """
    Base class for document backends.

    Value records and reference records live side by side in one keyed space,
    so a backend only needs a handful of primitives: read by id, full replace,
    atomic set-append, regex query over ids and bulk delete.
    All backends must implement these methods to be compatible with DocumentStorage.
    """

    def find_one(self, doc_id: str, fields: Optional[Iterable[str]] = None) -> Optional[Document]:
        """
        Read a document by id.

        Args:
            doc_id: The document id
            fields: Optional field names to return; all fields when omitted

        Returns:
            The document or None if not found
        """
        raise NotImplementedError("Backend must implement find_one()")

    def replace(self, doc_id: str, document: Document) -> None:
        """
        Replace the whole document stored at doc_id, inserting it if missing.

        Args:
            doc_id: The document id
            document: The new document; fields absent here are dropped
        """
        raise NotImplementedError("Backend must implement replace()")

    def add_to_set(self, doc_id: str, field: str, value: Any,
                   set_fields: Optional[Document] = None,
                   set_on_insert: Optional[Document] = None) -> None:
        """
        Atomically add value to the array stored in field, creating the document if needed.

        Args:
            doc_id: The document id
            field: Array field holding unique values
            value: Value to add; ignored if already present
            set_fields: Fields overwritten on every call
            set_on_insert: Fields written only when the document is created
        """
        raise NotImplementedError("Backend must implement add_to_set()")

    def update_fields(self, doc_id: str, set_fields: Optional[Document] = None,
                      unset_fields: Optional[Iterable[str]] = None) -> bool:
        """
        Set and/or remove fields on an existing document. Never inserts.

        Returns:
            True if a document with doc_id exists
        """
        raise NotImplementedError("Backend must implement update_fields()")

    def find_matching(self, pattern: str) -> List[Document]:
        """
        Find documents whose id matches a regular expression.

        Args:
            pattern: Regular expression searched in the id (use ^ to anchor)

        Returns:
            List of matching documents
        """
        raise NotImplementedError("Backend must implement find_matching()")

    def exists(self, doc_id: str) -> bool:
        """Check whether a document with doc_id is stored."""
        raise NotImplementedError("Backend must implement exists()")

    def delete(self, *doc_ids: str) -> int:
        """
        Delete one or more documents by id.

        Args:
            *doc_ids: The ids to delete

        Returns:
            Number of documents deleted
        """
        raise NotImplementedError("Backend must implement delete()")

    def delete_matching(self, pattern: str) -> int:
        """
        Delete every document whose id matches a regular expression.

        Returns:
            Number of documents deleted
        """
        raise NotImplementedError("Backend must implement delete_matching()")

    def ensure_ttl_index(self, field: str) -> None:
        """
        Ask the backend to remove documents once the datetime stored in field has passed.

        Args:
            field: Name of the expiry field
        """
        raise NotImplementedError("Backend must implement ensure_ttl_index()")


class AsyncDocumentBackend:
    """
    Base class for asyncio document backends.

    Same primitives and semantics as DocumentBackend, as coroutines.
    All backends must implement these methods to be compatible with AsyncDocumentStorage.
    """

    async def find_one(self, doc_id: str, fields: Optional[Iterable[str]] = None) -> Optional[Document]:
        raise NotImplementedError("Backend must implement find_one()")

    async def replace(self, doc_id: str, document: Document) -> None:
        raise NotImplementedError("Backend must implement replace()")

    async def add_to_set(self, doc_id: str, field: str, value: Any,
                         set_fields: Optional[Document] = None,
                         set_on_insert: Optional[Document] = None) -> None:
        raise NotImplementedError("Backend must implement add_to_set()")

    async def update_fields(self, doc_id: str, set_fields: Optional[Document] = None,
                            unset_fields: Optional[Iterable[str]] = None) -> bool:
        raise NotImplementedError("Backend must implement update_fields()")

    async def find_matching(self, pattern: str) -> List[Document]:
        raise NotImplementedError("Backend must implement find_matching()")

    async def exists(self, doc_id: str) -> bool:
        raise NotImplementedError("Backend must implement exists()")

    async def delete(self, *doc_ids: str) -> int:
        raise NotImplementedError("Backend must implement delete()")

    async def delete_matching(self, pattern: str) -> int:
        raise NotImplementedError("Backend must implement delete_matching()")

    async def ensure_ttl_index(self, field: str) -> None:
        raise NotImplementedError("Backend must implement ensure_ttl_index()")
