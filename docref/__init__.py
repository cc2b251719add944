"""
docref - cache storage with reference-based invalidation on top of a document store.

Cache entries and the reverse index from references to cache keys are kept
as documents in one collection (MongoDB by default), so a caching layer can
invalidate every entry tagged with a reference, or a wildcard family of
references, in a couple of round-trips.
"""

__version__ = '0.1.0'

# Import main components
from .aio import AsyncDocumentStorage
from .backends.base import AsyncDocumentBackend, DocumentBackend
from .backends.memory import MemoryBackend
from .backends.mongo import AsyncMongoBackend, MongoBackend
from .exceptions import ConfigurationError, DocrefError
from .storage import DocumentStorage

# Export public API
__all__ = [
    'DocumentStorage',
    'AsyncDocumentStorage',
    'DocumentBackend',
    'AsyncDocumentBackend',
    'MemoryBackend',
    'MongoBackend',
    'AsyncMongoBackend',
    'ConfigurationError',
    'DocrefError',
]
