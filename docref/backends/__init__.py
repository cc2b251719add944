"""Backend package for docref."""

from .base import AsyncDocumentBackend, DocumentBackend
from .memory import MemoryBackend
from .mongo import AsyncMongoBackend, MongoBackend

__all__ = ["DocumentBackend", "AsyncDocumentBackend", "MemoryBackend", "MongoBackend", "AsyncMongoBackend"]
