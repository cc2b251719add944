"""Tests for the MemoryBackend implementation."""

import datetime

from freezegun import freeze_time

from docref import MemoryBackend


def test_memory_backend_init():
    """Test MemoryBackend initialization."""
    backend = MemoryBackend()
    assert isinstance(backend, MemoryBackend)
    assert backend.documents == {}
    assert backend.ttl_field is None


def test_memory_backend_replace_and_find():
    """Test basic replace/find_one operations."""
    backend = MemoryBackend()

    backend.replace("v:key1", {"value": "value1", "extra": 1})
    assert backend.find_one("v:key1") == {"_id": "v:key1", "value": "value1", "extra": 1}

    # Replace drops fields missing from the new document
    backend.replace("v:key1", {"value": "value2"})
    assert backend.find_one("v:key1") == {"_id": "v:key1", "value": "value2"}

    # Projection
    assert backend.find_one("v:key1", fields=["value"]) == {"_id": "v:key1", "value": "value2"}

    # Get non-existent key
    assert backend.find_one("v:nonexistent") is None


def test_memory_backend_copies_documents():
    """Stored documents are isolated from the caller's objects."""
    backend = MemoryBackend()
    payload = {"nested": [1, 2]}
    backend.replace("v:key", {"value": payload})
    payload["nested"].append(3)

    doc = backend.find_one("v:key")
    assert doc["value"] == {"nested": [1, 2]}
    doc["value"]["nested"].append(4)
    assert backend.find_one("v:key")["value"] == {"nested": [1, 2]}


def test_memory_backend_add_to_set():
    """Test set-append upserts."""
    backend = MemoryBackend()

    backend.add_to_set("r:ref", "keys", "a", set_on_insert={"createdAt": 1}, set_fields={"expireAt": 10})
    backend.add_to_set("r:ref", "keys", "b", set_on_insert={"createdAt": 2}, set_fields={"expireAt": 20})
    backend.add_to_set("r:ref", "keys", "a", set_on_insert={"createdAt": 3})

    doc = backend.find_one("r:ref")
    assert doc["keys"] == ["a", "b"]
    # inserted once, expiry follows the last writer
    assert doc["createdAt"] == 1
    assert doc["expireAt"] == 20


def test_memory_backend_update_fields():
    backend = MemoryBackend()
    backend.replace("v:key", {"value": 1, "expireAt": 5})

    assert backend.update_fields("v:key", set_fields={"value": 2}) is True
    assert backend.update_fields("v:key", unset_fields=["expireAt"]) is True
    assert backend.find_one("v:key") == {"_id": "v:key", "value": 2}

    # Never inserts
    assert backend.update_fields("v:missing", set_fields={"value": 1}) is False
    assert backend.find_one("v:missing") is None


def test_memory_backend_delete():
    """Test document deletion."""
    backend = MemoryBackend()

    backend.replace("v:key1", {"value": 1})
    backend.replace("v:key2", {"value": 2})
    backend.replace("v:key3", {"value": 3})

    # Delete one key
    assert backend.delete("v:key1") == 1
    assert backend.find_one("v:key1") is None
    assert backend.exists("v:key2")

    # Delete multiple keys
    assert backend.delete("v:key2", "v:key3", "v:nonexistent") == 2
    assert backend.documents == {}
    assert backend.delete() == 0


def test_memory_backend_matching():
    """Test regex queries over ids."""
    backend = MemoryBackend()

    backend.replace("r:user:1", {"keys": ["a"]})
    backend.replace("r:user:2", {"keys": ["b"]})
    backend.replace("r:team:1", {"keys": ["c"]})
    backend.replace("v:user:1", {"value": 1})

    found = backend.find_matching("^r:user:")
    assert sorted(doc["_id"] for doc in found) == ["r:user:1", "r:user:2"]

    assert backend.delete_matching("^(v:|r:user)") == 3
    assert list(backend.documents) == ["r:team:1"]


def test_memory_backend_expiry():
    """Expired documents disappear once a TTL field is configured."""
    backend = MemoryBackend()
    now = datetime.datetime.now(datetime.timezone.utc)
    backend.replace("v:key1", {"value": 1, "expireAt": now + datetime.timedelta(seconds=10)})
    backend.replace("v:key2", {"value": 2})

    # Without a TTL index nothing is reaped
    with freeze_time(now + datetime.timedelta(seconds=11)):
        assert backend.exists("v:key1")

    backend.ensure_ttl_index("expireAt")
    assert backend.exists("v:key1")
    with freeze_time(now + datetime.timedelta(seconds=11)):
        assert backend.find_one("v:key1") is None
        assert not backend.exists("v:key1")
        assert backend.exists("v:key2")


def test_memory_backend_add_to_set_after_expiry():
    """An expired reference starts over instead of reviving old keys."""
    backend = MemoryBackend()
    backend.ensure_ttl_index("expireAt")
    now = datetime.datetime.now(datetime.timezone.utc)
    backend.add_to_set("r:ref", "keys", "old", set_fields={"expireAt": now + datetime.timedelta(seconds=5)})

    with freeze_time(now + datetime.timedelta(seconds=6)):
        backend.add_to_set("r:ref", "keys", "new")
        assert backend.find_one("r:ref")["keys"] == ["new"]
