# Example 1: Basic usage with a MongoDB collection
import asyncio

from pymongo import MongoClient

from docref import AsyncDocumentStorage, AsyncMongoBackend, DocumentStorage, MongoBackend

client = MongoClient("mongodb://localhost:27017")
collection = client["app"]["cache"]

# Values and reference indices share the collection
storage = DocumentStorage(backend=MongoBackend(collection=collection))

storage.set("getUser:1", {"id": 1, "name": "User 1"}, ttl=5, references=["user:1"])
storage.set("getUserPosts:1", [{"id": 1, "title": "First Post"}], ttl=5, references=["user:1:posts"])
print("Cached:", storage.get("getUser:1"), "ttl", storage.get_ttl("getUser:1"))


# Example 2: Invalidation by reference
storage.invalidate("user:1")
print("After invalidating user:1:", storage.get("getUser:1"))


# Example 3: Wildcard invalidation of every user reference
for user_id in (1, 2, 3):
    storage.set(f"getUser:{user_id}", {"id": user_id}, ttl=60, references=[f"user:{user_id}"])
removed = storage.invalidate("user:*")
print("Wildcard invalidation removed", removed, "entries")


# Example 4: Building the backend from a URI and a database name
backend = MongoBackend.from_uri("mongodb://localhost:27017", database="app", collection_name="cache")
other = DocumentStorage(backend=backend, debug=True)
other.set("config", {"feature": True})  # no TTL, never expires
other.refresh("config", 3600)  # now expires in an hour
print("Config ttl:", other.get_ttl("config"))


# Example 5: The same storage from asyncio code
async def async_example():
    async_storage = AsyncDocumentStorage(AsyncMongoBackend.from_uri("mongodb://localhost:27017", database="app"))
    await async_storage.set("getUser:9", {"id": 9}, ttl=60, references=["user:9"])
    print("Async cached:", await async_storage.get("getUser:9"))
    await async_storage.invalidate("user:9")


asyncio.run(async_example())


# Cleanup
storage.clear()
client.close()
