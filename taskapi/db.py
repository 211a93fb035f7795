"""Async MongoDB wrapper for the task API.

Provides a clean interface for MongoDB operations with proper resource management.
Uses motor (async pymongo driver) directly.
"""

from typing import Any, Dict, List, Optional, Sequence

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, ReturnDocument

USERS = "users"
REFRESH_TOKENS = "refresh_tokens"
TASKS = "tasks"


class TaskApiDB:
    """Async MongoDB wrapper with proper resource management.

    A thin wrapper around motor that handles connection lifecycle.
    No application-specific logic beyond index creation - just generic MongoDB operations.

    Example:
        ```python
        db = TaskApiDB(uri="mongodb://localhost:27017", db_name="taskapi")
        await db.connect()
        await db.insert_one("users", {"name": "Alice"})
        user = await db.find_one("users", {"name": "Alice"})
        await db.disconnect()
        ```
    """

    def __init__(
        self,
        uri: str = "mongodb://localhost:27017",
        db_name: str = "taskapi",
    ):
        """Initialize with connection parameters. No connection made until connect()."""
        self._uri = uri
        self._db_name = db_name
        self._client: Optional[AsyncIOMotorClient] = None
        self._db: Optional[AsyncIOMotorDatabase] = None

    @property
    def is_connected(self) -> bool:
        """Whether the database is connected."""
        return self._client is not None

    async def connect(self) -> "TaskApiDB":
        """Connect to MongoDB. Returns self for chaining."""
        if self._client is not None:
            return self
        # tz_aware so stored expiries compare against aware datetimes
        self._client = AsyncIOMotorClient(self._uri, tz_aware=True)
        self._db = self._client[self._db_name]
        return self

    async def disconnect(self) -> None:
        """Disconnect and cleanup."""
        if self._client is not None:
            self._client.close()
            self._client = None
            self._db = None

    async def ensure_indexes(self) -> None:
        """Create the unique and lookup indexes the repositories rely on."""
        if not self.is_connected:
            await self.connect()
        await self._db[USERS].create_index("email", unique=True)
        await self._db[REFRESH_TOKENS].create_index("token", unique=True)
        await self._db[REFRESH_TOKENS].create_index("user_id")
        await self._db[TASKS].create_index("user_id")
        await self._db[TASKS].create_index([("user_id", ASCENDING), ("created_at", ASCENDING)])

    # -------------------------------------------------------------------------
    # Generic CRUD
    # -------------------------------------------------------------------------

    async def insert_one(self, collection: str, document: Dict[str, Any]) -> Any:
        """Insert a document. Returns the inserted ID."""
        if not self.is_connected:
            await self.connect()
        result = await self._db[collection].insert_one(document)
        return result.inserted_id

    async def find_one(self, collection: str, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Find a single document."""
        if not self.is_connected:
            await self.connect()
        return await self._db[collection].find_one(query)

    async def find_many(
        self,
        collection: str,
        query: Optional[Dict[str, Any]] = None,
        sort: Optional[Sequence[tuple]] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> List[Dict[str, Any]]:
        """Find multiple documents."""
        if not self.is_connected:
            await self.connect()
        cursor = self._db[collection].find(query or {})
        if sort:
            cursor = cursor.sort(list(sort))
        if skip > 0:
            cursor = cursor.skip(skip)
        if limit > 0:
            cursor = cursor.limit(limit)
        return await cursor.to_list(length=None)

    async def find_one_and_update(
        self, collection: str, query: Dict[str, Any], update: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """Apply an update to one document and return it as it is after the update."""
        if not self.is_connected:
            await self.connect()
        return await self._db[collection].find_one_and_update(
            query, update, return_document=ReturnDocument.AFTER
        )

    async def delete_one(self, collection: str, query: Dict[str, Any]) -> int:
        """Delete a single document. Returns count deleted (0 or 1)."""
        if not self.is_connected:
            await self.connect()
        result = await self._db[collection].delete_one(query)
        return result.deleted_count

    async def delete_many(self, collection: str, query: Optional[Dict[str, Any]] = None) -> int:
        """Delete documents. Returns count deleted."""
        if not self.is_connected:
            await self.connect()
        result = await self._db[collection].delete_many(query or {})
        return result.deleted_count

    async def count(self, collection: str, query: Optional[Dict[str, Any]] = None) -> int:
        """Count documents matching query."""
        if not self.is_connected:
            await self.connect()
        return await self._db[collection].count_documents(query or {})
