from datetime import datetime, timezone
from typing import Optional

from pymongo.errors import DuplicateKeyError

from taskapi.db import USERS
from taskapi.errors import ConflictError
from taskapi.repositories.base_repository import BaseRepository, to_object_id
from taskapi.types import User


class UserRepository(BaseRepository):
    collection_name = USERS

    @staticmethod
    def to_model(doc: dict) -> User:
        return User(
            id=str(doc["_id"]),
            name=doc["name"],
            email=doc["email"],
            password_hash=doc["password_hash"],
            created_at=doc.get("created_at"),
        )

    async def find_by_email(self, email: str) -> Optional[User]:
        doc = await self._db.find_one(self.collection_name, {"email": email})
        if not doc:
            return None
        return self.to_model(doc)

    async def get_by_id(self, user_id: str) -> Optional[User]:
        oid = to_object_id(user_id)
        if oid is None:
            return None
        doc = await self._db.find_one(self.collection_name, {"_id": oid})
        if not doc:
            return None
        return self.to_model(doc)

    async def create_user(self, name: str, email: str, password_hash: str) -> User:
        data = {
            "name": name,
            "email": email,
            "password_hash": password_hash,
            "created_at": datetime.now(timezone.utc),
        }
        try:
            data["_id"] = await self._db.insert_one(self.collection_name, data)
        except DuplicateKeyError as e:
            # Lost a race with a concurrent registration for the same email
            raise ConflictError() from e
        self.logger.debug("User created", user_id=str(data["_id"]))
        return self.to_model(data)
