from datetime import datetime, timezone
from typing import Optional

from taskapi.db import REFRESH_TOKENS, USERS
from taskapi.repositories.base_repository import BaseRepository, to_object_id
from taskapi.repositories.user_repository import UserRepository
from taskapi.types import RefreshToken


class RefreshTokenRepository(BaseRepository):
    """Persisted refresh tokens, keyed by their literal (unique) token string."""

    collection_name = REFRESH_TOKENS

    @staticmethod
    def to_model(doc: dict) -> RefreshToken:
        return RefreshToken(
            id=str(doc["_id"]),
            token=doc["token"],
            user_id=str(doc["user_id"]),
            expires_at=doc["expires_at"],
            created_at=doc.get("created_at"),
        )

    async def create(self, token: str, user_id: str, expires_at: datetime) -> RefreshToken:
        data = {
            "token": token,
            "user_id": to_object_id(user_id),
            "expires_at": expires_at,
            "created_at": datetime.now(timezone.utc),
        }
        data["_id"] = await self._db.insert_one(self.collection_name, data)
        return self.to_model(data)

    async def find_by_value(self, token: str) -> Optional[RefreshToken]:
        """Look up a stored token by value, with its owning user attached."""
        doc = await self._db.find_one(self.collection_name, {"token": token})
        if not doc:
            return None
        stored = self.to_model(doc)
        user_doc = await self._db.find_one(USERS, {"_id": doc["user_id"]})
        if user_doc:
            stored.user = UserRepository.to_model(user_doc)
        return stored

    async def delete_by_id(self, token_id: str) -> bool:
        oid = to_object_id(token_id)
        if oid is None:
            return False
        return await self._db.delete_one(self.collection_name, {"_id": oid}) > 0

    async def delete_by_value(self, token: str) -> int:
        """Delete every stored row with this token value. Returns count deleted."""
        return await self._db.delete_many(self.collection_name, {"token": token})
