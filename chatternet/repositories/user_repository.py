from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING


class UserRepository:
    """Read-only view over the identity provider's user directory."""

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._collection = db.get_collection("users")

    @staticmethod
    def _id_candidates(value: str) -> List[Any]:
        candidates: List[Any] = [value]
        if ObjectId.is_valid(value):
            candidates.append(ObjectId(value))
        return candidates

    @staticmethod
    def _normalize(user: Dict[str, Any]) -> Dict[str, Any]:
        user["_id"] = str(user["_id"])  # normalize to string for API layer
        return user

    async def find_user(self, id_or_handle: str) -> Optional[dict]:
        user = await self._collection.find_one(
            {"$or": [{"_id": {"$in": self._id_candidates(id_or_handle)}}, {"handle": id_or_handle}]}
        )
        return self._normalize(user) if user else None

    async def find_user_by_handle(self, handle: str) -> Optional[dict]:
        user = await self._collection.find_one({"handle": handle})
        return self._normalize(user) if user else None

    async def get_users_by_ids(self, user_ids: Iterable[str]) -> Dict[str, dict]:
        candidates: List[Any] = []
        for user_id in user_ids:
            candidates.extend(self._id_candidates(user_id))
        if not candidates:
            return {}
        cursor = self._collection.find({"_id": {"$in": candidates}})
        users = {}
        async for doc in cursor:
            doc = self._normalize(doc)
            users[doc["_id"]] = doc
        return users

    async def list_users(self, limit: int = 500) -> List[dict]:
        cursor = self._collection.find({}).sort("handle", ASCENDING).limit(limit)
        items = await cursor.to_list(length=limit)
        return [self._normalize(it) for it in items]
