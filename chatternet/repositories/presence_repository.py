from typing import Dict, Iterable, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase


class PresenceRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["presence"]

    async def touch(self, user_id: str, now_ms: int) -> None:
        await self.collection.update_one(
            {"_id": user_id},
            {"$max": {"last_seen_ms": now_ms}},
            upsert=True,
        )

    async def last_seen(self, user_id: str) -> Optional[int]:
        doc = await self.collection.find_one({"_id": user_id})
        return int(doc["last_seen_ms"]) if doc else None

    async def last_seen_many(self, user_ids: Iterable[str]) -> Dict[str, int]:
        cur = self.collection.find({"_id": {"$in": list(user_ids)}})
        return {doc["_id"]: int(doc["last_seen_ms"]) async for doc in cur}
