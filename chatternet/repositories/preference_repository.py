from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase


class PreferenceRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["notification_preferences"]

    async def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await self.collection.find_one({"_id": user_id})

    async def put(self, user_id: str, preferences: Dict[str, Any]) -> None:
        doc = dict(preferences)
        doc["_id"] = user_id
        await self.collection.replace_one({"_id": user_id}, doc, upsert=True)
