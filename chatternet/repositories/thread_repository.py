import json
from typing import Any, Dict, List

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from chatternet.core.exceptions import ThreadNotFoundError


PREVIEW_LENGTH = 200


def pair_key(user_a: str, user_b: str) -> str:
    # JSON keeps ids containing separators from colliding
    return json.dumps(sorted([user_a, user_b]), separators=(",", ":"))


class ThreadRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["threads"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("pair_key", ASCENDING)], unique=True)
        await self.collection.create_index([("participants", ASCENDING), ("last_message_at_ms", DESCENDING)])

    async def get_or_create_one_to_one(self, user_a: str, user_b: str, now_ms: int) -> Dict[str, Any]:
        key = pair_key(user_a, user_b)
        try:
            doc = await self.collection.find_one_and_update(
                {"pair_key": key},
                {
                    "$setOnInsert": {
                        "pair_key": key,
                        "participants": sorted([user_a, user_b]),
                        "created_at_ms": now_ms,
                        "last_seq": 0,
                        "last_message_at_ms": 0,
                        "last_message_preview": None,
                    }
                },
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            # a concurrent upsert won the insert; the unique index guarantees one row
            doc = await self.collection.find_one({"pair_key": key})
        doc["_id"] = str(doc["_id"])
        return doc

    async def get(self, thread_id: str) -> Dict[str, Any]:
        doc = await self.collection.find_one({"_id": self._to_object_id(thread_id)})
        if not doc:
            raise ThreadNotFoundError(details={"thread_id": thread_id})
        doc["_id"] = str(doc["_id"])
        return doc

    async def record_activity(self, thread_id: str, seq: int, created_at_ms: int, preview: str) -> bool:
        """Advance the thread's last-message fields; never moves them backward."""
        result = await self.collection.update_one(
            {"_id": self._to_object_id(thread_id), "last_seq": {"$lt": seq}},
            {
                "$set": {
                    "last_seq": seq,
                    "last_message_at_ms": created_at_ms,
                    "last_message_preview": preview[:PREVIEW_LENGTH],
                }
            },
        )
        return bool(result.modified_count)

    async def list_for_user(self, user_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        sort = [("last_message_at_ms", DESCENDING), ("created_at_ms", DESCENDING)]
        cursor_db = self.collection.find({"participants": user_id}).sort(sort).limit(limit)
        items = await cursor_db.to_list(length=limit)
        for it in items:
            it["_id"] = str(it.get("_id"))
        return items

    async def count_for_pair(self, user_a: str, user_b: str) -> int:
        return await self.collection.count_documents({"pair_key": pair_key(user_a, user_b)})

    def _to_object_id(self, thread_id: str) -> ObjectId:
        try:
            return ObjectId(thread_id)
        except (InvalidId, TypeError) as exc:
            raise ThreadNotFoundError(details={"thread_id": thread_id}) from exc
