import logging
from typing import Any, Dict, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError

from chatternet.core.exceptions import InvalidCursorError, TransientStoreError


logger = logging.getLogger(__name__)


def encode_cursor(message: Dict[str, Any]) -> str:
    # cursor format: created_at_ms:seq
    return f"{message['created_at_ms']}:{message['seq']}"


def decode_cursor(cursor: str) -> Tuple[int, int]:
    try:
        ts_str, seq_str = cursor.split(":", 1)
        return int(ts_str), int(seq_str)
    except (AttributeError, ValueError) as exc:
        raise InvalidCursorError(details={"cursor": cursor}) from exc


class MessageRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["messages"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("thread_id", ASCENDING), ("seq", ASCENDING)], unique=True)

    async def last_message(self, thread_id: str) -> Optional[Dict[str, Any]]:
        cur = self.collection.find({"thread_id": thread_id}, {"seq": 1, "created_at_ms": 1}).sort("seq", DESCENDING).limit(1)
        items = await cur.to_list(length=1)
        return items[0] if items else None

    async def save_message(
        self,
        thread_id: str,
        seq: int,
        sender_id: str,
        text: str,
        created_at_ms: int,
    ) -> Dict[str, Any]:
        doc: Dict[str, Any] = {
            "thread_id": thread_id,
            "seq": seq,
            "sender_id": sender_id,
            "text": text,
            "created_at_ms": created_at_ms,
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = str(result.inserted_id)
        return doc

    async def append_next(
        self,
        thread_id: str,
        sender_id: str,
        text: str,
        now_ms: int,
        max_attempts: int = 16,
    ) -> Dict[str, Any]:
        """Insert ``text`` as the next message of the thread.

        The insert is the allocation: ``seq`` is the last stored seq plus one
        and the unique ``(thread_id, seq)`` index rejects a concurrent writer
        that picked the same value, which then retries on top of the winner.
        A message only becomes visible after its predecessor, so history
        pages never gain rows behind a cursor. The timestamp never goes
        backward relative to the previous message.
        """
        for attempt in range(max_attempts):
            last = await self.last_message(thread_id)
            last_seq = int(last["seq"]) if last else 0
            last_ts = int(last["created_at_ms"]) if last else 0
            created_at_ms = now_ms if now_ms >= last_ts else last_ts + 1
            try:
                return await self.save_message(
                    thread_id=thread_id,
                    seq=last_seq + 1,
                    sender_id=sender_id,
                    text=text,
                    created_at_ms=created_at_ms,
                )
            except DuplicateKeyError:
                logger.debug("message_seq_contended thread=%s attempt=%d", thread_id, attempt + 1)
        raise TransientStoreError("message append contended", details={"thread_id": thread_id})

    async def get_messages_by_thread(
        self,
        thread_id: str,
        limit: int = 50,
        cursor: Optional[str] = None,
    ) -> Tuple[List[Dict[str, Any]], bool]:
        """Return up to ``limit`` messages after ``cursor`` in ascending order, and whether more exist."""
        query: Dict[str, Any] = {"thread_id": thread_id}
        if cursor:
            ts, seq = decode_cursor(cursor)
            query["$or"] = [
                {"created_at_ms": {"$gt": ts}},
                {"created_at_ms": ts, "seq": {"$gt": seq}},
            ]
        sort = [("created_at_ms", ASCENDING), ("seq", ASCENDING)]
        cur = self.collection.find(query).sort(sort).limit(limit + 1)
        items = await cur.to_list(length=limit + 1)
        has_more = len(items) > limit
        items = items[:limit]
        for it in items:
            it["_id"] = str(it.get("_id"))
        return items, has_more

    async def count_for_thread(self, thread_id: str) -> int:
        return await self.collection.count_documents({"thread_id": thread_id})
