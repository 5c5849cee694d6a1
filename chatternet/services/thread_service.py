import logging
from typing import Any, Dict, List

from chatternet.core.exceptions import NotAParticipantError, SelfThreadError, UnknownUserError
from chatternet.database.errors import translate_store_errors
from chatternet.repositories.thread_repository import ThreadRepository
from chatternet.repositories.user_repository import UserRepository
from chatternet.schemas.chat import ThreadOut
from chatternet.utils.clock import Clock, from_ms, to_ms, utc_now


logger = logging.getLogger(__name__)


def thread_out(doc: Dict[str, Any], viewer_id: str | None = None) -> ThreadOut:
    participants = list(doc.get("participants", []))
    peer_id = None
    if viewer_id is not None:
        peer_id = next((p for p in participants if p != viewer_id), None)
    last_ms = doc.get("last_message_at_ms") or 0
    return ThreadOut(
        id=str(doc["_id"]),
        participants=participants,
        peer_id=peer_id,
        created_at=from_ms(doc["created_at_ms"]),
        last_message_at=from_ms(last_ms) if last_ms else None,
        last_message_preview=doc.get("last_message_preview"),
    )


class ThreadService:
    """Thread directory: one thread per unordered pair of users."""

    def __init__(self, thread_repo: ThreadRepository, user_repo: UserRepository, clock: Clock = utc_now) -> None:
        self._thread_repo = thread_repo
        self._user_repo = user_repo
        self._clock = clock

    async def resolve_thread(self, user_a: str, user_b: str) -> str:
        if user_a == user_b:
            raise SelfThreadError(details={"user_id": user_a})
        with translate_store_errors("resolve_thread"):
            users = await self._user_repo.get_users_by_ids([user_a, user_b])
            for user_id in (user_a, user_b):
                if user_id not in users:
                    raise UnknownUserError(details={"user_id": user_id})
            doc = await self._thread_repo.get_or_create_one_to_one(user_a, user_b, to_ms(self._clock()))
        logger.debug("thread_resolved thread=%s", doc["_id"])
        return doc["_id"]

    async def get_thread(self, thread_id: str) -> Dict[str, Any]:
        return await self._thread_repo.get(thread_id)

    async def get_thread_for_participant(self, thread_id: str, user_id: str) -> Dict[str, Any]:
        doc = await self._thread_repo.get(thread_id)
        if user_id not in doc.get("participants", []):
            raise NotAParticipantError(details={"thread_id": thread_id})
        return doc

    async def list_threads(self, user_id: str, limit: int = 50) -> List[ThreadOut]:
        with translate_store_errors("list_threads"):
            items = await self._thread_repo.list_for_user(user_id, limit=limit)
        return [thread_out(it, viewer_id=user_id) for it in items]
