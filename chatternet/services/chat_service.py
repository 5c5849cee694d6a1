import logging
from typing import Any, Dict, Optional

from pymongo.errors import PyMongoError

from chatternet.core.exceptions import EmptyMessageError, TooLongError
from chatternet.database.errors import translate_store_errors
from chatternet.repositories.message_repository import MessageRepository, encode_cursor
from chatternet.repositories.thread_repository import ThreadRepository
from chatternet.schemas.chat import HistoryResponse, MessageOut
from chatternet.services.notification_service import NotificationService
from chatternet.services.thread_service import ThreadService
from chatternet.utils.clock import Clock, from_ms, to_ms, utc_now
from chatternet.utils.websocket_manager import EventPublisher


logger = logging.getLogger(__name__)


def message_out(doc: Dict[str, Any]) -> MessageOut:
    return MessageOut(
        id=doc["seq"],
        thread_id=doc["thread_id"],
        sender_id=doc["sender_id"],
        text=doc["text"],
        created_at=from_ms(doc["created_at_ms"]),
    )


class ChatService:
    """Append-only message log per thread."""

    def __init__(
        self,
        message_repo: MessageRepository,
        thread_repo: ThreadRepository,
        thread_service: ThreadService,
        notifier: NotificationService,
        publisher: Optional[EventPublisher] = None,
        max_length: int = 4000,
        default_limit: int = 50,
        max_limit: int = 200,
        max_attempts: int = 16,
        clock: Clock = utc_now,
    ) -> None:
        self._message_repo = message_repo
        self._thread_repo = thread_repo
        self._threads = thread_service
        self._notifier = notifier
        self._publisher = publisher
        self._max_length = max_length
        self._default_limit = default_limit
        self._max_limit = max_limit
        self._max_attempts = max_attempts
        self._clock = clock

    def validate_text(self, text: Optional[str]) -> str:
        body = (text or "").strip()
        if not body:
            raise EmptyMessageError()
        if len(body) > self._max_length:
            raise TooLongError(details={"max_length": self._max_length, "length": len(body)})
        return body

    async def append(self, thread_id: str, sender_id: str, text: str) -> Dict[str, Any]:
        body = self.validate_text(text)
        with translate_store_errors("append"):
            thread = await self._threads.get_thread_for_participant(thread_id, sender_id)
            saved = await self._message_repo.append_next(
                thread_id, sender_id, body, to_ms(self._clock()), max_attempts=self._max_attempts
            )
        logger.info("message_appended thread=%s seq=%d", thread_id, saved["seq"])
        await self._touch_thread(saved)
        for recipient_id in thread["participants"]:
            if recipient_id == sender_id:
                continue
            await self._fanout(recipient_id, saved)
            await self._notifier.notify_new_message(recipient_id, saved)
        return saved

    async def send_to_peer(self, sender_id: str, peer_id: str, text: str) -> Dict[str, Any]:
        self.validate_text(text)
        thread_id = await self._threads.resolve_thread(sender_id, peer_id)
        return await self.append(thread_id, sender_id, text)

    async def get_history(
        self,
        thread_id: str,
        user_id: str,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> HistoryResponse:
        limit = max(1, min(limit or self._default_limit, self._max_limit))
        with translate_store_errors("history"):
            await self._threads.get_thread_for_participant(thread_id, user_id)
            items, has_more = await self._message_repo.get_messages_by_thread(thread_id, limit=limit, cursor=cursor)
        next_cursor = encode_cursor(items[-1]) if items else cursor
        return HistoryResponse(
            messages=[message_out(it) for it in items],
            next_cursor=next_cursor,
            has_more=has_more,
        )

    async def _touch_thread(self, message: Dict[str, Any]) -> None:
        # listing metadata only; the stored message is authoritative
        try:
            await self._thread_repo.record_activity(
                message["thread_id"], message["seq"], message["created_at_ms"], message["text"]
            )
        except PyMongoError:
            logger.warning("thread_activity_update_failed thread=%s", message["thread_id"], exc_info=True)

    async def _fanout(self, recipient_id: str, message: Dict[str, Any]) -> None:
        # the message is stored; a lost push is recovered by the next poll
        if self._publisher is None:
            return
        try:
            await self._publisher.publish(recipient_id, "message", message_out(message).model_dump(mode="json"))
        except Exception:
            logger.exception("message_fanout_failed recipient=%s", recipient_id)
