"""Notification policy: decide whether and how a recipient is alerted.

Gates run in order: event kind toggle, in-app channel, do-not-disturb
window. Messages themselves are never affected; only the alert is.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from chatternet.repositories.notification_repository import NotificationRepository
from chatternet.repositories.preference_repository import PreferenceRepository
from chatternet.schemas.notification import NotificationOut, NotificationPreferences
from chatternet.utils.clock import Clock, from_ms, to_ms, utc_now
from chatternet.utils.websocket_manager import EventPublisher


logger = logging.getLogger(__name__)

NEW_MESSAGE_TEXT = "New message received."


@dataclass(frozen=True)
class NotificationDecision:
    deliver: bool
    sound: bool = False
    email: bool = False
    reason: str = "ok"


def minute_of_day(now: datetime, tz_name: str) -> int:
    local = now.astimezone(ZoneInfo(tz_name))
    return local.hour * 60 + local.minute


def evaluate(preferences: NotificationPreferences, now: datetime, kind: str = "dm") -> NotificationDecision:
    if not preferences.kind_enabled(kind):
        return NotificationDecision(deliver=False, reason="kind_disabled")
    if not preferences.channels.in_app:
        return NotificationDecision(deliver=False, reason="in_app_disabled")
    if preferences.dnd.contains(minute_of_day(now, preferences.timezone)):
        return NotificationDecision(deliver=False, reason="dnd")
    return NotificationDecision(
        deliver=True,
        sound=preferences.channels.sound,
        email=preferences.channels.email,
    )


def notification_out(doc: Dict[str, Any]) -> NotificationOut:
    return NotificationOut(
        id=str(doc["_id"]),
        kind=doc["kind"],
        text=doc["text"],
        time=from_ms(doc["time_ms"]),
        sound=bool(doc.get("sound")),
        email=bool(doc.get("email")),
        thread_id=doc.get("thread_id"),
        message_id=doc.get("message_id"),
        sender_id=doc.get("sender_id"),
        read=bool(doc.get("read")),
    )


class NotificationService:

    def __init__(
        self,
        preference_repo: PreferenceRepository,
        notification_repo: NotificationRepository,
        publisher: Optional[EventPublisher] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._preference_repo = preference_repo
        self._notification_repo = notification_repo
        self._publisher = publisher
        self._clock = clock

    async def get_preferences(self, user_id: str) -> NotificationPreferences:
        doc = await self._preference_repo.get(user_id)
        if not doc:
            return NotificationPreferences()
        doc.pop("_id", None)
        return NotificationPreferences.model_validate(doc)

    async def put_preferences(self, user_id: str, preferences: NotificationPreferences) -> NotificationPreferences:
        await self._preference_repo.put(user_id, preferences.model_dump())
        return preferences

    async def notify(
        self,
        recipient_id: str,
        kind: str,
        text: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """Create and publish a notification if policy allows; never raises."""
        try:
            return await self._dispatch(recipient_id, kind, text, context or {})
        except Exception:
            logger.exception("notification_dispatch_failed recipient=%s kind=%s", recipient_id, kind)
            return None

    async def notify_new_message(self, recipient_id: str, message: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return await self.notify(
            recipient_id,
            "dm",
            NEW_MESSAGE_TEXT,
            {
                "thread_id": message["thread_id"],
                "message_id": message["seq"],
                "sender_id": message["sender_id"],
            },
        )

    async def _dispatch(self, recipient_id: str, kind: str, text: str, context: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        preferences = await self.get_preferences(recipient_id)
        now = self._clock()
        decision = evaluate(preferences, now, kind)
        if not decision.deliver:
            logger.info("notification_suppressed recipient=%s kind=%s reason=%s", recipient_id, kind, decision.reason)
            return None
        doc = await self._notification_repo.insert(
            {
                "user_id": recipient_id,
                "kind": kind,
                "text": text,
                "time_ms": to_ms(now),
                "sound": decision.sound,
                "email": decision.email,
                "thread_id": context.get("thread_id"),
                "message_id": context.get("message_id"),
                "sender_id": context.get("sender_id"),
                "read": False,
            }
        )
        if self._publisher is not None:
            await self._publisher.publish(recipient_id, "notification", notification_out(doc).model_dump(mode="json"))
        return doc

    async def list_notifications(self, user_id: str, limit: int = 50, unread_only: bool = False) -> List[NotificationOut]:
        items = await self._notification_repo.list_for_user(user_id, limit=limit, unread_only=unread_only)
        return [notification_out(it) for it in items]

    async def mark_read(self, user_id: str) -> int:
        return await self._notification_repo.mark_all_read(user_id)
