from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from motor.motor_asyncio import AsyncIOMotorDatabase

from chatternet.core.config import Settings, get_settings
from chatternet.core.exceptions import UnauthenticatedError
from chatternet.database.connection import mongo_db_dependency
from chatternet.repositories.message_repository import MessageRepository
from chatternet.repositories.notification_repository import NotificationRepository
from chatternet.repositories.preference_repository import PreferenceRepository
from chatternet.repositories.presence_repository import PresenceRepository
from chatternet.repositories.thread_repository import ThreadRepository
from chatternet.repositories.user_repository import UserRepository
from chatternet.services.chat_service import ChatService
from chatternet.services.notification_service import NotificationService
from chatternet.services.presence_service import PresenceService
from chatternet.services.thread_service import ThreadService
from chatternet.utils.clock import Clock, utc_now
from chatternet.utils.security import decode_access_token
from chatternet.utils.websocket_manager import EventPublisher


bearer_scheme = HTTPBearer(auto_error=False)


def get_clock() -> Clock:
    return utc_now


def get_publisher() -> EventPublisher:
    return EventPublisher()


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    if credentials is None or not credentials.credentials:
        raise UnauthenticatedError("Missing bearer token")
    payload = decode_access_token(credentials.credentials)
    return str(payload["sub"])


def get_thread_service(db: AsyncIOMotorDatabase = Depends(mongo_db_dependency), clock: Clock = Depends(get_clock)) -> ThreadService:
    return ThreadService(ThreadRepository(db), UserRepository(db), clock=clock)


def get_notification_service(
    db: AsyncIOMotorDatabase = Depends(mongo_db_dependency),
    publisher: EventPublisher = Depends(get_publisher),
    clock: Clock = Depends(get_clock),
) -> NotificationService:
    return NotificationService(PreferenceRepository(db), NotificationRepository(db), publisher=publisher, clock=clock)


def get_chat_service(
    db: AsyncIOMotorDatabase = Depends(mongo_db_dependency),
    thread_service: ThreadService = Depends(get_thread_service),
    notifier: NotificationService = Depends(get_notification_service),
    publisher: EventPublisher = Depends(get_publisher),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
) -> ChatService:
    return ChatService(
        MessageRepository(db),
        ThreadRepository(db),
        thread_service,
        notifier,
        publisher=publisher,
        max_length=settings.max_message_length,
        default_limit=settings.history_default_limit,
        max_limit=settings.history_max_limit,
        max_attempts=settings.append_max_attempts,
        clock=clock,
    )


def get_presence_service(
    db: AsyncIOMotorDatabase = Depends(mongo_db_dependency),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
) -> PresenceService:
    return PresenceService(
        PresenceRepository(db),
        UserRepository(db),
        staleness_seconds=settings.presence_staleness_seconds,
        clock=clock,
    )
