import logging

from motor.motor_asyncio import AsyncIOMotorDatabase

from chatternet.repositories.message_repository import MessageRepository
from chatternet.repositories.notification_repository import NotificationRepository
from chatternet.repositories.thread_repository import ThreadRepository


logger = logging.getLogger(__name__)


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    await ThreadRepository(db).ensure_indexes()
    await MessageRepository(db).ensure_indexes()
    await NotificationRepository(db).ensure_indexes()
    logger.info("mongo_indexes_ensured")
