import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from chatternet.core.config import get_settings


logger = logging.getLogger(__name__)

_client: Optional[AsyncIOMotorClient] = None
_db: Optional[AsyncIOMotorDatabase] = None


async def connect_to_mongo() -> AsyncIOMotorDatabase:
    global _client, _db
    settings = get_settings()
    _client = AsyncIOMotorClient(settings.mongo_url, serverSelectionTimeoutMS=5000)
    _db = _client[settings.mongo_db_name]
    logger.info("mongo_connected db=%s", settings.mongo_db_name)
    return _db


async def close_mongo_connection() -> None:
    global _client, _db
    if _client is not None:
        _client.close()
        logger.info("mongo_closed")
    _client = None
    _db = None


def set_database(db: AsyncIOMotorDatabase) -> None:
    """Install an already constructed database handle (used by tests and tools)."""
    global _db
    _db = db


def get_database() -> AsyncIOMotorDatabase:
    if _db is None:
        raise RuntimeError("Mongo connection not initialised")
    return _db


async def mongo_db_dependency() -> AsyncIOMotorDatabase:
    return get_database()
