from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from chatternet.core.config import Settings
from chatternet.database.connection import mongo_db_dependency
from chatternet.database.indexes import ensure_indexes
from chatternet.main import create_app
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
from chatternet.utils.dependencies import get_clock, get_publisher
from chatternet.utils.security import create_access_token


USERS = [
    {"_id": "alice", "handle": "alice", "display_name": "Alice", "avatar_ref": "a.png"},
    {"_id": "bob", "handle": "bob", "display_name": "Bob", "avatar_ref": "b.png"},
    {"_id": "carol", "handle": "carol", "display_name": "Carol", "avatar_ref": None},
]


class FrozenClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingPublisher:
    def __init__(self) -> None:
        self.events = []

    async def publish(self, user_id, event_type, payload) -> None:
        self.events.append((user_id, event_type, payload))

    def of_type(self, event_type):
        return [e for e in self.events if e[1] == event_type]


def auth(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture
def clock():
    return FrozenClock(datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def settings():
    return Settings(
        demo_reply_delay_seconds=0.01,
        mark_read_commit_delay_seconds=0.02,
        heartbeat_interval_seconds=0.01,
    )


@pytest.fixture
async def db():
    client = AsyncMongoMockClient()
    database = client["chatternet_test"]
    await ensure_indexes(database)
    await database["users"].insert_many([dict(u) for u in USERS])
    return database


@pytest.fixture
def thread_service(db, clock):
    return ThreadService(ThreadRepository(db), UserRepository(db), clock=clock)


@pytest.fixture
def notification_service(db, clock, publisher):
    return NotificationService(PreferenceRepository(db), NotificationRepository(db), publisher=publisher, clock=clock)


@pytest.fixture
def chat_service(db, clock, thread_service, notification_service, publisher):
    return ChatService(
        MessageRepository(db),
        ThreadRepository(db),
        thread_service,
        notification_service,
        publisher=publisher,
        clock=clock,
    )


@pytest.fixture
def presence_service(db, clock):
    return PresenceService(PresenceRepository(db), UserRepository(db), staleness_seconds=15, clock=clock)


@pytest.fixture
def app(db, clock, publisher):
    application = create_app()
    application.dependency_overrides[mongo_db_dependency] = lambda: db
    application.dependency_overrides[get_clock] = lambda: clock
    application.dependency_overrides[get_publisher] = lambda: publisher
    return application


@pytest.fixture
async def http(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
