"""
Cross-surface synchronisation of the conversation mirror.

A surface that changes shared state writes its whole mirror snapshot to a
store all surfaces of the user can see, then the store tells every
subscriber that something changed. Subscribers re-read the store and
replace their mirror with it. Last write wins.
"""

import asyncio
import contextlib
import json
import logging
from typing import Awaitable, Callable, Dict, List, Optional

import redis.asyncio as redis

from chatternet.client.models import MirrorSnapshot


logger = logging.getLogger(__name__)

Listener = Callable[[], Awaitable[None]]


class InMemorySnapshotStore:
    """Snapshot store shared by surfaces living in one process."""

    def __init__(self) -> None:
        self._snapshots: Dict[str, str] = {}
        self._listeners: Dict[str, List[Listener]] = {}

    async def write(self, snapshot: MirrorSnapshot) -> None:
        self._snapshots[snapshot.user_id] = snapshot.model_dump_json()
        for listener in list(self._listeners.get(snapshot.user_id, [])):
            try:
                await listener()
            except Exception:
                logger.exception("snapshot_listener_failed user=%s", snapshot.user_id)

    async def read(self, user_id: str) -> Optional[MirrorSnapshot]:
        raw = self._snapshots.get(user_id)
        return MirrorSnapshot.model_validate_json(raw) if raw else None

    async def subscribe(self, user_id: str, listener: Listener):
        listeners = self._listeners.setdefault(user_id, [])
        listeners.append(listener)

        class _Sub:
            async def cancel(self_inner):
                if listener in listeners:
                    listeners.remove(listener)

        return _Sub()


class RedisSnapshotStore:
    """Snapshot store for surfaces in separate processes: a key plus a pub/sub change marker."""

    def __init__(self, client: "redis.Redis", prefix: str = "mirror") -> None:
        self._redis = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str) -> "RedisSnapshotStore":
        return cls(redis.from_url(url))

    def _key(self, user_id: str) -> str:
        return f"{self._prefix}:{user_id}"

    def _channel(self, user_id: str) -> str:
        return f"{self._prefix}:{user_id}:changed"

    async def write(self, snapshot: MirrorSnapshot) -> None:
        await self._redis.set(self._key(snapshot.user_id), snapshot.model_dump_json())
        marker = json.dumps({"origin": snapshot.origin, "revision": snapshot.revision})
        await self._redis.publish(self._channel(snapshot.user_id), marker)

    async def read(self, user_id: str) -> Optional[MirrorSnapshot]:
        raw = await self._redis.get(self._key(user_id))
        return MirrorSnapshot.model_validate_json(raw) if raw else None

    async def subscribe(self, user_id: str, listener: Listener):
        channel = self._channel(user_id)
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(channel)

        async def _run() -> None:
            while True:
                try:
                    msg = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                except redis.RedisError:
                    logger.warning("snapshot_subscription_failed channel=%s", channel, exc_info=True)
                    await asyncio.sleep(0.5)
                    continue
                if msg and msg.get("type") == "message":
                    try:
                        await listener()
                    except Exception:
                        logger.exception("snapshot_listener_failed user=%s", user_id)

        task = asyncio.create_task(_run())

        class _Sub:
            async def cancel(self_inner):
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
                await pubsub.unsubscribe(channel)
                await pubsub.aclose()

        return _Sub()

    async def close(self) -> None:
        await self._redis.aclose()
