from typing import List, Optional

from chatternet.repositories.presence_repository import PresenceRepository
from chatternet.repositories.user_repository import UserRepository
from chatternet.schemas.user import PresenceOut, UserWithPresence
from chatternet.utils.clock import Clock, from_ms, to_ms, utc_now


class PresenceService:
    """Heartbeat-based presence, classified at read time.

    Nothing expires in the store: a user is online iff their last heartbeat
    is at most ``staleness_seconds`` old when somebody asks.
    """

    def __init__(
        self,
        presence_repo: PresenceRepository,
        user_repo: UserRepository,
        staleness_seconds: float = 15.0,
        clock: Clock = utc_now,
    ) -> None:
        self._presence_repo = presence_repo
        self._user_repo = user_repo
        self._staleness_ms = int(staleness_seconds * 1000)
        self._clock = clock

    def _online(self, last_seen_ms: Optional[int], now_ms: int) -> bool:
        return last_seen_ms is not None and now_ms - last_seen_ms <= self._staleness_ms

    async def heartbeat(self, user_id: str) -> None:
        await self._presence_repo.touch(user_id, to_ms(self._clock()))

    async def is_online(self, user_id: str) -> bool:
        last_seen_ms = await self._presence_repo.last_seen(user_id)
        return self._online(last_seen_ms, to_ms(self._clock()))

    async def presence_of(self, user_id: str) -> PresenceOut:
        last_seen_ms = await self._presence_repo.last_seen(user_id)
        return PresenceOut(
            user_id=user_id,
            online=self._online(last_seen_ms, to_ms(self._clock())),
            last_seen_at=from_ms(last_seen_ms) if last_seen_ms is not None else None,
        )

    async def list_with_presence(self) -> List[UserWithPresence]:
        users = await self._user_repo.list_users()
        seen = await self._presence_repo.last_seen_many(u["_id"] for u in users)
        now_ms = to_ms(self._clock())
        result = []
        for user in users:
            last_seen_ms = seen.get(user["_id"])
            result.append(
                UserWithPresence(
                    user_id=user["_id"],
                    display_name=user.get("display_name") or user.get("handle"),
                    avatar_ref=user.get("avatar_ref"),
                    online=self._online(last_seen_ms, now_ms),
                    last_seen_at=from_ms(last_seen_ms) if last_seen_ms is not None else None,
                )
            )
        return result
