import logging
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket

from chatternet.utils.realtime_bus import encode_event, get_bus, user_channel


logger = logging.getLogger(__name__)


class ConnectionManager:
    """Event sockets held by this process, keyed by user id."""

    def __init__(self) -> None:
        self.sockets: Dict[str, Set[WebSocket]] = {}

    async def register(self, user_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        self.sockets.setdefault(user_id, set()).add(websocket)

    def unregister(self, user_id: str, websocket: WebSocket) -> None:
        held = self.sockets.get(user_id)
        if held is None:
            return
        held.discard(websocket)
        if not held:
            del self.sockets[user_id]

    def connection_count(self, user_id: str) -> int:
        return len(self.sockets.get(user_id, ()))

    async def deliver(self, user_id: str, message: str) -> int:
        delivered = 0
        for websocket in list(self.sockets.get(user_id, ())):
            try:
                await websocket.send_text(message)
                delivered += 1
            except (RuntimeError, OSError):
                # peer went away without a close frame
                logger.info("event_socket_dropped user=%s", user_id)
                self.unregister(user_id, websocket)
        return delivered


manager = ConnectionManager()


class EventPublisher:
    """Push per-user events through Redis when enabled, else to local sockets."""

    def __init__(self, connections: Optional[ConnectionManager] = None) -> None:
        self._connections = connections or manager

    async def publish(self, user_id: str, event_type: str, payload: Dict[str, Any]) -> None:
        message = encode_event(event_type, payload)
        bus = await get_bus()
        if getattr(bus, "enabled", False):
            await bus.publish(user_channel(user_id), message)
        else:
            await self._connections.deliver(user_id, message)
