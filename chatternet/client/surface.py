import asyncio
import contextlib
import logging
from typing import Any, Callable, Dict, Optional
from uuid import uuid4

from chatternet.client.api import MessagingApiClient
from chatternet.client.autoresponder import EchoResponder
from chatternet.client.heartbeat import HeartbeatLoop
from chatternet.client.mirror import ConversationMirror
from chatternet.client.models import LocalThreadMirror, MirrorMessage
from chatternet.core.config import Settings, get_settings
from chatternet.utils.clock import Clock, utc_now


logger = logging.getLogger(__name__)


class MessengerSurface:
    """One open client instance (tab, window, process) of a user.

    Owns a conversation mirror, keeps it converged with sibling surfaces
    through a shared snapshot store, and emits presence heartbeats while
    open.
    """

    def __init__(
        self,
        user_id: str,
        store,
        api: Optional[MessagingApiClient] = None,
        settings: Optional[Settings] = None,
        responder: Optional[EchoResponder] = None,
        on_sound: Optional[Callable[[Dict[str, Any]], None]] = None,
        surface_id: Optional[str] = None,
        clock: Clock = utc_now,
    ) -> None:
        self.settings = settings or get_settings()
        self.user_id = user_id
        self.surface_id = surface_id or uuid4().hex
        self.focused = True
        self._store = store
        self._api = api
        self._on_sound = on_sound
        if responder is None and self.settings.demo_mode_enabled:
            responder = EchoResponder(
                self.settings.demo_contacts,
                delay_seconds=self.settings.demo_reply_delay_seconds,
            )
        self.responder = responder
        self.mirror = ConversationMirror(user_id, api=api, responder=responder, on_change=self._publish, clock=clock)
        self.heartbeat = HeartbeatLoop(api, self.settings.heartbeat_interval_seconds) if api is not None else None
        self._subscription = None
        self._last_revision: Optional[str] = None
        self._pending_view: Optional[asyncio.Task] = None
        self._pending_peer: Optional[str] = None

    async def start(self) -> None:
        self._subscription = await self._store.subscribe(self.user_id, self._on_store_change)
        snapshot = await self._store.read(self.user_id)
        if snapshot is not None:
            self.mirror.restore(snapshot)
        if self.heartbeat is not None:
            self.heartbeat.start()
        logger.info("surface_started user=%s surface=%s", self.user_id, self.surface_id)

    async def close(self) -> None:
        """Tear down; in-flight sends are left to complete."""
        self.close_thread()
        if self.heartbeat is not None:
            await self.heartbeat.stop()
        if self.responder is not None:
            self.responder.cancel_all()
        if self._subscription is not None:
            await self._subscription.cancel()
            self._subscription = None
        logger.info("surface_closed user=%s surface=%s", self.user_id, self.surface_id)

    # -- thread view ---------------------------------------------------

    def open_thread(self, peer_id: str) -> LocalThreadMirror:
        """View ``peer_id``'s thread; the viewed state reaches siblings after a short delay."""
        self._cancel_pending_view()
        thread = self.mirror.open(peer_id, commit=False)
        self._pending_view = asyncio.create_task(self._commit_view(peer_id))
        self._pending_peer = peer_id
        return thread

    def close_thread(self) -> None:
        self._cancel_pending_view()
        self.mirror.close()

    @property
    def view_pending(self) -> bool:
        return self._pending_view is not None and not self._pending_view.done()

    async def wait_view_committed(self) -> None:
        if self._pending_view is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._pending_view

    async def _commit_view(self, peer_id: str) -> None:
        await asyncio.sleep(self.settings.mark_read_commit_delay_seconds)
        self.mirror.commit_view(peer_id)
        await self._publish()

    def _cancel_pending_view(self) -> None:
        if self.view_pending:
            self._pending_view.cancel()
            self.mirror.discard_view(self._pending_peer)
        self._pending_view = None
        self._pending_peer = None

    # -- messaging -----------------------------------------------------

    async def send(self, text: str) -> MirrorMessage:
        return await self.mirror.send(text)

    async def handle_event(self, event: Dict[str, Any]) -> None:
        """Route a pushed realtime event."""
        event_type = event.get("type")
        if event_type == "message":
            await self.mirror.receive(event)
        elif event_type == "notification":
            if event.get("sound") and self.focused and self._on_sound is not None:
                self._on_sound(event)

    async def refresh(self) -> int:
        return await self.mirror.poll()

    # -- sync ----------------------------------------------------------

    async def _publish(self) -> None:
        snapshot = self.mirror.snapshot(origin=self.surface_id)
        self._last_revision = snapshot.revision
        await self._store.write(snapshot)

    async def _on_store_change(self) -> None:
        snapshot = await self._store.read(self.user_id)
        if snapshot is None or snapshot.revision == self._last_revision:
            return
        self.mirror.restore(snapshot)
