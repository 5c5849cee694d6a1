"""
Client-side conversation mirror.

Holds every thread the user has touched, keyed by peer id, so the UI can
render without waiting on the network. Sends are applied optimistically and
reconciled with the server acknowledgement; incoming messages bump the unread
counter of threads that are not being viewed. The mirror is a cache: it can
always be rebuilt from the server history.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set
from uuid import uuid4

from pydantic import TypeAdapter

from chatternet.client.api import MessagingApiClient
from chatternet.client.models import DeliveryStatus, LocalThreadMirror, MirrorMessage, MirrorSnapshot
from chatternet.core.exceptions import EmptyMessageError, MessagingError
from chatternet.utils.clock import Clock, utc_now


logger = logging.getLogger(__name__)

ChangeHook = Callable[[], Awaitable[None]]

_datetime = TypeAdapter(datetime)


def _order_key(message: MirrorMessage):
    # confirmed messages in server order, then unconfirmed ones by local time
    if message.id is not None:
        return (0, message.created_at, message.id)
    return (1, message.created_at, 0)


class ConversationMirror:

    def __init__(
        self,
        self_id: str,
        api: Optional[MessagingApiClient] = None,
        responder=None,
        on_change: Optional[ChangeHook] = None,
        clock: Clock = utc_now,
    ) -> None:
        self.self_id = self_id
        self.threads: Dict[str, LocalThreadMirror] = {}
        self.active_peer: Optional[str] = None
        self._api = api
        self._responder = responder
        self._on_change = on_change
        self._clock = clock
        self._inflight: Set[asyncio.Task] = set()
        # peer -> unread count before an uncommitted "thread viewed"
        self._uncommitted_views: Dict[str, int] = {}

    # -- lookups -------------------------------------------------------

    def entry(self, peer_id: str) -> LocalThreadMirror:
        thread = self.threads.get(peer_id)
        if thread is None:
            thread = LocalThreadMirror(with_user_id=peer_id, updated_at=self._clock())
            self.threads[peer_id] = thread
        return thread

    def find_message(self, client_id: str) -> Optional[MirrorMessage]:
        for thread in self.threads.values():
            for message in thread.messages:
                if message.client_id == client_id:
                    return message
        return None

    def peer_for_thread(self, thread_id: str) -> Optional[str]:
        for peer_id, thread in self.threads.items():
            if thread.thread_id == thread_id:
                return peer_id
        return None

    def unread_total(self) -> int:
        return sum(t.unread_count for t in self.threads.values())

    # -- user actions --------------------------------------------------

    def open(self, peer_id: str, commit: bool = True) -> LocalThreadMirror:
        """Mark ``peer_id``'s thread active and viewed.

        With ``commit=False`` the reset is local only: snapshots keep carrying
        the previous unread count until :meth:`commit_view`, and
        :meth:`discard_view` puts it back.
        """
        thread = self.entry(peer_id)
        self.active_peer = peer_id
        if not commit and peer_id not in self._uncommitted_views:
            self._uncommitted_views[peer_id] = thread.unread_count
        thread.unread_count = 0
        return thread

    def commit_view(self, peer_id: str) -> None:
        self._uncommitted_views.pop(peer_id, None)
        self.entry(peer_id).unread_count = 0

    def discard_view(self, peer_id: str) -> None:
        previous = self._uncommitted_views.pop(peer_id, None)
        if previous is not None:
            self.entry(peer_id).unread_count = previous

    def close(self) -> None:
        self.active_peer = None

    async def send(self, text: str) -> MirrorMessage:
        """Apply ``text`` to the active thread now; persist in the background.

        Returns the optimistic message. Its ``client_id`` stays stable through
        reconciliation, use :meth:`find_message` to observe the final status.
        """
        if self.active_peer is None:
            raise RuntimeError("no active thread")
        body = (text or "").strip()
        if not body:
            raise EmptyMessageError()
        peer_id = self.active_peer
        thread = self.entry(peer_id)
        now = self._clock()
        message = MirrorMessage(
            client_id=uuid4().hex,
            thread_id=thread.thread_id,
            sender_id=self.self_id,
            text=body,
            created_at=now,
            status=DeliveryStatus.PENDING,
        )
        thread.messages.append(message)
        thread.updated_at = now

        if self._responder is not None and self._responder.handles(peer_id):
            message.status = DeliveryStatus.LOCAL
            await self._changed()
            self._responder.schedule(self, peer_id, body)
            return message

        await self._changed()
        task = asyncio.create_task(self._persist(peer_id, message.client_id, body))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return message

    async def flush(self) -> None:
        """Wait for every in-flight send to settle."""
        if self._inflight:
            await asyncio.gather(*list(self._inflight))

    async def _persist(self, peer_id: str, client_id: str, body: str) -> None:
        if self._api is None:
            self._mark_failed(client_id, "offline")
            await self._changed()
            return
        thread_id = self.entry(peer_id).thread_id
        try:
            ack = await self._api.send_message(
                body,
                thread_id=thread_id,
                peer_id=None if thread_id else peer_id,
                client_message_id=client_id,
            )
        except MessagingError as exc:
            logger.warning("send_failed peer=%s code=%s", peer_id, exc.code)
            self._mark_failed(client_id, exc.code)
            await self._changed()
            return
        self._reconcile(peer_id, client_id, ack)
        await self._changed()

    def _mark_failed(self, client_id: str, reason: str) -> None:
        message = self.find_message(client_id)
        if message is not None:
            message.status = DeliveryStatus.FAILED
            message.error = reason

    def _reconcile(self, peer_id: str, client_id: str, ack: Dict[str, Any]) -> None:
        thread = self.entry(peer_id)
        thread.thread_id = ack["thread_id"]
        server_id = int(ack["message_id"])
        created_at = _datetime.validate_python(ack["created_at"])
        # a push or poll may have delivered the confirmed copy first
        thread.messages = [m for m in thread.messages if not (m.id == server_id and m.client_id != client_id)]
        message = next((m for m in thread.messages if m.client_id == client_id), None)
        if message is None:
            return
        message.id = server_id
        message.thread_id = ack["thread_id"]
        message.created_at = created_at
        message.status = DeliveryStatus.SENT
        message.error = None
        thread.messages.sort(key=_order_key)

    # -- inbound -------------------------------------------------------

    async def receive(self, message: Dict[str, Any], peer_id: Optional[str] = None) -> bool:
        """Mirror a server message; returns False when it was already known."""
        if not self._apply_server_message(message, peer_id):
            return False
        await self._changed()
        return True

    def _apply_server_message(self, message: Dict[str, Any], peer_id: Optional[str] = None) -> bool:
        sender_id = message["sender_id"]
        thread_id = message["thread_id"]
        if peer_id is None:
            peer_id = sender_id if sender_id != self.self_id else self.peer_for_thread(thread_id)
        if peer_id is None:
            logger.debug("receive_unroutable thread=%s", thread_id)
            return False
        thread = self.entry(peer_id)
        thread.thread_id = thread_id
        server_id = int(message["id"])
        if any(m.id == server_id for m in thread.messages):
            return False
        created_at = _datetime.validate_python(message["created_at"])
        thread.messages.append(
            MirrorMessage(
                client_id=f"srv:{thread_id}:{server_id}",
                id=server_id,
                thread_id=thread_id,
                sender_id=sender_id,
                text=message["text"],
                created_at=created_at,
                status=DeliveryStatus.SENT,
            )
        )
        thread.messages.sort(key=_order_key)
        thread.updated_at = self._clock()
        if sender_id != self.self_id and peer_id != self.active_peer:
            thread.unread_count += 1
        return True

    async def receive_local(self, peer_id: str, text: str) -> MirrorMessage:
        """Deliver a message that exists only on this client (demo contacts)."""
        thread = self.entry(peer_id)
        now = self._clock()
        message = MirrorMessage(
            client_id=uuid4().hex,
            sender_id=peer_id,
            text=text,
            created_at=now,
            status=DeliveryStatus.LOCAL,
        )
        thread.messages.append(message)
        thread.updated_at = now
        if peer_id != self.active_peer:
            thread.unread_count += 1
        await self._changed()
        return message

    # -- server rebuild ------------------------------------------------

    async def _fetch_after(self, thread: LocalThreadMirror) -> List[Dict[str, Any]]:
        fetched: List[Dict[str, Any]] = []
        cursor = thread.cursor
        while True:
            page = await self._api.thread_history(thread.thread_id, cursor=cursor)
            fetched.extend(page["messages"])
            cursor = page.get("next_cursor") or cursor
            if not page.get("has_more"):
                break
        thread.cursor = cursor
        return fetched

    async def rebuild(self, peer_id: str) -> LocalThreadMirror:
        """Replace the confirmed part of a thread with the full server history."""
        if self._api is None:
            raise RuntimeError("rebuild needs an API client")
        thread = self.entry(peer_id)
        if thread.thread_id is None:
            thread.thread_id = await self._api.resolve_thread(peer_id)
        thread.cursor = None
        unconfirmed = [m for m in thread.messages if not m.confirmed]
        thread.messages = []
        for message in await self._fetch_after(thread):
            thread.messages.append(
                MirrorMessage(
                    client_id=f"srv:{message['thread_id']}:{message['id']}",
                    id=int(message["id"]),
                    thread_id=message["thread_id"],
                    sender_id=message["sender_id"],
                    text=message["text"],
                    created_at=_datetime.validate_python(message["created_at"]),
                    status=DeliveryStatus.SENT,
                )
            )
        thread.messages.extend(unconfirmed)
        thread.messages.sort(key=_order_key)
        thread.updated_at = self._clock()
        await self._changed()
        return thread

    async def poll(self) -> int:
        """Pull messages newer than each thread's cursor; returns how many were new."""
        if self._api is None:
            return 0
        try:
            for item in await self._api.list_threads():
                peer_id = item.get("peer_id")
                if peer_id and peer_id not in self.threads:
                    self.entry(peer_id).thread_id = item["id"]
            received = 0
            for peer_id, thread in list(self.threads.items()):
                if thread.thread_id is None:
                    continue
                for message in await self._fetch_after(thread):
                    if self._apply_server_message(message, peer_id):
                        received += 1
        except MessagingError as exc:
            logger.warning("poll_failed code=%s", exc.code)
            return 0
        if received:
            await self._changed()
        return received

    # -- snapshots -----------------------------------------------------

    def snapshot(self, origin: str) -> MirrorSnapshot:
        threads = {peer: t.model_copy(deep=True) for peer, t in self.threads.items()}
        for peer_id, previous in self._uncommitted_views.items():
            if peer_id in threads:
                threads[peer_id].unread_count = previous
        return MirrorSnapshot(
            user_id=self.self_id,
            origin=origin,
            revision=uuid4().hex,
            written_at=self._clock(),
            threads=threads,
        )

    def restore(self, snapshot: MirrorSnapshot) -> None:
        self.threads = {peer: t.model_copy(deep=True) for peer, t in snapshot.threads.items()}
        for peer_id in self._uncommitted_views:
            # still being viewed here; remember the shared count, show zero
            thread = self.entry(peer_id)
            self._uncommitted_views[peer_id] = thread.unread_count
            thread.unread_count = 0

    async def _changed(self) -> None:
        if self._on_change is not None:
            await self._on_change()
