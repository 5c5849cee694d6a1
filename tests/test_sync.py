import asyncio

import pytest

from chatternet.client.autoresponder import EchoResponder
from chatternet.client.models import DeliveryStatus
from chatternet.client.surface import MessengerSurface
from chatternet.client.sync import InMemorySnapshotStore, RedisSnapshotStore
from chatternet.core.config import Settings


def bob_says(seq):
    return {
        "id": seq,
        "thread_id": "t-1",
        "sender_id": "bob",
        "text": f"hi {seq}",
        "created_at": f"2024-01-01T12:00:0{seq}Z",
    }


def carol_says(seq):
    return {
        "id": seq,
        "thread_id": "t-2",
        "sender_id": "carol",
        "text": f"yo {seq}",
        "created_at": f"2024-01-01T12:00:0{seq}Z",
    }


class FakeApi:
    def __init__(self):
        self.beats = 0
        self.gate = None

    async def heartbeat(self):
        self.beats += 1

    async def send_message(self, text, *, thread_id=None, peer_id=None, client_message_id=None):
        if self.gate is not None:
            await self.gate.wait()
        return {"message_id": 1, "thread_id": "t-1", "created_at": "2024-01-01T12:00:00Z"}


@pytest.fixture
def store():
    return InMemorySnapshotStore()


@pytest.fixture
async def surfaces(store, settings):
    started = []

    async def make(**kwargs):
        surface = MessengerSurface("alice", store, settings=settings, **kwargs)
        await surface.start()
        started.append(surface)
        return surface

    yield make
    for surface in started:
        await surface.close()


@pytest.mark.asyncio
async def test_received_message_reaches_sibling(surfaces):
    tab1 = await surfaces()
    tab2 = await surfaces()

    await tab1.mirror.receive(bob_says(1))
    assert tab2.mirror.threads["bob"].unread_count == 1
    assert [m.text for m in tab2.mirror.threads["bob"].messages] == ["hi 1"]


@pytest.mark.asyncio
async def test_late_surface_loads_existing_state(surfaces):
    tab1 = await surfaces()
    await tab1.mirror.receive(bob_says(1))
    await tab1.mirror.receive(bob_says(2))

    tab2 = await surfaces()
    assert tab2.mirror.threads["bob"].unread_count == 2


@pytest.mark.asyncio
async def test_viewing_a_thread_propagates_after_commit(surfaces):
    tab1 = await surfaces()
    tab2 = await surfaces()
    await tab1.mirror.receive(bob_says(1))

    tab1.open_thread("bob")
    assert tab1.mirror.threads["bob"].unread_count == 0
    assert tab2.mirror.threads["bob"].unread_count == 1

    await tab1.wait_view_committed()
    assert tab2.mirror.threads["bob"].unread_count == 0


@pytest.mark.asyncio
async def test_leaving_before_commit_cancels_mark_read(surfaces, settings):
    tab1 = await surfaces()
    tab2 = await surfaces()
    await tab1.mirror.receive(bob_says(1))

    tab1.open_thread("bob")
    tab1.close_thread()
    await asyncio.sleep(settings.mark_read_commit_delay_seconds * 3)
    assert tab2.mirror.threads["bob"].unread_count == 1
    assert not tab1.view_pending

    await tab1.mirror.receive(carol_says(1))
    assert tab2.mirror.threads["carol"].unread_count == 1
    assert tab2.mirror.threads["bob"].unread_count == 1
    assert tab1.mirror.threads["bob"].unread_count == 1


@pytest.mark.asyncio
async def test_unrelated_change_does_not_commit_view_early(surfaces):
    tab1 = await surfaces()
    tab2 = await surfaces()
    await tab1.mirror.receive(bob_says(1))

    tab1.open_thread("bob")
    await tab1.mirror.receive(carol_says(1))
    assert tab1.mirror.threads["bob"].unread_count == 0
    assert tab2.mirror.threads["carol"].unread_count == 1
    assert tab2.mirror.threads["bob"].unread_count == 1

    await tab1.wait_view_committed()
    assert tab2.mirror.threads["bob"].unread_count == 0


@pytest.mark.asyncio
async def test_switching_threads_discards_first_view(surfaces):
    tab1 = await surfaces()
    tab2 = await surfaces()
    await tab1.mirror.receive(bob_says(1))
    await tab1.mirror.receive(carol_says(1))

    tab1.open_thread("bob")
    tab1.open_thread("carol")
    await tab1.wait_view_committed()
    assert tab2.mirror.threads["carol"].unread_count == 0
    assert tab2.mirror.threads["bob"].unread_count == 1


@pytest.mark.asyncio
async def test_sibling_write_keeps_viewed_thread_read_while_commit_pending(surfaces):
    tab1 = await surfaces()
    tab2 = await surfaces()
    await tab1.mirror.receive(bob_says(1))

    tab1.open_thread("bob")
    await tab2.mirror.receive(bob_says(2))
    assert tab1.mirror.threads["bob"].unread_count == 0
    assert len(tab1.mirror.threads["bob"].messages) == 2


@pytest.mark.asyncio
async def test_writer_keeps_its_own_objects(surfaces):
    tab1 = await surfaces()
    await tab1.mirror.receive(bob_says(1))
    thread = tab1.mirror.threads["bob"]
    await tab1.mirror.receive(bob_says(2))
    assert tab1.mirror.threads["bob"] is thread


@pytest.mark.asyncio
async def test_demo_reply_syncs_to_sibling(surfaces):
    tab1 = await surfaces()
    tab2 = await surfaces()
    tab1.open_thread("echo-bot")
    await tab1.send("ping")
    await tab1.responder.drain()
    assert [m.text for m in tab2.mirror.threads["echo-bot"].messages] == ["ping", "ping"]


@pytest.mark.asyncio
async def test_sound_fires_only_on_focused_surface(surfaces):
    heard = []
    tab1 = await surfaces(on_sound=heard.append)
    event = {"type": "notification", "sound": True, "text": "New message received."}

    await tab1.handle_event(event)
    tab1.focused = False
    await tab1.handle_event(event)
    await tab1.handle_event({"type": "notification", "sound": False})
    assert len(heard) == 1


@pytest.mark.asyncio
async def test_pushed_message_event_is_received(surfaces):
    tab1 = await surfaces()
    await tab1.handle_event({"type": "message", **bob_says(1)})
    assert tab1.mirror.threads["bob"].unread_count == 1


@pytest.mark.asyncio
async def test_heartbeat_runs_while_open(store, settings):
    api = FakeApi()
    surface = MessengerSurface("alice", store, api=api, settings=settings)
    await surface.start()
    await asyncio.sleep(settings.heartbeat_interval_seconds * 5)
    assert surface.heartbeat.running
    await surface.close()
    assert not surface.heartbeat.running
    beats = api.beats
    assert beats >= 2
    await asyncio.sleep(settings.heartbeat_interval_seconds * 3)
    assert api.beats == beats


@pytest.mark.asyncio
async def test_closing_surface_does_not_cancel_dispatched_send(store, settings):
    api = FakeApi()
    api.gate = asyncio.Event()
    surface = MessengerSurface("alice", store, api=api, settings=settings, responder=EchoResponder([], enabled=False))
    await surface.start()
    surface.open_thread("bob")
    message = await surface.send("hello")

    await surface.close()
    api.gate.set()
    await surface.mirror.flush()
    assert surface.mirror.find_message(message.client_id).status == DeliveryStatus.SENT


class FakePubSub:
    def __init__(self, hub):
        self._hub = hub
        self.queue = asyncio.Queue()
        self.channels = set()
        self.closed = False

    async def subscribe(self, channel):
        self.channels.add(channel)
        self._hub.subscribers.append(self)

    async def get_message(self, ignore_subscribe_messages=True, timeout=1.0):
        try:
            return await asyncio.wait_for(self.queue.get(), timeout)
        except asyncio.TimeoutError:
            return None

    async def unsubscribe(self, channel):
        self.channels.discard(channel)

    async def aclose(self):
        self.closed = True


class FakeRedis:
    def __init__(self):
        self.data = {}
        self.subscribers = []

    def pubsub(self):
        return FakePubSub(self)

    async def set(self, key, value):
        self.data[key] = value

    async def get(self, key):
        return self.data.get(key)

    async def publish(self, channel, message):
        for sub in self.subscribers:
            if channel in sub.channels:
                sub.queue.put_nowait({"type": "message", "channel": channel, "data": message})

    async def aclose(self):
        return None


async def eventually(predicate, timeout=1.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        assert asyncio.get_running_loop().time() < deadline
        await asyncio.sleep(0.005)


@pytest.mark.asyncio
async def test_redis_store_keeps_listening_after_listener_error():
    store = RedisSnapshotStore(FakeRedis())
    writer = MessengerSurface("alice", InMemorySnapshotStore(), settings=Settings(demo_mode_enabled=False))
    calls = []

    async def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise ValueError("bad snapshot")

    sub = await store.subscribe("alice", flaky)
    await store.write(writer.mirror.snapshot(origin="tab-1"))
    await store.write(writer.mirror.snapshot(origin="tab-1"))
    await eventually(lambda: len(calls) == 2)
    await sub.cancel()


@pytest.mark.asyncio
async def test_surfaces_converge_over_redis_store(settings):
    store = RedisSnapshotStore(FakeRedis())
    tab1 = MessengerSurface("alice", store, settings=settings)
    tab2 = MessengerSurface("alice", store, settings=settings)
    await tab1.start()
    await tab2.start()

    await tab1.mirror.receive(bob_says(1))
    await eventually(lambda: "bob" in tab2.mirror.threads)
    assert tab2.mirror.threads["bob"].unread_count == 1

    await tab1.close()
    await tab2.close()
