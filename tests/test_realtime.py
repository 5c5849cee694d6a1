import asyncio
import json

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from chatternet.main import create_app
from chatternet.routers.events import close_on_subscription_failure
from chatternet.utils.realtime_bus import encode_event, user_channel
from chatternet.utils.websocket_manager import ConnectionManager, EventPublisher, manager


class FakeSocket:
    def __init__(self, broken=False):
        self.accepted = False
        self.sent = []
        self.broken = broken
        self.close_code = None

    async def accept(self):
        self.accepted = True

    async def send_text(self, message):
        if self.broken:
            raise RuntimeError("socket closed")
        self.sent.append(message)

    async def close(self, code=1000):
        self.close_code = code


def test_encode_event_flattens_payload():
    assert json.loads(encode_event("message", {"id": 1})) == {"type": "message", "id": 1}
    assert user_channel("bob") == "user:bob"


@pytest.mark.asyncio
async def test_publisher_delivers_to_every_local_socket():
    connections = ConnectionManager()
    first, second = FakeSocket(), FakeSocket()
    await connections.register("bob", first)
    await connections.register("bob", second)

    await EventPublisher(connections).publish("bob", "notification", {"text": "New message received."})
    assert first.accepted
    for socket in (first, second):
        assert json.loads(socket.sent[0])["type"] == "notification"


@pytest.mark.asyncio
async def test_dead_sockets_are_dropped():
    connections = ConnectionManager()
    healthy, dead = FakeSocket(), FakeSocket(broken=True)
    await connections.register("bob", healthy)
    await connections.register("bob", dead)

    assert await connections.deliver("bob", "{}") == 1
    assert connections.connection_count("bob") == 1

    connections.unregister("bob", healthy)
    assert "bob" not in connections.sockets
    assert await connections.deliver("bob", "{}") == 0


@pytest.mark.parametrize("query", ["", "?token=garbage"])
def test_event_socket_rejects_missing_or_bad_token(query):
    client = TestClient(create_app())
    with pytest.raises(WebSocketDisconnect) as excinfo:
        with client.websocket_connect(f"/ws/events{query}") as ws:
            ws.receive_text()
    assert excinfo.value.code == 4401


async def settle():
    for _ in range(3):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_failed_relay_closes_and_unregisters_socket():
    socket = FakeSocket()
    await manager.register("dave", socket)

    async def relay():
        raise RuntimeError("send failed")

    task = asyncio.create_task(relay())
    task.add_done_callback(close_on_subscription_failure(socket, "dave"))
    await asyncio.gather(task, return_exceptions=True)
    await settle()

    assert socket.close_code == 1011
    assert manager.connection_count("dave") == 0


@pytest.mark.asyncio
async def test_cancelled_relay_leaves_socket_open():
    socket = FakeSocket()
    await manager.register("dave", socket)

    task = asyncio.create_task(asyncio.sleep(10))
    task.add_done_callback(close_on_subscription_failure(socket, "dave"))
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    await settle()

    assert socket.close_code is None
    assert manager.connection_count("dave") == 1
    manager.unregister("dave", socket)
