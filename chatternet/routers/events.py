import asyncio
import contextlib
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from chatternet.core.exceptions import UnauthenticatedError
from chatternet.utils.realtime_bus import get_bus, user_channel
from chatternet.utils.security import decode_access_token
from chatternet.utils.websocket_manager import manager


logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


async def _close(websocket: WebSocket) -> None:
    # the client may already be gone
    with contextlib.suppress(RuntimeError):
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)


def close_on_subscription_failure(websocket: WebSocket, user_id: str):
    """Done-callback for a bus subscription task: a dead relay closes the socket so the client reconnects."""

    def _done(task: asyncio.Task) -> None:
        if task.cancelled() or task.exception() is None:
            return
        logger.error("events_subscription_failed user=%s", user_id, exc_info=task.exception())
        manager.unregister(user_id, websocket)
        asyncio.get_running_loop().create_task(_close(websocket))

    return _done


@router.websocket("/ws/events")
async def events_socket(websocket: WebSocket):
    # bearer token via query ?token=...
    token = websocket.query_params.get("token")
    if not token:
        await websocket.close(code=4401)
        return
    try:
        user_id = str(decode_access_token(token)["sub"])
    except UnauthenticatedError:
        await websocket.close(code=4401)
        return

    await manager.register(user_id, websocket)
    bus = await get_bus()
    subscriber = None
    sub_task = None
    if getattr(bus, "enabled", False):
        subscriber = await bus.subscribe(user_channel(user_id), websocket.send_text)
        sub_task = asyncio.create_task(subscriber.run())
        sub_task.add_done_callback(close_on_subscription_failure(websocket, user_id))
    logger.info("events_socket_connected user=%s", user_id)
    try:
        while True:
            # inbound frames are keepalives only
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        manager.unregister(user_id, websocket)
        if subscriber is not None:
            await subscriber.cancel()
        if sub_task is not None:
            sub_task.cancel()
            await asyncio.gather(sub_task, return_exceptions=True)
        logger.info("events_socket_closed user=%s", user_id)
