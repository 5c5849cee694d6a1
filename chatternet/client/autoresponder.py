import asyncio
import logging
from typing import Iterable, Set


logger = logging.getLogger(__name__)


class EchoResponder:
    """Demo contact that answers every message with the same text.

    Only peers listed in ``demo_contacts`` are handled; real users never are.
    """

    def __init__(self, demo_contacts: Iterable[str], delay_seconds: float = 0.3, enabled: bool = True) -> None:
        self.demo_contacts = frozenset(demo_contacts)
        self.delay_seconds = delay_seconds
        self.enabled = enabled
        self._tasks: Set[asyncio.Task] = set()

    def handles(self, peer_id: str) -> bool:
        return self.enabled and peer_id in self.demo_contacts

    def schedule(self, mirror, peer_id: str, text: str) -> asyncio.Task:
        task = asyncio.create_task(self._reply(mirror, peer_id, text))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _reply(self, mirror, peer_id: str, text: str) -> None:
        await asyncio.sleep(self.delay_seconds)
        await mirror.receive_local(peer_id, text)
        logger.debug("demo_reply peer=%s", peer_id)

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks))

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
