import asyncio
import contextlib
import logging
from typing import Optional

from chatternet.client.api import MessagingApiClient
from chatternet.core.exceptions import MessagingError


logger = logging.getLogger(__name__)


class HeartbeatLoop:
    """Sends a presence heartbeat every ``interval_seconds`` until stopped.

    A failed beat is logged and simply retried on the next tick.
    """

    def __init__(self, api: MessagingApiClient, interval_seconds: float = 10.0) -> None:
        self._api = api
        self._interval = interval_seconds
        self._task: Optional[asyncio.Task] = None
        self.beats = 0
        self.failures = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        while True:
            try:
                await self._api.heartbeat()
                self.beats += 1
            except MessagingError as exc:
                self.failures += 1
                logger.warning("heartbeat_failed code=%s", exc.code)
            await asyncio.sleep(self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
