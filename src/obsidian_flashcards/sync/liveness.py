"""Periodic AnkiConnect connectivity indicator."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable

from ..anki.client import AnkiClient
from ..utils.logging import get_logger

logger = get_logger(__name__)

CONNECTED_STATUS = "Anki ⚡️"
DISCONNECTED_STATUS = ""


class LivenessProbe:
    """Pings Anki on a fixed interval and publishes a status string.

    Runs as its own asyncio task, so it never blocks a sync pass and its
    failures stay out of sync outcomes.
    """

    def __init__(
        self,
        client: AnkiClient,
        interval: float = 15.0,
        on_status: Callable[[str], None] | None = None,
    ):
        self.client = client
        self.interval = interval
        self.on_status = on_status
        self.status = DISCONNECTED_STATUS
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def check(self) -> str:
        """Ping once and publish the resulting status."""
        reachable = await self.client.ping()
        status = CONNECTED_STATUS if reachable else DISCONNECTED_STATUS
        if status != self.status:
            logger.info("anki_connectivity_changed", connected=reachable)
        self.status = status
        if self.on_status:
            self.on_status(status)
        return status

    async def _run(self) -> None:
        while True:
            try:
                await self.check()
            except Exception as e:
                logger.warning("liveness_check_failed", error=str(e))
                self.status = DISCONNECTED_STATUS
            await asyncio.sleep(self.interval)

    def start(self) -> asyncio.Task[None]:
        if not self.running:
            self._task = asyncio.create_task(self._run(), name="anki-liveness")
        assert self._task is not None
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
