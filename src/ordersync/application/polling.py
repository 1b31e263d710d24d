from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class PollingRefresher:
    """Pull strategy: re-runs the snapshot reload on a fixed interval."""

    def __init__(self, refresh: Callable[[str], Awaitable[bool]], interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self._refresh = refresh
        self._interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info("polling_started", extra={"interval_seconds": self._interval_seconds})

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
        logger.info("polling_stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval_seconds)
            try:
                await self._refresh("poll")
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("polling_refresh_error")
