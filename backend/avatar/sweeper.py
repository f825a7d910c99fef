"""
Periodic idle-session sweep.

Runs AvatarSessionManager.cleanup_expired() on a fixed interval for the
lifetime of the app. A failing sweep is logged and the loop keeps going.
"""

from __future__ import annotations

import asyncio

from avatar.manager import AvatarSessionManager
from constants import SESSION_SWEEP_INTERVAL_S
from observability.logger import log_event


class SessionSweeper:
    def __init__(
        self,
        manager: AvatarSessionManager,
        *,
        interval_s: float = SESSION_SWEEP_INTERVAL_S,
    ) -> None:
        self._manager = manager
        self._interval_s = interval_s
        self._task: asyncio.Task[None] | None = None
        self.runs = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        log_event({
            "event_type": "AVATAR_SWEEPER_STARTED",
            "interval_s": self._interval_s,
        })

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval_s)
            try:
                await self._manager.cleanup_expired()
            except Exception as e:  # background loop must survive
                log_event({
                    "event_type": "AVATAR_SWEEP_FAILED",
                    "level": "ERROR",
                    "error": str(e),
                    "error_type": type(e).__name__,
                })
            self.runs += 1
