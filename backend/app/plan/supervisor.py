from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, Set

from ..logger import logger


class JobSupervisor:
    """
    Owns detached generation tasks for the in-process backend.

    Tasks outlive the request that started them; shutdown waits for them via
    ``drain``. Work in flight is lost if the process dies, which the stale
    sweeper later turns into ``error`` rows.
    """

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()
        self._sweeper: Optional[asyncio.Task] = None

    @property
    def outstanding(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Awaitable[None], name: str) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning(f"Background task cancelled: {task.get_name()}")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Background task crashed: {task.get_name()}: {exc}",
                extra={"task": task.get_name(), "error": str(exc)},
            )

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for outstanding tasks; True when all finished within the timeout."""
        await self.stop_sweeper()
        pending = set(self._tasks)
        if not pending:
            return True
        logger.info(f"Draining {len(pending)} background task(s)")
        _, still_pending = await asyncio.wait(pending, timeout=timeout)
        if still_pending:
            logger.warning(
                f"{len(still_pending)} background task(s) still running after drain timeout",
                extra={"tasks": sorted(t.get_name() for t in still_pending)},
            )
            return False
        return True

    def start_sweeper(self, sweep: Callable[[], Awaitable[int]], interval_seconds: float) -> None:
        if self._sweeper is not None:
            return

        async def _loop() -> None:
            while True:
                await asyncio.sleep(interval_seconds)
                try:
                    await sweep()
                except Exception as e:
                    logger.error(f"Stale plan sweep failed: {e}", extra={"error": str(e)})

        self._sweeper = asyncio.ensure_future(_loop())

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
