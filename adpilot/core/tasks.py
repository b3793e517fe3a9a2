"""
Detached background tasks.

``DetachedTaskGroup.spawn`` starts a coroutine that nobody awaits: the turn
drain task and summarization. The group keeps a strong reference until the
task finishes (the event loop only holds weak ones), logs any exception
instead of dropping it, and lets the app wait for stragglers at shutdown.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DetachedTaskGroup:
    def __init__(self, name: str = "detached") -> None:
        self.name = name
        self._tasks: set[asyncio.Task[Any]] = set()
        self.failures: int = 0

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, T], *, name: Optional[str] = None) -> asyncio.Task[T]:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning(f"[{self.name}] task {task.get_name()} was cancelled")
            return
        exc = task.exception()
        if exc is not None:
            self.failures += 1
            logger.error(
                f"[{self.name}] task {task.get_name()} failed: {exc}",
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for running tasks. Returns False if some were still running at the timeout."""
        if not self._tasks:
            return True
        pending = set(self._tasks)
        logger.info(f"[{self.name}] waiting for {len(pending)} task(s)")
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        if still_running:
            logger.warning(f"[{self.name}] {len(still_running)} task(s) still running after {timeout}s")
            return False
        return True

    async def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)


_shared_group: Optional[DetachedTaskGroup] = None


def get_detached_tasks() -> DetachedTaskGroup:
    """Return the process-wide detached task group."""
    global _shared_group
    if _shared_group is None:
        _shared_group = DetachedTaskGroup("turns")
    return _shared_group
