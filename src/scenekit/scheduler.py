"""Fire-and-forget delayed work, such as deleting ephemeral notifications."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Set

logger = logging.getLogger(__name__)

DelayedJob = Callable[[], Awaitable[object]]


class TaskScheduler(ABC):
    """Run a job after a delay without blocking the caller.

    Scheduled jobs are best effort: there is no cancellation and a failing job
    is only logged.
    """

    @abstractmethod
    def call_later(self, delay_secs: float, job: DelayedJob, *, name: str = "job") -> None:
        """Arrange for ``job`` to be awaited ``delay_secs`` seconds from now."""


class AsyncioScheduler(TaskScheduler):
    """Schedule jobs as detached tasks on the running event loop."""

    def __init__(self) -> None:
        # Strong references so pending tasks are not garbage collected.
        self._tasks: Set[asyncio.Task[None]] = set()

    def call_later(self, delay_secs: float, job: DelayedJob, *, name: str = "job") -> None:
        task = asyncio.get_running_loop().create_task(
            self._run(delay_secs, job, name), name=f"scenekit:{name}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def _run(self, delay_secs: float, job: DelayedJob, name: str) -> None:
        await asyncio.sleep(max(delay_secs, 0))
        try:
            await job()
        except Exception:  # noqa: BLE001
            logger.warning("scheduled %s failed", name, exc_info=True)


__all__ = ["AsyncioScheduler", "DelayedJob", "TaskScheduler"]
