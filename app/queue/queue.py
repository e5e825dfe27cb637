from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set
from uuid import UUID


class BaseQueue:
    def enqueue(self, job_id: UUID) -> None: ...  # pragma: no cover


class LocalTaskQueue(BaseQueue):
    """Runs each enqueued job as a detached task on the running event loop.

    The processor is expected to own its error handling; anything that still
    escapes is logged here so a crashed task never goes unnoticed.
    """

    def __init__(
        self,
        processor: Callable[[UUID], Awaitable[None]],
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._processor = processor
        self._tasks: Set[asyncio.Task] = set()
        self.log = logger or logging.getLogger(__name__)

    def enqueue(self, job_id: UUID) -> None:
        task = asyncio.get_running_loop().create_task(self._processor(job_id), name=f"interview-{job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            self.log.warning("interview task cancelled", extra={"task": task.get_name()})
            return
        exc = task.exception()
        if exc is not None:
            self.log.error("interview task crashed", extra={"task": task.get_name()}, exc_info=exc)
