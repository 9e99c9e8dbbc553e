# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Best-effort background task dispatch.

Side effects that must never block or fail the request that triggered them
(audit entries, push delivery, notification status sync) are handed to a
``BackgroundDispatcher``. It owns a bounded queue drained by a few worker
tasks:

- ``dispatch`` never awaits; when the queue is full the task is dropped and
  a warning is logged
- every failure is logged with its traceback and swallowed
- ``drain`` waits until everything queued so far has run
- ``stop`` drains then cancels the workers (called from the app lifespan)

Example:
    >>> dispatcher = BackgroundDispatcher(max_pending=100, workers=2)
    >>> dispatcher.dispatch("audit", audit.write_entry, entry)
    >>> await dispatcher.drain()
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

TaskFactory = Callable[..., Awaitable[Any]]


@dataclass
class _Job:
    name: str
    func: TaskFactory
    args: tuple[Any, ...] = ()
    kwargs: dict[str, Any] = field(default_factory=dict)


class BackgroundDispatcher:
    """Bounded fire-and-forget task runner.

    Attributes:
        completed: Number of tasks that ran to completion.
        failed: Number of tasks that raised.
        dropped: Number of tasks rejected because the queue was full.
    """

    def __init__(self, max_pending: int = 1000, workers: int = 4) -> None:
        """Initialize the dispatcher.

        Args:
            max_pending: Maximum number of queued tasks.
            workers: Number of concurrent worker tasks.
        """
        self._queue: asyncio.Queue[_Job] = asyncio.Queue(maxsize=max_pending)
        self._worker_count = max(1, workers)
        self._workers: list[asyncio.Task[None]] = []
        self._closed = False
        self.completed = 0
        self.failed = 0
        self.dropped = 0

    @property
    def pending(self) -> int:
        """Number of tasks waiting in the queue."""
        return self._queue.qsize()

    @property
    def is_running(self) -> bool:
        return any(not worker.done() for worker in self._workers)

    def start(self) -> None:
        """Start the worker tasks. Requires a running event loop."""
        if self.is_running:
            return
        self._closed = False
        self._workers = [
            asyncio.create_task(self._worker(index), name=f"background-worker-{index}")
            for index in range(self._worker_count)
        ]
        logger.debug("Background dispatcher started with %d workers", self._worker_count)

    def dispatch(self, name: str, func: TaskFactory, *args: Any, **kwargs: Any) -> bool:
        """Queue ``func(*args, **kwargs)`` for background execution.

        Args:
            name: Short label used in logs.
            func: Coroutine function to call.
            *args: Positional arguments for func.
            **kwargs: Keyword arguments for func.

        Returns:
            True if queued, False if dropped.
        """
        if self._closed:
            self.dropped += 1
            logger.warning("Dispatcher stopped, dropping background task %s", name)
            return False
        if not self.is_running:
            self.start()
        try:
            self._queue.put_nowait(_Job(name=name, func=func, args=args, kwargs=kwargs))
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning("Background queue full, dropping task %s", name)
            return False
        return True

    async def _worker(self, index: int) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self._run(job)
            finally:
                self._queue.task_done()

    async def _run(self, job: _Job) -> None:
        try:
            await job.func(*job.args, **job.kwargs)
        except Exception as e:
            self.failed += 1
            logger.error("Background task %s failed: %s", job.name, str(e), exc_info=True)
        else:
            self.completed += 1

    async def drain(self) -> None:
        """Wait until every queued task has run."""
        if not self.is_running:
            if self._queue.empty():
                return
            self.start()
        await self._queue.join()

    async def stop(self, drain: bool = True) -> None:
        """Stop accepting tasks and shut the workers down.

        Args:
            drain: Run what is already queued before stopping.
        """
        self._closed = True
        if drain and self.is_running:
            await self._queue.join()
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info(
            "Background dispatcher stopped (completed=%d, failed=%d, dropped=%d)",
            self.completed,
            self.failed,
            self.dropped,
        )
