from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from telegram import Update
from telegram.ext import ContextTypes

HandlerFn = Callable[[Update, ContextTypes.DEFAULT_TYPE], Awaitable[None]]

logger = logging.getLogger("workers")


class UpdateWorkerPool:
    """Fixed pool of workers draining a bounded queue of handler calls.

    The application dispatches updates one at a time; a wrapped handler only
    awaits a put into the queue, so when every worker is busy and the queue is
    full the dispatcher blocks, the application's update queue fills and the
    long-poll updater stops fetching.
    """

    def __init__(self, worker_count: int = 5, queue_size: int = 100) -> None:
        self._worker_count = max(1, worker_count)
        self._queue: asyncio.Queue[tuple[HandlerFn, Any, Any]] = asyncio.Queue(maxsize=queue_size)
        self._workers: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def qsize(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker_loop(idx), name=f"update-worker-{idx}")
            for idx in range(self._worker_count)
        ]
        logger.info("Update workers started count=%s queue_size=%s", self._worker_count, self._queue.maxsize)

    async def stop(self) -> None:
        if not self._workers:
            return
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("Update workers stopped pending=%s", self._queue.qsize())

    async def submit(self, callback: HandlerFn, update: Any, context: Any) -> None:
        await self._queue.put((callback, update, context))

    def wrap(self, callback: HandlerFn) -> HandlerFn:
        async def enqueue(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
            await self.submit(callback, update, context)

        enqueue.__name__ = f"enqueue_{getattr(callback, '__name__', 'handler')}"
        return enqueue

    async def _worker_loop(self, worker_id: int) -> None:
        while True:
            callback, update, context = await self._queue.get()
            try:
                await callback(update, context)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(
                    "Update handler failed worker=%s handler=%s",
                    worker_id,
                    getattr(callback, "__name__", callback),
                )
            finally:
                self._queue.task_done()
