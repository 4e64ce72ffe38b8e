"""
Single-consumer FIFO queue.

One worker task drains the channel and runs each job to completion before
taking the next, so no two pipeline runs ever overlap. Jobs finish in arrival
order. A failing job is logged and counted; it never stops the worker.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

from event_ingest.schemas import QueueStatusResponse
from event_ingest.utils.logger import setup_logger

logger = setup_logger("message_queue")

JobT = TypeVar("JobT")


class SequentialQueue(Generic[JobT]):
    def __init__(self, handler: Callable[[JobT], Awaitable[None]], name: str = "pipeline"):
        self.handler = handler
        self.name = name
        self._queue: asyncio.Queue[JobT] = asyncio.Queue()
        self._worker: asyncio.Task | None = None
        self._processing = False
        self.processed_total = 0
        self.failed_total = 0

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def processing(self) -> bool:
        return self._processing

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self):
        if self.running:
            return
        self._worker = asyncio.create_task(self._run(), name=f"{self.name}-worker")
        logger.info(f"Queue '{self.name}' worker started")

    async def enqueue(self, job: JobT) -> int:
        """Add a job and return the number of jobs waiting, this one included."""
        await self._queue.put(job)
        depth = self._queue.qsize()
        logger.info(f"Queue '{self.name}': job enqueued, {depth} pending")
        return depth

    async def _run(self):
        while True:
            job = await self._queue.get()
            self._processing = True
            try:
                await self.handler(job)
                self.processed_total += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.failed_total += 1
                logger.error(f"Queue '{self.name}': job failed: {e}", exc_info=True)
            finally:
                self._processing = False
                self._queue.task_done()

    async def drain(self):
        """Wait until every job enqueued so far has finished."""
        await self._queue.join()

    async def stop(self, drain: bool = True):
        if drain and self.running:
            logger.info(f"Queue '{self.name}': draining {self.pending} pending job(s)")
            await self.drain()
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        logger.info(
            f"Queue '{self.name}' stopped. Processed: {self.processed_total}, failed: {self.failed_total}"
        )

    def status(self) -> QueueStatusResponse:
        return QueueStatusResponse(
            pending=self.pending,
            processing=self._processing,
            processed_total=self.processed_total,
            failed_total=self.failed_total,
        )
