"""Bounded in-process queue for fire-and-forget workflow runs.

Jobs are drained by a fixed pool of asyncio worker tasks started and
stopped with the application. A failing job is logged with its supplier
and run id; the worker moves on to the next one. Jobs still queued or in
flight at shutdown go to the drop handler so their runs do not stay open.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional
from uuid import UUID

from qualification.schemas.workflows import WorkflowOptions
from qualification.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass
class WorkflowJob:
    supplier_id: UUID
    options: WorkflowOptions = field(default_factory=WorkflowOptions)
    # Set when the run was created before queueing
    run_id: Optional[UUID] = None


JobHandler = Callable[[WorkflowJob], Awaitable[Any]]


class WorkflowTaskQueue:
    """Bounded job queue served by ``worker_count`` asyncio tasks."""

    def __init__(
        self,
        handler: JobHandler,
        worker_count: int = 4,
        maxsize: int = 100,
        drop_handler: Optional[JobHandler] = None,
    ):
        if worker_count < 1:
            raise ValueError("worker_count must be at least 1")
        self.handler = handler
        self.drop_handler = drop_handler
        self.worker_count = worker_count
        self.maxsize = maxsize
        self._queue: asyncio.Queue[WorkflowJob] = asyncio.Queue(maxsize=maxsize)
        self._workers: List[asyncio.Task] = []
        self.processed = 0
        self.failed = 0
        self.dropped = 0

    @property
    def is_running(self) -> bool:
        return any(not worker.done() for worker in self._workers)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def is_full(self) -> bool:
        return self._queue.full()

    def start(self) -> None:
        if self.is_running:
            return
        self._workers = [
            asyncio.create_task(self._worker(index), name=f"workflow-worker-{index}")
            for index in range(self.worker_count)
        ]
        LOGGER.info(f"Started {self.worker_count} workflow workers (queue size {self.maxsize})")

    async def stop(self) -> None:
        """Cancel the workers and hand every unprocessed job to the drop handler."""
        for worker in self._workers:
            worker.cancel()
        if self._workers:
            await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

        queued = 0
        while not self._queue.empty():
            job = self._queue.get_nowait()
            try:
                await self._drop(job)
            finally:
                self._queue.task_done()
            queued += 1
        LOGGER.info(f"Stopped workflow workers ({queued} queued jobs dropped)")

    async def submit(self, job: WorkflowJob) -> None:
        """Queue a job, waiting for a free slot."""
        await self._queue.put(job)

    def submit_nowait(self, job: WorkflowJob) -> bool:
        """Queue a job if there is room; False when the queue is full."""
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            return False
        return True

    async def join(self) -> None:
        """Wait until every queued job has been processed."""
        await self._queue.join()

    def stats(self) -> dict:
        return {
            "running": self.is_running,
            "workers": self.worker_count,
            "pending": self.pending,
            "capacity": self.maxsize,
            "processed": self.processed,
            "failed": self.failed,
            "dropped": self.dropped,
        }

    async def _drop(self, job: WorkflowJob) -> None:
        self.dropped += 1
        extra = {"supplier_id": str(job.supplier_id), "run_id": str(job.run_id) if job.run_id else None}
        LOGGER.warning("Workflow job dropped at shutdown", extra=extra)
        if self.drop_handler is None:
            return
        try:
            await self.drop_handler(job)
        except Exception as e:
            LOGGER.error(f"Drop handler failed: {e}", exc_info=True, extra=extra)

    async def _worker(self, index: int) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self.handler(job)
                self.processed += 1
            except asyncio.CancelledError:
                await self._drop(job)
                raise
            except Exception as e:
                self.failed += 1
                LOGGER.error(
                    f"Workflow job failed: {e}",
                    exc_info=True,
                    extra={
                        "worker": index,
                        "supplier_id": str(job.supplier_id),
                        "run_id": str(job.run_id) if job.run_id else None,
                    },
                )
            finally:
                self._queue.task_done()
