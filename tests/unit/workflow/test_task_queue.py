"""Unit tests for the bounded workflow task queue."""

import asyncio
from uuid import uuid4

import pytest
from unittest.mock import AsyncMock, patch

from qualification.services.workflow.task_queue import WorkflowJob, WorkflowTaskQueue


@pytest.mark.asyncio
async def test_workers_process_jobs():
    handled = []

    async def handler(job):
        handled.append(job.supplier_id)

    queue = WorkflowTaskQueue(handler, worker_count=2, maxsize=10)
    queue.start()
    jobs = [WorkflowJob(supplier_id=uuid4()) for _ in range(5)]
    for job in jobs:
        await queue.submit(job)

    await asyncio.wait_for(queue.join(), timeout=5)
    await queue.stop()

    assert sorted(handled) == sorted(job.supplier_id for job in jobs)
    assert queue.stats()["processed"] == 5
    assert not queue.is_running


@pytest.mark.asyncio
async def test_failed_job_does_not_stop_worker():
    handled = []

    async def handler(job):
        if job.run_id is not None:
            raise RuntimeError("database unavailable")
        handled.append(job.supplier_id)

    queue = WorkflowTaskQueue(handler, worker_count=1, maxsize=10)
    failing = WorkflowJob(supplier_id=uuid4(), run_id=uuid4())
    ok = WorkflowJob(supplier_id=uuid4())

    with patch("qualification.services.workflow.task_queue.LOGGER") as mock_logger:
        queue.start()
        await queue.submit(failing)
        await queue.submit(ok)
        await asyncio.wait_for(queue.join(), timeout=5)
        await queue.stop()

    assert handled == [ok.supplier_id]
    assert queue.stats()["failed"] == 1
    extra = mock_logger.error.call_args.kwargs["extra"]
    assert extra["supplier_id"] == str(failing.supplier_id)
    assert extra["run_id"] == str(failing.run_id)


@pytest.mark.asyncio
async def test_submit_nowait_respects_capacity():
    async def handler(job):
        pass

    # Not started: nothing drains the queue
    queue = WorkflowTaskQueue(handler, worker_count=1, maxsize=2)

    assert queue.submit_nowait(WorkflowJob(supplier_id=uuid4()))
    assert queue.submit_nowait(WorkflowJob(supplier_id=uuid4()))
    assert queue.is_full()
    assert not queue.submit_nowait(WorkflowJob(supplier_id=uuid4()))
    assert queue.pending == 2


def test_worker_count_must_be_positive():
    with pytest.raises(ValueError):
        WorkflowTaskQueue(lambda job: None, worker_count=0)


@pytest.mark.asyncio
async def test_stop_hands_queued_jobs_to_drop_handler():
    dropped = AsyncMock()
    queue = WorkflowTaskQueue(AsyncMock(), worker_count=1, maxsize=5, drop_handler=dropped)
    jobs = [WorkflowJob(supplier_id=uuid4(), run_id=uuid4()) for _ in range(2)]
    for job in jobs:
        queue.submit_nowait(job)

    await queue.stop()

    assert [call.args[0] for call in dropped.await_args_list] == jobs
    assert queue.pending == 0
    assert queue.stats()["dropped"] == 2


@pytest.mark.asyncio
async def test_stop_hands_in_flight_job_to_drop_handler():
    started = asyncio.Event()

    async def handler(job):
        started.set()
        await asyncio.Event().wait()

    dropped = AsyncMock()
    queue = WorkflowTaskQueue(handler, worker_count=1, maxsize=5, drop_handler=dropped)
    job = WorkflowJob(supplier_id=uuid4(), run_id=uuid4())

    queue.start()
    queue.submit_nowait(job)
    await asyncio.wait_for(started.wait(), timeout=5)
    await queue.stop()

    dropped.assert_awaited_once_with(job)
    assert queue.stats()["processed"] == 0


@pytest.mark.asyncio
async def test_failing_drop_handler_is_logged():
    dropped = AsyncMock(side_effect=RuntimeError("database unavailable"))
    queue = WorkflowTaskQueue(AsyncMock(), worker_count=1, maxsize=5, drop_handler=dropped)
    job = WorkflowJob(supplier_id=uuid4(), run_id=uuid4())
    queue.submit_nowait(job)

    with patch("qualification.services.workflow.task_queue.LOGGER") as mock_logger:
        await queue.stop()

    assert mock_logger.error.call_args.kwargs["extra"]["run_id"] == str(job.run_id)
    assert queue.pending == 0
