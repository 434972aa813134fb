"""Unit tests for multi-supplier start, status and cancel."""

import asyncio
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from qualification.core.exceptions import DatabaseError
from qualification.schemas.workflows import (
    CancelOutcome,
    OverallVerdict,
    RunStatus,
    WorkflowOptions,
    WorkflowType,
)
from qualification.services.workflow.batch import BatchCoordinator
from qualification.services.workflow.runtime import DROPPED_RUN_NOTE, WorkflowRuntime
from qualification.services.workflow.task_queue import WorkflowJob, WorkflowTaskQueue


@pytest.fixture
def task_queue():
    return WorkflowTaskQueue(AsyncMock(), worker_count=1, maxsize=2)


@pytest.fixture
def batch(orchestrator, registry, task_queue):
    return BatchCoordinator(orchestrator, registry, task_queue)


@pytest.fixture
def runtime(registry, orchestrator):
    return WorkflowRuntime(
        registry=registry,
        gateway=AsyncMock(),
        orchestrator=orchestrator,
        worker_count=2,
        queue_size=10,
    )


@pytest.mark.asyncio
async def test_start_many_reports_rejections(batch, task_queue, registry):
    first, second, third = uuid4(), uuid4(), uuid4()

    result = await batch.start_many([first, second, first, third], WorkflowOptions(include_soa=False))

    assert result.accepted == [first, second]
    assert result.rejected == [third]
    assert task_queue.pending == 2
    # Rejected suppliers get no run
    assert len(registry.runs) == 2
    assert await registry.latest_run(third) is None


@pytest.mark.asyncio
async def test_status_right_after_start_many_is_pending(batch, orchestrator):
    supplier_id = uuid4()
    finished = await orchestrator.run_full_workflow(supplier_id)
    assert finished.overall == OverallVerdict.QUALIFIED

    await batch.start_many([supplier_id])
    runs = await batch.status_many([supplier_id])

    assert runs[supplier_id].id != finished.id
    assert runs[supplier_id].status == RunStatus.PENDING
    assert runs[supplier_id].overall is None
    assert runs[supplier_id].workflow_type == WorkflowType.FULL_QUALIFICATION


@pytest.mark.asyncio
async def test_queued_jobs_carry_their_run(batch, task_queue, registry):
    supplier_id = uuid4()

    await batch.start_many([supplier_id])

    job = task_queue._queue.get_nowait()
    assert job.supplier_id == supplier_id
    assert job.run_id == (await registry.latest_run(supplier_id)).id


@pytest.mark.asyncio
async def test_status_many(batch, orchestrator):
    ran, never_ran = uuid4(), uuid4()
    await orchestrator.run_full_workflow(ran)

    runs = await batch.status_many([ran, never_ran])
    light = await batch.status_many([ran], include_steps=False)

    assert runs[never_ran] is None
    assert runs[ran].status == RunStatus.COMPLETED
    assert len(runs[ran].steps) == 9
    assert light[ran].steps == []


@pytest.mark.asyncio
async def test_cancel_many(batch, registry, orchestrator):
    running, idle, broken = uuid4(), uuid4(), uuid4()
    await registry.create_run(running, WorkflowType.FULL_QUALIFICATION, status=RunStatus.RUNNING)

    original = orchestrator.try_cancel

    async def try_cancel(supplier_id):
        if supplier_id == broken:
            raise DatabaseError("lock timeout")
        return await original(supplier_id)

    orchestrator.try_cancel = try_cancel

    result = await batch.cancel_many([running, idle, broken])

    assert result.results[running].outcome == CancelOutcome.CANCELED
    assert result.results[running].run.status == RunStatus.CANCELED
    assert result.results[idle].outcome == CancelOutcome.NOT_RUNNING
    assert result.results[idle].run is None
    assert result.results[broken].outcome == CancelOutcome.ERROR
    assert result.results[broken].error == "lock timeout"
    assert result.canceled_count == 1


@pytest.mark.asyncio
async def test_runtime_executes_queued_runs(runtime, registry, orchestrator):
    runtime.start()
    queued = uuid4()
    pending = await orchestrator.create_run(uuid4())

    await runtime.batch.start_many([queued])
    await runtime.task_queue.submit(WorkflowJob(supplier_id=pending.supplier_id, run_id=pending.id))
    await asyncio.wait_for(runtime.task_queue.join(), timeout=5)
    await runtime.stop()

    assert (await registry.latest_run(queued)).status == RunStatus.COMPLETED
    assert (await registry.get_run(pending.id)).status == RunStatus.COMPLETED
    assert len(registry.runs) == 2


@pytest.mark.asyncio
async def test_runtime_stop_fails_runs_left_in_queue(runtime, registry, orchestrator):
    run = await orchestrator.create_run(uuid4())
    assert runtime.task_queue.submit_nowait(WorkflowJob(supplier_id=run.supplier_id, run_id=run.id))

    await runtime.stop()

    stopped = await registry.get_run(run.id)
    assert stopped.status == RunStatus.FAILED
    assert stopped.notes == [DROPPED_RUN_NOTE]
    assert stopped.ended_at is not None
    assert runtime.task_queue.pending == 0
    assert runtime.task_queue.stats()["dropped"] == 1
