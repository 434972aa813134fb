"""Start, poll and cancel qualification runs for many suppliers at once."""

import asyncio
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from qualification.schemas.workflows import (
    BatchCancelResult,
    BatchStartResult,
    CancelOutcome,
    RunProjection,
    SupplierCancelResult,
    WorkflowOptions,
)
from qualification.services.workflow.orchestrator import WorkflowOrchestrator
from qualification.services.workflow.run_registry import RunRegistry
from qualification.services.workflow.task_queue import WorkflowJob, WorkflowTaskQueue
from qualification.utils.logging import get_logger

LOGGER = get_logger(__name__)


def _unique(supplier_ids: Iterable[UUID]) -> List[UUID]:
    return list(dict.fromkeys(supplier_ids))


class BatchCoordinator:
    def __init__(self, orchestrator: WorkflowOrchestrator, registry: RunRegistry, task_queue: WorkflowTaskQueue):
        self.orchestrator = orchestrator
        self.registry = registry
        self.task_queue = task_queue

    async def start_many(
        self,
        supplier_ids: Iterable[UUID],
        options: Optional[WorkflowOptions] = None,
    ) -> BatchStartResult:
        """Create a pending full run per supplier and queue it without waiting.

        Suppliers that do not fit in the queue are reported as rejected.
        """
        options = options or WorkflowOptions()
        result = BatchStartResult()
        for supplier_id in _unique(supplier_ids):
            if self.task_queue.is_full():
                result.rejected.append(supplier_id)
                continue

            run = await self.orchestrator.create_run(supplier_id, options)
            job = WorkflowJob(supplier_id=supplier_id, options=options, run_id=run.id)
            if self.task_queue.submit_nowait(job):
                result.accepted.append(supplier_id)
            else:
                # Filled up while the run was being created
                await self.orchestrator.abandon_run(run.id, "Workflow queue full; run not started")
                result.rejected.append(supplier_id)

        if result.rejected:
            LOGGER.warning(
                f"Workflow queue full: rejected {len(result.rejected)} of "
                f"{len(result.accepted) + len(result.rejected)} suppliers"
            )
        LOGGER.info(f"Queued qualification runs for {len(result.accepted)} suppliers")
        return result

    async def status_many(
        self,
        supplier_ids: Iterable[UUID],
        include_steps: bool = True,
    ) -> Dict[UUID, Optional[RunProjection]]:
        """Latest run per supplier (None for suppliers never run), in one batched read."""
        return await self.registry.latest_runs(_unique(supplier_ids), include_steps=include_steps)

    async def cancel_many(self, supplier_ids: Iterable[UUID]) -> BatchCancelResult:
        ids = _unique(supplier_ids)
        outcomes = await asyncio.gather(
            *(self.orchestrator.try_cancel(supplier_id) for supplier_id in ids),
            return_exceptions=True,
        )

        result = BatchCancelResult()
        for supplier_id, outcome in zip(ids, outcomes):
            if isinstance(outcome, BaseException):
                LOGGER.error(
                    f"Cancel failed for supplier {supplier_id}: {outcome}",
                    extra={"supplier_id": str(supplier_id)},
                )
                result.results[supplier_id] = SupplierCancelResult(outcome=CancelOutcome.ERROR, error=str(outcome))
                continue
            canceled, run = outcome
            result.results[supplier_id] = SupplierCancelResult(
                outcome=CancelOutcome.CANCELED if canceled else CancelOutcome.NOT_RUNNING,
                run=run,
            )

        LOGGER.info(f"Canceled {result.canceled_count} of {len(ids)} supplier runs")
        return result
