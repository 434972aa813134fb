"""Process-wide wiring of the workflow components."""

from typing import Optional

from qualification.clients.registry_client import get_registry_client
from qualification.core.config import settings
from qualification.services.workflow.batch import BatchCoordinator
from qualification.services.workflow.gateway import SupplierDataGateway
from qualification.services.workflow.orchestrator import WorkflowOrchestrator
from qualification.services.workflow.run_registry import RunRegistry, SqlRunRegistry
from qualification.services.workflow.task_queue import WorkflowJob, WorkflowTaskQueue
from qualification.utils.logging import get_logger

LOGGER = get_logger(__name__)

DROPPED_RUN_NOTE = "Workflow stopped before the run finished; start it again"


class WorkflowRuntime:
    """Owns the orchestrator, the task queue and the batch coordinator."""

    def __init__(
        self,
        registry: Optional[RunRegistry] = None,
        gateway: Optional[SupplierDataGateway] = None,
        orchestrator: Optional[WorkflowOrchestrator] = None,
        worker_count: Optional[int] = None,
        queue_size: Optional[int] = None,
    ):
        self.registry = registry or SqlRunRegistry()
        self.gateway = gateway or SupplierDataGateway(registry_client=get_registry_client())
        self.orchestrator = orchestrator or WorkflowOrchestrator(self.registry, self.gateway)
        self.task_queue = WorkflowTaskQueue(
            self.handle_job,
            worker_count=worker_count or settings.workflow.worker_count,
            maxsize=queue_size or settings.workflow.queue_size,
            drop_handler=self.handle_dropped_job,
        )
        self.batch = BatchCoordinator(self.orchestrator, self.registry, self.task_queue)

    async def handle_job(self, job: WorkflowJob):
        if job.run_id is not None:
            return await self.orchestrator.execute_run(job.run_id, job.supplier_id, job.options)
        return await self.orchestrator.run_full_workflow(job.supplier_id, job.options)

    async def handle_dropped_job(self, job: WorkflowJob) -> None:
        if job.run_id is not None:
            await self.orchestrator.abandon_run(job.run_id, DROPPED_RUN_NOTE)

    def start(self) -> None:
        self.task_queue.start()

    async def stop(self) -> None:
        await self.task_queue.stop()


_runtime: Optional[WorkflowRuntime] = None


def get_workflow_runtime() -> WorkflowRuntime:
    """Shared runtime, created on first use."""
    global _runtime
    if _runtime is None:
        _runtime = WorkflowRuntime()
    return _runtime
