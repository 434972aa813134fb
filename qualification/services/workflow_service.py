"""Caller-facing qualification workflow operations."""

from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from qualification.core.exceptions import (
    DatabaseError,
    SupplierNotFoundError,
    ValidationError,
    WorkflowQueueFullError,
)
from qualification.repositories.supplier_repository import SupplierRepository
from qualification.schemas.workflows import (
    BatchCancelResult,
    BatchStartResult,
    RunProjection,
    WorkflowOptions,
)
from qualification.services.base_service import BaseService
from qualification.services.workflow.runtime import WorkflowRuntime
from qualification.services.workflow.steps import get_step
from qualification.services.workflow.task_queue import WorkflowJob
from qualification.utils.logging import get_logger

LOGGER = get_logger(__name__)

ACTIONS = (
    "start",
    "start_step",
    "cancel",
    "status",
    "start_many",
    "status_many",
    "cancel_many",
)


class WorkflowService(BaseService):
    """Service for starting, polling and canceling qualification runs.

    Single-supplier calls check that the supplier exists before any run is
    created. Runs are executed by the shared ``WorkflowRuntime``.
    """

    def __init__(self, session: AsyncSession, runtime: WorkflowRuntime):
        """Initialize workflow service.

        Args:
            session: Async database session for supplier lookups
            runtime: Shared orchestrator, task queue and batch coordinator
        """
        self.supplier_repo = SupplierRepository(session)
        super().__init__(self.supplier_repo)
        self.session = session
        self.runtime = runtime

    def validate(self, *args, **kwargs):
        action = kwargs.get("action")
        if action not in ACTIONS:
            raise ValidationError(f"Unknown action: {action}")

        supplier_id = kwargs.get("supplier_id")
        if supplier_id is not None and not isinstance(supplier_id, UUID):
            raise ValidationError(f"supplier_id must be a UUID, got {supplier_id!r}")

        supplier_ids = kwargs.get("supplier_ids")
        if action.endswith("_many") and not supplier_ids:
            raise ValidationError("supplier_ids must not be empty")

        if action == "start_step":
            get_step(kwargs.get("step_key"))

        if action == "status" and supplier_id is None and kwargs.get("run_id") is None:
            raise ValidationError("Either supplier_id or run_id is required")

    async def run(self, *args, **kwargs) -> Any:
        """Dispatch to the handler of the requested action."""
        action = kwargs["action"]

        if action == "start":
            return await self._start(kwargs["supplier_id"], kwargs.get("options"), kwargs.get("wait", False))
        elif action == "start_step":
            return await self._start_step(
                kwargs["supplier_id"],
                kwargs["step_key"],
                kwargs.get("retry", False),
                kwargs.get("triggered_by"),
            )
        elif action == "cancel":
            return await self.runtime.orchestrator.cancel(kwargs["supplier_id"])
        elif action == "status":
            return await self.runtime.orchestrator.status_of(kwargs.get("supplier_id"), kwargs.get("run_id"))
        elif action == "start_many":
            return await self.runtime.batch.start_many(kwargs["supplier_ids"], kwargs.get("options"))
        elif action == "status_many":
            return await self.runtime.batch.status_many(kwargs["supplier_ids"], kwargs.get("include_steps", True))
        else:
            return await self.runtime.batch.cancel_many(kwargs["supplier_ids"])

    async def start_workflow(
        self,
        supplier_id: UUID,
        options: Optional[WorkflowOptions] = None,
        wait: bool = False,
    ) -> RunProjection:
        return await self.execute(action="start", supplier_id=supplier_id, options=options, wait=wait)

    async def start_step(
        self,
        supplier_id: UUID,
        step_key: str,
        retry: bool = False,
        triggered_by: Optional[str] = None,
    ) -> RunProjection:
        return await self.execute(
            action="start_step",
            supplier_id=supplier_id,
            step_key=step_key,
            retry=retry,
            triggered_by=triggered_by,
        )

    async def cancel_workflow(self, supplier_id: UUID) -> Optional[RunProjection]:
        return await self.execute(action="cancel", supplier_id=supplier_id)

    async def get_status(
        self,
        supplier_id: Optional[UUID] = None,
        run_id: Optional[UUID] = None,
    ) -> Optional[RunProjection]:
        return await self.execute(action="status", supplier_id=supplier_id, run_id=run_id)

    async def start_many(
        self,
        supplier_ids: List[UUID],
        options: Optional[WorkflowOptions] = None,
    ) -> BatchStartResult:
        return await self.execute(action="start_many", supplier_ids=supplier_ids, options=options)

    async def get_status_many(
        self,
        supplier_ids: List[UUID],
        include_steps: bool = True,
    ) -> Dict[UUID, Optional[RunProjection]]:
        return await self.execute(action="status_many", supplier_ids=supplier_ids, include_steps=include_steps)

    async def cancel_many(self, supplier_ids: List[UUID]) -> BatchCancelResult:
        return await self.execute(action="cancel_many", supplier_ids=supplier_ids)

    async def _ensure_supplier(self, supplier_id: UUID) -> None:
        try:
            exists = await self.supplier_repo.exists(supplier_id)
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to look up supplier {supplier_id}: {e}", original_error=e)
        if not exists:
            raise SupplierNotFoundError(f"Supplier {supplier_id} not found")

    async def _start(self, supplier_id: UUID, options: Optional[WorkflowOptions], wait: bool) -> RunProjection:
        options = options or WorkflowOptions()
        await self._ensure_supplier(supplier_id)
        orchestrator = self.runtime.orchestrator

        if wait:
            LOGGER.info(f"Running qualification inline for supplier {supplier_id}")
            return await orchestrator.run_full_workflow(supplier_id, options)

        queue = self.runtime.task_queue
        if queue.is_full():
            raise WorkflowQueueFullError(f"Workflow queue is full ({queue.maxsize} jobs); retry later")

        run = await orchestrator.create_run(supplier_id, options)
        await queue.submit(WorkflowJob(supplier_id=supplier_id, options=options, run_id=run.id))
        LOGGER.info(
            f"Queued qualification run {run.id}",
            extra={"supplier_id": str(supplier_id), "run_id": str(run.id)},
        )
        return run

    async def _start_step(
        self,
        supplier_id: UUID,
        step_key: str,
        retry: bool,
        triggered_by: Optional[str],
    ) -> RunProjection:
        await self._ensure_supplier(supplier_id)
        definition = get_step(step_key)

        if retry:
            latest = await self.runtime.registry.latest_run(supplier_id)
            if latest is None or latest.step(definition.key) is None:
                LOGGER.warning(
                    f"Retrying step {definition.key.value} that never ran for supplier {supplier_id}",
                    extra={"supplier_id": str(supplier_id), "step_key": definition.key.value},
                )
            else:
                LOGGER.info(
                    f"Retrying step {definition.key.value} on run {latest.id}",
                    extra={"supplier_id": str(supplier_id), "run_id": str(latest.id)},
                )
        else:
            LOGGER.info(f"Starting step {definition.key.value} for supplier {supplier_id}")

        return await self.runtime.orchestrator.run_single_step(supplier_id, step_key, triggered_by)
