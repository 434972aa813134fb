"""Persisted store of workflow runs and step results.

The registry is the single source of truth for status queries. Every
operation runs in its own session, so background workers and request
handlers never share one.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Callable, Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from qualification.core.database import async_session_maker
from qualification.core.exceptions import DatabaseError
from qualification.database.models import WorkflowRun, WorkflowStepResult
from qualification.repositories.workflow_repository import WorkflowRunRepository, WorkflowStepResultRepository
from qualification.schemas.workflows import (
    OverallVerdict,
    RunProjection,
    RunStatus,
    StepProjection,
    WorkflowType,
)
from qualification.utils.logging import get_logger

LOGGER = get_logger(__name__)


class RunRegistry(ABC):
    """Storage contract used by the orchestrator and the batch coordinator."""

    @abstractmethod
    async def create_run(
        self,
        supplier_id: UUID,
        workflow_type: WorkflowType,
        triggered_by: Optional[str] = None,
        status: RunStatus = RunStatus.PENDING,
    ) -> RunProjection:
        ...

    @abstractmethod
    async def get_run(self, run_id: UUID) -> Optional[RunProjection]:
        ...

    @abstractmethod
    async def latest_run(self, supplier_id: UUID, status: Optional[RunStatus] = None) -> Optional[RunProjection]:
        ...

    @abstractmethod
    async def latest_runs(
        self,
        supplier_ids: Iterable[UUID],
        include_steps: bool = True,
    ) -> Dict[UUID, Optional[RunProjection]]:
        ...

    @abstractmethod
    async def get_status(self, run_id: UUID) -> Optional[RunStatus]:
        ...

    @abstractmethod
    async def transition(
        self,
        run_id: UUID,
        from_statuses: Iterable[RunStatus],
        to_status: RunStatus,
        close: bool = False,
        overall: Optional[OverallVerdict] = None,
        notes: Optional[List[str]] = None,
    ) -> bool:
        """Move a run to ``to_status`` if it is still in ``from_statuses``.

        With ``close`` the run's ``ended_at`` is set unless already set.
        Returns whether the transition applied.
        """

    @abstractmethod
    async def set_verdict(self, run_id: UUID, overall: Optional[OverallVerdict], notes: List[str]) -> None:
        ...

    @abstractmethod
    async def save_step(self, run_id: UUID, step: StepProjection) -> StepProjection:
        """Insert or replace the result of one step; one row per (run, step)."""


def project_step(step: WorkflowStepResult) -> StepProjection:
    return StepProjection(
        id=step.id,
        step_key=step.step_key,
        name=step.name,
        status=step.status,
        issues=list(step.issues or []),
        details=step.details,
        score=float(step.score) if step.score is not None else None,
        order_index=step.order_index,
        started_at=step.started_at,
        ended_at=step.ended_at,
    )


def project_run(run: WorkflowRun, steps: Sequence[WorkflowStepResult] = ()) -> RunProjection:
    return RunProjection(
        id=run.id,
        supplier_id=run.supplier_id,
        workflow_type=run.workflow_type,
        status=run.status,
        overall=run.overall,
        notes=list(run.notes or []),
        steps=[project_step(step) for step in sorted(steps, key=lambda s: s.order_index)],
        started_at=run.started_at,
        ended_at=run.ended_at,
    )


class SqlRunRegistry(RunRegistry):
    """Run registry backed by the workflow_runs and workflow_step_results tables."""

    def __init__(self, session_factory: Callable[[], AsyncSession] = async_session_maker):
        self.session_factory = session_factory

    async def create_run(
        self,
        supplier_id: UUID,
        workflow_type: WorkflowType,
        triggered_by: Optional[str] = None,
        status: RunStatus = RunStatus.PENDING,
    ) -> RunProjection:
        try:
            async with self.session_factory() as session:
                run = await WorkflowRunRepository(session).create_run(
                    supplier_id=supplier_id,
                    workflow_type=workflow_type.value,
                    status=status.value,
                    triggered_by=triggered_by,
                )
                return project_run(run)
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to create run for supplier {supplier_id}: {e}", original_error=e)

    async def get_run(self, run_id: UUID) -> Optional[RunProjection]:
        try:
            async with self.session_factory() as session:
                run = await WorkflowRunRepository(session).get_by_id(run_id)
                if run is None:
                    return None
                steps = await WorkflowStepResultRepository(session).list_for_runs([run.id])
                return project_run(run, steps)
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to load run {run_id}: {e}", original_error=e)

    async def latest_run(self, supplier_id: UUID, status: Optional[RunStatus] = None) -> Optional[RunProjection]:
        try:
            async with self.session_factory() as session:
                run = await WorkflowRunRepository(session).get_latest_for_supplier(
                    supplier_id, status.value if status else None
                )
                if run is None:
                    return None
                steps = await WorkflowStepResultRepository(session).list_for_runs([run.id])
                return project_run(run, steps)
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to load latest run for supplier {supplier_id}: {e}", original_error=e)

    async def latest_runs(
        self,
        supplier_ids: Iterable[UUID],
        include_steps: bool = True,
    ) -> Dict[UUID, Optional[RunProjection]]:
        ids = list(dict.fromkeys(supplier_ids))
        result: Dict[UUID, Optional[RunProjection]] = {supplier_id: None for supplier_id in ids}
        if not ids:
            return result

        try:
            async with self.session_factory() as session:
                runs = await WorkflowRunRepository(session).get_latest_for_suppliers(ids)
                steps_by_run: Dict[UUID, List[WorkflowStepResult]] = defaultdict(list)
                if include_steps and runs:
                    steps = await WorkflowStepResultRepository(session).list_for_runs([run.id for run in runs])
                    for step in steps:
                        steps_by_run[step.run_id].append(step)
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to load runs for {len(ids)} suppliers: {e}", original_error=e)

        for run in runs:
            result[run.supplier_id] = project_run(run, steps_by_run.get(run.id, []))
        return result

    async def get_status(self, run_id: UUID) -> Optional[RunStatus]:
        try:
            async with self.session_factory() as session:
                status = await WorkflowRunRepository(session).get_status(run_id)
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to read status of run {run_id}: {e}", original_error=e)
        return RunStatus(status) if status is not None else None

    async def transition(
        self,
        run_id: UUID,
        from_statuses: Iterable[RunStatus],
        to_status: RunStatus,
        close: bool = False,
        overall: Optional[OverallVerdict] = None,
        notes: Optional[List[str]] = None,
    ) -> bool:
        values = {}
        if overall is not None:
            values["overall"] = overall.value
        if notes is not None:
            values["notes"] = notes
        try:
            async with self.session_factory() as session:
                return await WorkflowRunRepository(session).transition(
                    run_id,
                    [status.value for status in from_statuses],
                    to_status.value,
                    close=close,
                    **values,
                )
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to move run {run_id} to {to_status.value}: {e}", original_error=e)

    async def set_verdict(self, run_id: UUID, overall: Optional[OverallVerdict], notes: List[str]) -> None:
        try:
            async with self.session_factory() as session:
                await WorkflowRunRepository(session).set_verdict(
                    run_id, overall.value if overall else None, notes
                )
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to update verdict of run {run_id}: {e}", original_error=e)

    async def save_step(self, run_id: UUID, step: StepProjection) -> StepProjection:
        payload = step.model_dump(mode="json", include={"details"})
        try:
            async with self.session_factory() as session:
                row = await WorkflowStepResultRepository(session).upsert(
                    run_id,
                    step.step_key.value,
                    name=step.name,
                    status=step.status.value,
                    issues=list(step.issues),
                    details=payload["details"],
                    score=step.score,
                    order_index=step.order_index,
                    started_at=step.started_at,
                    ended_at=step.ended_at,
                )
                return project_step(row)
        except SQLAlchemyError as e:
            raise DatabaseError(
                f"Failed to save step {step.step_key.value} of run {run_id}: {e}", original_error=e
            )
