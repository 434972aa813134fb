import uuid
from typing import Any, Iterable, Optional, Sequence
from datetime import datetime, timezone

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from qualification.database.models import WorkflowRun, WorkflowStepResult
from qualification.repositories.base_repository import BaseRepository


class WorkflowRunRepository(BaseRepository[WorkflowRun]):
    """Repository for qualification workflow runs."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, WorkflowRun)

    async def create_run(
        self,
        supplier_id: uuid.UUID,
        workflow_type: str,
        status: str = "pending",
        triggered_by: Optional[str] = None,
    ) -> WorkflowRun:
        """Create a new run record.

        Args:
            supplier_id: Supplier being qualified
            workflow_type: full_qualification or single_step
            status: Initial status (default: "pending")
            triggered_by: Optional user or process identifier

        Returns:
            Created WorkflowRun instance
        """
        return await self.create(
            supplier_id=supplier_id,
            workflow_type=workflow_type,
            status=status,
            notes=[],
            triggered_by=triggered_by,
            started_at=datetime.now(timezone.utc),
        )

    async def get_latest_for_supplier(
        self,
        supplier_id: uuid.UUID,
        status: Optional[str] = None,
    ) -> Optional[WorkflowRun]:
        """Most recently started run of a supplier, optionally with a given status."""
        try:
            query = select(WorkflowRun).where(WorkflowRun.supplier_id == supplier_id)
            if status is not None:
                query = query.where(WorkflowRun.status == status)
            query = query.order_by(WorkflowRun.started_at.desc(), WorkflowRun.id.desc()).limit(1)
            result = await self.session.execute(query)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading latest run for supplier {supplier_id}: {e}", exc_info=True)
            raise

    async def get_latest_for_suppliers(self, supplier_ids: Iterable[uuid.UUID]) -> Sequence[WorkflowRun]:
        """Latest run per supplier in a single query (ROW_NUMBER window)."""
        ids = list(supplier_ids)
        if not ids:
            return []
        try:
            ranked = (
                select(
                    WorkflowRun.id.label("run_id"),
                    func.row_number()
                    .over(
                        partition_by=WorkflowRun.supplier_id,
                        order_by=(WorkflowRun.started_at.desc(), WorkflowRun.id.desc()),
                    )
                    .label("rn"),
                )
                .where(WorkflowRun.supplier_id.in_(ids))
                .subquery()
            )
            query = (
                select(WorkflowRun)
                .join(ranked, ranked.c.run_id == WorkflowRun.id)
                .where(ranked.c.rn == 1)
            )
            result = await self.session.execute(query)
            return result.scalars().all()
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading latest runs for {len(ids)} suppliers: {e}", exc_info=True)
            raise

    async def get_status(self, run_id: uuid.UUID) -> Optional[str]:
        """Read the persisted status without loading the row into the session."""
        try:
            result = await self.session.execute(select(WorkflowRun.status).where(WorkflowRun.id == run_id))
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            self.logger.error(f"Error reading status of run {run_id}: {e}", exc_info=True)
            raise

    async def transition(
        self,
        run_id: uuid.UUID,
        from_statuses: Iterable[str],
        to_status: str,
        close: bool = False,
        **values: Any,
    ) -> bool:
        """Conditionally move a run to a new status.

        The update only applies while the run is in one of ``from_statuses``;
        with ``close`` it also sets ``ended_at`` unless already set.

        Returns:
            True when the row was updated
        """
        try:
            stmt = (
                update(WorkflowRun)
                .where(WorkflowRun.id == run_id, WorkflowRun.status.in_(list(from_statuses)))
                .values(status=to_status, **values)
                .execution_options(synchronize_session=False)
            )
            if close:
                stmt = stmt.values(
                    ended_at=func.coalesce(WorkflowRun.ended_at, datetime.now(timezone.utc))
                )
            result = await self.session.execute(stmt)
            await self.session.commit()
            return result.rowcount > 0
        except SQLAlchemyError as e:
            await self.session.rollback()
            self.logger.error(f"Error moving run {run_id} to {to_status}: {e}", exc_info=True)
            raise

    async def set_verdict(self, run_id: uuid.UUID, overall: Optional[str], notes: list[str]) -> None:
        """Overwrite the verdict of a run without touching its status."""
        try:
            await self.session.execute(
                update(WorkflowRun)
                .where(WorkflowRun.id == run_id)
                .values(overall=overall, notes=notes)
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            self.logger.error(f"Error updating verdict of run {run_id}: {e}", exc_info=True)
            raise


class WorkflowStepResultRepository(BaseRepository[WorkflowStepResult]):
    """Repository for per-step results; one row per (run, step)."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, WorkflowStepResult)

    async def get_for_run(self, run_id: uuid.UUID, step_key: str) -> Optional[WorkflowStepResult]:
        try:
            query = select(WorkflowStepResult).where(
                WorkflowStepResult.run_id == run_id,
                WorkflowStepResult.step_key == step_key,
            )
            result = await self.session.execute(query)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading step {step_key} of run {run_id}: {e}", exc_info=True)
            raise

    async def list_for_runs(self, run_ids: Iterable[uuid.UUID]) -> Sequence[WorkflowStepResult]:
        """Steps of many runs in one query, ordered by run then order_index."""
        ids = list(run_ids)
        if not ids:
            return []
        try:
            query = (
                select(WorkflowStepResult)
                .where(WorkflowStepResult.run_id.in_(ids))
                .order_by(WorkflowStepResult.run_id, WorkflowStepResult.order_index)
            )
            result = await self.session.execute(query)
            return result.scalars().all()
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading steps for {len(ids)} runs: {e}", exc_info=True)
            raise

    async def upsert(self, run_id: uuid.UUID, step_key: str, **values: Any) -> WorkflowStepResult:
        """Insert the step row or update it in place.

        A concurrent insert of the same (run_id, step_key) surfaces as an
        IntegrityError; the row is then re-read and updated.
        """
        existing = await self.get_for_run(run_id, step_key)
        if existing is not None:
            return await self._apply(existing, values)

        try:
            return await self.create(run_id=run_id, step_key=step_key, **values)
        except IntegrityError:
            self.logger.info(f"Step {step_key} of run {run_id} inserted concurrently, updating instead")
            existing = await self.get_for_run(run_id, step_key)
            if existing is None:
                raise
            return await self._apply(existing, values)

    async def _apply(self, instance: WorkflowStepResult, values: dict[str, Any]) -> WorkflowStepResult:
        try:
            for key, value in values.items():
                setattr(instance, key, value)
            await self.session.flush()
            await self.session.commit()
            return instance
        except SQLAlchemyError as e:
            await self.session.rollback()
            self.logger.error(
                f"Error updating step {instance.step_key} of run {instance.run_id}: {e}",
                exc_info=True
            )
            raise
