"""Run/step state machine for supplier qualification.

A run moves ``pending -> running -> completed | failed | canceled``. Steps
execute sequentially; before each dispatch the persisted run status is
re-read so a cancellation stops the run at the next step boundary.
"""

from datetime import datetime, timezone
from typing import Collection, Dict, List, Optional, Tuple
from uuid import UUID

from qualification.core.exceptions import RunNotFoundError, ValidationError
from qualification.schemas.workflows import (
    RunProjection,
    RunStatus,
    SkippedDetails,
    StepErrorDetails,
    StepKey,
    StepProjection,
    StepStatus,
    WorkflowOptions,
    WorkflowType,
)
from qualification.services.workflow.executors import StepContext, StepExecutor, StepOutcome, build_executors
from qualification.services.workflow.gateway import SupplierDataGateway
from qualification.services.workflow.run_registry import RunRegistry
from qualification.services.workflow.steps import STEP_DEFINITIONS, StepDefinition, get_step
from qualification.services.workflow.verdict import all_settled, compute_verdict, default_required_steps
from qualification.utils.logging import get_logger

LOGGER = get_logger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowOrchestrator:
    """Executes qualification runs against a run registry.

    Attributes:
        registry: Persisted run/step store
        gateway: Supplier data access handed to the executors
        executors: Executor per step key
        required_steps: Step keys whose failure disqualifies a supplier
    """

    def __init__(
        self,
        registry: RunRegistry,
        gateway: SupplierDataGateway,
        executors: Optional[Dict[StepKey, StepExecutor]] = None,
        required_steps: Optional[Collection[str]] = None,
    ):
        self.registry = registry
        self.gateway = gateway
        self.executors = executors or build_executors()
        self.required_steps = frozenset(required_steps) if required_steps is not None else default_required_steps()

    async def run_full_workflow(
        self,
        supplier_id: UUID,
        options: Optional[WorkflowOptions] = None,
    ) -> RunProjection:
        """Create a full qualification run and execute every step."""
        options = options or WorkflowOptions()
        run = await self.create_run(supplier_id, options)
        return await self.execute_run(run.id, supplier_id, options)

    async def create_run(self, supplier_id: UUID, options: Optional[WorkflowOptions] = None) -> RunProjection:
        """Persist a pending full qualification run without executing it."""
        options = options or WorkflowOptions()
        run = await self.registry.create_run(
            supplier_id,
            WorkflowType.FULL_QUALIFICATION,
            triggered_by=options.triggered_by,
            status=RunStatus.PENDING,
        )
        LOGGER.info(
            f"Created qualification run {run.id}",
            extra={"supplier_id": str(supplier_id), "run_id": str(run.id)},
        )
        return run

    async def execute_run(
        self,
        run_id: UUID,
        supplier_id: UUID,
        options: Optional[WorkflowOptions] = None,
    ) -> RunProjection:
        """Execute a pending run to completion, cancellation or failure."""
        options = options or WorkflowOptions()
        log_extra = {"supplier_id": str(supplier_id), "run_id": str(run_id)}

        if not await self.registry.transition(run_id, [RunStatus.PENDING], RunStatus.RUNNING):
            LOGGER.warning(f"Run {run_id} is not pending, not executing it", extra=log_extra)
            return await self._require_run(run_id)

        try:
            steps: List[StepProjection] = []
            canceled = False
            for definition in STEP_DEFINITIONS:
                if await self.registry.get_status(run_id) != RunStatus.RUNNING:
                    canceled = True
                    LOGGER.info(
                        f"Run {run_id} stopped before step {definition.key.value}",
                        extra={**log_extra, "step_key": definition.key.value},
                    )
                    break
                steps.append(await self._run_step(run_id, supplier_id, definition, options, steps))

            if not canceled:
                verdict = compute_verdict(steps, self.required_steps)
                completed = await self.registry.transition(
                    run_id,
                    [RunStatus.RUNNING],
                    RunStatus.COMPLETED,
                    close=True,
                    overall=verdict.overall if verdict else None,
                    notes=verdict.notes if verdict else [],
                )
                if completed:
                    LOGGER.info(
                        f"Run {run_id} completed: {verdict.overall.value if verdict else 'no verdict'}",
                        extra=log_extra,
                    )
                else:
                    LOGGER.info(f"Run {run_id} was canceled during its last step", extra=log_extra)

        except Exception as e:
            await self._fail_run(run_id, e, log_extra)
            raise

        return await self._require_run(run_id)

    async def run_single_step(
        self,
        supplier_id: UUID,
        step_key: str,
        triggered_by: Optional[str] = None,
    ) -> RunProjection:
        """Execute one step on the supplier's latest run.

        A ``single_step`` run is created when the supplier has no run or its
        latest run was canceled. The step row is updated in place.
        """
        definition = get_step(step_key)
        log_extra = {"supplier_id": str(supplier_id), "step_key": definition.key.value}

        run = await self.registry.latest_run(supplier_id)
        created = False
        if run is None or run.status == RunStatus.CANCELED:
            run = await self.registry.create_run(
                supplier_id,
                WorkflowType.SINGLE_STEP,
                triggered_by=triggered_by,
                status=RunStatus.RUNNING,
            )
            created = True
        log_extra["run_id"] = str(run.id)

        try:
            previous = [step for step in run.steps if step.step_key != definition.key]
            await self._run_step(run.id, supplier_id, definition, WorkflowOptions(), previous, force=True)
            await self._settle(run.id)
        except Exception as e:
            if created or (run.workflow_type == WorkflowType.SINGLE_STEP and run.status == RunStatus.RUNNING):
                await self._fail_run(run.id, e, log_extra)
            raise

        LOGGER.info(f"Executed step {definition.key.value} on run {run.id}", extra=log_extra)
        return await self._require_run(run.id)

    async def try_cancel(self, supplier_id: UUID) -> Tuple[bool, Optional[RunProjection]]:
        """Cancel the supplier's running run.

        Returns:
            Whether a run was canceled, and the latest projection (or None)
        """
        running = await self.registry.latest_run(supplier_id, status=RunStatus.RUNNING)
        if running is None:
            return False, await self.registry.latest_run(supplier_id)

        canceled = await self.registry.transition(running.id, [RunStatus.RUNNING], RunStatus.CANCELED, close=True)
        if canceled:
            LOGGER.info(
                f"Canceled run {running.id}",
                extra={"supplier_id": str(supplier_id), "run_id": str(running.id)},
            )
        return canceled, await self.registry.get_run(running.id)

    async def abandon_run(self, run_id: UUID, reason: str) -> bool:
        """Fail a run that will not be executed, recording ``reason`` as its note."""
        failed = await self.registry.transition(
            run_id,
            [RunStatus.PENDING, RunStatus.RUNNING],
            RunStatus.FAILED,
            close=True,
            notes=[reason],
        )
        if failed:
            LOGGER.warning(f"Run {run_id} abandoned: {reason}", extra={"run_id": str(run_id)})
        return failed

    async def cancel(self, supplier_id: UUID) -> Optional[RunProjection]:
        _, run = await self.try_cancel(supplier_id)
        return run

    async def status_of(
        self,
        supplier_id: Optional[UUID] = None,
        run_id: Optional[UUID] = None,
    ) -> Optional[RunProjection]:
        """Projection of a run by id, or of the supplier's latest run."""
        if run_id is not None:
            return await self._require_run(run_id)
        if supplier_id is not None:
            return await self.registry.latest_run(supplier_id)
        raise ValidationError("Either supplier_id or run_id is required")

    async def _run_step(
        self,
        run_id: UUID,
        supplier_id: UUID,
        definition: StepDefinition,
        options: WorkflowOptions,
        previous_steps: List[StepProjection],
        force: bool = False,
    ) -> StepProjection:
        started_at = _now()
        base = {
            "step_key": definition.key,
            "name": definition.name,
            "order_index": definition.order_index,
            "started_at": started_at,
        }

        if not force and not definition.enabled(options):
            return await self.registry.save_step(run_id, StepProjection(
                **base,
                status=StepStatus.SKIP,
                issues=[definition.disabled_reason],
                details=SkippedDetails(reason=definition.disabled_reason),
                ended_at=started_at,
            ))

        await self.registry.save_step(run_id, StepProjection(**base, status=StepStatus.RUNNING))

        context = StepContext(
            supplier_id=supplier_id,
            run_id=run_id,
            options=options,
            gateway=self.gateway,
            previous_steps=list(previous_steps),
            required_steps=self.required_steps,
        )
        try:
            outcome = await self.executors[definition.key].execute(context)
        except Exception as e:
            LOGGER.error(
                f"Step {definition.key.value} raised: {e}",
                exc_info=True,
                extra={"supplier_id": str(supplier_id), "run_id": str(run_id), "step_key": definition.key.value},
            )
            outcome = StepOutcome(
                StepStatus.FAIL,
                [f"Step execution failed: {e}"],
                StepErrorDetails(error_type=type(e).__name__, message=str(e)),
            )

        return await self.registry.save_step(run_id, StepProjection(
            **base,
            status=outcome.status,
            issues=outcome.issues,
            details=outcome.details,
            score=outcome.score,
            ended_at=_now(),
        ))

    async def _settle(self, run_id: UUID) -> None:
        """Refresh the verdict once every persisted step of a run is settled."""
        run = await self._require_run(run_id)
        if not run.steps or not all_settled(run.steps):
            return

        verdict = compute_verdict(run.steps, self.required_steps)
        if run.status == RunStatus.RUNNING and run.workflow_type == WorkflowType.SINGLE_STEP:
            await self.registry.transition(
                run_id,
                [RunStatus.RUNNING],
                RunStatus.COMPLETED,
                close=True,
                overall=verdict.overall,
                notes=verdict.notes,
            )
        elif run.status in (RunStatus.COMPLETED, RunStatus.FAILED):
            await self.registry.set_verdict(run_id, verdict.overall, verdict.notes)

    async def _fail_run(self, run_id: UUID, error: Exception, log_extra: dict) -> None:
        LOGGER.error(f"Run {run_id} failed: {error}", exc_info=True, extra=log_extra)
        try:
            await self.registry.transition(
                run_id,
                [RunStatus.PENDING, RunStatus.RUNNING],
                RunStatus.FAILED,
                close=True,
                notes=[f"Workflow failed: {error}"],
            )
        except Exception:
            LOGGER.error(f"Could not mark run {run_id} as failed", exc_info=True, extra=log_extra)

    async def _require_run(self, run_id: UUID) -> RunProjection:
        run = await self.registry.get_run(run_id)
        if run is None:
            raise RunNotFoundError(f"Workflow run {run_id} not found")
        return run
