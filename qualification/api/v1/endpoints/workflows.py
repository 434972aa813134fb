from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from qualification.api.v1.errors import raise_http_error
from qualification.core.database import get_async_session as get_session
from qualification.core.exceptions import AppError
from qualification.schemas.responses import ApiResponse
from qualification.schemas.workflows import (
    CancelRequest,
    MultiSupplierRequest,
    RunStatus,
    StartManyRequest,
    StartWorkflowRequest,
    StatusManyRequest,
    StepRequest,
)
from qualification.services.workflow.runtime import WorkflowRuntime, get_workflow_runtime
from qualification.services.workflow_service import WorkflowService
from qualification.utils.logging import get_logger
from qualification.utils.responses import create_api_response

LOGGER = get_logger(__name__)

router = APIRouter()


async def get_workflow_service(
    db_session: Annotated[AsyncSession, Depends(get_session)],
    runtime: Annotated[WorkflowRuntime, Depends(get_workflow_runtime)],
) -> WorkflowService:
    return WorkflowService(db_session, runtime)


@router.post(
    "/start",
    response_model=ApiResponse,
    summary="Start a full qualification run",
    operation_id="start_workflow",
)
async def start_workflow(
    request: Request,
    payload: StartWorkflowRequest,
    workflow_service: Annotated[WorkflowService, Depends(get_workflow_service)],
) -> ApiResponse:
    """Start a qualification run; with ``wait`` the finished run is returned."""
    try:
        run = await workflow_service.start_workflow(payload.supplier_id, payload.options, payload.wait)
    except AppError as e:
        raise_http_error(e, request, "Workflow Start Failed")

    message = "Workflow completed" if payload.wait else "Workflow queued"
    return create_api_response(data=run, message=message, request=request)


async def _run_step(
    request: Request,
    payload: StepRequest,
    workflow_service: WorkflowService,
    retry: bool,
) -> ApiResponse:
    try:
        run = await workflow_service.start_step(payload.supplier_id, payload.step_key, retry=retry)
    except AppError as e:
        raise_http_error(e, request, "Step Execution Failed")

    step = run.step(payload.step_key)
    message = f"Step {payload.step_key} finished with status {step.status.value}" if step else "Step executed"
    return create_api_response(data=run, message=message, request=request)


@router.post(
    "/start-step",
    response_model=ApiResponse,
    summary="Run one qualification step",
    operation_id="start_workflow_step",
)
async def start_step(
    request: Request,
    payload: StepRequest,
    workflow_service: Annotated[WorkflowService, Depends(get_workflow_service)],
) -> ApiResponse:
    return await _run_step(request, payload, workflow_service, retry=False)


@router.post(
    "/retry-step",
    response_model=ApiResponse,
    summary="Retry one qualification step",
    operation_id="retry_workflow_step",
)
async def retry_step(
    request: Request,
    payload: StepRequest,
    workflow_service: Annotated[WorkflowService, Depends(get_workflow_service)],
) -> ApiResponse:
    """Re-run a step on the supplier's latest run, updating its result in place."""
    return await _run_step(request, payload, workflow_service, retry=True)


@router.post(
    "/cancel",
    response_model=ApiResponse,
    summary="Cancel the running qualification run of a supplier",
    operation_id="cancel_workflow",
)
async def cancel_workflow(
    request: Request,
    payload: CancelRequest,
    workflow_service: Annotated[WorkflowService, Depends(get_workflow_service)],
) -> ApiResponse:
    try:
        run = await workflow_service.cancel_workflow(payload.supplier_id)
    except AppError as e:
        raise_http_error(e, request, "Workflow Cancel Failed")

    canceled = run is not None and run.status == RunStatus.CANCELED
    return create_api_response(
        data={"run": run, "canceled": canceled},
        message="Workflow canceled" if canceled else "No running workflow to cancel",
        request=request,
    )


@router.get(
    "/status",
    response_model=ApiResponse,
    summary="Get the status of a qualification run",
    operation_id="get_workflow_status",
)
async def get_status(
    request: Request,
    workflow_service: Annotated[WorkflowService, Depends(get_workflow_service)],
    supplier_id: Optional[UUID] = Query(default=None),
    run_id: Optional[UUID] = Query(default=None),
) -> ApiResponse:
    """Run by id, or the latest run of a supplier (null when it never ran)."""
    try:
        run = await workflow_service.get_status(supplier_id=supplier_id, run_id=run_id)
    except AppError as e:
        raise_http_error(e, request, "Workflow Status Failed")

    return create_api_response(
        data={"run": run},
        message="Workflow status retrieved" if run else "No workflow found",
        request=request,
    )


@router.post(
    "/start-multi",
    response_model=ApiResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue qualification runs for many suppliers",
    operation_id="start_workflows_multi",
)
async def start_many(
    request: Request,
    payload: StartManyRequest,
    workflow_service: Annotated[WorkflowService, Depends(get_workflow_service)],
) -> ApiResponse:
    try:
        result = await workflow_service.start_many(payload.supplier_ids, payload.options)
    except AppError as e:
        raise_http_error(e, request, "Batch Start Failed")

    message = f"Queued {len(result.accepted)} workflows"
    if result.rejected:
        message += f", {len(result.rejected)} rejected (queue full)"
    return create_api_response(data=result, message=message, request=request)


@router.post(
    "/status-multi",
    response_model=ApiResponse,
    summary="Get the latest run of many suppliers",
    operation_id="get_workflow_status_multi",
)
async def get_status_many(
    request: Request,
    payload: StatusManyRequest,
    workflow_service: Annotated[WorkflowService, Depends(get_workflow_service)],
) -> ApiResponse:
    try:
        runs = await workflow_service.get_status_many(payload.supplier_ids, payload.include_steps)
    except AppError as e:
        raise_http_error(e, request, "Batch Status Failed")

    data = {
        "runs": {
            str(supplier_id): run.model_dump(mode="json") if run else None
            for supplier_id, run in runs.items()
        }
    }
    return create_api_response(data=data, message=f"Status of {len(runs)} suppliers", request=request)


@router.post(
    "/cancel-multi",
    response_model=ApiResponse,
    summary="Cancel the running runs of many suppliers",
    operation_id="cancel_workflows_multi",
)
async def cancel_many(
    request: Request,
    payload: MultiSupplierRequest,
    workflow_service: Annotated[WorkflowService, Depends(get_workflow_service)],
) -> ApiResponse:
    try:
        result = await workflow_service.cancel_many(payload.supplier_ids)
    except AppError as e:
        raise_http_error(e, request, "Batch Cancel Failed")

    return create_api_response(
        data=result,
        message=f"Canceled {result.canceled_count} workflows",
        request=request,
    )
