"""Health check API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends

from qualification.core.config import settings
from qualification.core.database import db_client
from qualification.schemas.responses import HealthCheckResponse
from qualification.services.workflow.runtime import WorkflowRuntime, get_workflow_runtime

router = APIRouter()


@router.get(
    "/",
    response_model=HealthCheckResponse,
    tags=["Health"],
    summary="Health check endpoint",
    description="Check database connectivity and the workflow worker pool",
    operation_id="get_service_health_status",
)
async def health_check(
    runtime: Annotated[WorkflowRuntime, Depends(get_workflow_runtime)],
) -> HealthCheckResponse:
    """Health check endpoint."""
    db_health = await db_client.health_check()
    queue_stats = runtime.task_queue.stats()

    healthy = db_health["status"] == "healthy" and queue_stats["running"]
    return HealthCheckResponse(
        status="healthy" if healthy else "degraded",
        version=settings.app_version,
        service=settings.app_name,
        database=db_health,
        queue=queue_stats,
    )
