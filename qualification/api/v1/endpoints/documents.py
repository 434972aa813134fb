from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from qualification.api.v1.errors import raise_http_error
from qualification.core.database import get_async_session as get_session
from qualification.core.exceptions import AppError
from qualification.schemas.responses import ApiResponse
from qualification.services.verification.verification_service import DocumentVerificationService
from qualification.utils.logging import get_logger
from qualification.utils.responses import create_api_response

LOGGER = get_logger(__name__)

router = APIRouter()


async def get_verification_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> DocumentVerificationService:
    return DocumentVerificationService(db_session)


@router.post(
    "/{analysis_id}/verify",
    response_model=ApiResponse,
    summary="Verify an analyzed document against supplier data",
    operation_id="verify_document",
)
async def verify_document(
    request: Request,
    analysis_id: UUID,
    verification_service: Annotated[DocumentVerificationService, Depends(get_verification_service)],
    force: bool = Query(default=True, description="Re-verify even if a stored result exists"),
    doc_type: Optional[str] = Query(default=None, description="Override the analysis document type"),
) -> ApiResponse:
    try:
        verification = await verification_service.execute(analysis_id, doc_type, force=force)
    except AppError as e:
        raise_http_error(e, request, "Document Verification Failed")

    return create_api_response(
        data=verification,
        message=f"Document verification: {verification.verification_result.value}",
        request=request,
    )
