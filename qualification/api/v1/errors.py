"""Translation of application errors into RFC 7807 HTTP errors."""

from typing import NoReturn

from fastapi import HTTPException, Request, status

from qualification.core.exceptions import (
    APIClientError,
    AppError,
    DatabaseError,
    NotFoundError,
    ValidationError,
    WorkflowQueueFullError,
)
from qualification.utils.logging import get_logger
from qualification.utils.responses import create_error_detail

LOGGER = get_logger(__name__)

# Most specific first
ERROR_STATUS = (
    (ValidationError, status.HTTP_400_BAD_REQUEST, "Invalid Request"),
    (NotFoundError, status.HTTP_404_NOT_FOUND, "Not Found"),
    (WorkflowQueueFullError, status.HTTP_503_SERVICE_UNAVAILABLE, "Workflow Queue Full"),
    (APIClientError, status.HTTP_502_BAD_GATEWAY, "Upstream Service Error"),
    (DatabaseError, status.HTTP_500_INTERNAL_SERVER_ERROR, "Database Error"),
)


def raise_http_error(error: Exception, request: Request, title: str) -> NoReturn:
    """Raise the HTTPException matching an error.

    Args:
        error: Error raised by a service
        request: Current request, for the instance path and request id
        title: Title used for unexpected errors
    """
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type, mapped_status, mapped_title in ERROR_STATUS:
        if isinstance(error, error_type):
            status_code, title = mapped_status, mapped_title
            break

    if status_code >= 500:
        LOGGER.error(f"{title}: {error}", exc_info=not isinstance(error, AppError))
    else:
        LOGGER.info(f"{title}: {error}")

    error_detail = create_error_detail(
        title=title,
        status=status_code,
        detail=str(error),
        request=request,
    )
    raise HTTPException(status_code=status_code, detail=error_detail.model_dump(mode="json"))
