"""Custom exception hierarchy."""

from typing import Optional


class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error


class APIClientError(AppError):
    """Raised when an external API call fails."""
    pass


class APITimeoutError(APIClientError):
    """Raised when an external API call times out."""
    pass


class DatabaseError(AppError):
    """Raised when a database operation fails."""
    pass


class ValidationError(AppError):
    """Raised when input validation fails."""
    pass


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass


class NotFoundError(AppError):
    """Base exception for missing records."""
    pass


class SupplierNotFoundError(NotFoundError):
    """Raised when a supplier is not found."""
    pass


class RunNotFoundError(NotFoundError):
    """Raised when a workflow run is not found."""
    pass


class DocumentNotFoundError(NotFoundError):
    """Raised when a document analysis is not found."""
    pass


class WorkflowQueueFullError(AppError):
    """Raised when the background workflow queue cannot take more jobs."""
    pass
