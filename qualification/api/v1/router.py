from fastapi import APIRouter
from qualification.api.v1.endpoints import workflows, documents

# Create API router
api_router = APIRouter()

api_router.include_router(workflows.router, prefix="/workflows", tags=["Workflows"])
api_router.include_router(documents.router, prefix="/documents", tags=["Documents"])

__all__ = ["api_router"]
