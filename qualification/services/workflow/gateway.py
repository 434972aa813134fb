"""Data access used by the step executors.

Each call opens its own session so executors can run inside background
workers without sharing a session across tasks.
"""

from typing import Callable, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from qualification.clients.registry_client import RegistryClient
from qualification.core.database import async_session_maker
from qualification.database.models import Supplier
from qualification.repositories.supplier_repository import DocumentAnalysisRepository, SupplierRepository
from qualification.schemas.verification import DocumentVerification
from qualification.services.verification.field_verifier import FieldVerificationEngine
from qualification.services.verification.verification_service import DocumentVerificationService


class SupplierDataGateway:
    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = async_session_maker,
        registry_client: Optional[RegistryClient] = None,
        engine: Optional[FieldVerificationEngine] = None,
    ):
        self.session_factory = session_factory
        self.registry_client = registry_client
        self.engine = engine

    @property
    def registry_enabled(self) -> bool:
        return self.registry_client is not None

    async def get_supplier(self, supplier_id: UUID) -> Optional[Supplier]:
        async with self.session_factory() as session:
            return await SupplierRepository(session).get_by_id(supplier_id)

    async def get_answers(self, supplier_id: UUID) -> Optional[dict]:
        async with self.session_factory() as session:
            return await SupplierRepository(session).get_answers(supplier_id)

    async def count_attachments(self, supplier_id: UUID, document_type: str) -> int:
        async with self.session_factory() as session:
            return await SupplierRepository(session).count_attachments(supplier_id, document_type)

    async def latest_analysis_id(self, supplier_id: UUID, document_type: str) -> Optional[UUID]:
        async with self.session_factory() as session:
            analysis = await DocumentAnalysisRepository(session).get_latest(supplier_id, document_type)
            return analysis.id if analysis else None

    async def analysis_ids(self, supplier_id: UUID, document_type: str) -> List[UUID]:
        async with self.session_factory() as session:
            analyses = await DocumentAnalysisRepository(session).list_for_supplier(supplier_id, document_type)
            return [analysis.id for analysis in analyses]

    async def verify_document(self, analysis_id: UUID, document_type: str) -> DocumentVerification:
        async with self.session_factory() as session:
            service = DocumentVerificationService(session, engine=self.engine)
            return await service.execute(analysis_id, document_type, force=True)

    async def white_list_registered(self, fiscal_code: str) -> Optional[bool]:
        """Registry answer, or None when no registry is configured."""
        if self.registry_client is None:
            return None
        return (await self.registry_client.lookup_white_list(fiscal_code)).found

    async def insurance_registered(self, fiscal_code: str) -> Optional[bool]:
        if self.registry_client is None:
            return None
        return (await self.registry_client.lookup_insurance(fiscal_code)).found
