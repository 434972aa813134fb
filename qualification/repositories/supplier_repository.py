"""Read access to supplier master data, questionnaire answers and documents."""

import uuid
from typing import Optional, Sequence

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from qualification.database.models import Attachment, DocumentAnalysis, Supplier, SupplierAnswers
from qualification.repositories.base_repository import BaseRepository


class SupplierRepository(BaseRepository[Supplier]):
    """Repository for supplier records and their related documents."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Supplier)

    async def exists(self, supplier_id: uuid.UUID) -> bool:
        return await self.count(filters={"id": supplier_id}) > 0

    async def get_answers(self, supplier_id: uuid.UUID) -> Optional[dict]:
        """Questionnaire answers, or None when the supplier has not answered."""
        try:
            query = select(SupplierAnswers.answers).where(SupplierAnswers.supplier_id == supplier_id)
            result = await self.session.execute(query)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading answers for supplier {supplier_id}: {e}", exc_info=True)
            raise

    async def count_attachments(self, supplier_id: uuid.UUID, document_type: str) -> int:
        try:
            query = (
                select(func.count())
                .select_from(Attachment)
                .where(Attachment.supplier_id == supplier_id, Attachment.document_type == document_type)
            )
            result = await self.session.execute(query)
            return result.scalar_one()
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error counting {document_type} attachments for supplier {supplier_id}: {e}",
                exc_info=True
            )
            raise


class DocumentAnalysisRepository(BaseRepository[DocumentAnalysis]):
    """Repository for OCR analyses of supplier documents."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, DocumentAnalysis)

    async def list_for_supplier(
        self,
        supplier_id: uuid.UUID,
        document_type: str,
        limit: Optional[int] = None,
    ) -> Sequence[DocumentAnalysis]:
        """Analyses of one document type, newest first."""
        try:
            query = (
                select(DocumentAnalysis)
                .where(
                    DocumentAnalysis.supplier_id == supplier_id,
                    DocumentAnalysis.document_type == document_type,
                )
                .order_by(DocumentAnalysis.created_at.desc(), DocumentAnalysis.id.desc())
            )
            if limit is not None:
                query = query.limit(limit)
            result = await self.session.execute(query)
            return result.scalars().all()
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error listing {document_type} analyses for supplier {supplier_id}: {e}",
                exc_info=True
            )
            raise

    async def get_latest(self, supplier_id: uuid.UUID, document_type: str) -> Optional[DocumentAnalysis]:
        analyses = await self.list_for_supplier(supplier_id, document_type, limit=1)
        return analyses[0] if analyses else None
