import uuid
from typing import Optional

from sqlalchemy import select, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from qualification.database.models import DocumentVerificationRecord
from qualification.repositories.base_repository import BaseRepository
from qualification.schemas.verification import DocumentVerification


class DocumentVerificationRepository(BaseRepository[DocumentVerificationRecord]):
    """Repository for stored document verifications (one per analysis)."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, DocumentVerificationRecord)

    async def get_by_analysis_id(self, analysis_id: uuid.UUID) -> Optional[DocumentVerificationRecord]:
        try:
            query = select(DocumentVerificationRecord).where(
                DocumentVerificationRecord.analysis_id == analysis_id
            )
            result = await self.session.execute(query)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading verification for analysis {analysis_id}: {e}", exc_info=True)
            raise

    async def replace(
        self,
        verification: DocumentVerification,
        supplier_id: Optional[uuid.UUID] = None,
    ) -> DocumentVerificationRecord:
        """Store a verification, removing any earlier one for the same analysis.

        The delete and insert share one transaction.
        """
        if verification.analysis_id is None:
            raise ValueError("Cannot store a verification without an analysis_id")

        payload = verification.model_dump(mode="json")
        try:
            await self.session.execute(
                delete(DocumentVerificationRecord).where(
                    DocumentVerificationRecord.analysis_id == verification.analysis_id
                )
            )
            record = DocumentVerificationRecord(
                analysis_id=verification.analysis_id,
                supplier_id=supplier_id,
                doc_type=verification.doc_type,
                verification_result=verification.verification_result.value,
                confidence_score=verification.confidence_score,
                field_comparisons=payload["field_comparisons"],
                discrepancies=payload["discrepancies"],
            )
            self.session.add(record)
            await self.session.flush()
            await self.session.commit()
            return record
        except SQLAlchemyError as e:
            await self.session.rollback()
            self.logger.error(
                f"Error storing verification for analysis {verification.analysis_id}: {e}",
                exc_info=True
            )
            raise
