"""Verification of stored document analyses against supplier data."""

from typing import Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from qualification.core.exceptions import DatabaseError, DocumentNotFoundError, ValidationError
from qualification.database.models import DocumentVerificationRecord
from qualification.repositories.supplier_repository import DocumentAnalysisRepository, SupplierRepository
from qualification.repositories.verification_repository import DocumentVerificationRepository
from qualification.schemas.verification import DocumentVerification
from qualification.services.base_service import BaseService
from qualification.services.verification.field_verifier import FieldVerificationEngine
from qualification.services.verification.reference import build_reference_fields
from qualification.utils.logging import get_logger

LOGGER = get_logger(__name__)


class DocumentVerificationService(BaseService):
    """Loads an analysis, verifies it and stores the outcome.

    A new verification replaces the stored one for the same analysis.
    """

    def __init__(self, session: AsyncSession, engine: Optional[FieldVerificationEngine] = None):
        self.analyses = DocumentAnalysisRepository(session)
        self.suppliers = SupplierRepository(session)
        self.verifications = DocumentVerificationRepository(session)
        super().__init__(self.verifications)
        self.engine = engine or FieldVerificationEngine()

    def validate(self, analysis_id: UUID, doc_type: Optional[str] = None, force: bool = True):
        if not isinstance(analysis_id, UUID):
            raise ValidationError(f"analysis_id must be a UUID, got {analysis_id!r}")

    async def run(
        self,
        analysis_id: UUID,
        doc_type: Optional[str] = None,
        force: bool = True,
    ) -> DocumentVerification:
        """Verify one analysis.

        Args:
            analysis_id: Document analysis to verify
            doc_type: Overrides the analysis document type when given
            force: Re-verify even when a stored verification exists

        Raises:
            DocumentNotFoundError: Unknown analysis
            DatabaseError: Persistence failure
        """
        try:
            analysis = await self.analyses.get_by_id(analysis_id)
            if analysis is None:
                raise DocumentNotFoundError(f"Document analysis {analysis_id} not found")

            if not force:
                stored = await self.verifications.get_by_analysis_id(analysis_id)
                if stored is not None:
                    LOGGER.debug(f"Reusing stored verification for analysis {analysis_id}")
                    return _from_record(stored)

            supplier = await self.suppliers.get_by_id(analysis.supplier_id)
            verification = self.engine.verify(
                doc_type or analysis.document_type,
                analysis.extracted_fields or {},
                build_reference_fields(supplier),
                analysis_id=analysis.id,
            )
            await self.verifications.replace(verification, supplier_id=analysis.supplier_id)

        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to verify analysis {analysis_id}: {e}", original_error=e)

        LOGGER.info(
            f"Verified analysis {analysis_id}: {verification.verification_result.value}",
            extra={
                "analysis_id": str(analysis_id),
                "supplier_id": str(analysis.supplier_id),
                "confidence_score": verification.confidence_score,
            },
        )
        return verification


def _from_record(record: DocumentVerificationRecord) -> DocumentVerification:
    return DocumentVerification.model_validate({
        "analysis_id": record.analysis_id,
        "doc_type": record.doc_type,
        "verification_result": record.verification_result,
        "confidence_score": float(record.confidence_score or 0),
        "field_comparisons": record.field_comparisons or [],
        "discrepancies": record.discrepancies or [],
    })
