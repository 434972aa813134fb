"""SQLAlchemy models for all database tables."""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    ForeignKey,
    Integer,
    Numeric,
    String,
    TIMESTAMP,
    UniqueConstraint,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from qualification.core.database import Base


class Supplier(Base):
    """Supplier master data synchronized from the procurement registry."""

    __tablename__ = "suppliers"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    external_id: Mapped[str | None] = mapped_column(String, unique=True, nullable=True)
    company_name: Mapped[str | None] = mapped_column(String, nullable=True)
    fiscal_code: Mapped[str | None] = mapped_column(String, nullable=True)
    vat_number: Mapped[str | None] = mapped_column(String, nullable=True)
    address: Mapped[str | None] = mapped_column(String, nullable=True)
    city: Mapped[str | None] = mapped_column(String, nullable=True)
    province: Mapped[str | None] = mapped_column(String, nullable=True)
    postal_code: Mapped[str | None] = mapped_column(String, nullable=True)
    country: Mapped[str | None] = mapped_column(String, nullable=True)
    soa_categories: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    iso_certifications: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()"
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", onupdate=datetime.utcnow
    )

    # Relationships
    answers: Mapped["SupplierAnswers | None"] = relationship(
        "SupplierAnswers", back_populates="supplier", uselist=False, cascade="all, delete-orphan"
    )


class SupplierAnswers(Base):
    """Qualification questionnaire answers for a supplier."""

    __tablename__ = "supplier_answers"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    supplier_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("suppliers.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    answers: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", onupdate=datetime.utcnow
    )

    supplier: Mapped["Supplier"] = relationship("Supplier", back_populates="answers")


class Attachment(Base):
    """Compliance document uploaded for a supplier."""

    __tablename__ = "attachments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    supplier_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("suppliers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    document_type: Mapped[str] = mapped_column(String, nullable=False)  # DURC | VISURA | WHITE_LIST | INSURANCE | ...
    file_name: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()"
    )


class DocumentAnalysis(Base):
    """OCR extraction output for one supplier document."""

    __tablename__ = "document_analyses"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    supplier_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("suppliers.id", ondelete="CASCADE"), nullable=False
    )
    attachment_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("attachments.id", ondelete="SET NULL"), nullable=True
    )
    document_type: Mapped[str] = mapped_column(String, nullable=False)
    extracted_fields: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()"
    )

    __table_args__ = (
        Index("ix_document_analyses_supplier_type", "supplier_id", "document_type"),
    )


class DocumentVerificationRecord(Base):
    """Stored result of verifying one document analysis."""

    __tablename__ = "document_verifications"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    analysis_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("document_analyses.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    supplier_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    doc_type: Mapped[str] = mapped_column(String, nullable=False)
    verification_result: Mapped[str] = mapped_column(String, nullable=False)  # match | partial_match | mismatch | unknown
    confidence_score: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=0)
    field_comparisons: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    discrepancies: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()"
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", onupdate=datetime.utcnow
    )


class WorkflowRun(Base):
    """One attempt at qualifying a supplier."""

    __tablename__ = "workflow_runs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    supplier_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("suppliers.id"), nullable=False
    )
    workflow_type: Mapped[str] = mapped_column(
        String, nullable=False, default="full_qualification"
    )  # full_qualification | single_step
    status: Mapped[str] = mapped_column(
        String, nullable=False, default="pending"
    )  # pending | running | completed | failed | canceled
    overall: Mapped[str | None] = mapped_column(
        String, nullable=True
    )  # qualified | conditionally_qualified | not_qualified
    notes: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    triggered_by: Mapped[str | None] = mapped_column(String, nullable=True)
    started_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False
    )
    ended_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )

    # Relationships
    steps: Mapped[list["WorkflowStepResult"]] = relationship(
        "WorkflowStepResult",
        back_populates="run",
        cascade="all, delete-orphan",
        order_by="WorkflowStepResult.order_index",
    )

    __table_args__ = (
        Index("ix_workflow_runs_supplier_started", "supplier_id", "started_at"),
    )


class WorkflowStepResult(Base):
    """Latest outcome of one step within one run."""

    __tablename__ = "workflow_step_results"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    run_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("workflow_runs.id", ondelete="CASCADE"),
        nullable=False
    )
    step_key: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default="pending"
    )  # pending | running | pass | fail | skip
    issues: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    details: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    score: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False)
    started_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False
    )
    ended_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )

    run: Mapped["WorkflowRun"] = relationship("WorkflowRun", back_populates="steps")

    __table_args__ = (
        UniqueConstraint("run_id", "step_key", name="uq_workflow_step_result"),
    )
