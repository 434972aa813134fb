"""Pydantic schemas for document field verification."""

from enum import Enum
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DocType(str, Enum):
    """Compliance document types with verification rules."""
    DURC = "DURC"
    VISURA = "VISURA"
    SOA = "SOA"
    ISO = "ISO"
    CCIAA = "CCIAA"


class RuleType(str, Enum):
    """How an extracted field is compared with its reference."""
    EXACT_MATCH = "exact_match"
    FUZZY_MATCH = "fuzzy_match"
    DATE_VALIDATION = "date_validation"
    STATUS_CHECK = "status_check"


class FieldStatus(str, Enum):
    """Outcome of one field comparison."""
    MATCH = "match"
    MISMATCH = "mismatch"
    PARTIAL_MATCH = "partial_match"
    MISSING = "missing"


class VerificationOutcome(str, Enum):
    """Document-level verification result."""
    MATCH = "match"
    PARTIAL_MATCH = "partial_match"
    MISMATCH = "mismatch"
    UNKNOWN = "unknown"


class VerificationRule(BaseModel):
    """Static verification rule for one field of one document type."""
    model_config = ConfigDict(frozen=True)

    doc_type: str = Field(..., description="Document type the rule applies to")
    field_name: str = Field(..., description="Extracted field name")
    rule_type: RuleType
    threshold: float = Field(default=100, ge=0, le=100, description="Minimum score for fuzzy matches")
    is_required: bool = True
    expected_values: frozenset[str] = Field(
        default_factory=frozenset,
        description="Accepted values for status checks"
    )
    is_expiry: bool = Field(
        default=False,
        description="Date field is an expiry: any date from today on is valid"
    )
    multi_value: bool = Field(
        default=False,
        description="Values are ','/';' separated lists; the best item pair decides the score"
    )

    @field_validator("doc_type", mode="after")
    @classmethod
    def normalize_doc_type(cls, value: str) -> str:
        return value.strip().upper()

    @property
    def key(self) -> tuple[str, str, RuleType]:
        return (self.doc_type, self.field_name, self.rule_type)


class FieldComparison(BaseModel):
    """Outcome of evaluating one extracted field."""

    field_name: str
    extracted_value: Optional[Any] = None
    reference_value: Optional[Any] = None
    match_score: float = Field(default=0, ge=0, le=100)
    status: FieldStatus
    rule_type: Optional[RuleType] = Field(
        default=None,
        description="Rule that produced the comparison; None for document format checks"
    )
    is_required: bool = False
    notes: str = ""


class DocumentVerification(BaseModel):
    """Aggregate verification of one analyzed document."""
    model_config = ConfigDict(from_attributes=True)

    analysis_id: Optional[UUID] = None
    doc_type: str
    verification_result: VerificationOutcome
    confidence_score: float = Field(default=0, ge=0, le=100)
    field_comparisons: List[FieldComparison] = Field(default_factory=list)
    discrepancies: List[str] = Field(default_factory=list)

    def comparison(self, field_name: str) -> Optional[FieldComparison]:
        """Return the rule comparison for a field, if any."""
        for item in self.field_comparisons:
            if item.field_name == field_name:
                return item
        return None

    def field_matches(self, field_name: str) -> bool:
        found = self.comparison(field_name)
        return found is not None and found.status == FieldStatus.MATCH
