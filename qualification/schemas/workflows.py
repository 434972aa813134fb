"""Pydantic schemas for qualification workflow runs and API payloads."""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from qualification.core.config import settings
from qualification.schemas.verification import DocumentVerification


# =====================================================
# State enums
# =====================================================

class WorkflowType(str, Enum):
    FULL_QUALIFICATION = "full_qualification"
    SINGLE_STEP = "single_step"


class RunStatus(str, Enum):
    """Run lifecycle: pending -> running -> completed | failed | canceled."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PASS = "pass"
    FAIL = "fail"
    SKIP = "skip"

    @property
    def is_settled(self) -> bool:
        return self in (StepStatus.PASS, StepStatus.FAIL, StepStatus.SKIP)


class OverallVerdict(str, Enum):
    QUALIFIED = "qualified"
    CONDITIONALLY_QUALIFIED = "conditionally_qualified"
    NOT_QUALIFIED = "not_qualified"


class StepKey(str, Enum):
    """The fixed qualification checklist, in execution order."""
    REGISTRATION = "registration"
    PRELIMINARY = "preliminary"
    DURC = "durc"
    WHITELIST_INSURANCE = "whitelist_insurance"
    VISURA = "visura"
    CERTIFICATIONS = "certifications"
    SOA = "soa"
    SCORECARD = "scorecard"
    FINALIZE = "finalize"


class WorkflowOptions(BaseModel):
    """Options for a full qualification run."""
    include_soa: bool = Field(
        default_factory=lambda: settings.workflow.default_include_soa,
        description="Run the SOA attestation step",
    )
    include_white_list: bool = Field(
        default_factory=lambda: settings.workflow.default_include_white_list,
        description="Run the white list & insurance step",
    )
    triggered_by: Optional[str] = Field(default=None, description="User or process starting the run")


# =====================================================
# Step details (tagged union keyed by ``kind``)
# =====================================================

class RegistrationDetails(BaseModel):
    kind: Literal["registration"] = "registration"
    supplier: Optional[Dict[str, Any]] = None


class PreliminaryDetails(BaseModel):
    kind: Literal["preliminary"] = "preliminary"
    answers: Dict[str, Any] = Field(default_factory=dict)
    missing_fields: List[str] = Field(default_factory=list)


class DocumentStepDetails(BaseModel):
    """Shared shape of steps verifying one document."""
    analysis_id: Optional[UUID] = None
    verification: Optional[DocumentVerification] = None


class DurcDetails(DocumentStepDetails):
    kind: Literal["durc"] = "durc"


class VisuraDetails(DocumentStepDetails):
    kind: Literal["visura"] = "visura"


class SoaDetails(DocumentStepDetails):
    kind: Literal["soa"] = "soa"


class WhiteListInsuranceDetails(BaseModel):
    kind: Literal["whitelist_insurance"] = "whitelist_insurance"
    white_list_count: int = 0
    insurance_count: int = 0
    white_list_registry: Optional[bool] = Field(
        default=None, description="Registry answer; None when no registry is configured"
    )
    insurance_registry: Optional[bool] = None


class CertificationsDetails(BaseModel):
    kind: Literal["certifications"] = "certifications"
    total_certifications: int = 0
    valid_certifications: int = 0
    verifications: List[DocumentVerification] = Field(default_factory=list)


class ScorecardDetails(BaseModel):
    kind: Literal["scorecard"] = "scorecard"
    scorecard_id: str
    generated_at: datetime
    step_summary: Dict[str, str] = Field(default_factory=dict)


class FinalizeDetails(BaseModel):
    kind: Literal["finalize"] = "finalize"
    finalized_at: datetime
    provisional_overall: Optional[OverallVerdict] = None


class SkippedDetails(BaseModel):
    kind: Literal["skipped"] = "skipped"
    reason: str


class StepErrorDetails(BaseModel):
    """Executor raised; retrying the step is expected to help."""
    kind: Literal["error"] = "error"
    error_type: str
    message: str
    retryable: bool = True


StepDetails = Annotated[
    Union[
        RegistrationDetails,
        PreliminaryDetails,
        DurcDetails,
        WhiteListInsuranceDetails,
        VisuraDetails,
        CertificationsDetails,
        SoaDetails,
        ScorecardDetails,
        FinalizeDetails,
        SkippedDetails,
        StepErrorDetails,
    ],
    Field(discriminator="kind"),
]


# =====================================================
# Run projection (stable contract)
# =====================================================

class StepProjection(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[UUID] = None
    step_key: StepKey
    name: str
    status: StepStatus
    issues: List[str] = Field(default_factory=list)
    details: Optional[StepDetails] = None
    score: Optional[float] = None
    order_index: int
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None


class RunProjection(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    supplier_id: UUID
    workflow_type: WorkflowType
    status: RunStatus
    overall: Optional[OverallVerdict] = None
    notes: List[str] = Field(default_factory=list)
    steps: List[StepProjection] = Field(default_factory=list)
    started_at: datetime
    ended_at: Optional[datetime] = None

    def step(self, step_key: StepKey) -> Optional[StepProjection]:
        for item in self.steps:
            if item.step_key == step_key:
                return item
        return None


# =====================================================
# API requests / batch results
# =====================================================

class StartWorkflowRequest(BaseModel):
    supplier_id: UUID
    options: WorkflowOptions = Field(default_factory=WorkflowOptions)
    wait: bool = Field(default=False, description="Run inline and return the finished run")


class StepRequest(BaseModel):
    supplier_id: UUID
    step_key: str = Field(..., examples=["durc"])


class CancelRequest(BaseModel):
    supplier_id: UUID


class MultiSupplierRequest(BaseModel):
    supplier_ids: List[UUID] = Field(..., min_length=1)


class StartManyRequest(MultiSupplierRequest):
    options: WorkflowOptions = Field(default_factory=WorkflowOptions)


class StatusManyRequest(MultiSupplierRequest):
    include_steps: bool = True


class BatchStartResult(BaseModel):
    accepted: List[UUID] = Field(default_factory=list)
    rejected: List[UUID] = Field(
        default_factory=list, description="Suppliers not queued because the work queue is full"
    )


class CancelOutcome(str, Enum):
    CANCELED = "canceled"
    NOT_RUNNING = "not_running"
    ERROR = "error"


class SupplierCancelResult(BaseModel):
    outcome: CancelOutcome
    run: Optional[RunProjection] = None
    error: Optional[str] = None


class BatchCancelResult(BaseModel):
    results: Dict[UUID, SupplierCancelResult] = Field(default_factory=dict)

    @property
    def canceled_count(self) -> int:
        return sum(1 for r in self.results.values() if r.outcome == CancelOutcome.CANCELED)
