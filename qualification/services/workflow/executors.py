"""Step executors: one per qualification step.

Executors report business failures as ``fail`` outcomes. Infrastructure
errors are raised and turned into ``fail`` results by the orchestrator.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Collection, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel

from qualification.schemas.verification import DocType, DocumentVerification, FieldStatus
from qualification.schemas.workflows import (
    CertificationsDetails,
    DurcDetails,
    FinalizeDetails,
    PreliminaryDetails,
    RegistrationDetails,
    ScorecardDetails,
    SkippedDetails,
    SoaDetails,
    StepKey,
    StepProjection,
    StepStatus,
    VisuraDetails,
    WhiteListInsuranceDetails,
    WorkflowOptions,
)
from qualification.services.workflow.gateway import SupplierDataGateway
from qualification.services.workflow.verdict import compute_verdict, default_required_steps
from qualification.utils.logging import get_logger

LOGGER = get_logger(__name__)

DECLARATION_FIELD = "Q1_DECLARATION_TRUE"
PRELIMINARY_REQUIRED_FIELDS = ("company_legal_form", "business_activity", "registration_date")
WHITE_LIST_DOCUMENT = "WHITE_LIST"
INSURANCE_DOCUMENT = "INSURANCE"


@dataclass
class StepOutcome:
    status: StepStatus
    issues: List[str] = field(default_factory=list)
    details: Optional[BaseModel] = None
    score: Optional[float] = None

    @classmethod
    def from_issues(cls, issues: List[str], details: Optional[BaseModel] = None, score: Optional[float] = None):
        return cls(StepStatus.PASS if not issues else StepStatus.FAIL, issues, details, score)

    @classmethod
    def skipped(cls, reason: str) -> "StepOutcome":
        return cls(StepStatus.SKIP, [reason], SkippedDetails(reason=reason))


@dataclass
class StepContext:
    """What an executor knows about the run it is part of."""
    supplier_id: UUID
    run_id: UUID
    options: WorkflowOptions
    gateway: SupplierDataGateway
    previous_steps: List[StepProjection] = field(default_factory=list)
    required_steps: Collection[str] = field(default_factory=default_required_steps)


class StepExecutor(ABC):
    step_key: StepKey

    @abstractmethod
    async def execute(self, context: StepContext) -> StepOutcome:
        ...


def comparison_issues(label: str, verification: DocumentVerification) -> List[str]:
    """Issues for rule comparisons that mismatch, or miss a required value."""
    issues = []
    for comparison in verification.field_comparisons:
        if comparison.rule_type is None:
            continue
        if comparison.status == FieldStatus.MISMATCH:
            issues.append(f"{label} field mismatch: {comparison.field_name}")
        elif comparison.status == FieldStatus.MISSING and comparison.is_required:
            issues.append(f"{label} field missing: {comparison.field_name}")
    return issues


class RegistrationExecutor(StepExecutor):
    step_key = StepKey.REGISTRATION

    async def execute(self, context: StepContext) -> StepOutcome:
        supplier = await context.gateway.get_supplier(context.supplier_id)
        if supplier is None:
            return StepOutcome(StepStatus.FAIL, ["Supplier not found in database"], RegistrationDetails())

        issues = []
        if not (supplier.company_name or "").strip():
            issues.append("Missing company name")
        if not (supplier.fiscal_code or "").strip():
            issues.append("Missing fiscal code")
        if not (supplier.address or "").strip():
            issues.append("Missing address")

        details = RegistrationDetails(supplier={
            "id": str(supplier.id),
            "company_name": supplier.company_name,
            "fiscal_code": supplier.fiscal_code,
            "vat_number": supplier.vat_number,
            "address": supplier.address,
            "city": supplier.city,
            "province": supplier.province,
        })
        return StepOutcome.from_issues(issues, details)


class PreliminaryExecutor(StepExecutor):
    step_key = StepKey.PRELIMINARY

    async def execute(self, context: StepContext) -> StepOutcome:
        answers = await context.gateway.get_answers(context.supplier_id)
        if not answers:
            return StepOutcome(StepStatus.FAIL, ["No questionnaire answers found"], PreliminaryDetails())

        issues = []
        if answers.get(DECLARATION_FIELD) != "Yes":
            issues.append("Declaration of completeness and truthfulness not confirmed")

        missing = [name for name in PRELIMINARY_REQUIRED_FIELDS if not answers.get(name)]
        issues.extend(f"Missing required field: {name}" for name in missing)

        return StepOutcome.from_issues(issues, PreliminaryDetails(answers=answers, missing_fields=missing))


class DocumentStepExecutor(StepExecutor):
    """Verifies the latest analysis of one document type."""

    doc_type: DocType
    details_model: type
    # Field whose comparison must be a match for the step to pass
    required_match: Optional[str] = None
    required_match_issue: str = ""
    skip_when_absent: bool = False

    async def execute(self, context: StepContext) -> StepOutcome:
        label = self.doc_type.value
        analysis_id = await context.gateway.latest_analysis_id(context.supplier_id, label)
        if analysis_id is None:
            if self.skip_when_absent:
                return StepOutcome.skipped(f"No {label} document found")
            return StepOutcome(StepStatus.FAIL, [f"No {label} document found for analysis"], self.details_model())

        verification = await context.gateway.verify_document(analysis_id, label)
        issues = comparison_issues(label, verification)
        if self.required_match and not verification.field_matches(self.required_match):
            issues.append(self.required_match_issue)

        details = self.details_model(analysis_id=analysis_id, verification=verification)
        return StepOutcome.from_issues(issues, details, score=verification.confidence_score)


class DurcExecutor(DocumentStepExecutor):
    step_key = StepKey.DURC
    doc_type = DocType.DURC
    details_model = DurcDetails
    required_match = "risultato"
    required_match_issue = 'DURC does not show "RISULTA REGOLARE" status'


class VisuraExecutor(DocumentStepExecutor):
    step_key = StepKey.VISURA
    doc_type = DocType.VISURA
    details_model = VisuraDetails
    required_match = "stato_attivita"
    required_match_issue = "Company activity status not confirmed as active"


class SoaExecutor(DocumentStepExecutor):
    step_key = StepKey.SOA
    doc_type = DocType.SOA
    details_model = SoaDetails
    skip_when_absent = True


class WhiteListInsuranceExecutor(StepExecutor):
    step_key = StepKey.WHITELIST_INSURANCE

    async def execute(self, context: StepContext) -> StepOutcome:
        gateway = context.gateway
        include_white_list = context.options.include_white_list

        white_list_count = await gateway.count_attachments(context.supplier_id, WHITE_LIST_DOCUMENT)
        insurance_count = await gateway.count_attachments(context.supplier_id, INSURANCE_DOCUMENT)

        issues = []
        if include_white_list and white_list_count == 0:
            issues.append("White List documentation required but not found")
        if insurance_count == 0:
            issues.append("Insurance policy documentation not found")

        details = WhiteListInsuranceDetails(white_list_count=white_list_count, insurance_count=insurance_count)

        if gateway.registry_enabled:
            supplier = await gateway.get_supplier(context.supplier_id)
            fiscal_code = (supplier.fiscal_code or "").strip() if supplier else ""
            if not fiscal_code:
                issues.append("Cannot query registries: supplier fiscal code unknown")
            else:
                if include_white_list:
                    details.white_list_registry = await gateway.white_list_registered(fiscal_code)
                    if details.white_list_registry is False:
                        issues.append("Supplier not found in the white list registry")
                details.insurance_registry = await gateway.insurance_registered(fiscal_code)
                if details.insurance_registry is False:
                    issues.append("No valid insurance found in the registry")

        return StepOutcome.from_issues(issues, details)


class CertificationsExecutor(StepExecutor):
    step_key = StepKey.CERTIFICATIONS

    async def execute(self, context: StepContext) -> StepOutcome:
        analysis_ids = await context.gateway.analysis_ids(context.supplier_id, DocType.ISO.value)
        if not analysis_ids:
            return StepOutcome.skipped("No ISO certifications found")

        issues = []
        verifications = []
        valid = 0
        for analysis_id in analysis_ids:
            try:
                verification = await context.gateway.verify_document(analysis_id, DocType.ISO.value)
            except Exception as e:
                LOGGER.error(
                    f"ISO certification {analysis_id} could not be verified: {e}",
                    exc_info=True,
                    extra={
                        "supplier_id": str(context.supplier_id),
                        "run_id": str(context.run_id),
                        "analysis_id": str(analysis_id),
                    },
                )
                issues.append(f"ISO certification {analysis_id}: verification failed")
                continue
            verifications.append(verification)
            if comparison_issues(DocType.ISO.value, verification):
                issues.append(f"ISO certification {analysis_id}: field mismatches found")
            else:
                valid += 1

        details = CertificationsDetails(
            total_certifications=len(analysis_ids),
            valid_certifications=valid,
            verifications=verifications,
        )
        score = None
        if verifications:
            score = round(sum(v.confidence_score for v in verifications) / len(verifications), 2)
        status = StepStatus.PASS if valid > 0 else StepStatus.FAIL
        return StepOutcome(status, issues, details, score)


class ScorecardExecutor(StepExecutor):
    step_key = StepKey.SCORECARD

    async def execute(self, context: StepContext) -> StepOutcome:
        supplier = await context.gateway.get_supplier(context.supplier_id)
        if supplier is None:
            return StepOutcome(StepStatus.FAIL, ["Cannot generate scorecard: supplier not found"])

        if supplier.company_name:
            scorecard_id = "Q1_" + re.sub(r"[^a-zA-Z0-9]", "_", supplier.company_name)
        else:
            scorecard_id = f"Q1_{context.supplier_id}"

        earlier = [step for step in context.previous_steps if step.step_key != self.step_key]
        decided = [step for step in earlier if step.status in (StepStatus.PASS, StepStatus.FAIL)]
        score = None
        if decided:
            passed = sum(1 for step in decided if step.status == StepStatus.PASS)
            score = round(100 * passed / len(decided), 2)

        details = ScorecardDetails(
            scorecard_id=scorecard_id,
            generated_at=datetime.now(timezone.utc),
            step_summary={step.step_key.value: step.status.value for step in earlier},
        )
        return StepOutcome(StepStatus.PASS, [], details, score)


class FinalizeExecutor(StepExecutor):
    step_key = StepKey.FINALIZE

    async def execute(self, context: StepContext) -> StepOutcome:
        earlier = [step for step in context.previous_steps if step.step_key != self.step_key]
        verdict = compute_verdict(earlier, context.required_steps) if earlier else None
        details = FinalizeDetails(
            finalized_at=datetime.now(timezone.utc),
            provisional_overall=verdict.overall if verdict else None,
        )
        return StepOutcome(StepStatus.PASS, [], details)


def build_executors() -> Dict[StepKey, StepExecutor]:
    executors: List[StepExecutor] = [
        RegistrationExecutor(),
        PreliminaryExecutor(),
        DurcExecutor(),
        WhiteListInsuranceExecutor(),
        VisuraExecutor(),
        CertificationsExecutor(),
        SoaExecutor(),
        ScorecardExecutor(),
        FinalizeExecutor(),
    ]
    return {executor.step_key: executor for executor in executors}
