"""Rule-driven comparison of extracted document fields against reference data.

The engine is pure: given the same extracted fields, reference fields, rule
set and day it always returns the same ``DocumentVerification``.
"""

from datetime import date
from typing import Any, Dict, List, Mapping, Optional
from uuid import UUID

from rapidfuzz import fuzz

from qualification.schemas.verification import (
    DocumentVerification,
    FieldComparison,
    FieldStatus,
    RuleType,
    VerificationOutcome,
    VerificationRule,
)
from qualification.services.verification.document_checks import run_format_checks
from qualification.services.verification.normalize import (
    clean_string,
    collapse,
    format_document_date,
    is_blank,
    parse_document_date,
    split_values,
)
from qualification.services.verification.rules import RuleStore, get_rule_store
from qualification.utils.logging import get_logger

LOGGER = get_logger(__name__)

PARTIAL_MATCH_MARGIN = 20
REQUIRED_WEIGHT = 2
OPTIONAL_WEIGHT = 1


class FieldVerificationEngine:
    """Evaluates every configured rule of a document type.

    Attributes:
        rule_store: Source of the verification rules
    """

    def __init__(self, rule_store: Optional[RuleStore] = None):
        self.rule_store = rule_store or get_rule_store()

    def verify(
        self,
        doc_type: str,
        extracted_fields: Mapping[str, Any],
        reference_fields: Mapping[str, Any],
        analysis_id: Optional[UUID] = None,
        today: Optional[date] = None,
    ) -> DocumentVerification:
        """Verify one document.

        Args:
            doc_type: Document type (DURC, VISURA, SOA, ISO, CCIAA)
            extracted_fields: OCR output keyed by field name
            reference_fields: Authoritative values keyed by the same field names
            analysis_id: Analysis the fields were extracted by, echoed back
            today: Day expiry dates are compared with; defaults to today

        Returns:
            DocumentVerification with one comparison per rule plus format checks
        """
        doc_type = (doc_type or "").upper()
        rules = self.rule_store.rules_for(doc_type)
        if not rules:
            LOGGER.warning(
                f"No verification rules for document type {doc_type!r}",
                extra={"analysis_id": str(analysis_id) if analysis_id else None},
            )
            return DocumentVerification(
                analysis_id=analysis_id,
                doc_type=doc_type,
                verification_result=VerificationOutcome.UNKNOWN,
            )

        today = today or date.today()
        extracted_fields = extracted_fields or {}
        reference_fields = reference_fields or {}

        comparisons: List[FieldComparison] = []
        discrepancies: List[str] = []

        for rule in rules:
            comparison = self._evaluate(
                rule,
                extracted_fields.get(rule.field_name),
                reference_fields.get(rule.field_name),
                today,
            )
            comparisons.append(comparison)
            discrepancy = _describe_discrepancy(comparison)
            if discrepancy:
                discrepancies.append(discrepancy)

        ruled_fields = {rule.field_name for rule in rules}
        for check in run_format_checks(doc_type, extracted_fields, skip_fields=ruled_fields, today=today):
            comparisons.append(check)
            if check.status == FieldStatus.MISMATCH:
                discrepancies.append(f"{check.field_name}: {check.notes}")

        result = DocumentVerification(
            analysis_id=analysis_id,
            doc_type=doc_type,
            verification_result=_aggregate_result(comparisons),
            confidence_score=_confidence(comparisons),
            field_comparisons=comparisons,
            discrepancies=discrepancies,
        )

        LOGGER.debug(
            f"Verified {doc_type} document: {result.verification_result.value} "
            f"({result.confidence_score}%)",
            extra={"analysis_id": str(analysis_id) if analysis_id else None},
        )
        return result

    def _evaluate(
        self,
        rule: VerificationRule,
        extracted: Any,
        reference: Any,
        today: date,
    ) -> FieldComparison:
        base = {
            "field_name": rule.field_name,
            "extracted_value": extracted,
            "reference_value": reference,
            "rule_type": rule.rule_type,
            "is_required": rule.is_required,
        }

        if is_blank(extracted):
            return FieldComparison(**base, status=FieldStatus.MISSING, notes="Field missing from document")

        if rule.rule_type in (RuleType.EXACT_MATCH, RuleType.FUZZY_MATCH) and is_blank(reference):
            return FieldComparison(**base, status=FieldStatus.MISSING, notes="No reference value available")

        if rule.rule_type == RuleType.EXACT_MATCH:
            score = 100.0 if collapse(extracted) == collapse(reference) else 0.0
            status = FieldStatus.MATCH if score == 100.0 else FieldStatus.MISMATCH
            notes = "" if status == FieldStatus.MATCH else "Values differ"
            return FieldComparison(**base, match_score=score, status=status, notes=notes)

        if rule.rule_type == RuleType.FUZZY_MATCH:
            score = _fuzzy_score(extracted, reference, rule.multi_value)
            if score >= rule.threshold:
                status = FieldStatus.MATCH
            elif score >= rule.threshold - PARTIAL_MATCH_MARGIN:
                status = FieldStatus.PARTIAL_MATCH
            else:
                status = FieldStatus.MISMATCH
            return FieldComparison(
                **base,
                match_score=score,
                status=status,
                notes=f"Similarity {score:g} (threshold {rule.threshold:g})",
            )

        if rule.rule_type == RuleType.DATE_VALIDATION:
            return _evaluate_date(rule, base, extracted, reference, today)

        if rule.rule_type == RuleType.STATUS_CHECK:
            accepted = {clean_string(value) for value in rule.expected_values}
            matched = clean_string(extracted) in accepted
            return FieldComparison(
                **base,
                match_score=100.0 if matched else 0.0,
                status=FieldStatus.MATCH if matched else FieldStatus.MISMATCH,
                notes="" if matched else f"Expected one of: {', '.join(sorted(rule.expected_values))}",
            )

        # RuleType is closed; reaching this means a new member without a branch
        raise ValueError(f"Unsupported rule type: {rule.rule_type}")


def _fuzzy_score(extracted: Any, reference: Any, multi_value: bool) -> float:
    multi = multi_value or isinstance(reference, (list, tuple, set, frozenset))
    if not multi:
        return round(fuzz.ratio(clean_string(extracted), clean_string(reference)), 2)

    left = [clean_string(item) for item in split_values(extracted, separated=multi_value)]
    right = [clean_string(item) for item in split_values(reference, separated=multi_value)]
    best = 0.0
    for a in left:
        for b in right:
            if a and b and (a in b or b in a):
                return 100.0
            best = max(best, fuzz.ratio(a, b))
    return round(best, 2)


def _evaluate_date(
    rule: VerificationRule,
    base: Dict[str, Any],
    extracted: Any,
    reference: Any,
    today: date,
) -> FieldComparison:
    parsed = parse_document_date(extracted)
    if parsed is None:
        return FieldComparison(**base, status=FieldStatus.MISMATCH, notes="Invalid date format")

    reference_date = parse_document_date(reference)
    display = format_document_date(parsed)

    if reference_date is not None and parsed == reference_date:
        return FieldComparison(**base, match_score=100.0, status=FieldStatus.MATCH, notes=f"Date {display} matches")

    if rule.is_expiry:
        if parsed >= today:
            return FieldComparison(**base, match_score=100.0, status=FieldStatus.MATCH, notes=f"Valid until {display}")
        return FieldComparison(**base, status=FieldStatus.MISMATCH, notes=f"Document expired on {display}")

    if reference_date is None:
        return FieldComparison(**base, status=FieldStatus.MISMATCH, notes="No reference date to compare with")
    return FieldComparison(
        **base,
        status=FieldStatus.MISMATCH,
        notes=f"Date {display} differs from {format_document_date(reference_date)}",
    )


def _describe_discrepancy(comparison: FieldComparison) -> Optional[str]:
    if comparison.status == FieldStatus.MISSING:
        if not comparison.is_required:
            return None
        return f"{comparison.field_name}: {comparison.notes.lower() or 'missing'}"
    if comparison.status == FieldStatus.MISMATCH:
        return f"{comparison.field_name}: mismatch ({comparison.notes})" if comparison.notes else f"{comparison.field_name}: mismatch"
    if comparison.status == FieldStatus.PARTIAL_MATCH:
        return f"{comparison.field_name}: partial match ({comparison.notes})"
    return None


def _confidence(comparisons: List[FieldComparison]) -> float:
    if not comparisons:
        return 0.0
    total_weight = 0
    weighted = 0.0
    for item in comparisons:
        weight = REQUIRED_WEIGHT if item.is_required else OPTIONAL_WEIGHT
        total_weight += weight
        weighted += item.match_score * weight
    return round(weighted / total_weight, 2)


def _aggregate_result(comparisons: List[FieldComparison]) -> VerificationOutcome:
    required = [item for item in comparisons if item.is_required]
    if any(item.status in (FieldStatus.MISMATCH, FieldStatus.MISSING) for item in required):
        return VerificationOutcome.MISMATCH
    if all(item.status == FieldStatus.MATCH for item in required):
        return VerificationOutcome.MATCH
    return VerificationOutcome.PARTIAL_MATCH
