"""Document-specific format checks.

These validate extracted fields that have no comparison rule (REA numbers,
registration dates, ISO standards, certificate numbers, issuing bodies).
Results are optional comparisons: they inform the confidence score and the
discrepancy list but never decide the document result on their own.
"""

import re
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from qualification.schemas.verification import FieldComparison, FieldStatus
from qualification.services.verification.normalize import is_blank

REA_PATTERN = re.compile(r"^[A-Z]{2}-\d{1,7}$")
REGISTRATION_DATE_PATTERN = re.compile(r"^\d{2}/\d{2}/\d{4}$")
ISO_STANDARD_PATTERN = re.compile(r"^ISO\s+\d{4,5}(:\d{4})?$", re.IGNORECASE)
SOA_CATEGORY_PATTERN = re.compile(r"^(OG|OS)\d*\s+(I{1,5}|V{1,3})", re.IGNORECASE)
MIN_CERTIFICATE_NUMBER_LENGTH = 5
MIN_REGISTRATION_DATE = date(1900, 1, 1)
KNOWN_CERTIFIERS = ("DNV", "TÜV", "RINA", "SGS", "BUREAU VERITAS", "LLOYD", "CERTIQUALITY")

FormatCheck = Callable[[Any, date], FieldComparison]


def normalize_rea(value: Any) -> Optional[str]:
    """Normalize OCR variants of a REA number to ``AA-<digits>``.

    ``"REA: MI 1234567"``, ``"rm1234567"`` and ``"FR - 41256"`` all normalize;
    anything else is returned cleaned but unchanged in shape.
    """
    if is_blank(value):
        return None
    text = str(value).upper().strip()
    text = re.sub(r"\bN\.?\s*REA\b[:\-\s]*", "", text)
    text = re.sub(r"\bREA\b[:\-\s]*", "", text)
    text = re.sub(r"[._]", "", text)
    text = re.sub(r"[/\\:–—−]+", "-", text)
    text = re.sub(r"\s*-\s*", "-", text)
    text = re.sub(r"\s+", "", text)
    match = re.match(r"^([A-Z]{2})-?(\d{1,7})$", text)
    if match:
        return f"{match.group(1)}-{match.group(2)}"
    return text


def _result(field_name: str, value: Any, ok: bool, notes: str) -> FieldComparison:
    return FieldComparison(
        field_name=field_name,
        extracted_value=value,
        match_score=100.0 if ok else 0.0,
        status=FieldStatus.MATCH if ok else FieldStatus.MISMATCH,
        is_required=False,
        notes=notes,
    )


def check_rea(value: Any, today: date) -> FieldComparison:
    normalized = normalize_rea(value)
    if normalized and REA_PATTERN.match(normalized):
        return _result("rea", value, True, f"Valid REA number (normalized): {normalized}")
    return _result("rea", value, False, 'Invalid REA format, expected like "MI-1234567"')


def check_registration_date(value: Any, today: date) -> FieldComparison:
    text = str(value).strip()
    if not REGISTRATION_DATE_PATTERN.match(text):
        return _result("data_iscrizione", value, False, "Invalid registration date format, expected DD/MM/YYYY")

    day, month, year = (int(part) for part in text.split("/"))
    try:
        registered = date(year, month, day)
    except ValueError:
        return _result("data_iscrizione", value, False, "Invalid registration date")

    if registered > today:
        return _result("data_iscrizione", value, False, "Registration date cannot be in the future")
    if registered < MIN_REGISTRATION_DATE:
        return _result("data_iscrizione", value, False, "Registration date too old to be valid")
    return _result("data_iscrizione", value, True, "Valid registration date")


def check_iso_standard(value: Any, today: date) -> FieldComparison:
    text = re.sub(r"\s+", " ", str(value)).strip()
    if ISO_STANDARD_PATTERN.match(text):
        return _result("standard", value, True, f"Valid ISO standard: {text}")
    return _result("standard", value, False, 'Invalid ISO standard format, expected like "ISO 9001:2015"')


def check_certifier(value: Any, today: date) -> FieldComparison:
    upper = str(value).strip().upper()
    if any(certifier in upper for certifier in KNOWN_CERTIFIERS):
        return _result("ente_certificatore", value, True, "Recognized certification body")
    return _result("ente_certificatore", value, True, "Certification body captured, not in the known list")


def check_certificate_number(value: Any, today: date) -> FieldComparison:
    if len(str(value).strip()) >= MIN_CERTIFICATE_NUMBER_LENGTH:
        return _result("numero_certificazione", value, True, "Valid certificate number format")
    return _result("numero_certificazione", value, False, "Certificate number too short")


def check_soa_categories(value: Any, today: date) -> FieldComparison:
    if SOA_CATEGORY_PATTERN.match(str(value).strip()):
        return _result("categorie", value, True, f"Valid SOA categories: {value}")
    return _result("categorie", value, False, 'Invalid SOA categories format, expected like "OG1 III"')


def check_attestation_body(value: Any, today: date) -> FieldComparison:
    return _result("ente_attestazione", value, True, "Attestation body present")


FORMAT_CHECKS: Dict[str, Dict[str, FormatCheck]] = {
    "CCIAA": {
        "rea": check_rea,
        "data_iscrizione": check_registration_date,
    },
    "ISO": {
        "standard": check_iso_standard,
        "ente_certificatore": check_certifier,
        "numero_certificazione": check_certificate_number,
    },
    "SOA": {
        "categorie": check_soa_categories,
        "ente_attestazione": check_attestation_body,
    },
}


def run_format_checks(
    doc_type: str,
    extracted_fields: Mapping[str, Any],
    skip_fields: Iterable[str] = (),
    today: Optional[date] = None,
) -> List[FieldComparison]:
    """Run the format checks of a document type on present, unruled fields."""
    checks = FORMAT_CHECKS.get((doc_type or "").upper(), {})
    skipped = set(skip_fields)
    today = today or date.today()

    results: List[FieldComparison] = []
    for field_name, check in checks.items():
        value = extracted_fields.get(field_name)
        if field_name in skipped or is_blank(value):
            continue
        results.append(check(value, today))
    return results
