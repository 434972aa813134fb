"""Unit tests for the field verification engine."""

from datetime import date
from uuid import uuid4

import pytest

from qualification.schemas.verification import (
    FieldStatus,
    RuleType,
    VerificationOutcome,
    VerificationRule,
)
from qualification.services.verification.field_verifier import FieldVerificationEngine
from qualification.services.verification.rules import DEFAULT_RULES, RuleStore

TODAY = date(2026, 3, 2)


def _store(*rules: VerificationRule) -> RuleStore:
    return RuleStore(rules)


@pytest.fixture
def engine():
    return FieldVerificationEngine(RuleStore(DEFAULT_RULES))


@pytest.fixture
def durc_reference():
    return {
        "denominazione_ragione_sociale": "Edilstrade Costruzioni S.r.l.",
        "codice_fiscale": "01234567890",
        "sede_legale": "Via Roma 10, Milano, MI",
    }


@pytest.fixture
def durc_fields():
    return {
        "denominazione_ragione_sociale": "EDILSTRADE COSTRUZIONI SRL",
        "codice_fiscale": "01234567890",
        "sede_legale": "VIA ROMA 10 MILANO MI",
        "risultato": "RISULTA REGOLARE",
        "scadenza_validita": "15/06/2026",
    }


def test_fuzzy_match_ignores_case_and_punctuation():
    engine = FieldVerificationEngine(_store(
        VerificationRule(
            doc_type="DURC",
            field_name="denominazione_ragione_sociale",
            rule_type=RuleType.FUZZY_MATCH,
            threshold=85,
        )
    ))

    result = engine.verify(
        "DURC",
        {"denominazione_ragione_sociale": "ACME SRL"},
        {"denominazione_ragione_sociale": "Acme S.r.l."},
        today=TODAY,
    )

    comparison = result.comparison("denominazione_ragione_sociale")
    assert comparison.status == FieldStatus.MATCH
    assert comparison.match_score >= 85
    assert result.verification_result == VerificationOutcome.MATCH


def test_missing_required_field_is_a_discrepancy(engine, durc_fields, durc_reference):
    del durc_fields["codice_fiscale"]

    result = engine.verify("DURC", durc_fields, durc_reference, today=TODAY)

    comparison = result.comparison("codice_fiscale")
    assert comparison.status == FieldStatus.MISSING
    assert any(item.startswith("codice_fiscale") for item in result.discrepancies)
    assert result.verification_result == VerificationOutcome.MISMATCH


def test_complete_durc_matches(engine, durc_fields, durc_reference):
    analysis_id = uuid4()

    result = engine.verify("durc", durc_fields, durc_reference, analysis_id=analysis_id, today=TODAY)

    assert result.doc_type == "DURC"
    assert result.analysis_id == analysis_id
    assert result.verification_result == VerificationOutcome.MATCH
    assert result.discrepancies == []
    assert len(result.field_comparisons) == 5
    assert result.confidence_score > 90


def test_verification_is_deterministic(engine, durc_fields, durc_reference):
    first = engine.verify("DURC", durc_fields, durc_reference, today=TODAY)
    second = engine.verify("DURC", durc_fields, durc_reference, today=TODAY)

    assert first == second


def test_unknown_document_type(engine):
    result = engine.verify("PASSPORT", {"name": "x"}, {"name": "x"}, today=TODAY)

    assert result.verification_result == VerificationOutcome.UNKNOWN
    assert result.field_comparisons == []
    assert result.confidence_score == 0


def test_exact_match_mismatch(engine, durc_fields, durc_reference):
    durc_fields["codice_fiscale"] = "09876543210"

    result = engine.verify("DURC", durc_fields, durc_reference, today=TODAY)

    comparison = result.comparison("codice_fiscale")
    assert comparison.status == FieldStatus.MISMATCH
    assert comparison.match_score == 0
    assert "codice_fiscale: mismatch (Values differ)" in result.discrepancies
    assert result.verification_result == VerificationOutcome.MISMATCH


def test_no_reference_value_is_missing(engine, durc_fields, durc_reference):
    durc_reference["codice_fiscale"] = None

    result = engine.verify("DURC", durc_fields, durc_reference, today=TODAY)

    comparison = result.comparison("codice_fiscale")
    assert comparison.status == FieldStatus.MISSING
    assert comparison.notes == "No reference value available"


def test_expired_document(engine, durc_fields, durc_reference):
    durc_fields["scadenza_validita"] = "01/01/2026"

    result = engine.verify("DURC", durc_fields, durc_reference, today=TODAY)

    comparison = result.comparison("scadenza_validita")
    assert comparison.status == FieldStatus.MISMATCH
    assert "expired" in comparison.notes
    assert result.verification_result == VerificationOutcome.MISMATCH


def test_expiry_today_is_still_valid(engine, durc_fields, durc_reference):
    durc_fields["scadenza_validita"] = "02.03.2026"

    result = engine.verify("DURC", durc_fields, durc_reference, today=TODAY)

    assert result.comparison("scadenza_validita").status == FieldStatus.MATCH


def test_unreadable_date(engine, durc_fields, durc_reference):
    durc_fields["scadenza_validita"] = "31/02/2026"

    result = engine.verify("DURC", durc_fields, durc_reference, today=TODAY)

    comparison = result.comparison("scadenza_validita")
    assert comparison.status == FieldStatus.MISMATCH
    assert comparison.notes == "Invalid date format"


def test_status_check_is_case_insensitive(engine, durc_fields, durc_reference):
    durc_fields["risultato"] = "risulta regolare."

    result = engine.verify("DURC", durc_fields, durc_reference, today=TODAY)

    assert result.comparison("risultato").status == FieldStatus.MATCH


def test_status_check_rejects_irregular(engine, durc_fields, durc_reference):
    durc_fields["risultato"] = "NON REGOLARE"

    result = engine.verify("DURC", durc_fields, durc_reference, today=TODAY)

    comparison = result.comparison("risultato")
    assert comparison.status == FieldStatus.MISMATCH
    assert "RISULTA REGOLARE" in comparison.notes


def test_fuzzy_partial_match_band():
    engine = FieldVerificationEngine(_store(
        VerificationRule(
            doc_type="DURC",
            field_name="denominazione_ragione_sociale",
            rule_type=RuleType.FUZZY_MATCH,
            threshold=95,
        )
    ))

    result = engine.verify(
        "DURC",
        {"denominazione_ragione_sociale": "Edilstrade Costruzion"},
        {"denominazione_ragione_sociale": "Edilstrade Costruzioni SRL"},
        today=TODAY,
    )

    comparison = result.comparison("denominazione_ragione_sociale")
    assert comparison.status == FieldStatus.PARTIAL_MATCH
    assert 75 <= comparison.match_score < 95
    assert result.verification_result == VerificationOutcome.PARTIAL_MATCH


def test_exact_match_ignores_configured_threshold():
    engine = FieldVerificationEngine(_store(
        VerificationRule(
            doc_type="DURC",
            field_name="codice_fiscale",
            rule_type=RuleType.EXACT_MATCH,
            threshold=0,
        )
    ))

    result = engine.verify(
        "DURC",
        {"codice_fiscale": "98765432109"},
        {"codice_fiscale": "01234567890"},
        today=TODAY,
    )

    comparison = result.comparison("codice_fiscale")
    assert comparison.status == FieldStatus.MISMATCH
    assert comparison.match_score == 0
    assert result.verification_result == VerificationOutcome.MISMATCH


def test_soa_categories_best_item_wins(engine):
    result = engine.verify(
        "SOA",
        {
            "denominazione_ragione_sociale": "Edilstrade Costruzioni",
            "codice_fiscale": "01234567890",
            "categorie": "OS30 II; OG1 III",
            "data_scadenza_validita_triennale": "2027-05-01",
            "data_scadenza_validita_quinquennale": "01/05/2029",
        },
        {
            "denominazione_ragione_sociale": "Edilstrade Costruzioni",
            "codice_fiscale": "01234567890",
            "categorie": ["OG1 III"],
        },
        today=TODAY,
    )

    assert result.comparison("categorie").status == FieldStatus.MATCH
    assert result.comparison("categorie").match_score == 100
    assert result.verification_result == VerificationOutcome.MATCH


def test_optional_missing_field_is_not_a_discrepancy(engine):
    reference = {
        "denominazione_ragione_sociale": "Edilstrade Costruzioni",
        "codice_fiscale": "01234567890",
        "partita_iva": "01234567890",
        "sede_legale": "Via Roma 10, Milano, MI",
    }

    result = engine.verify("VISURA", dict(reference), reference, today=TODAY)

    comparison = result.comparison("stato_attivita")
    assert comparison.status == FieldStatus.MISSING
    assert not comparison.is_required
    assert result.discrepancies == []
    assert result.verification_result == VerificationOutcome.MATCH


def test_format_checks_add_discrepancies_without_deciding(engine):
    fields = {
        "denominazione_ragione_sociale": "Edilstrade Costruzioni",
        "codice_fiscale": "01234567890",
        "sede_legale": "Via Roma 10, Milano, MI",
        "rea": "not a rea",
        "data_iscrizione": "12/04/2001",
    }

    result = engine.verify("CCIAA", fields, dict(fields), today=TODAY)

    rea = result.comparison("rea")
    assert rea.rule_type is None
    assert rea.status == FieldStatus.MISMATCH
    assert result.comparison("data_iscrizione").status == FieldStatus.MATCH
    assert any(item.startswith("rea:") for item in result.discrepancies)
    assert result.verification_result == VerificationOutcome.MATCH


def test_confidence_weights_required_fields():
    engine = FieldVerificationEngine(_store(
        VerificationRule(doc_type="X", field_name="a", rule_type=RuleType.EXACT_MATCH),
        VerificationRule(doc_type="X", field_name="b", rule_type=RuleType.EXACT_MATCH, is_required=False),
    ))

    result = engine.verify("X", {"a": "1", "b": "2"}, {"a": "1", "b": "3"}, today=TODAY)

    # (100 * 2 + 0 * 1) / 3
    assert result.confidence_score == 66.67
    assert result.verification_result == VerificationOutcome.MATCH
