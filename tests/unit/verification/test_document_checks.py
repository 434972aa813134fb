"""Unit tests for value normalization and document format checks."""

from datetime import date

import pytest

from qualification.schemas.verification import FieldStatus
from qualification.services.verification.document_checks import (
    check_certificate_number,
    check_iso_standard,
    check_registration_date,
    normalize_rea,
    run_format_checks,
)
from qualification.services.verification.normalize import (
    clean_string,
    parse_document_date,
    split_values,
)

TODAY = date(2026, 3, 2)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("15/06/2026", date(2026, 6, 15)),
        ("15.06.2026", date(2026, 6, 15)),
        ("15-06-2026", date(2026, 6, 15)),
        ("15 06 2026", date(2026, 6, 15)),
        ("2026-06-15", date(2026, 6, 15)),
        ("31/02/2026", None),
        ("15/06/2150", None),
        ("June 15th", None),
        ("", None),
        (None, None),
    ],
)
def test_parse_document_date(value, expected):
    assert parse_document_date(value) == expected


def test_clean_string():
    assert clean_string("  Acme S.r.l.  ") == "acme srl"
    assert clean_string("Via  Roma, 10") == "via roma 10"


def test_split_values():
    assert split_values("OG1 III, OS30 II;OG3 I") == ["OG1 III", "OS30 II", "OG3 I"]
    assert split_values(["OG1 III", "OS30 II, OG3"]) == ["OG1 III", "OS30 II", "OG3"]
    assert split_values("Via Roma 10, Milano", separated=False) == ["Via Roma 10, Milano"]
    assert split_values(None) == []


@pytest.mark.parametrize(
    "value, expected",
    [
        ("MI-1234567", "MI-1234567"),
        ("REA: MI 1234567", "MI-1234567"),
        ("rm1234567", "RM-1234567"),
        ("FR - 41256", "FR-41256"),
        ("N. REA MI/998877", "MI-998877"),
    ],
)
def test_normalize_rea(value, expected):
    assert normalize_rea(value) == expected


def test_registration_date_checks():
    assert check_registration_date("12/04/2001", TODAY).status == FieldStatus.MATCH
    assert check_registration_date("2001-04-12", TODAY).status == FieldStatus.MISMATCH
    assert check_registration_date("12/04/2027", TODAY).notes == "Registration date cannot be in the future"
    assert check_registration_date("12/04/1850", TODAY).notes == "Registration date too old to be valid"


def test_iso_checks():
    assert check_iso_standard("ISO 9001:2015", TODAY).status == FieldStatus.MATCH
    assert check_iso_standard("iso  14001", TODAY).status == FieldStatus.MATCH
    assert check_iso_standard("9001", TODAY).status == FieldStatus.MISMATCH
    assert check_certificate_number("IT-1234", TODAY).status == FieldStatus.MATCH
    assert check_certificate_number("123", TODAY).status == FieldStatus.MISMATCH


def test_run_format_checks_skips_blank_and_ruled_fields():
    results = run_format_checks(
        "iso",
        {"standard": "ISO 9001:2015", "ente_certificatore": "", "numero_certificazione": "ABC12345"},
        skip_fields={"numero_certificazione"},
        today=TODAY,
    )

    assert [item.field_name for item in results] == ["standard"]
    assert all(not item.is_required and item.rule_type is None for item in results)
    assert run_format_checks("DURC", {"standard": "ISO 9001"}, today=TODAY) == []
