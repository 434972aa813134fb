"""Verification rule store.

Rules are configuration: the defaults below can be replaced by a JSON file
(``VERIFICATION_RULES_PATH``) holding a list of rule objects. The store is
built once per process and exposes a read-only index keyed by
``(doc_type, field_name, rule_type)``.
"""

import json
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from qualification.core.config import settings
from qualification.core.exceptions import ConfigurationError
from qualification.schemas.verification import DocType, RuleType, VerificationRule
from qualification.utils.logging import get_logger

LOGGER = get_logger(__name__)

RuleKey = Tuple[str, str, RuleType]

DURC_EXPECTED = frozenset({"RISULTA REGOLARE", "REGOLARE"})
ACTIVE_EXPECTED = frozenset({"ATTIVA", "ATTIVO", "ACTIVE"})


def _rule(doc_type: DocType, field_name: str, rule_type: RuleType, **kwargs) -> VerificationRule:
    return VerificationRule(doc_type=doc_type.value, field_name=field_name, rule_type=rule_type, **kwargs)


DEFAULT_RULES: Tuple[VerificationRule, ...] = (
    # DURC
    _rule(DocType.DURC, "denominazione_ragione_sociale", RuleType.FUZZY_MATCH, threshold=80),
    _rule(DocType.DURC, "codice_fiscale", RuleType.EXACT_MATCH),
    _rule(DocType.DURC, "sede_legale", RuleType.FUZZY_MATCH, threshold=70),
    _rule(DocType.DURC, "risultato", RuleType.STATUS_CHECK, expected_values=DURC_EXPECTED),
    _rule(DocType.DURC, "scadenza_validita", RuleType.DATE_VALIDATION, is_expiry=True),
    # VISURA
    _rule(DocType.VISURA, "denominazione_ragione_sociale", RuleType.FUZZY_MATCH, threshold=80),
    _rule(DocType.VISURA, "codice_fiscale", RuleType.EXACT_MATCH),
    _rule(DocType.VISURA, "partita_iva", RuleType.EXACT_MATCH),
    _rule(DocType.VISURA, "sede_legale", RuleType.FUZZY_MATCH, threshold=70),
    _rule(
        DocType.VISURA, "stato_attivita", RuleType.STATUS_CHECK,
        is_required=False, expected_values=ACTIVE_EXPECTED,
    ),
    # SOA
    _rule(DocType.SOA, "denominazione_ragione_sociale", RuleType.FUZZY_MATCH, threshold=80),
    _rule(DocType.SOA, "codice_fiscale", RuleType.EXACT_MATCH),
    _rule(DocType.SOA, "categorie", RuleType.FUZZY_MATCH, threshold=90, multi_value=True),
    _rule(DocType.SOA, "data_scadenza_validita_triennale", RuleType.DATE_VALIDATION, is_expiry=True),
    _rule(DocType.SOA, "data_scadenza_validita_quinquennale", RuleType.DATE_VALIDATION, is_expiry=True),
    # ISO
    _rule(DocType.ISO, "denominazione_ragione_sociale", RuleType.FUZZY_MATCH, threshold=80),
    _rule(DocType.ISO, "data_scadenza", RuleType.DATE_VALIDATION, is_expiry=True),
    # CCIAA
    _rule(DocType.CCIAA, "denominazione_ragione_sociale", RuleType.FUZZY_MATCH, threshold=80),
    _rule(DocType.CCIAA, "codice_fiscale", RuleType.EXACT_MATCH),
    _rule(DocType.CCIAA, "sede_legale", RuleType.FUZZY_MATCH, threshold=70),
)


class RuleStore:
    """Immutable index of verification rules."""

    def __init__(self, rules: Iterable[VerificationRule]):
        index: dict[RuleKey, VerificationRule] = {}
        by_doc_type: dict[str, list[VerificationRule]] = {}

        for rule in rules:
            if rule.key in index:
                raise ConfigurationError(
                    f"Duplicate verification rule for {rule.doc_type}.{rule.field_name} ({rule.rule_type.value})"
                )
            index[rule.key] = rule
            by_doc_type.setdefault(rule.doc_type, []).append(rule)

        self._index: Mapping[RuleKey, VerificationRule] = MappingProxyType(index)
        self._by_doc_type: Mapping[str, Tuple[VerificationRule, ...]] = MappingProxyType(
            {doc_type: tuple(items) for doc_type, items in by_doc_type.items()}
        )

    @property
    def index(self) -> Mapping[RuleKey, VerificationRule]:
        return self._index

    @property
    def doc_types(self) -> frozenset[str]:
        return frozenset(self._by_doc_type)

    def rules_for(self, doc_type: str) -> Tuple[VerificationRule, ...]:
        """Rules for a document type in configured order; empty when unknown."""
        return self._by_doc_type.get((doc_type or "").upper(), ())

    def get(self, doc_type: str, field_name: str, rule_type: RuleType) -> Optional[VerificationRule]:
        return self._index.get(((doc_type or "").upper(), field_name, rule_type))

    def __len__(self) -> int:
        return len(self._index)

    @classmethod
    def from_file(cls, path: str | Path) -> "RuleStore":
        """Load rules from a JSON file containing a list of rule objects."""
        file_path = Path(path)
        try:
            raw = json.loads(file_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read verification rules from {file_path}: {e}", original_error=e)

        if not isinstance(raw, list):
            raise ConfigurationError(f"Verification rules file {file_path} must contain a JSON list")

        try:
            rules = [VerificationRule.model_validate(item) for item in raw]
        except PydanticValidationError as e:
            raise ConfigurationError(f"Invalid verification rule in {file_path}: {e}", original_error=e)

        LOGGER.info(f"Loaded {len(rules)} verification rules from {file_path}")
        return cls(rules)


@lru_cache(maxsize=1)
def get_rule_store() -> RuleStore:
    """Process-wide rule store, built on first use."""
    if settings.verification.rules_path:
        return RuleStore.from_file(settings.verification.rules_path)
    return RuleStore(DEFAULT_RULES)
