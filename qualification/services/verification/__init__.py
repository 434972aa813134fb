"""Document field verification: rules, engine and persistence service."""

from qualification.services.verification.rules import RuleStore, get_rule_store
from qualification.services.verification.field_verifier import FieldVerificationEngine

__all__ = ["RuleStore", "get_rule_store", "FieldVerificationEngine"]
