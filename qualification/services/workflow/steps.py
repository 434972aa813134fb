"""The fixed qualification checklist."""

from dataclasses import dataclass
from typing import Callable, Dict, Tuple

from qualification.core.exceptions import ValidationError
from qualification.schemas.workflows import StepKey, WorkflowOptions


@dataclass(frozen=True)
class StepDefinition:
    key: StepKey
    name: str
    order_index: int
    enabled: Callable[[WorkflowOptions], bool] = lambda options: True
    disabled_reason: str = ""


STEP_DEFINITIONS: Tuple[StepDefinition, ...] = (
    StepDefinition(StepKey.REGISTRATION, "Registration Check", 1),
    StepDefinition(StepKey.PRELIMINARY, "Preliminary Data Verification", 2),
    StepDefinition(StepKey.DURC, "DURC Verification", 3),
    StepDefinition(
        StepKey.WHITELIST_INSURANCE,
        "White List & Insurance",
        4,
        enabled=lambda options: options.include_white_list,
        disabled_reason="White list and insurance check disabled for this run",
    ),
    StepDefinition(StepKey.VISURA, "Company Registry Extract (VISURA)", 5),
    StepDefinition(StepKey.CERTIFICATIONS, "Certifications Verification", 6),
    StepDefinition(
        StepKey.SOA,
        "SOA Verification",
        7,
        enabled=lambda options: options.include_soa,
        disabled_reason="SOA verification disabled for this run",
    ),
    StepDefinition(StepKey.SCORECARD, "Scorecard Generation", 8),
    StepDefinition(StepKey.FINALIZE, "Final Outcome", 9),
)

STEPS_BY_KEY: Dict[StepKey, StepDefinition] = {step.key: step for step in STEP_DEFINITIONS}


def get_step(step_key: str | StepKey) -> StepDefinition:
    """Resolve a step key, raising ValidationError for unknown keys."""
    try:
        key = StepKey(step_key)
    except ValueError:
        valid = ", ".join(step.key.value for step in STEP_DEFINITIONS)
        raise ValidationError(f"Unknown step key {step_key!r}; expected one of: {valid}")
    return STEPS_BY_KEY[key]
