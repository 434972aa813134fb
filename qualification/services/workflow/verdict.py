"""Overall qualification verdict from per-step outcomes."""

from dataclasses import dataclass, field
from typing import Collection, Iterable, List, Optional

from qualification.core.config import settings
from qualification.schemas.workflows import OverallVerdict, StepProjection, StepStatus


@dataclass(frozen=True)
class Verdict:
    overall: OverallVerdict
    notes: List[str] = field(default_factory=list)


def default_required_steps() -> frozenset[str]:
    return frozenset(settings.workflow.required_steps)


def all_settled(steps: Iterable[StepProjection]) -> bool:
    return all(step.status.is_settled for step in steps)


def collect_notes(steps: Iterable[StepProjection]) -> List[str]:
    """Issues of failed steps, prefixed with their step key, in step order."""
    notes: List[str] = []
    for step in sorted(steps, key=lambda s: s.order_index):
        if step.status != StepStatus.FAIL:
            continue
        issues = step.issues or ["step failed"]
        notes.extend(f"{step.step_key.value}: {issue}" for issue in issues)
    return notes


def compute_verdict(
    steps: Collection[StepProjection],
    required_steps: Optional[Collection[str]] = None,
) -> Optional[Verdict]:
    """Aggregate settled steps into a verdict.

    Returns None while any step is still pending or running.
    """
    if not all_settled(steps):
        return None

    required = frozenset(required_steps) if required_steps is not None else default_required_steps()
    by_key = {step.step_key.value: step for step in steps}
    notes = collect_notes(steps)

    if any(step.status == StepStatus.FAIL for key, step in by_key.items() if key in required):
        return Verdict(OverallVerdict.NOT_QUALIFIED, notes)

    required_passed = all(key in by_key and by_key[key].status == StepStatus.PASS for key in required)
    optional_failed = any(
        step.status == StepStatus.FAIL for key, step in by_key.items() if key not in required
    )
    if required_passed and not optional_failed:
        return Verdict(OverallVerdict.QUALIFIED, notes)

    return Verdict(OverallVerdict.CONDITIONALLY_QUALIFIED, notes)
