"""Unit tests for the overall verdict policy."""

from datetime import datetime, timezone

from qualification.schemas.workflows import OverallVerdict, StepKey, StepProjection, StepStatus
from qualification.services.workflow.steps import STEP_DEFINITIONS, STEPS_BY_KEY
from qualification.services.workflow.verdict import collect_notes, compute_verdict

REQUIRED = {"registration", "durc", "visura", "certifications"}
NOW = datetime(2026, 3, 2, tzinfo=timezone.utc)


def _steps(**statuses: StepStatus):
    """One step per definition, PASS unless overridden by key."""
    steps = []
    for definition in STEP_DEFINITIONS:
        status = statuses.get(definition.key.value, StepStatus.PASS)
        steps.append(StepProjection(
            step_key=definition.key,
            name=definition.name,
            status=status,
            issues=["problem"] if status == StepStatus.FAIL else [],
            order_index=definition.order_index,
            started_at=NOW,
        ))
    return steps


def test_all_pass_is_qualified():
    verdict = compute_verdict(_steps(), REQUIRED)

    assert verdict.overall == OverallVerdict.QUALIFIED
    assert verdict.notes == []


def test_required_failure_is_not_qualified():
    verdict = compute_verdict(_steps(visura=StepStatus.FAIL, soa=StepStatus.FAIL), REQUIRED)

    assert verdict.overall == OverallVerdict.NOT_QUALIFIED
    assert verdict.notes == ["visura: problem", "soa: problem"]


def test_optional_failure_is_conditional():
    verdict = compute_verdict(_steps(whitelist_insurance=StepStatus.FAIL), REQUIRED)

    assert verdict.overall == OverallVerdict.CONDITIONALLY_QUALIFIED


def test_skipped_optional_step_does_not_block():
    verdict = compute_verdict(_steps(soa=StepStatus.SKIP, whitelist_insurance=StepStatus.SKIP), REQUIRED)

    assert verdict.overall == OverallVerdict.QUALIFIED


def test_skipped_required_step_is_conditional():
    verdict = compute_verdict(_steps(certifications=StepStatus.SKIP), REQUIRED)

    assert verdict.overall == OverallVerdict.CONDITIONALLY_QUALIFIED


def test_unsettled_steps_have_no_verdict():
    assert compute_verdict(_steps(durc=StepStatus.RUNNING), REQUIRED) is None
    assert compute_verdict(_steps(finalize=StepStatus.PENDING), REQUIRED) is None


def test_required_set_is_configurable():
    verdict = compute_verdict(_steps(soa=StepStatus.FAIL), REQUIRED | {"soa"})

    assert verdict.overall == OverallVerdict.NOT_QUALIFIED


def test_failed_step_without_issues_gets_a_note():
    step = _steps()[0].model_copy(update={"status": StepStatus.FAIL, "issues": []})

    assert collect_notes([step]) == ["registration: step failed"]


def test_step_catalog_order():
    assert [definition.order_index for definition in STEP_DEFINITIONS] == list(range(1, 10))
    assert STEPS_BY_KEY[StepKey.SOA].name == "SOA Verification"
