"""Pytest configuration and shared fixtures."""

from datetime import datetime, timezone
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from qualification.database.models import Supplier
from qualification.main import app
from qualification.schemas.workflows import (
    RunProjection,
    RunStatus,
    StepKey,
    StepProjection,
    StepStatus,
    WorkflowType,
)


@pytest.fixture
def test_client() -> TestClient:
    """Create FastAPI test client.

    Returns:
        TestClient: FastAPI test client instance
    """
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}


@pytest.fixture
def sample_supplier() -> Supplier:
    """Supplier with complete registry data.

    Returns:
        Supplier: Unsaved supplier model
    """
    return Supplier(
        id=uuid4(),
        company_name="Edilstrade Costruzioni S.r.l.",
        fiscal_code="01234567890",
        vat_number="01234567890",
        address="Via Roma 10",
        city="Milano",
        province="MI",
        soa_categories=["OG1 III", "OS30 II"],
        iso_certifications=["ISO 9001:2015"],
    )


@pytest.fixture
def sample_run() -> RunProjection:
    """Completed run with one passed step.

    Returns:
        RunProjection: Run projection as returned by the registry
    """
    started = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)
    return RunProjection(
        id=uuid4(),
        supplier_id=uuid4(),
        workflow_type=WorkflowType.FULL_QUALIFICATION,
        status=RunStatus.COMPLETED,
        steps=[
            StepProjection(
                step_key=StepKey.DURC,
                name="DURC Verification",
                status=StepStatus.PASS,
                order_index=3,
                started_at=started,
                ended_at=started,
            )
        ],
        started_at=started,
        ended_at=started,
    )
