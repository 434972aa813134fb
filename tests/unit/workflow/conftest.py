"""Fixtures for workflow tests."""

from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from qualification.schemas.workflows import StepKey
from qualification.services.workflow.orchestrator import WorkflowOrchestrator

from workflow_fakes import REQUIRED_STEPS, InMemoryRunRegistry, StubExecutor


@pytest.fixture
def registry():
    return InMemoryRunRegistry()


@pytest.fixture
def executors():
    return {key: StubExecutor(key) for key in StepKey}


@pytest.fixture
def orchestrator(registry, executors):
    return WorkflowOrchestrator(registry, AsyncMock(), executors=executors, required_steps=REQUIRED_STEPS)


@pytest.fixture
def supplier_id():
    return uuid4()
