"""Tests for API endpoints."""

from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

from fastapi.testclient import TestClient

from qualification.api.v1.endpoints.documents import get_verification_service
from qualification.api.v1.endpoints.workflows import get_workflow_service
from qualification.core.exceptions import (
    DatabaseError,
    DocumentNotFoundError,
    SupplierNotFoundError,
    ValidationError,
    WorkflowQueueFullError,
)
from qualification.main import app
from qualification.schemas.verification import DocumentVerification, VerificationOutcome
from qualification.schemas.workflows import (
    BatchCancelResult,
    BatchStartResult,
    CancelOutcome,
    RunProjection,
    RunStatus,
    SupplierCancelResult,
)
from qualification.services.workflow.runtime import get_workflow_runtime


def _override_workflow_service(service: AsyncMock) -> None:
    app.dependency_overrides[get_workflow_service] = lambda: service


class TestWorkflowEndpoints:
    """Test suite for workflow API endpoints.

    The workflow service is replaced, so these tests cover request
    validation, the response envelope and error mapping.
    """

    def test_start_workflow(self, test_client: TestClient, sample_run: RunProjection) -> None:
        service = AsyncMock()
        service.start_workflow.return_value = sample_run
        _override_workflow_service(service)

        response = test_client.post(
            "/api/v1/workflows/start",
            json={"supplier_id": str(sample_run.supplier_id), "options": {"include_soa": False}},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] is True
        assert body["message"] == "Workflow queued"
        assert body["data"]["id"] == str(sample_run.id)
        assert body["data"]["steps"][0]["step_key"] == "durc"
        assert "request_id" in body["meta"]
        supplier_id, options, wait = service.start_workflow.await_args.args
        assert options.include_soa is False
        assert wait is False

    def test_start_unknown_supplier(self, test_client: TestClient) -> None:
        service = AsyncMock()
        service.start_workflow.side_effect = SupplierNotFoundError("Supplier not found")
        _override_workflow_service(service)

        response = test_client.post("/api/v1/workflows/start", json={"supplier_id": str(uuid4())})

        assert response.status_code == 404
        detail = response.json()["detail"]
        assert detail["title"] == "Not Found"
        assert detail["status"] == 404
        assert detail["instance"] == "/api/v1/workflows/start"

    def test_start_queue_full(self, test_client: TestClient) -> None:
        service = AsyncMock()
        service.start_workflow.side_effect = WorkflowQueueFullError("Workflow queue is full")
        _override_workflow_service(service)

        response = test_client.post("/api/v1/workflows/start", json={"supplier_id": str(uuid4())})

        assert response.status_code == 503

    def test_start_invalid_supplier_id(self, test_client: TestClient) -> None:
        _override_workflow_service(AsyncMock())

        response = test_client.post("/api/v1/workflows/start", json={"supplier_id": "supplier-1"})

        assert response.status_code == 422

    def test_retry_step(self, test_client: TestClient, sample_run: RunProjection) -> None:
        service = AsyncMock()
        service.start_step.return_value = sample_run
        _override_workflow_service(service)

        response = test_client.post(
            "/api/v1/workflows/retry-step",
            json={"supplier_id": str(sample_run.supplier_id), "step_key": "durc"},
        )

        assert response.status_code == 200
        assert response.json()["message"] == "Step durc finished with status pass"
        assert service.start_step.await_args.kwargs["retry"] is True

    def test_unknown_step(self, test_client: TestClient) -> None:
        service = AsyncMock()
        service.start_step.side_effect = ValidationError("Unknown step key 'antimafia'")
        _override_workflow_service(service)

        response = test_client.post(
            "/api/v1/workflows/start-step",
            json={"supplier_id": str(uuid4()), "step_key": "antimafia"},
        )

        assert response.status_code == 400
        assert response.json()["detail"]["detail"] == "Unknown step key 'antimafia'"

    def test_cancel_without_running_run(self, test_client: TestClient) -> None:
        service = AsyncMock()
        service.cancel_workflow.return_value = None
        _override_workflow_service(service)

        response = test_client.post("/api/v1/workflows/cancel", json={"supplier_id": str(uuid4())})

        assert response.status_code == 200
        assert response.json()["data"] == {"run": None, "canceled": False}

    def test_cancel_running_run(self, test_client: TestClient, sample_run: RunProjection) -> None:
        service = AsyncMock()
        service.cancel_workflow.return_value = sample_run.model_copy(update={"status": RunStatus.CANCELED})
        _override_workflow_service(service)

        response = test_client.post("/api/v1/workflows/cancel", json={"supplier_id": str(sample_run.supplier_id)})

        data = response.json()["data"]
        assert data["canceled"] is True
        assert data["run"]["status"] == "canceled"

    def test_status_by_run_id(self, test_client: TestClient, sample_run: RunProjection) -> None:
        service = AsyncMock()
        service.get_status.return_value = sample_run
        _override_workflow_service(service)

        response = test_client.get(f"/api/v1/workflows/status?run_id={sample_run.id}")

        assert response.status_code == 200
        assert response.json()["data"]["run"]["status"] == "completed"
        assert service.get_status.await_args.kwargs == {"supplier_id": None, "run_id": sample_run.id}

    def test_status_database_error(self, test_client: TestClient) -> None:
        service = AsyncMock()
        service.get_status.side_effect = DatabaseError("connection refused")
        _override_workflow_service(service)

        response = test_client.get(f"/api/v1/workflows/status?supplier_id={uuid4()}")

        assert response.status_code == 500
        assert response.json()["detail"]["title"] == "Database Error"

    def test_start_multi(self, test_client: TestClient) -> None:
        accepted, rejected = uuid4(), uuid4()
        service = AsyncMock()
        service.start_many.return_value = BatchStartResult(accepted=[accepted], rejected=[rejected])
        _override_workflow_service(service)

        response = test_client.post(
            "/api/v1/workflows/start-multi",
            json={"supplier_ids": [str(accepted), str(rejected)]},
        )

        assert response.status_code == 202
        body = response.json()
        assert body["data"] == {"accepted": [str(accepted)], "rejected": [str(rejected)]}
        assert body["message"] == "Queued 1 workflows, 1 rejected (queue full)"

    def test_start_multi_requires_suppliers(self, test_client: TestClient) -> None:
        _override_workflow_service(AsyncMock())

        response = test_client.post("/api/v1/workflows/start-multi", json={"supplier_ids": []})

        assert response.status_code == 422

    def test_status_multi(self, test_client: TestClient, sample_run: RunProjection) -> None:
        never_ran = uuid4()
        service = AsyncMock()
        service.get_status_many.return_value = {sample_run.supplier_id: sample_run, never_ran: None}
        _override_workflow_service(service)

        response = test_client.post(
            "/api/v1/workflows/status-multi",
            json={"supplier_ids": [str(sample_run.supplier_id), str(never_ran)], "include_steps": False},
        )

        runs = response.json()["data"]["runs"]
        assert runs[str(never_ran)] is None
        assert runs[str(sample_run.supplier_id)]["id"] == str(sample_run.id)
        assert service.get_status_many.await_args.args[1] is False

    def test_cancel_multi(self, test_client: TestClient) -> None:
        running, idle = uuid4(), uuid4()
        service = AsyncMock()
        service.cancel_many.return_value = BatchCancelResult(results={
            running: SupplierCancelResult(outcome=CancelOutcome.CANCELED),
            idle: SupplierCancelResult(outcome=CancelOutcome.NOT_RUNNING),
        })
        _override_workflow_service(service)

        response = test_client.post(
            "/api/v1/workflows/cancel-multi",
            json={"supplier_ids": [str(running), str(idle)]},
        )

        body = response.json()
        assert body["message"] == "Canceled 1 workflows"
        assert body["data"]["results"][str(idle)]["outcome"] == "not_running"


class TestDocumentEndpoints:
    def test_verify_document(self, test_client: TestClient) -> None:
        analysis_id = uuid4()
        service = AsyncMock()
        service.execute.return_value = DocumentVerification(
            analysis_id=analysis_id,
            doc_type="DURC",
            verification_result=VerificationOutcome.MATCH,
            confidence_score=97.5,
        )
        app.dependency_overrides[get_verification_service] = lambda: service

        response = test_client.post(f"/api/v1/documents/{analysis_id}/verify?force=false")

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Document verification: match"
        assert body["data"]["confidence_score"] == 97.5
        service.execute.assert_awaited_once_with(analysis_id, None, force=False)

    def test_verify_unknown_document(self, test_client: TestClient) -> None:
        service = AsyncMock()
        service.execute.side_effect = DocumentNotFoundError("Document analysis not found")
        app.dependency_overrides[get_verification_service] = lambda: service

        response = test_client.post(f"/api/v1/documents/{uuid4()}/verify")

        assert response.status_code == 404


class TestHealthEndpoint:
    def test_health(self, test_client: TestClient) -> None:
        runtime = MagicMock()
        runtime.task_queue.stats.return_value = {"running": True, "workers": 4, "pending": 0}
        app.dependency_overrides[get_workflow_runtime] = lambda: runtime

        with patch("qualification.api.v1.endpoints.health.db_client") as db_client:
            db_client.health_check = AsyncMock(return_value={"status": "healthy", "connected": True})
            response = test_client.get("/health/")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["queue"]["workers"] == 4

    def test_root(self, test_client: TestClient) -> None:
        response = test_client.get("/")

        assert response.status_code == 200
        assert response.json()["health"] == "/health"
        assert "X-Correlation-ID" in response.headers
