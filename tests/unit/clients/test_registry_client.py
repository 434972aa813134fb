"""Unit tests for the white-list and insurance registry client."""

import httpx
import pytest

from qualification.core.exceptions import APIClientError, APITimeoutError
from qualification.services.workflow.gateway import SupplierDataGateway
from qualification.clients.registry_client import RegistryClient


def _client(handler, max_retries=3):
    return RegistryClient(
        base_url="https://registry.example.com/api/",
        api_key="secret",
        max_retries=max_retries,
        retry_delay=0,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_lookup_white_list():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"found": True, "reference": "WL-2024-118", "valid_until": "2026-12-31"})

    lookup = await _client(handler).lookup_white_list("01234567890")

    assert lookup.found is True
    assert lookup.reference == "WL-2024-118"
    assert seen[0].url.path == "/api/lookups/white-list"
    assert seen[0].url.params["fiscal_code"] == "01234567890"
    assert seen[0].headers["Authorization"] == "Bearer secret"


@pytest.mark.asyncio
async def test_server_errors_are_retried():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        if len(attempts) < 3:
            return httpx.Response(503)
        return httpx.Response(200, json={"found": False})

    lookup = await _client(handler).lookup_insurance("01234567890")

    assert lookup.found is False
    assert len(attempts) == 3


@pytest.mark.asyncio
async def test_client_errors_are_not_retried():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        return httpx.Response(401, json={"detail": "bad key"})

    with pytest.raises(APIClientError):
        await _client(handler).lookup_insurance("01234567890")

    assert len(attempts) == 1


@pytest.mark.asyncio
async def test_timeout_after_retries():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(APITimeoutError):
        await _client(handler, max_retries=2).lookup_white_list("01234567890")


@pytest.mark.asyncio
async def test_unexpected_body():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": "ok"})

    with pytest.raises(APIClientError):
        await _client(handler).lookup_white_list("01234567890")


@pytest.mark.asyncio
async def test_gateway_without_registry():
    gateway = SupplierDataGateway(registry_client=None)

    assert gateway.registry_enabled is False
    assert await gateway.white_list_registered("01234567890") is None
    assert await gateway.insurance_registered("01234567890") is None
