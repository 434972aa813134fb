"""HTTP client for the white-list and insurance registry lookups."""

import asyncio
from typing import Any, Dict, Optional

import httpx
from httpx import TimeoutException, HTTPStatusError
from pydantic import BaseModel, ValidationError as PydanticValidationError

from qualification.core.config import settings
from qualification.core.exceptions import APIClientError, APITimeoutError
from qualification.utils.logging import get_logger

LOGGER = get_logger(__name__)

WHITE_LIST_REGISTRY = "white-list"
INSURANCE_REGISTRY = "insurance"


class RegistryLookup(BaseModel):
    """Registry answer for one supplier."""
    found: bool
    reference: Optional[str] = None
    valid_until: Optional[str] = None


class RegistryClient:
    """Looks suppliers up in external registries.

    ``GET {base_url}/lookups/{registry}?fiscal_code=...`` is expected to
    return a ``RegistryLookup`` JSON body. Server errors and timeouts are
    retried with exponential backoff; client errors are not.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: int = 30,
        max_retries: int = 3,
        retry_delay: float = 1,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.transport = transport
        self.logger = LOGGER

    async def lookup_white_list(self, fiscal_code: str) -> RegistryLookup:
        return await self._lookup(WHITE_LIST_REGISTRY, fiscal_code)

    async def lookup_insurance(self, fiscal_code: str) -> RegistryLookup:
        return await self._lookup(INSURANCE_REGISTRY, fiscal_code)

    async def _lookup(self, registry: str, fiscal_code: str) -> RegistryLookup:
        body = await self._get(f"/lookups/{registry}", {"fiscal_code": fiscal_code})
        try:
            return RegistryLookup.model_validate(body)
        except PydanticValidationError as e:
            raise APIClientError(f"Unexpected {registry} registry response: {e}", original_error=e)

    async def _get(self, endpoint: str, params: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{endpoint}"
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        self.logger.debug(f"Calling registry: {url}", extra={"timeout": self.timeout})

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            for attempt in range(self.max_retries):
                last_attempt = attempt == self.max_retries - 1
                try:
                    response = await client.get(url, headers=headers, params=params)
                    response.raise_for_status()
                    return response.json()

                except HTTPStatusError as e:
                    status_code = e.response.status_code
                    self.logger.warning(
                        f"Registry HTTP error (Attempt {attempt + 1}/{self.max_retries})",
                        extra={"url": url, "status_code": status_code},
                    )
                    # 4xx other than rate limiting will not improve on retry
                    if 400 <= status_code < 500 and status_code != 429:
                        raise APIClientError(f"Registry client error {status_code}", original_error=e) from e
                    if last_attempt:
                        raise APIClientError(f"Registry HTTP error {status_code} after retries", original_error=e) from e

                except TimeoutException as e:
                    self.logger.warning(
                        f"Registry timeout (Attempt {attempt + 1}/{self.max_retries})",
                        extra={"url": url},
                    )
                    if last_attempt:
                        raise APITimeoutError(
                            f"Registry timeout after {self.max_retries} attempts", original_error=e
                        ) from e

                except (httpx.RequestError, ValueError) as e:
                    self.logger.warning(
                        f"Registry request failed (Attempt {attempt + 1}/{self.max_retries})",
                        extra={"url": url, "error": str(e)},
                    )
                    if last_attempt:
                        raise APIClientError(f"Registry request failed: {e}", original_error=e) from e

                await asyncio.sleep(self.retry_delay * (2 ** attempt))

        raise APIClientError(f"Failed to call registry {url} after {self.max_retries} attempts")


def get_registry_client() -> Optional[RegistryClient]:
    """Configured registry client, or None when no registry URL is set."""
    if not settings.registry.enabled:
        return None
    return RegistryClient(
        base_url=settings.registry.url,
        api_key=settings.registry.api_key,
        timeout=settings.http_timeout,
    )
