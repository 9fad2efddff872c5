"""HTTP client for the revenue API (data provider and mutation service)."""

import asyncio
from collections.abc import Sequence
from typing import Any

import httpx
import structlog

from iris_revenue.config import get_settings
from iris_revenue.errors import MutationError, ProviderError
from iris_revenue.models import BillableEntity, KpiField, ViewMode, YearlyKPIs, validate_month_key
from iris_revenue.providers import MutationResult

logger = structlog.get_logger(__name__)


class RevenueAPIClient:
    """Async client for the revenue API.

    Implements both ``DataProvider`` and ``MutationService``. Transport
    failures are retried with exponential backoff before giving up.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.iris_api_url).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.iris_api_timeout
        self._max_retries = max_retries if max_retries is not None else settings.iris_api_max_retries

        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
                headers={"Content-Type": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "RevenueAPIClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        retry_count: int = 0,
    ) -> Any:
        """Make an API request with retry logic."""
        client = await self._get_client()

        try:
            response = await client.request(method=method, url=path, params=params, json=json)

            if response.status_code >= 400:
                try:
                    error_detail = response.json() if response.content else {}
                except ValueError:
                    error_detail = {"raw": response.text[:500] if response.text else "empty response"}
                raise ProviderError(
                    f"API error: {response.status_code}",
                    status_code=response.status_code,
                    details=error_detail,
                )

            if not response.content:
                return {}
            try:
                return response.json()
            except ValueError as e:
                raise ProviderError(
                    f"Invalid JSON response from {path}",
                    status_code=response.status_code,
                    details={"raw": response.text[:500] if response.text else ""},
                ) from e

        except httpx.RequestError as e:
            if retry_count < self._max_retries:
                logger.warning("request_retry", path=path, attempt=retry_count + 1, error=str(e))
                await asyncio.sleep(2**retry_count)
                return await self._request(method, path, params, json, retry_count + 1)
            raise ProviderError(f"Request failed: {e}") from e

    # === Data provider ===

    async def fetch_entities(self, year: int) -> Sequence[BillableEntity]:
        """Fetch the billable entities with their monthly series for ``year``."""
        data = await self._request("GET", "/revenue", params={"year": year})
        if not isinstance(data, list):
            raise ProviderError("Invalid revenue response format", details=data)
        try:
            entities = [BillableEntity.from_dict(item) for item in data]
        except (KeyError, TypeError, ValueError) as e:
            raise ProviderError(f"Invalid revenue entity: {e}") from e
        logger.info("entities_fetched", year=year, count=len(entities))
        return entities

    async def fetch_kpis(self, year: int) -> YearlyKPIs:
        """Fetch the monthly KPI records for ``year``."""
        data = await self._request("GET", "/kpi", params={"year": year})
        if not isinstance(data, dict):
            raise ProviderError("Invalid KPI response format", details=data)
        try:
            kpis = YearlyKPIs.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise ProviderError(f"Invalid KPI record: {e}") from e
        if kpis.year != year:
            raise ProviderError(f"KPI response is for {kpis.year}, requested {year}")
        logger.info("kpis_fetched", year=year)
        return kpis

    # === Mutation service ===

    async def _mutate(self, path: str, payload: dict[str, Any]) -> MutationResult:
        try:
            data = await self._request("POST", path, json=payload)
        except ProviderError as e:
            message = e.message
            if isinstance(e.details, dict) and e.details.get("message"):
                message = str(e.details["message"])
            raise MutationError(message, status_code=e.status_code, details=e.details) from e
        if not isinstance(data, dict):
            raise MutationError("Invalid mutation response format", details=data)
        return MutationResult.from_dict(data)

    async def update_kpi_field(
        self, year: int, month: str, field: KpiField, value: float
    ) -> MutationResult:
        """Persist one manual KPI value (target or final revenue)."""
        validate_month_key(month)
        return await self._mutate(
            "/kpi/update",
            {"year": year, "month": month, "field": KpiField(field).value, "value": value},
        )

    async def update_consumption(
        self, entity_id: int, target_year: int, amount: str, unit: ViewMode
    ) -> MutationResult:
        """Persist the prior-year consumption of an entity for ``target_year``."""
        return await self._mutate(
            "/manual/project-consumption",
            {
                "projectId": entity_id,
                "targetYear": target_year,
                "consumptionAmount": amount,
                "viewMode": ViewMode(unit).value,
            },
        )
