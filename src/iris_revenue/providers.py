"""Interfaces of the collaborators the core depends on."""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from iris_revenue.models import BillableEntity, KpiField, ViewMode, YearlyKPIs


@dataclass(frozen=True)
class MutationResult:
    """Outcome reported by the mutation service."""

    success: bool
    message: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MutationResult":
        return cls(success=bool(data.get("success")), message=str(data.get("message") or ""))


class DataProvider(Protocol):
    """Delivers a year's entities and KPI records. Raises ProviderError on failure."""

    async def fetch_entities(self, year: int) -> Sequence[BillableEntity]: ...

    async def fetch_kpis(self, year: int) -> YearlyKPIs: ...


class MutationService(Protocol):
    """Persists manual KPI values and prior-year consumption."""

    async def update_kpi_field(
        self, year: int, month: str, field: KpiField, value: float
    ) -> MutationResult: ...

    async def update_consumption(
        self, entity_id: int, target_year: int, amount: str, unit: ViewMode
    ) -> MutationResult: ...
