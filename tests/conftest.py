"""Pytest configuration and fixtures."""

import asyncio
import os
from collections.abc import Sequence

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("IRIS_API_URL", "http://localhost:3005/api")
os.environ.setdefault("DEFAULT_YEAR", "2025")
os.environ.setdefault("CACHE_MAX_AGE_SECONDS", "1800")

from iris_revenue.errors import ProviderError  # noqa: E402
from iris_revenue.models import (  # noqa: E402
    BillableEntity,
    EntityCategory,
    EntityOrigin,
    KpiField,
    MonthlyKPI,
    ViewMode,
    YearlyKPIs,
)
from iris_revenue.providers import MutationResult  # noqa: E402


def make_kpis(year: int, targets: dict[str, float] | None = None) -> YearlyKPIs:
    """Twelve KPI records with optional targets, no finals and zero totals."""
    targets = targets or {}
    months = []
    for number in range(1, 13):
        key = f"{year}-{number:02d}"
        target = targets.get(key, 0.0)
        months.append(
            MonthlyKPI(month=key, target_revenue=target, total_revenue=0.0, target_total_diff=-target)
        )
    return YearlyKPIs(year=year, months=tuple(months))


class FakeProvider:
    """In-memory data provider that counts calls and can hold fetches open."""

    def __init__(self, entities: dict[int, Sequence[BillableEntity]] | None = None):
        self.entities = entities or {}
        self.kpis: dict[int, YearlyKPIs] = {}
        self.calls: list[tuple[str, int]] = []
        self.failures: dict[tuple[str, int], Exception] = {}
        self.gates: dict[tuple[str, int], asyncio.Event] = {}

    def hold(self, kind: str, year: int) -> asyncio.Event:
        gate = asyncio.Event()
        self.gates[(kind, year)] = gate
        return gate

    async def _wait(self, kind: str, year: int) -> None:
        self.calls.append((kind, year))
        gate = self.gates.get((kind, year))
        if gate is not None:
            await gate.wait()
        error = self.failures.get((kind, year))
        if error is not None:
            raise error

    def count(self, kind: str, year: int) -> int:
        return self.calls.count((kind, year))

    async def fetch_entities(self, year: int) -> Sequence[BillableEntity]:
        await self._wait("entities", year)
        return list(self.entities.get(year, []))

    async def fetch_kpis(self, year: int) -> YearlyKPIs:
        await self._wait("kpis", year)
        return self.kpis.get(year) or make_kpis(year)


class FakeMutations:
    """In-memory mutation service recording every call."""

    def __init__(self, result: MutationResult | None = None):
        self.result = result or MutationResult(success=True, message="ok")
        self.kpi_calls: list[tuple[int, str, KpiField, float]] = []
        self.consumption_calls: list[tuple[int, int, str, ViewMode]] = []

    async def update_kpi_field(self, year, month, field, value):
        self.kpi_calls.append((year, month, field, value))
        return self.result

    async def update_consumption(self, entity_id, target_year, amount, unit):
        self.consumption_calls.append((entity_id, target_year, amount, unit))
        return self.result


@pytest.fixture
def fixed_price_entity():
    """Fixed-price project with a 10k budget and 3k revenue in January."""
    return BillableEntity(
        id=1,
        name="Website relaunch",
        company_name="Acme BV",
        category=EntityCategory.FIXED_PRICE,
        total_budget_excl_vat=10000.0,
        prior_year_consumption=1500.0,
        monthly_hours={"2025-01": 30.0},
        monthly_revenue={"2025-01": 3000.0},
    )


@pytest.fixture
def entities(fixed_price_entity):
    """A small mixed portfolio for 2025."""
    return [
        fixed_price_entity,
        BillableEntity(
            id=2,
            name="Support retainer",
            company_name="Beta Holding",
            category=EntityCategory.CONTRACT,
            remaining_budget=4200.0,
            prior_year_consumption=800.0,
            monthly_hours={"2025-01": 10.0, "2025-02": 12.5},
            monthly_revenue={"2025-01": 1000.0, "2025-02": 1250.0},
        ),
        BillableEntity(
            id=3,
            name="Data migration",
            company_name="Ćelik Industries",
            category=EntityCategory.TIME_AND_MATERIALS,
            origin=EntityOrigin.OFFER,
            total_budget_excl_vat=5000.0,
            monthly_hours={"2025-02": 8.0, "2025-03": -2.0},
            monthly_revenue={"2025-02": 800.0, "2025-03": -200.0},
        ),
    ]


@pytest.fixture
def provider(entities):
    return FakeProvider({2025: entities, 2024: entities[:1]})


@pytest.fixture
def mutations():
    return FakeMutations()


@pytest.fixture
def provider_error():
    return ProviderError("API error: 503", status_code=503)


@pytest.fixture
def mock_revenue_response():
    """Revenue API payload using the wire names."""
    return [
        {
            "id": 5544,
            "name": "Brand identity (5544)",
            "companyName": "Acme BV",
            "type": "Vaste prijs",
            "herkomst": "Project",
            "totalexclvat": 12000,
            "previousYearBudgetUsed": 2000,
            "monthlyHours": {"2025-01": 12.5, "2025-02": 4},
            "monthlyRevenue": {"2025-01": 1250, "2025-02": 400},
            "overBudgetMonths": {"2025-02": True},
            "syncStatus": "synced",
        },
        {
            "id": 5801,
            "name": "Offer: analytics",
            "companyName": None,
            "type": "Nacalculatie",
            "herkomst": "Offerte",
            "monthlyHours": {},
            "monthlyRevenue": {},
        },
    ]


@pytest.fixture
def mock_kpi_response():
    """KPI API payload for 2025 with two months filled in."""
    return {
        "year": 2025,
        "months": [
            {
                "month": "2025-01",
                "targetRevenue": 1000,
                "finalRevenue": 1200,
                "totalRevenue": 900,
                "targetFinalDiff": 200,
                "targetTotalDiff": -100,
            },
            {
                "month": "2025-02",
                "targetRevenue": 2000,
                "finalRevenue": None,
                "totalRevenue": 2500,
                "targetTotalDiff": 500,
            },
        ],
    }
