"""Entity model for billable work items and monthly KPI records.

These are plain data containers. Provider payloads are parsed here, at the
boundary, using the wire names of the revenue API (``totalexclvat``,
``previousYearBudgetUsed``, ``herkomst``...). Everything downstream works on
the typed dataclasses.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

MONTH_KEY_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


class ViewMode(str, Enum):
    """Unit the report is aggregated and displayed in."""

    HOURS = "hours"
    REVENUE = "revenue"


class DataKind(str, Enum):
    """Kinds of payload cached per year."""

    ENTITIES = "entities"
    KPIS = "kpis"


class KpiField(str, Enum):
    """Manually maintained KPI fields."""

    TARGET_REVENUE = "targetRevenue"
    FINAL_REVENUE = "finalRevenue"


class EntityCategory(str, Enum):
    """Billing category of a project or offer."""

    FIXED_PRICE = "Vaste prijs"
    TIME_AND_MATERIALS = "Nacalculatie"
    CONTRACT = "Contract"
    INTERNAL = "Intern"
    INCORRECT_TAG = "Incorrecte tag"

    @classmethod
    def parse(cls, value: Any) -> "EntityCategory | None":
        """Resolve a wire value or English alias to a category."""
        if value is None or value == "":
            return None
        if isinstance(value, cls):
            return value
        text = str(value)
        for member in cls:
            if text == member.value or text.lower() == member.value.lower():
                return member
        alias = _CATEGORY_ALIASES.get(text.replace("_", "").replace(" ", "").lower())
        if alias is None:
            raise ValueError(f"Unknown entity category: {value!r}")
        return alias


_CATEGORY_ALIASES: dict[str, EntityCategory] = {
    "fixedprice": EntityCategory.FIXED_PRICE,
    "timeandmaterials": EntityCategory.TIME_AND_MATERIALS,
    "contract": EntityCategory.CONTRACT,
    "internal": EntityCategory.INTERNAL,
    "incorrecttag": EntityCategory.INCORRECT_TAG,
}


class EntityOrigin(str, Enum):
    """Whether the entity is a running project or an offer."""

    PROJECT = "Project"
    OFFER = "Offerte"

    @classmethod
    def parse(cls, value: Any) -> "EntityOrigin":
        if value is None or value == "":
            return cls.PROJECT
        if isinstance(value, cls):
            return value
        text = str(value).lower()
        if text in ("offerte", "offer"):
            return cls.OFFER
        if text == "project":
            return cls.PROJECT
        raise ValueError(f"Unknown entity origin: {value!r}")


class SyncStatus(str, Enum):
    """Provenance tag, used for display coloring only."""

    SYNCED = "synced"
    UNSYNCED = "unsynced"
    PENDING = "pending"


def validate_month_key(month: str) -> str:
    """Return ``month`` if it is a ``YYYY-MM`` key, else raise ValueError."""
    if not isinstance(month, str) or not MONTH_KEY_PATTERN.match(month):
        raise ValueError(f"Invalid month key: {month!r} (expected YYYY-MM)")
    return month


def _optional_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    return float(value)


def _series(raw: Any) -> dict[str, float]:
    if not raw:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f"Invalid monthly series: {raw!r}")
    return {validate_month_key(k): float(v) for k, v in raw.items() if v is not None}


@dataclass(frozen=True)
class BillableEntity:
    """One project or offer with its budget fields and monthly series."""

    id: int
    name: str
    company_name: str | None = None
    category: EntityCategory | None = None
    origin: EntityOrigin = EntityOrigin.PROJECT
    total_budget_excl_vat: float | None = None
    prior_year_consumption: float | None = None
    remaining_budget: float | None = None
    monthly_hours: Mapping[str, float] = field(default_factory=dict)
    monthly_revenue: Mapping[str, float] = field(default_factory=dict)
    over_budget_months: Mapping[str, bool] = field(default_factory=dict)
    sync_status: SyncStatus | None = None

    def __post_init__(self):
        # Read-only: entities are shared through the cache.
        for name in ("monthly_hours", "monthly_revenue", "over_budget_months"):
            value = getattr(self, name)
            if not isinstance(value, MappingProxyType):
                object.__setattr__(self, name, MappingProxyType(dict(value)))

    @property
    def is_budget_bound(self) -> bool:
        """Fixed-price projects and offers derive remaining budget from their own total."""
        return self.category is EntityCategory.FIXED_PRICE or self.origin is EntityOrigin.OFFER

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BillableEntity":
        """Parse one entity from a provider payload."""
        over_budget = data.get("overBudgetMonths") or {}
        status = data.get("syncStatus")
        return cls(
            id=int(data["id"]),
            name=str(data.get("name") or ""),
            company_name=data.get("companyName"),
            category=EntityCategory.parse(data.get("type")),
            origin=EntityOrigin.parse(data.get("herkomst")),
            total_budget_excl_vat=_optional_float(data.get("totalexclvat")),
            prior_year_consumption=_optional_float(data.get("previousYearBudgetUsed")),
            remaining_budget=_optional_float(data.get("remainingBudget")),
            monthly_hours=_series(data.get("monthlyHours")),
            monthly_revenue=_series(data.get("monthlyRevenue")),
            over_budget_months={
                validate_month_key(k): bool(v) for k, v in over_budget.items()
            },
            sync_status=SyncStatus(status) if status else None,
        )


@dataclass(frozen=True)
class MonthlyKPI:
    """One month's manually set target/final revenue plus derived figures."""

    month: str
    target_revenue: float
    total_revenue: float
    target_total_diff: float
    final_revenue: float | None = None
    target_final_diff: float | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MonthlyKPI":
        target = _optional_float(data.get("targetRevenue")) or 0.0
        final = _optional_float(data.get("finalRevenue"))
        total = _optional_float(data.get("totalRevenue")) or 0.0
        return cls(
            month=validate_month_key(data["month"]),
            target_revenue=target,
            final_revenue=final,
            total_revenue=total,
            target_final_diff=final - target if final is not None else None,
            target_total_diff=total - target,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "month": self.month,
            "targetRevenue": self.target_revenue,
            "finalRevenue": self.final_revenue,
            "totalRevenue": self.total_revenue,
            "targetFinalDiff": self.target_final_diff,
            "targetTotalDiff": self.target_total_diff,
        }


@dataclass(frozen=True)
class YearlyKPIs:
    """The twelve monthly KPI records of a year, in calendar order."""

    year: int
    months: tuple[MonthlyKPI, ...]

    def get(self, month: str) -> MonthlyKPI | None:
        for record in self.months:
            if record.month == month:
                return record
        return None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "YearlyKPIs":
        """Parse a provider payload, filling months the provider left out with zeros."""
        year = int(data["year"])
        parsed = {}
        for raw in data.get("months") or []:
            record = MonthlyKPI.from_dict(raw)
            if not record.month.startswith(f"{year}-"):
                raise ValueError(f"KPI month {record.month} is outside year {year}")
            parsed[record.month] = record

        months = []
        for number in range(1, 13):
            key = f"{year}-{number:02d}"
            months.append(
                parsed.get(key)
                or MonthlyKPI(month=key, target_revenue=0.0, total_revenue=0.0, target_total_diff=0.0)
            )
        return cls(year=year, months=tuple(months))

    def to_dict(self) -> dict[str, Any]:
        return {"year": self.year, "months": [m.to_dict() for m in self.months]}
