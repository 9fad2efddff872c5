"""Aggregation engine: derives report figures from entities and KPI records.

All functions here are pure. They never mutate their inputs and never cache
their output, so calling them repeatedly with the same arguments yields the
same result. View mode and the inclusion set are explicit parameters.

Monthly totals and prior-year consumption are two separate totals. The grand
total is the sum of monthly totals only.
"""

import unicodedata
from collections.abc import Collection, Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from enum import Enum

from iris_revenue.models import (
    BillableEntity,
    KpiField,
    MonthlyKPI,
    ViewMode,
    YearlyKPIs,
    validate_month_key,
)


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class SortColumn(str, Enum):
    """Named report columns. A ``YYYY-MM`` key sorts by that month's value."""

    COMPANY = "company"
    NAME = "name"
    CATEGORY = "type"
    BUDGET = "budget"
    PRIOR_YEAR = "previousYearBudget"
    REMAINING = "remaining"
    TOTAL = "total"


class ValueUnit(str, Enum):
    """Display unit tied to a view mode."""

    CURRENCY = "currency"
    HOURS = "hours"

    @property
    def decimals(self) -> int:
        return 0 if self is ValueUnit.CURRENCY else 1


def month_keys(year: int) -> list[str]:
    """The twelve month keys of ``year``: ``{year}-01`` through ``{year}-12``."""
    if not 1000 <= year <= 9999:
        raise ValueError(f"Invalid year: {year!r}")
    return [f"{year}-{month:02d}" for month in range(1, 13)]


def select_series(entity: BillableEntity, view_mode: ViewMode) -> Mapping[str, float]:
    """Return the hours or revenue series of ``entity``."""
    if ViewMode(view_mode) is ViewMode.HOURS:
        return entity.monthly_hours
    return entity.monthly_revenue


def monthly_total(
    entities: Iterable[BillableEntity],
    month: str,
    view_mode: ViewMode,
    included_ids: Collection[int],
) -> float:
    """Sum of ``month`` over the included entities. Missing months count as 0."""
    validate_month_key(month)
    return sum(
        (select_series(entity, view_mode).get(month, 0.0) for entity in entities if entity.id in included_ids),
        0.0,
    )


def monthly_totals(
    entities: Sequence[BillableEntity],
    months: Sequence[str],
    view_mode: ViewMode,
    included_ids: Collection[int],
) -> dict[str, float]:
    return {month: monthly_total(entities, month, view_mode, included_ids) for month in months}


def grand_total(
    entities: Sequence[BillableEntity],
    months: Sequence[str],
    view_mode: ViewMode,
    included_ids: Collection[int],
) -> float:
    """Sum of monthly totals over ``months``. Prior-year consumption is not part of it."""
    return sum(monthly_totals(entities, months, view_mode, included_ids).values(), 0.0)


def prior_year_total(
    entities: Iterable[BillableEntity],
    view_mode: ViewMode,
    included_ids: Collection[int],
) -> float:
    """Included prior-year consumption, reported next to the grand total.

    The figure is only reported in revenue view; in hours view it is 0.
    """
    if ViewMode(view_mode) is not ViewMode.REVENUE:
        return 0.0
    return sum(
        (entity.prior_year_consumption or 0.0 for entity in entities if entity.id in included_ids),
        0.0,
    )


def row_total(entity: BillableEntity, months: Sequence[str], view_mode: ViewMode) -> float:
    """Sum of the entity's own series over ``months``, ignoring inclusion."""
    series = select_series(entity, view_mode)
    return sum((series.get(validate_month_key(month), 0.0) for month in months), 0.0)


def remaining(entity: BillableEntity, total: float) -> float | None:
    """Remaining budget of a row.

    Fixed-price projects and offers derive it from their budget; any other
    category passes through whatever remaining figure the provider supplied.
    """
    if entity.is_budget_bound:
        return (entity.total_budget_excl_vat or 0.0) - total
    return entity.remaining_budget


def budget_total(entities: Iterable[BillableEntity], included_ids: Collection[int]) -> float:
    """Sum of budgets of the included budget-bound entities."""
    return sum(
        (
            entity.total_budget_excl_vat or 0.0
            for entity in entities
            if entity.is_budget_bound and entity.id in included_ids
        ),
        0.0,
    )


def kpi_diffs(record: MonthlyKPI, month_total: float) -> MonthlyKPI:
    """Return ``record`` with its total and both differences recomputed."""
    final = record.final_revenue
    return replace(
        record,
        total_revenue=month_total,
        target_total_diff=month_total - record.target_revenue,
        target_final_diff=final - record.target_revenue if final is not None else None,
    )


def apply_kpi_field(record: MonthlyKPI, kpi_field: KpiField, value: float) -> MonthlyKPI:
    """Set one manual field and keep the derived differences consistent."""
    if KpiField(kpi_field) is KpiField.TARGET_REVENUE:
        updated = replace(record, target_revenue=value)
    else:
        updated = replace(record, final_revenue=value)
    return kpi_diffs(updated, updated.total_revenue)


@dataclass(frozen=True)
class KpiTotals:
    """Year totals of the KPI rows."""

    target: float
    final: float
    target_final_diff: float
    target_total_diff: float


def kpi_totals(kpis: YearlyKPIs, revenue_grand_total: float) -> KpiTotals:
    """Totals over the year. Months without a final revenue count as 0."""
    target = sum((m.target_revenue for m in kpis.months), 0.0)
    final = sum((m.final_revenue or 0.0 for m in kpis.months), 0.0)
    return KpiTotals(
        target=target,
        final=final,
        target_final_diff=final - target,
        target_total_diff=revenue_grand_total - target,
    )


def _text_key(value: str | None) -> tuple[str, str]:
    # Accent- and case-insensitive primary key, raw text as tiebreaker.
    text = value or ""
    folded = unicodedata.normalize("NFKD", text)
    folded = "".join(ch for ch in folded if not unicodedata.combining(ch)).casefold()
    return folded, text


def sort_entities(
    entities: Sequence[BillableEntity],
    column: SortColumn | str,
    direction: SortDirection | str = SortDirection.ASC,
    view_mode: ViewMode = ViewMode.REVENUE,
    months: Sequence[str] | None = None,
) -> list[BillableEntity]:
    """Return a stably sorted copy of ``entities``.

    Equal keys keep their input order in both directions. ``months`` is
    required when sorting by row total or remaining budget.
    """
    reverse = SortDirection(direction) is SortDirection.DESC

    if isinstance(column, str) and not isinstance(column, SortColumn):
        try:
            column = SortColumn(column)
        except ValueError:
            month = validate_month_key(column)
            return sorted(
                entities,
                key=lambda e: select_series(e, view_mode).get(month, 0.0),
                reverse=reverse,
            )

    if column in (SortColumn.TOTAL, SortColumn.REMAINING) and months is None:
        raise ValueError(f"Sorting by {column.value!r} needs the report months")

    key_funcs = {
        SortColumn.COMPANY: lambda e: _text_key(e.company_name),
        SortColumn.NAME: lambda e: _text_key(e.name),
        SortColumn.CATEGORY: lambda e: _text_key(e.category.value if e.category else None),
        SortColumn.BUDGET: lambda e: e.total_budget_excl_vat or 0.0,
        SortColumn.PRIOR_YEAR: lambda e: e.prior_year_consumption or 0.0,
        SortColumn.REMAINING: lambda e: remaining(e, row_total(e, months, view_mode)) or 0.0,
        SortColumn.TOTAL: lambda e: row_total(e, months, view_mode),
    }
    return sorted(entities, key=key_funcs[column], reverse=reverse)


def include_all(entities: Iterable[BillableEntity]) -> frozenset[int]:
    """Default inclusion set: every entity counts into the totals."""
    return frozenset(entity.id for entity in entities)


def toggle_inclusion(included_ids: Collection[int], entity_id: int) -> frozenset[int]:
    """Return a new inclusion set with ``entity_id`` flipped."""
    current = set(included_ids)
    current.symmetric_difference_update({entity_id})
    return frozenset(current)


def entities_with_hours(entities: Iterable[BillableEntity], year: int) -> list[BillableEntity]:
    """Entities that booked a positive number of hours in ``year``."""
    months = month_keys(year)
    return [entity for entity in entities if row_total(entity, months, ViewMode.HOURS) > 0]


def value_unit(view_mode: ViewMode) -> ValueUnit:
    return ValueUnit.HOURS if ViewMode(view_mode) is ViewMode.HOURS else ValueUnit.CURRENCY


def format_value(
    value: float | None,
    view_mode: ViewMode,
    prefix: str = "",
    currency_symbol: str = "€",
) -> str:
    """Render a figure in the unit of ``view_mode``; missing values render as ``-``."""
    if value is None:
        return "-"
    unit = value_unit(view_mode)
    if unit is ValueUnit.HOURS:
        return f"{prefix}{value:.{unit.decimals}f}"
    # Dutch grouping: "." for thousands
    grouped = f"{round(value):,d}".replace(",", ".")
    return f"{prefix}{currency_symbol} {grouped}"


def format_diff(value: float | None, view_mode: ViewMode, currency_symbol: str = "€") -> str:
    if value is None:
        return "-"
    return format_value(value, view_mode, prefix="+" if value > 0 else "", currency_symbol=currency_symbol)


@dataclass(frozen=True)
class ReportRow:
    entity: BillableEntity
    total: float
    remaining: float | None
    included: bool
    over_budget_months: frozenset[str] = frozenset()


@dataclass(frozen=True)
class RevenueReport:
    """Display-ready figures for one year in one view mode."""

    year: int
    view_mode: ViewMode
    months: tuple[str, ...]
    rows: tuple[ReportRow, ...]
    monthly_totals: dict[str, float]
    grand_total: float
    prior_year_total: float
    budget_total: float
    total_remaining: float
    kpi_months: tuple[MonthlyKPI, ...] = ()
    kpi_totals: KpiTotals | None = None
    unit: ValueUnit = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "unit", value_unit(self.view_mode))


def build_report(
    entities: Sequence[BillableEntity],
    year: int,
    view_mode: ViewMode,
    included_ids: Collection[int],
    kpis: YearlyKPIs | None = None,
    sort_column: SortColumn | str = SortColumn.NAME,
    sort_direction: SortDirection | str = SortDirection.ASC,
) -> RevenueReport:
    """Assemble every derived figure of the report.

    KPI rows are always compared against revenue totals of the included
    entities, whatever the view mode of the entity rows.
    """
    view_mode = ViewMode(view_mode)
    months = month_keys(year)
    ordered = sort_entities(entities, sort_column, sort_direction, view_mode, months)

    rows = []
    for entity in ordered:
        total = row_total(entity, months, view_mode)
        rows.append(
            ReportRow(
                entity=entity,
                total=total,
                remaining=remaining(entity, total),
                included=entity.id in included_ids,
                over_budget_months=frozenset(
                    m for m in months if entity.over_budget_months.get(m)
                ),
            )
        )

    totals = monthly_totals(entities, months, view_mode, included_ids)
    overall = sum(totals.values(), 0.0)
    budgets = budget_total(entities, included_ids)

    kpi_months: tuple[MonthlyKPI, ...] = ()
    year_kpi_totals = None
    if kpis is not None:
        revenue_totals = monthly_totals(entities, months, ViewMode.REVENUE, included_ids)
        kpi_months = tuple(
            kpi_diffs(record, revenue_totals.get(record.month, 0.0)) for record in kpis.months
        )
        year_kpi_totals = kpi_totals(kpis, sum(revenue_totals.values(), 0.0))

    return RevenueReport(
        year=year,
        view_mode=view_mode,
        months=tuple(months),
        rows=tuple(rows),
        monthly_totals=totals,
        grand_total=overall,
        prior_year_total=prior_year_total(entities, view_mode, included_ids),
        budget_total=budgets,
        total_remaining=budgets - overall,
        kpi_months=kpi_months,
        kpi_totals=year_kpi_totals,
    )
