"""Over-budget month detection for budget-bound entities.

The revenue API normally ships ``overBudgetMonths`` already computed. This
module holds the same rule as a pure function so providers and tests can
derive the flags from budget lines and their monthly revenue.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum

from iris_revenue.models import validate_month_key


class AllocationMode(str, Enum):
    """How revenue against a capped budget is recognized."""

    PROJECT_MAX = "projectMax"  # cap applies to the whole project budget
    LINE_MAX = "lineMax"  # cap applies to every budget line separately


@dataclass(frozen=True)
class BudgetLine:
    """One budget line: budgeted hours at a selling price, plus booked revenue per month."""

    line_id: int
    budget_hours: float
    selling_price: float
    monthly_revenue: Mapping[str, float] = field(default_factory=dict)

    @property
    def budget(self) -> float:
        return max(self.budget_hours, 0.0) * max(self.selling_price, 0.0)


def over_budget_months(
    lines: Sequence[BudgetLine],
    months: Sequence[str],
    mode: AllocationMode,
) -> dict[str, bool]:
    """Flag every month in which cumulative revenue has passed the cap.

    Months are walked in chronological order. Once a cap is exceeded, every
    later month with revenue on the capped scope stays flagged.
    """
    mode = AllocationMode(mode)
    ordered = sorted(validate_month_key(m) for m in months)
    flags = {month: False for month in ordered}

    if mode is AllocationMode.PROJECT_MAX:
        cap = sum((line.budget for line in lines), 0.0)
        cumulative = 0.0
        for month in ordered:
            booked = sum((line.monthly_revenue.get(month, 0.0) for line in lines), 0.0)
            cumulative += booked
            flags[month] = booked != 0 and cumulative > cap
        return flags

    for line in lines:
        cumulative = 0.0
        for month in ordered:
            booked = line.monthly_revenue.get(month, 0.0)
            cumulative += booked
            if booked != 0 and cumulative > line.budget:
                flags[month] = True
    return flags
