"""Iris Revenue - aggregation and caching core for the revenue report."""

__version__ = "0.1.0"

from iris_revenue.aggregation import (
    RevenueReport,
    SortColumn,
    SortDirection,
    build_report,
    grand_total,
    kpi_diffs,
    monthly_total,
    remaining,
    row_total,
    select_series,
    sort_entities,
)
from iris_revenue.allocation import AllocationMode, BudgetLine, over_budget_months
from iris_revenue.api import RevenueAPIClient
from iris_revenue.cache import CacheEntry, CacheState, CacheStore
from iris_revenue.config import configure_logging, get_settings
from iris_revenue.edits import EditCoordinator
from iris_revenue.errors import IrisRevenueError, MutationError, ProviderError, ValidationError
from iris_revenue.models import (
    BillableEntity,
    DataKind,
    EntityCategory,
    EntityOrigin,
    KpiField,
    MonthlyKPI,
    SyncStatus,
    ViewMode,
    YearlyKPIs,
)
from iris_revenue.session import ReportSession

__all__ = [
    # Version
    "__version__",
    # Models
    "BillableEntity",
    "MonthlyKPI",
    "YearlyKPIs",
    "EntityCategory",
    "EntityOrigin",
    "SyncStatus",
    "ViewMode",
    "DataKind",
    "KpiField",
    # Aggregation
    "select_series",
    "monthly_total",
    "grand_total",
    "row_total",
    "remaining",
    "kpi_diffs",
    "sort_entities",
    "build_report",
    "RevenueReport",
    "SortColumn",
    "SortDirection",
    # Allocation
    "AllocationMode",
    "BudgetLine",
    "over_budget_months",
    # Cache & edits
    "CacheStore",
    "CacheEntry",
    "CacheState",
    "EditCoordinator",
    "ReportSession",
    # API
    "RevenueAPIClient",
    # Errors
    "IrisRevenueError",
    "ValidationError",
    "ProviderError",
    "MutationError",
    # Config
    "get_settings",
    "configure_logging",
]
