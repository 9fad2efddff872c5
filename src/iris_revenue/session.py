"""Report session: selected year, view state and coordinated refreshes.

The session is what a page talks to. It loads a year's entities and KPI
records concurrently through the cache, keeps the last-known-good data on
screen when a fetch fails, and drops results that arrive for a year that is
no longer selected.

Usage:
    async with RevenueAPIClient() as api:
        session = ReportSession.from_api(api, year=2025)
        await session.refresh()
        report = session.report()
"""

import asyncio
from collections.abc import Sequence

import structlog

from iris_revenue import aggregation
from iris_revenue.aggregation import RevenueReport, SortColumn, SortDirection
from iris_revenue.cache import CacheStore
from iris_revenue.config import get_settings
from iris_revenue.edits import EditCoordinator
from iris_revenue.errors import ProviderError, ValidationError
from iris_revenue.models import BillableEntity, DataKind, KpiField, ViewMode, YearlyKPIs
from iris_revenue.providers import DataProvider, MutationService

logger = structlog.get_logger(__name__)


class ReportSession:
    """Holds the state of one operator's revenue report."""

    def __init__(
        self,
        store: CacheStore,
        editor: EditCoordinator,
        year: int | None = None,
        view_mode: ViewMode | None = None,
    ):
        settings = get_settings()
        self._store = store
        self._editor = editor
        self._year = year or settings.default_year
        self._view_mode = ViewMode(view_mode or settings.default_view_mode)

        self._entities: tuple[BillableEntity, ...] = ()
        self._kpis: YearlyKPIs | None = None
        self._included: frozenset[int] = frozenset()
        self._known_ids: frozenset[int] = frozenset()
        self._sort_column: SortColumn | str = SortColumn.NAME
        self._sort_direction = SortDirection.ASC
        self.error: str | None = None
        # Bumped by every refresh and applied edit; older loads are dropped.
        self._load_seq = 0

        self._logger = logger.bind(component="report_session")

    @classmethod
    def from_api(
        cls,
        api: DataProvider | MutationService,
        year: int | None = None,
        view_mode: ViewMode | None = None,
    ) -> "ReportSession":
        """Build a session whose provider and mutation service are the same client."""
        store = CacheStore(api)
        return cls(store, EditCoordinator(store, api), year=year, view_mode=view_mode)

    # === State ===

    @property
    def year(self) -> int:
        return self._year

    @property
    def view_mode(self) -> ViewMode:
        return self._view_mode

    @property
    def entities(self) -> tuple[BillableEntity, ...]:
        return self._entities

    @property
    def kpis(self) -> YearlyKPIs | None:
        return self._kpis

    @property
    def included_ids(self) -> frozenset[int]:
        return self._included

    @property
    def is_loading(self) -> bool:
        return self._store.is_loading(self._year, DataKind.ENTITIES) or self._store.is_loading(
            self._year, DataKind.KPIS
        )

    def set_year(self, year: int) -> None:
        """Select another year and show whatever the cache already holds for it."""
        if year == self._year:
            return
        self._logger.info("year_selected", year=year, previous=self._year)
        self._year = year
        self.error = None

        cached_entities = self._store.peek(year, DataKind.ENTITIES)
        cached_kpis = self._store.peek(year, DataKind.KPIS)
        self._kpis = cached_kpis.payload if cached_kpis and cached_kpis.has_payload else None
        self._known_ids = frozenset()
        self._replace_entities(
            cached_entities.payload if cached_entities and cached_entities.has_payload else ()
        )

    def set_view_mode(self, view_mode: ViewMode | str) -> None:
        self._view_mode = ViewMode(view_mode)

    def set_sort(self, column: SortColumn | str) -> None:
        """Sort by ``column``; choosing the current column again flips the direction."""
        if column == self._sort_column:
            self._sort_direction = (
                SortDirection.DESC if self._sort_direction is SortDirection.ASC else SortDirection.ASC
            )
        else:
            self._sort_column = column
            self._sort_direction = SortDirection.ASC

    def toggle_inclusion(self, entity_id: int) -> None:
        self._included = aggregation.toggle_inclusion(self._included, entity_id)

    # === Loading ===

    async def refresh(self, force_refresh: bool = False) -> bool:
        """Load entities and KPIs of the selected year concurrently.

        Returns:
            True if both loads succeeded and were applied. False if either
            failed (``error`` is set, previous data stays visible), or the
            results were discarded because the selected year changed or a
            later refresh or edit was applied while loading.
        """
        year = self._year
        self._load_seq += 1
        seq = self._load_seq
        entities_result, kpis_result = await asyncio.gather(
            self._store.get_entities(year, force_refresh),
            self._store.get_kpis(year, force_refresh),
            return_exceptions=True,
        )

        if year != self._year:
            self._logger.info("stale_year_result_discarded", year=year, selected=self._year)
            return False
        if seq != self._load_seq:
            self._logger.info("superseded_result_discarded", year=year, seq=seq, latest=self._load_seq)
            return False

        errors = []
        for result in (entities_result, kpis_result):
            if isinstance(result, ProviderError):
                errors.append(result.message)
            elif isinstance(result, BaseException):
                raise result

        if not isinstance(entities_result, BaseException):
            self._replace_entities(entities_result)
        if not isinstance(kpis_result, BaseException):
            self._kpis = kpis_result

        self.error = "; ".join(errors) if errors else None
        if errors:
            self._logger.warning("refresh_failed", year=year, errors=errors)
        return not errors

    def _replace_entities(self, entities: Sequence[BillableEntity]) -> None:
        # New rows start included; rows the operator excluded stay excluded.
        self._entities = tuple(entities)
        ids = aggregation.include_all(self._entities)
        self._included = frozenset(
            i for i in ids if i in self._included or i not in self._known_ids
        )
        self._known_ids = ids

    # === Derived figures ===

    def report(self) -> RevenueReport:
        """Derived figures for the entities that booked hours in the selected year."""
        return aggregation.build_report(
            aggregation.entities_with_hours(self._entities, self._year),
            self._year,
            self._view_mode,
            self._included,
            kpis=self._kpis,
            sort_column=self._sort_column,
            sort_direction=self._sort_direction,
        )

    # === Edits ===

    async def edit_kpi(self, month: str, field: KpiField | str, raw_value: str | float) -> None:
        """Edit a KPI value, show it at once, then reload the invalidated KPI entry.

        Raises:
            ValidationError, MutationError: Shown inline; nothing changes.
        """
        if self._kpis is None:
            raise ValidationError(f"No KPI data loaded for {self._year}")
        year = self._year
        updated = await self._editor.edit_kpi(self._kpis, month, field, raw_value)
        if year != self._year:
            return
        self._load_seq += 1
        self._kpis = updated
        await self.refresh()

    async def edit_consumption(self, entity_id: int, raw_amount: str) -> None:
        """Edit prior-year consumption in the unit of the current view mode."""
        year = self._year
        result = await self._editor.edit_consumption(
            self._entities, entity_id, year, raw_amount, self._view_mode
        )
        if year != self._year:
            self._logger.info("stale_year_result_discarded", year=year, selected=self._year)
            return
        self._load_seq += 1
        self._replace_entities(result.entities)
        self.error = result.refresh_error.message if result.refresh_error else None
