"""Edit protocol for manually maintained figures.

An edit runs in three steps:

1. Validate: parse the operator's input. Bad input raises ValidationError
   and nothing is sent.
2. Persist: call the mutation service. A rejection raises MutationError;
   no local change is applied and the cache is left alone.
3. Apply and reconcile: patch a copy of the in-memory data so the change is
   visible immediately, then invalidate the affected cache entry so the next
   read returns authoritative state.
"""

import math
import re
from collections.abc import Sequence
from dataclasses import dataclass, replace

import structlog

from iris_revenue.aggregation import apply_kpi_field
from iris_revenue.cache import CacheStore
from iris_revenue.errors import MutationError, ProviderError, ValidationError
from iris_revenue.models import (
    BillableEntity,
    DataKind,
    KpiField,
    ViewMode,
    YearlyKPIs,
    validate_month_key,
)
from iris_revenue.providers import MutationResult, MutationService

logger = structlog.get_logger(__name__)

_NUMBER = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")


def parse_amount(raw: str | float | int) -> float:
    """Parse an edited value. Uses ``.`` as the decimal separator; blank means 0."""
    if isinstance(raw, bool):
        raise ValidationError(f"Not a number: {raw!r}")
    if isinstance(raw, int | float):
        value = float(raw)
    else:
        text = str(raw).strip()
        if not text:
            return 0.0
        if not _NUMBER.match(text):
            raise ValidationError(
                f"Not a valid number: {raw!r}. Use a point (.) as decimal separator."
            )
        value = float(text)
    if not math.isfinite(value):
        raise ValidationError(f"Not a finite number: {raw!r}")
    return value


@dataclass(frozen=True)
class KpiEdit:
    year: int
    month: str
    field: KpiField
    value: float


@dataclass(frozen=True)
class ConsumptionEdit:
    entity_id: int
    target_year: int
    amount: str
    value: float
    unit: ViewMode


@dataclass(frozen=True)
class ConsumptionEditResult:
    """Entities to display after a consumption edit.

    ``refreshed`` tells whether they came from a re-fetch; otherwise they
    are the locally patched copy, and ``refresh_error`` holds the reason
    when a requested re-fetch failed.
    """

    entities: tuple[BillableEntity, ...]
    refreshed: bool
    refresh_error: ProviderError | None = None


def prepare_kpi_edit(year: int, month: str, field: KpiField | str, raw_value: str | float) -> KpiEdit:
    """Validate a KPI edit without side effects."""
    try:
        validate_month_key(month)
        kpi_field = KpiField(field)
    except ValueError as e:
        raise ValidationError(str(e)) from e
    if not month.startswith(f"{year}-"):
        raise ValidationError(f"Month {month} is not part of {year}")
    return KpiEdit(year=year, month=month, field=kpi_field, value=parse_amount(raw_value))


def prepare_consumption_edit(
    entity_id: int, target_year: int, raw_amount: str, unit: ViewMode | str
) -> ConsumptionEdit:
    try:
        view_mode = ViewMode(unit)
    except ValueError as e:
        raise ValidationError(str(e)) from e
    value = parse_amount(raw_amount)
    return ConsumptionEdit(
        entity_id=entity_id,
        target_year=target_year,
        amount=str(raw_amount).strip() or "0",
        value=value,
        unit=view_mode,
    )


def apply_kpi_edit(kpis: YearlyKPIs, edit: KpiEdit) -> YearlyKPIs:
    """Return a copy of ``kpis`` with the edit applied and differences recomputed."""
    months = tuple(
        apply_kpi_field(record, edit.field, edit.value) if record.month == edit.month else record
        for record in kpis.months
    )
    return replace(kpis, months=months)


def apply_consumption_edit(
    entities: Sequence[BillableEntity], edit: ConsumptionEdit
) -> tuple[BillableEntity, ...]:
    return tuple(
        replace(entity, prior_year_consumption=edit.value) if entity.id == edit.entity_id else entity
        for entity in entities
    )


def _ensure_success(result: MutationResult) -> None:
    if not result.success:
        raise MutationError(result.message or "The change was not saved")


class EditCoordinator:
    """Runs operator edits against the mutation service and the cache."""

    def __init__(self, store: CacheStore, mutations: MutationService):
        self._store = store
        self._mutations = mutations
        self._logger = logger.bind(component="edit_coordinator")

    async def edit_kpi(
        self,
        kpis: YearlyKPIs,
        month: str,
        field: KpiField | str,
        raw_value: str | float,
    ) -> YearlyKPIs:
        """Set a monthly target or final revenue.

        Returns:
            A locally updated copy of ``kpis``. The KPI cache entry of the
            year is invalidated once the change is persisted.

        Raises:
            ValidationError: ``raw_value`` is not numeric or ``month`` is invalid.
            MutationError: The mutation service rejected the change.
        """
        edit = prepare_kpi_edit(kpis.year, month, field, raw_value)

        result = await self._mutations.update_kpi_field(edit.year, edit.month, edit.field, edit.value)
        _ensure_success(result)

        updated = apply_kpi_edit(kpis, edit)
        self._store.invalidate(edit.year, DataKind.KPIS)
        self._logger.info(
            "kpi_edit_applied", year=edit.year, month=edit.month, field=edit.field.value, value=edit.value
        )
        return updated

    async def clear_kpi(self, kpis: YearlyKPIs, month: str, field: KpiField | str) -> YearlyKPIs:
        """Reset a manual KPI value to 0."""
        return await self.edit_kpi(kpis, month, field, 0.0)

    async def edit_consumption(
        self,
        entities: Sequence[BillableEntity],
        entity_id: int,
        target_year: int,
        raw_amount: str,
        unit: ViewMode | str,
        refresh_immediately: bool = True,
    ) -> ConsumptionEditResult:
        """Set the prior-year consumption of an entity for ``target_year``.

        The entity cache entry of ``target_year`` is invalidated after the
        change is persisted. With ``refresh_immediately`` the entities are
        re-fetched right away, because remaining budgets depend on the value.

        Raises:
            ValidationError: ``raw_amount`` is not numeric.
            MutationError: The mutation service rejected the change.
        """
        edit = prepare_consumption_edit(entity_id, target_year, raw_amount, unit)

        result = await self._mutations.update_consumption(
            edit.entity_id, edit.target_year, edit.amount, edit.unit
        )
        _ensure_success(result)

        patched = apply_consumption_edit(entities, edit)
        self._store.invalidate(edit.target_year, DataKind.ENTITIES)
        self._logger.info(
            "consumption_edit_applied",
            entity_id=edit.entity_id,
            target_year=edit.target_year,
            value=edit.value,
            unit=edit.unit.value,
        )

        if not refresh_immediately:
            return ConsumptionEditResult(entities=patched, refreshed=False)

        try:
            fresh = await self._store.get_entities(edit.target_year, force_refresh=True)
        except ProviderError as e:
            self._logger.warning("consumption_refresh_failed", target_year=edit.target_year, error=e.message)
            return ConsumptionEditResult(entities=patched, refreshed=False, refresh_error=e)
        return ConsumptionEditResult(entities=tuple(fresh), refreshed=True)
