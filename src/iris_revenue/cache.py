"""Per-year cache of fetched entities and KPI records.

Each (year, kind) key moves through ``idle -> loading -> ready``, with
``loading -> failed`` on provider errors and ``failed -> loading`` on retry.
At most one fetch per key is in flight: concurrent ``get`` calls for a key
that is loading await the same fetch.

Usage:
    store = CacheStore(provider)
    entities = await store.get_entities(2025)
    store.invalidate(2025, DataKind.KPIS)
"""

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import structlog

from iris_revenue.config import get_settings
from iris_revenue.errors import ProviderError
from iris_revenue.models import BillableEntity, DataKind, YearlyKPIs
from iris_revenue.providers import DataProvider

logger = structlog.get_logger(__name__)

CacheKey = tuple[int, DataKind]


class CacheState(str, Enum):
    """Lifecycle states of a cache entry."""

    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


@dataclass
class CacheEntry:
    """Cached payload for one (year, kind) key."""

    year: int
    kind: DataKind
    payload: Any = None
    fetched_at: datetime | None = None
    state: CacheState = CacheState.IDLE
    stale: bool = False
    error: ProviderError | None = None
    generation: int = 0

    @property
    def key(self) -> CacheKey:
        return (self.year, self.kind)

    @property
    def has_payload(self) -> bool:
        return self.fetched_at is not None


class CacheStore:
    """Session cache for entities and KPI sets, keyed by (year, kind)."""

    def __init__(
        self,
        provider: DataProvider,
        max_age_seconds: float | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        settings = get_settings()
        self._provider = provider
        self._max_age = (
            settings.cache_max_age_seconds if max_age_seconds is None else max_age_seconds
        )
        self._clock = clock or (lambda: datetime.now(UTC))

        self._entries: dict[CacheKey, CacheEntry] = {}
        self._in_flight: dict[CacheKey, tuple[int, asyncio.Task[Any]]] = {}

        self._logger = logger.bind(component="cache_store")

    # === Reads ===

    async def get(self, year: int, kind: DataKind, force_refresh: bool = False) -> Any:
        """Return the cached payload for (year, kind), fetching it when needed.

        A ready, non-expired entry is served without calling the provider
        unless ``force_refresh`` is set. A fetch already in flight for the
        key is joined instead of duplicated.

        Raises:
            ProviderError: If the fetch fails. The previous payload, if any,
                stays available through ``peek``.
        """
        kind = DataKind(kind)
        key = (year, kind)
        entry = self._entry(key)

        if not force_refresh and entry.state is CacheState.READY and not self._expired(entry):
            self._logger.debug("cache_hit", year=year, kind=kind.value)
            return entry.payload

        while key in self._in_flight:
            generation, task = self._in_flight[key]
            if generation == entry.generation:
                self._logger.debug("cache_fetch_joined", year=year, kind=kind.value)
                return await asyncio.shield(task)
            # Fetch started before an invalidation; let it settle, then fetch anew.
            await asyncio.wait({task})

        self._logger.debug(
            "cache_miss", year=year, kind=kind.value, state=entry.state.value, forced=force_refresh
        )
        entry.state = CacheState.LOADING
        task = asyncio.create_task(self._fetch(entry, entry.generation))
        self._in_flight[key] = (entry.generation, task)
        task.add_done_callback(lambda t: self._fetch_done(key, t))
        return await asyncio.shield(task)

    async def get_entities(self, year: int, force_refresh: bool = False) -> Sequence[BillableEntity]:
        return await self.get(year, DataKind.ENTITIES, force_refresh)

    async def get_kpis(self, year: int, force_refresh: bool = False) -> YearlyKPIs:
        return await self.get(year, DataKind.KPIS, force_refresh)

    def peek(self, year: int, kind: DataKind) -> CacheEntry | None:
        """Snapshot of an entry without fetching. Returns a copy."""
        entry = self._entries.get((year, DataKind(kind)))
        return replace(entry) if entry is not None else None

    def is_loading(self, year: int, kind: DataKind) -> bool:
        return (year, DataKind(kind)) in self._in_flight

    # === Invalidation ===

    def invalidate(self, year: int | None = None, kind: DataKind | None = None) -> int:
        """Reset entries to ``idle`` so the next ``get`` fetches again.

        Both arguments select one entry, ``year`` alone selects both kinds of
        that year, neither selects everything. Never fetches by itself.

        Returns:
            Number of entries reset.
        """
        kind = DataKind(kind) if kind is not None else None
        count = 0
        for entry in self._entries.values():
            if year is not None and entry.year != year:
                continue
            if kind is not None and entry.kind is not kind:
                continue
            entry.state = CacheState.IDLE
            entry.stale = entry.has_payload
            entry.error = None
            entry.generation += 1
            count += 1

        self._logger.info(
            "cache_invalidated",
            year=year,
            kind=kind.value if kind else None,
            entries=count,
        )
        return count

    # === Internals ===

    def _entry(self, key: CacheKey) -> CacheEntry:
        entry = self._entries.get(key)
        if entry is None:
            entry = CacheEntry(year=key[0], kind=key[1])
            self._entries[key] = entry
        return entry

    def _expired(self, entry: CacheEntry) -> bool:
        if not self._max_age or entry.fetched_at is None:
            return False
        return (self._clock() - entry.fetched_at).total_seconds() >= self._max_age

    async def _fetch(self, entry: CacheEntry, generation: int) -> Any:
        log = self._logger.bind(year=entry.year, kind=entry.kind.value)
        log.info("cache_fetch_started")

        try:
            if entry.kind is DataKind.ENTITIES:
                payload: Any = tuple(await self._provider.fetch_entities(entry.year))
            else:
                payload = await self._provider.fetch_kpis(entry.year)
        except Exception as e:
            error = e if isinstance(e, ProviderError) else ProviderError(
                f"Failed to fetch {entry.kind.value} for {entry.year}: {e}"
            )
            if generation == entry.generation:
                entry.state = CacheState.FAILED
                entry.error = error
            log.warning("cache_fetch_failed", error=str(error), kept_payload=entry.has_payload)
            if error is e:
                raise
            raise error from e

        if generation != entry.generation:
            # Invalidated while loading; hand the result to waiters but keep the entry idle.
            log.info("cache_fetch_superseded")
            return payload

        entry.payload = payload
        entry.fetched_at = self._clock()
        entry.state = CacheState.READY
        entry.stale = False
        entry.error = None
        count = len(payload) if entry.kind is DataKind.ENTITIES else len(payload.months)
        log.info("cache_fetch_completed", items=count)
        return payload

    def _fetch_done(self, key: CacheKey, task: asyncio.Task[Any]) -> None:
        current = self._in_flight.get(key)
        if current is not None and current[1] is task:
            del self._in_flight[key]
        if not task.cancelled():
            # Mark the exception retrieved; waiters receive it through shield().
            task.exception()
