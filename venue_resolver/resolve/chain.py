"""Ordered retrieval strategies executed until one yields usable records."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Sequence

import structlog

from venue_resolver.errors import StoreError
from venue_resolver.normalize.records import SourceShape, coerce_rows, normalize_batch
from venue_resolver.observability.metrics import MetricsRegistry
from venue_resolver.observability.tracing import log_tier_failure, log_tier_result, span
from venue_resolver.quality.dedup import deduplicate
from venue_resolver.resolve.outcome import FallbackOutcome, OutcomeKind, TierOutcome
from venue_resolver.settings import ResolverSettings
from venue_resolver.storage.client import StoreClient, TableQuery
from venue_resolver.storage.models import EntityRecord, Location

LOGGER = structlog.get_logger(__name__)


class Cancellable(Protocol):
    def raise_if_cancelled(self) -> None:
        ...


@dataclass(frozen=True)
class ListFilters:
    """Optional equality filters applied to list results."""

    city: Optional[str] = None
    state: Optional[str] = None
    category: Optional[str] = None

    def as_eq(self) -> Dict[str, str]:
        return {name: value for name, value in vars(self).items() if value}

    def matches(self, record: EntityRecord) -> bool:
        for name, wanted in self.as_eq().items():
            actual = getattr(record, name)
            if actual is None or actual.casefold() != wanted.casefold():
                return False
        return True


@dataclass(frozen=True)
class Tier:
    """One retrieval strategy: a named zero-argument coroutine factory."""

    name: str
    fetch: Callable[[], Awaitable[Any]]
    shape: SourceShape = SourceShape.PRIMARY


class FallbackChain:
    """Runs tiers strictly in order, stopping at the first tier with usable records.

    Every tier payload is normalised, de-duplicated by id and, for lists,
    filtered before its outcome is decided. A tier whose rows are all
    rejected or filtered out counts as empty and the chain moves on.
    """

    def __init__(
        self,
        store: StoreClient,
        settings: ResolverSettings,
        *,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        self._store = store
        self._settings = settings
        self._metrics = metrics or MetricsRegistry()

    def list_tiers(
        self,
        page: int,
        page_size: int,
        location: Optional[Location],
        filters: Optional[ListFilters] = None,
    ) -> List[Tier]:
        settings = self._settings
        table_query = TableQuery(
            eq=filters.as_eq() if filters else {},
            order_by=settings.order_by,
            limit=page_size,
            offset=(page - 1) * page_size,
        )

        async def service() -> Any:
            return await self._store.query_aggregating_service(page, page_size, location)

        async def table() -> Any:
            return await self._store.query_table(settings.primary_table, table_query)

        return [
            Tier("service", service, settings.service_shape),
            Tier("table", table, settings.table_shape),
        ]

    def by_id_tiers(self, identifier: str) -> List[Tier]:
        settings = self._settings

        def lookup(table: str, field: str) -> Callable[[], Awaitable[Any]]:
            query = TableQuery(eq={field: identifier}, limit=1)

            async def fetch() -> Any:
                return await self._store.query_table(table, query)

            return fetch

        return [
            Tier("service", lookup(settings.service_view, settings.id_field), settings.service_shape),
            Tier("table", lookup(settings.primary_table, settings.id_field), settings.table_shape),
            Tier("slug", lookup(settings.primary_table, settings.slug_field), settings.table_shape),
        ]

    async def resolve_list(
        self,
        page: int,
        page_size: int,
        location: Optional[Location] = None,
        *,
        filters: Optional[ListFilters] = None,
        token: Optional[Cancellable] = None,
    ) -> FallbackOutcome:
        accept = filters.matches if filters else None
        return await self.run(self.list_tiers(page, page_size, location, filters), token=token, accept=accept)

    async def resolve_by_id(self, identifier: str, *, token: Optional[Cancellable] = None) -> FallbackOutcome:
        return await self.run(self.by_id_tiers(identifier), token=token)

    async def run(
        self,
        tiers: Sequence[Tier],
        *,
        token: Optional[Cancellable] = None,
        accept: Optional[Callable[[EntityRecord], bool]] = None,
    ) -> FallbackOutcome:
        """Attempt each tier in turn and aggregate the per-tier outcomes."""
        attempts: List[TierOutcome] = []
        for tier in tiers:
            if token is not None:
                token.raise_if_cancelled()
            attempt = await self._attempt(tier, accept)
            attempts.append(attempt)
            if attempt.kind is OutcomeKind.SUCCESS:
                return FallbackOutcome(OutcomeKind.SUCCESS, tuple(attempts))

        if attempts and all(attempt.kind is OutcomeKind.FAILURE for attempt in attempts):
            return FallbackOutcome(OutcomeKind.FAILURE, tuple(attempts))
        return FallbackOutcome(OutcomeKind.EMPTY, tuple(attempts))

    def _records(self, tier: Tier, rows: Sequence[Any],
                 accept: Optional[Callable[[EntityRecord], bool]]) -> List[EntityRecord]:
        batch = normalize_batch(rows, tier.shape)
        if batch.failures:
            self._metrics.incr("normalization_failures", batch.failures)
        records, duplicates = deduplicate(batch.records)
        if duplicates:
            self._metrics.incr("duplicates", duplicates)
        if accept is not None:
            records = [record for record in records if accept(record)]
        return records

    async def _attempt(self, tier: Tier, accept: Optional[Callable[[EntityRecord], bool]] = None) -> TierOutcome:
        self._metrics.incr("tier_attempts")
        try:
            with span(name="tier", tier=tier.name) as elapsed:
                payload = await tier.fetch()
        except StoreError as exc:
            self._metrics.incr("tier_failures")
            log_tier_failure(tier=tier.name, reason=str(exc), elapsed_ms=elapsed[-1])
            return TierOutcome.failed(tier.name, exc, shape=tier.shape, elapsed_ms=elapsed[-1])

        rows = tuple(coerce_rows(payload))
        records = tuple(self._records(tier, rows, accept))
        if records:
            self._metrics.incr("tier_success")
            outcome = TierOutcome.success(tier.name, rows, records, shape=tier.shape, elapsed_ms=elapsed[-1])
        else:
            self._metrics.incr("tier_empty")
            outcome = TierOutcome.empty(tier.name, rows, shape=tier.shape, elapsed_ms=elapsed[-1])
        log_tier_result(
            tier=tier.name,
            kind=outcome.kind.value,
            rows=len(rows),
            records=len(records),
            elapsed_ms=outcome.elapsed_ms,
        )
        return outcome
