"""Public entry point: location-aware list and by-id resolution of venues."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Union

import structlog

from venue_resolver.errors import RequestSuperseded, ResolutionFailed, ResolverError, ValidationError
from venue_resolver.location import LocationSource
from venue_resolver.normalize.geo import rank_by_distance
from venue_resolver.observability.metrics import MetricsRegistry, record_duration
from venue_resolver.observability.tracing import clear_context, set_context
from venue_resolver.resolve.chain import FallbackChain, ListFilters
from venue_resolver.resolve.outcome import FallbackOutcome, NotFound, OutcomeKind
from venue_resolver.settings import ResolverSettings
from venue_resolver.storage.client import StoreClient
from venue_resolver.storage.models import EntityRecord, Location, RankedResult

LOGGER = structlog.get_logger(__name__)


class RequestStatus(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    RESOLVED = "resolved"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass(frozen=True)
class RequestState:
    """Latest state of one call site."""

    call_site: str
    generation: int = 0
    status: RequestStatus = RequestStatus.IDLE
    result: Any = None
    error: Optional[ResolverError] = None


@dataclass(frozen=True)
class ListRequest:
    page: int
    page_size: int
    location: Optional[Location]
    filters: Optional[ListFilters]


class RequestToken:
    """Ties one request to the generation it was issued under."""

    def __init__(self, resolver: "EntityResolver", call_site: str, generation: int) -> None:
        self._resolver = resolver
        self.call_site = call_site
        self.generation = generation

    @property
    def cancelled(self) -> bool:
        return self._resolver.state(self.call_site).generation != self.generation

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise RequestSuperseded(self.call_site, self.generation)


def _validate_page(page: object, page_size: object) -> None:
    if not isinstance(page, int) or isinstance(page, bool) or page < 1:
        raise ValidationError(f"page must be an integer >= 1, got {page!r}")
    if not isinstance(page_size, int) or isinstance(page_size, bool) or page_size < 1:
        raise ValidationError(f"page_size must be an integer > 0, got {page_size!r}")


class EntityResolver:
    """Resolves venue lists and single venues through the fallback chain.

    Each call site (for example a list view and a detail view) tracks its own
    request generation. Starting a request bumps the generation, so anything
    still in flight for that call site is superseded: it stops before its next
    tier, never writes state, and its caller receives ``RequestSuperseded``.
    """

    def __init__(
        self,
        store: StoreClient,
        *,
        settings: Optional[ResolverSettings] = None,
        metrics: Optional[MetricsRegistry] = None,
        location_source: Optional[LocationSource] = None,
        chain: Optional[FallbackChain] = None,
    ) -> None:
        self._settings = settings or ResolverSettings()
        self._metrics = metrics or MetricsRegistry()
        self._location_source = location_source
        self._chain = chain or FallbackChain(store, self._settings, metrics=self._metrics)
        self._states: Dict[str, RequestState] = {}
        self._last_list: Dict[str, ListRequest] = {}

    @property
    def metrics(self) -> MetricsRegistry:
        return self._metrics

    def state(self, call_site: str) -> RequestState:
        return self._states.get(call_site) or RequestState(call_site)

    def cancel(self, call_site: str) -> None:
        """Abandon any in-flight request for the call site and return it to Idle."""
        current = self.state(call_site)
        self._states[call_site] = RequestState(call_site, generation=current.generation + 1)

    def _begin(self, call_site: str, operation: str) -> RequestToken:
        generation = self.state(call_site).generation + 1
        self._states[call_site] = RequestState(call_site, generation=generation, status=RequestStatus.FETCHING)
        self._metrics.incr("requests_started")
        set_context(call_site=call_site, generation=generation, operation=operation)
        return RequestToken(self, call_site, generation)

    def _commit(self, token: RequestToken, status: RequestStatus, *, result: Any = None,
                error: Optional[ResolverError] = None) -> None:
        token.raise_if_cancelled()
        current = self.state(token.call_site)
        self._states[token.call_site] = replace(current, status=status, result=result, error=error)

    def _abandon(self, token: RequestToken) -> None:
        if not token.cancelled:
            current = self.state(token.call_site)
            self._states[token.call_site] = replace(current, status=RequestStatus.IDLE, result=None, error=None)

    def _fail(self, token: RequestToken, outcome: FallbackOutcome) -> ResolutionFailed:
        error = ResolutionFailed(outcome.failures)
        self._commit(token, RequestStatus.FAILED, error=error)
        self._metrics.incr("resolutions_failed")
        LOGGER.error("resolution_failed", tiers=list(outcome.tiers))
        return error

    async def get_list(
        self,
        page: int = 1,
        page_size: Optional[int] = None,
        location: Optional[Location] = None,
        *,
        filters: Optional[ListFilters] = None,
        call_site: str = "list",
    ) -> List[RankedResult]:
        """Return up to ``min(page_size, max_results)`` venues, nearest first.

        An empty list means nothing matched. Raises ``ResolutionFailed`` when
        every tier errored and ``ValidationError`` for a bad page or page size.
        """
        if page_size is None:
            page_size = self._settings.default_page_size
        _validate_page(page, page_size)
        if location is None and self._location_source is not None:
            location = self._location_source.current()
        self._last_list[call_site] = ListRequest(page, page_size, location, filters)

        token = self._begin(call_site, "list")
        try:
            with record_duration(self._metrics, "resolve_duration_ms"):
                outcome = await self._chain.resolve_list(
                    page,
                    page_size,
                    location,
                    filters=filters,
                    token=token,
                )
            token.raise_if_cancelled()
            if outcome.kind is OutcomeKind.FAILURE:
                raise self._fail(token, outcome)

            records = list(outcome.records)
            cap = min(page_size, self._settings.max_results)
            ranked = rank_by_distance(records, location)[:cap]
            self._commit(token, RequestStatus.RESOLVED, result=ranked)
            LOGGER.info("list_resolved", count=len(ranked), ranked=location is not None)
            return ranked
        except RequestSuperseded:
            self._metrics.incr("requests_superseded")
            raise
        except asyncio.CancelledError:
            self._abandon(token)
            raise
        finally:
            clear_context()

    async def get_by_id(self, identifier: str, *, call_site: str = "detail") -> Union[EntityRecord, NotFound]:
        """Resolve one venue by primary key, falling back to its slug.

        Returns ``NotFound`` when the venue does not exist. Raises
        ``ResolutionFailed`` when every tier errored.
        """
        if not isinstance(identifier, str) or not identifier.strip():
            raise ValidationError(f"identifier must be a non-empty string, got {identifier!r}")
        identifier = identifier.strip()

        token = self._begin(call_site, "by_id")
        try:
            with record_duration(self._metrics, "resolve_duration_ms"):
                outcome = await self._chain.resolve_by_id(identifier, token=token)
            token.raise_if_cancelled()
            if outcome.kind is OutcomeKind.FAILURE:
                raise self._fail(token, outcome)

            records = outcome.records
            if records:
                self._commit(token, RequestStatus.RESOLVED, result=records[0])
                LOGGER.info("entity_resolved", entity_id=records[0].id, tier=outcome.winner.tier)
                return records[0]

            missing = NotFound(identifier, partial_failures=tuple(failure.tier for failure in outcome.failures))
            self._commit(token, RequestStatus.NOT_FOUND, result=missing)
            self._metrics.incr("not_found")
            LOGGER.info("entity_not_found", identifier=identifier)
            return missing
        except RequestSuperseded:
            self._metrics.incr("requests_superseded")
            raise
        except asyncio.CancelledError:
            self._abandon(token)
            raise
        finally:
            clear_context()

    async def refresh_list(self, location: Optional[Location], *, call_site: str = "list") -> List[RankedResult]:
        """Re-run the last list request for ``call_site`` against a new location."""
        previous = self._last_list.get(call_site)
        if previous is None:
            return await self.get_list(location=location, call_site=call_site)
        return await self.get_list(
            previous.page,
            previous.page_size,
            location,
            filters=previous.filters,
            call_site=call_site,
        )
