import asyncio

import pytest

from venue_resolver.errors import RequestSuperseded, StoreError
from venue_resolver.normalize.records import SourceShape
from venue_resolver.observability.metrics import MetricsRegistry
from venue_resolver.resolve.chain import FallbackChain, ListFilters, Tier
from venue_resolver.resolve.outcome import OutcomeKind
from venue_resolver.settings import ResolverSettings

SETTINGS = ResolverSettings(primary_table="venues", service_view="venue_view")


def _chain(store, metrics=None):
    return FallbackChain(store, SETTINGS, metrics=metrics or MetricsRegistry())


def test_service_success_never_reaches_the_table(make_store):
    store = make_store(service=[{"id": 1}], tables={"venues": [{"id": 2}]})

    outcome = asyncio.run(_chain(store).resolve_list(1, 10))

    assert outcome.kind is OutcomeKind.SUCCESS
    assert outcome.winner.tier == "service"
    assert outcome.shape is SourceShape.ALTERNATE
    assert store.tiers_called() == ["service"]


def test_empty_service_falls_through_to_table(make_store):
    store = make_store(service=[], tables={"venues": [{"id": 2}]})
    metrics = MetricsRegistry()

    outcome = asyncio.run(_chain(store, metrics).resolve_list(1, 10))

    assert outcome.kind is OutcomeKind.SUCCESS
    assert outcome.winner.tier == "table"
    assert outcome.rows == ({"id": 2},)
    assert [attempt.kind for attempt in outcome.attempts] == [OutcomeKind.EMPTY, OutcomeKind.SUCCESS]
    assert metrics.get("tier_empty") == 1
    assert metrics.get("tier_success") == 1


def test_service_failure_is_recovered_by_table(make_store):
    store = make_store(service=StoreError("rpc down", status=503), tables={"venues": [{"id": 2}]})
    metrics = MetricsRegistry()

    outcome = asyncio.run(_chain(store, metrics).resolve_list(1, 10))

    assert outcome.kind is OutcomeKind.SUCCESS
    assert [failure.tier for failure in outcome.failures] == ["service"]
    assert isinstance(outcome.failures[0].cause, StoreError)
    assert metrics.get("tier_failures") == 1


def test_table_tier_pages_with_offset_and_filters(make_store):
    store = make_store(service=[], tables={"venues": []})

    asyncio.run(_chain(store).resolve_list(3, 5, filters=ListFilters(city="Perth")))

    query = store.queries[0]
    assert (query.limit, query.offset) == (5, 10)
    assert dict(query.eq) == {"city": "Perth"}


def test_all_tiers_failing_reports_failure(make_store):
    store = make_store(service=StoreError("down"), tables={"venues": StoreError("down")})

    outcome = asyncio.run(_chain(store).resolve_list(1, 10))

    assert outcome.kind is OutcomeKind.FAILURE
    assert outcome.rows == ()
    assert outcome.tiers == ("service", "table")


def test_all_tiers_empty_reports_empty(make_store):
    store = make_store(service=[], tables={"venues": []})

    outcome = asyncio.run(_chain(store).resolve_list(1, 10))

    assert outcome.kind is OutcomeKind.EMPTY
    assert outcome.failures == ()


def test_failure_mixed_with_empty_reports_empty(make_store):
    store = make_store(service=StoreError("down"), tables={"venues": []})

    outcome = asyncio.run(_chain(store).resolve_list(1, 10))

    assert outcome.kind is OutcomeKind.EMPTY
    assert [failure.tier for failure in outcome.failures] == ["service"]


def test_by_id_falls_back_to_slug(make_store):
    store = make_store(tables={"venue_view": [], "venues": [{"id": 7, "slug": "grand-mosque"}]})

    outcome = asyncio.run(_chain(store).resolve_by_id("grand-mosque"))

    assert outcome.kind is OutcomeKind.SUCCESS
    assert outcome.winner.tier == "slug"
    assert store.calls == [
        ("table", "venue_view", {"id": "grand-mosque"}),
        ("table", "venues", {"id": "grand-mosque"}),
        ("table", "venues", {"slug": "grand-mosque"}),
    ]


def test_by_id_primary_key_hit_skips_slug(make_store):
    store = make_store(tables={"venue_view": StoreError("missing view"), "venues": [{"id": 7, "slug": "x"}]})

    outcome = asyncio.run(_chain(store).resolve_by_id("7"))

    assert outcome.winner.tier == "table"
    assert len(store.calls) == 2


def test_cancelled_token_stops_before_next_tier(make_store):
    store = make_store(service=[], tables={"venues": [{"id": 1}]})

    class CancelAfterFirst:
        def __init__(self):
            self.checks = 0

        def raise_if_cancelled(self):
            self.checks += 1
            if self.checks > 1:
                raise RequestSuperseded("list", 1)

    with pytest.raises(RequestSuperseded):
        asyncio.run(_chain(store).resolve_list(1, 10, token=CancelAfterFirst()))
    assert store.tiers_called() == ["service"]


def test_programming_errors_are_not_treated_as_tier_failures(make_store):
    async def broken():
        raise TypeError("bad call")

    with pytest.raises(TypeError):
        asyncio.run(_chain(make_store()).run([Tier("broken", broken)]))


def test_tier_whose_rows_are_all_rejected_counts_as_empty(make_store):
    store = make_store(service=[{"business_name": "no id"}], tables={"venues": [{"id": "p", "name": "Perth Venue"}]})
    metrics = MetricsRegistry()

    outcome = asyncio.run(_chain(store, metrics).resolve_list(1, 10))

    assert outcome.kind is OutcomeKind.SUCCESS
    assert outcome.winner.tier == "table"
    assert [record.id for record in outcome.records] == ["p"]
    assert [attempt.kind for attempt in outcome.attempts] == [OutcomeKind.EMPTY, OutcomeKind.SUCCESS]
    assert outcome.attempts[0].rows == ({"business_name": "no id"},)
    assert metrics.get("normalization_failures") == 1
    assert store.tiers_called() == ["service", "table:venues"]


def test_filters_move_past_a_tier_without_matches(make_store):
    store = make_store(
        service=[{"id": "f", "business_name": "Fremantle Venue", "city": "Fremantle"}],
        tables={"venues": [{"id": "p", "name": "Perth Venue", "city": "Perth"}]},
    )

    outcome = asyncio.run(_chain(store).resolve_list(1, 10, filters=ListFilters(city="perth")))

    assert outcome.winner.tier == "table"
    assert [record.id for record in outcome.records] == ["p"]


def test_by_id_continues_past_rejected_rows(make_store):
    store = make_store(
        tables={
            "venue_view": [{"id": "p", "created_at": "not a date"}],
            "venues": [{"id": "p", "name": "Perth Venue"}],
        }
    )

    outcome = asyncio.run(_chain(store).resolve_by_id("p"))

    assert outcome.winner.tier == "table"
    assert outcome.records[0].name == "Perth Venue"
