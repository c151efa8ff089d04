from datetime import datetime, timezone

import pytest

from venue_resolver.normalize.geo import haversine_km, rank_by_distance
from venue_resolver.storage.models import EntityRecord, Location

PERTH = Location(lat=-31.95, lng=115.86, city="Perth")
CREATED = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _record(record_id, lat=None, lng=None):
    return EntityRecord(id=record_id, name=f"Venue {record_id}", created_at=CREATED, lat=lat, lng=lng)


def test_haversine_is_symmetric_and_zero_on_identity():
    sydney = (-33.8688, 151.2093)
    melbourne = (-37.8136, 144.9631)
    there = haversine_km(*sydney, *melbourne)
    back = haversine_km(*melbourne, *sydney)
    assert there == pytest.approx(back)
    assert there == pytest.approx(713, abs=10)
    assert haversine_km(*sydney, *sydney) == pytest.approx(0.0, abs=1e-9)


def test_haversine_handles_antipodes():
    assert haversine_km(0.0, 0.0, 0.0, 180.0) == pytest.approx(20015, abs=5)


def test_rank_without_origin_is_identity():
    records = [_record("b", -31.0, 115.0), _record("a"), _record("c", -32.0, 116.0)]
    ranked = rank_by_distance(records, None)
    assert [item.id for item in ranked] == ["b", "a", "c"]
    assert all(item.distance_km is None for item in ranked)


def test_rank_orders_by_distance_and_appends_unranked_in_order():
    records = [
        _record("far", -31.50, 115.90),
        _record("no-coords-1"),
        _record("near", -31.95, 115.87),
        _record("no-coords-2"),
        _record("mid", -32.05, 115.75),
    ]
    ranked = rank_by_distance(records, PERTH)
    assert [item.id for item in ranked] == ["near", "mid", "far", "no-coords-1", "no-coords-2"]
    distances = [item.distance_km for item in ranked[:3]]
    assert distances == sorted(distances)
    assert ranked[3].distance_km is None and ranked[4].distance_km is None


def test_rank_is_stable_for_equal_distances():
    records = [_record("first", -31.90, 115.86), _record("second", -31.90, 115.86), _record("third", -31.90, 115.86)]
    ranked = rank_by_distance(records, PERTH)
    assert [item.id for item in ranked] == ["first", "second", "third"]


def test_rank_is_idempotent_and_does_not_mutate_input():
    records = [_record("x", -31.0, 115.0), _record("y", -31.9, 115.8)]
    first = rank_by_distance(records, PERTH)
    second = rank_by_distance(records, PERTH)
    assert first == second
    assert [record.id for record in records] == ["x", "y"]
