"""Great-circle distance and distance-based ordering of venue records."""
from __future__ import annotations

import math
from typing import List, Optional, Sequence, Tuple

from venue_resolver.storage.models import EntityRecord, Location, RankedResult

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Return the great-circle distance in kilometres between two WGS84 points."""
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(dlng / 2) ** 2
    )
    # rounding can push a a hair above 1 for antipodal points
    a = min(1.0, a)
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def rank_by_distance(records: Sequence[EntityRecord], origin: Optional[Location]) -> List[RankedResult]:
    """Order records nearest-first relative to ``origin``.

    Without an origin the input order is kept and no distances are attached.
    Records lacking coordinates are never dropped: they follow every ranked
    record in their original relative order. Ties keep input order.
    """
    if origin is None:
        return [RankedResult.from_record(record) for record in records]

    ranked: List[Tuple[float, int, EntityRecord]] = []
    unranked: List[EntityRecord] = []
    for index, record in enumerate(records):
        if record.has_coordinates:
            distance = haversine_km(origin.lat, origin.lng, record.lat, record.lng)
            ranked.append((distance, index, record))
        else:
            unranked.append(record)

    ranked.sort(key=lambda item: (item[0], item[1]))
    results = [RankedResult.from_record(record, distance) for distance, _, record in ranked]
    results.extend(RankedResult.from_record(record) for record in unranked)
    return results
