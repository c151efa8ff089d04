#!/usr/bin/env python
"""Write a demo store fixture for running the resolver offline."""
from __future__ import annotations

import argparse
from pathlib import Path
from typing import Dict, List

import orjson
from dotenv import load_dotenv

# Aggregating-service rows use the alternate layout; table rows the primary one.
DEMO_SERVICE: List[Dict[str, object]] = [
    {
        "id": 101,
        "business_name": "Perth Mosque",
        "slug": "perth-mosque",
        "location": {"address": "427 William St", "city": "Perth", "state": "WA", "lat": -31.9437, "lng": 115.8612},
        "business_type": "mosque",
        "created_at": "2024-03-01T08:00:00+00:00",
    },
    {
        "id": 102,
        "business_name": "Mirrabooka Mosque",
        "slug": "mirrabooka-mosque",
        "city": "Mirrabooka",
        "state": "WA",
        "latitude": -31.8685,
        "longitude": 115.8654,
        "business_type": "mosque",
        "created_at": "2024-03-02T08:00:00+00:00",
    },
    {
        "id": 103,
        "business_name": "Rivervale Mosque",
        "slug": "rivervale-mosque",
        "city": "Rivervale",
        "state": "WA",
        "latitude": -31.9576,
        "longitude": 115.9126,
        "business_type": "mosque",
        "created_at": "2024-03-03T08:00:00+00:00",
    },
    {
        "id": 104,
        "business_name": "Halal Corner Butcher",
        "city": "Perth",
        "state": "WA",
        "business_type": "butcher",
        "created_at": "2024-03-04T08:00:00+00:00",
    },
]

DEMO_TABLE: List[Dict[str, object]] = [
    {
        "id": 1,
        "slug": "grand-mosque",
        "name": "Grand Mosque",
        "address": "1 Central Ave",
        "city": "Perth",
        "state": "WA",
        "latitude": -31.9523,
        "longitude": 115.8613,
        "category": "mosque",
        "created_at": "2023-11-20T10:00:00+00:00",
    },
    {
        "id": 2,
        "slug": "thornlie-mosque",
        "name": "Thornlie Mosque",
        "city": "Thornlie",
        "state": "WA",
        "latitude": -32.0605,
        "longitude": 115.9553,
        "category": "mosque",
        "created_at": "2023-11-21T10:00:00+00:00",
    },
]


def seed_fixture(path: Path) -> Path:
    """Write the demo fixture to ``path``, replacing any existing file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "service": DEMO_SERVICE,
        "tables": {
            "venues": DEMO_TABLE,
            "accessible_venue_locations": DEMO_SERVICE,
        },
    }
    path.write_bytes(orjson.dumps(payload, option=orjson.OPT_INDENT_2))
    return path


def main() -> None:
    """CLI entrypoint used by `python -m venue_resolver.main seed-fixture`."""
    load_dotenv()
    parser = argparse.ArgumentParser(description="Write a demo store fixture")
    parser.add_argument(
        "--path",
        type=Path,
        default=Path("data/fixture.json"),
        help="Fixture destination",
    )
    args = parser.parse_args()
    seed_fixture(args.path)


if __name__ == "__main__":
    main()
