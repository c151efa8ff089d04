"""Command-line entrypoints for the venue resolver."""
from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional

import orjson
from dotenv import load_dotenv

try:
    import uvloop
except ImportError:  # pragma: no cover - uvloop optional on some platforms
    uvloop = None

from venue_resolver.errors import ConfigError, ResolutionFailed, StoreError, ValidationError
from venue_resolver.location import location_from_mapping
from venue_resolver.observability.log import configure_logging
from venue_resolver.observability.metrics import MetricsRegistry
from venue_resolver.resolve.outcome import NotFound
from venue_resolver.resolve.resolver import EntityResolver, ListFilters
from venue_resolver.settings import Settings, apply_env_overrides, load_settings
from venue_resolver.storage.client import create_store_client

DEFAULT_SETTINGS_PATH = Path("config/settings.toml")

EXIT_OK = 0
EXIT_NOT_FOUND = 1
EXIT_FAILED = 2


def build_arg_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(prog="venue-resolver", description="Geo-ranked venue lookup")
    parser.add_argument("--metrics-out", type=Path, help="Write run counters to this JSON file")
    sub = parser.add_subparsers(dest="command", required=True)

    listing = sub.add_parser("list", help="List venues, nearest first when a location is given")
    listing.add_argument("--page", type=int, default=1, help="1-based page number")
    listing.add_argument("--page-size", type=int, help="Venues per page")
    listing.add_argument("--lat", type=float, help="Reference latitude")
    listing.add_argument("--lng", type=float, help="Reference longitude")
    listing.add_argument("--near-city", help="City label attached to the reference location")
    listing.add_argument("--city", help="Only venues in this city")
    listing.add_argument("--state", help="Only venues in this state")
    listing.add_argument("--category", help="Only venues in this category")

    get = sub.add_parser("get", help="Fetch one venue by id or slug")
    get.add_argument("identifier", help="Numeric id, uuid or slug")

    sub.add_parser("check-config", help="Print the effective settings")

    seed = sub.add_parser("seed-fixture", help="Write a demo store fixture")
    seed.add_argument("--path", type=Path, default=Path("data/fixture.json"), help="Fixture destination")

    return parser


def _run(coro: Any) -> int:
    if uvloop is not None:
        return uvloop.run(coro)
    return asyncio.run(coro)


def _emit(payload: Any) -> None:
    sys.stdout.write(orjson.dumps(payload, option=orjson.OPT_INDENT_2).decode())
    sys.stdout.write("\n")


def _settings_report(settings: Settings) -> dict:
    report = settings.model_dump(mode="json")
    if report["store"]["api_key"]:
        report["store"]["api_key"] = "***"
    return report


async def run_list(args: argparse.Namespace, settings: Settings, metrics: MetricsRegistry) -> int:
    """Execute the list command end-to-end."""
    location = None
    if args.lat is not None or args.lng is not None:
        location = location_from_mapping({"lat": args.lat, "lng": args.lng, "city": args.near_city})
        if location is None:
            raise ValidationError("--lat and --lng must both be given and within range")
    filters = ListFilters(city=args.city, state=args.state, category=args.category)
    async with create_store_client(settings.store) as store:
        resolver = EntityResolver(store, settings=settings.resolver, metrics=metrics)
        results = await resolver.get_list(
            args.page,
            args.page_size,
            location,
            filters=filters if filters.as_eq() else None,
        )
    _emit([result.model_dump(mode="json") for result in results])
    return EXIT_OK


async def run_get(args: argparse.Namespace, settings: Settings, metrics: MetricsRegistry) -> int:
    """Execute the get command end-to-end."""
    async with create_store_client(settings.store) as store:
        resolver = EntityResolver(store, settings=settings.resolver, metrics=metrics)
        result = await resolver.get_by_id(args.identifier)
    if isinstance(result, NotFound):
        _emit(dict(result.as_dict()))
        return EXIT_NOT_FOUND
    _emit(result.model_dump(mode="json"))
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI."""
    load_dotenv()
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    try:
        settings = apply_env_overrides(load_settings(DEFAULT_SETTINGS_PATH))
    except ConfigError as exc:
        raise SystemExit(f"Failed to load settings: {exc}")
    configure_logging(settings.logging_config)

    if args.command == "check-config":
        _emit(_settings_report(settings))
        return

    if args.command == "seed-fixture":
        from scripts.seed_fixture import seed_fixture

        _emit({"fixture": str(seed_fixture(args.path))})
        return

    metrics = MetricsRegistry()
    runner = run_list if args.command == "list" else run_get
    try:
        code = _run(runner(args, settings, metrics))
    except ValidationError as exc:
        sys.stderr.write(f"invalid request: {exc}\n")
        code = EXIT_FAILED
    except (ResolutionFailed, StoreError) as exc:
        sys.stderr.write(f"lookup failed, try again later: {exc}\n")
        code = EXIT_FAILED
    if args.metrics_out is not None:
        metrics.export(path=args.metrics_out, run_id=datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S"))
    if code != EXIT_OK:
        raise SystemExit(code)


if __name__ == "__main__":
    main()
