"""Mapping of heterogeneous backend rows onto the canonical entity shape."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import structlog
from pydantic import ValidationError as PydanticValidationError

from venue_resolver.errors import RowRejected
from venue_resolver.storage.models import EntityRecord

LOGGER = structlog.get_logger(__name__)

# An alias is a top-level key or a path into nested objects.
Alias = Union[str, Tuple[str, ...]]

_ENVELOPE_KEYS = ("data", "results", "rows", "items")


class SourceShape(str, Enum):
    """Row layouts produced by the backend."""

    PRIMARY = "primary"
    ALTERNATE = "alternate"


PRIMARY_ALIASES: Dict[str, Sequence[Alias]] = {
    "id": ("id",),
    "slug": ("slug",),
    "name": ("name",),
    "address": ("address",),
    "city": ("city",),
    "state": ("state",),
    "country": ("country",),
    "lat": ("latitude", "lat"),
    "lng": ("longitude", "lng"),
    "category": ("category",),
    "created_at": ("created_at",),
}

ALTERNATE_ALIASES: Dict[str, Sequence[Alias]] = {
    "id": ("id",),
    "slug": ("slug", ("profile", "slug")),
    "name": ("business_name", "name", ("profile", "business_name"), ("profile", "name"), "title"),
    "address": ("address", "street_address", ("location", "address"), ("profile", "address")),
    "city": ("city", ("location", "city"), ("profile", "city")),
    "state": ("state", "region", ("location", "state"), ("profile", "state")),
    "country": ("country", ("location", "country"), ("profile", "country")),
    "lat": (
        "latitude",
        "lat",
        ("location", "lat"),
        ("location", "latitude"),
        ("coordinates", "lat"),
        ("coordinates", "latitude"),
    ),
    "lng": (
        "longitude",
        "lng",
        ("location", "lng"),
        ("location", "longitude"),
        ("coordinates", "lng"),
        ("coordinates", "longitude"),
    ),
    "category": ("business_type", "category", "type", ("profile", "business_type")),
    "created_at": ("created_at", "inserted_at", ("profile", "created_at")),
}

ALIASES: Dict[SourceShape, Dict[str, Sequence[Alias]]] = {
    SourceShape.PRIMARY: PRIMARY_ALIASES,
    SourceShape.ALTERNATE: ALTERNATE_ALIASES,
}


@dataclass
class NormalizedBatch:
    """Records that normalised cleanly plus the count of rejected rows."""

    records: List[EntityRecord] = field(default_factory=list)
    failures: int = 0


def _lookup(row: Mapping[str, Any], alias: Alias) -> Any:
    if isinstance(alias, str):
        return row.get(alias)
    current: Any = row
    for key in alias:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
    return current


def _clean(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def _resolve(row: Mapping[str, Any], aliases: Sequence[Alias]) -> Any:
    for alias in aliases:
        value = _clean(_lookup(row, alias))
        if value is not None:
            return value
    return None


def _as_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    return str(value)


def _as_coordinate(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number:  # NaN
        return None
    return number


def _coordinates(lat: Any, lng: Any) -> Tuple[Optional[float], Optional[float]]:
    lat_value = _as_coordinate(lat)
    lng_value = _as_coordinate(lng)
    if lat_value is None or lng_value is None:
        return None, None
    if lat_value == 0 and lng_value == 0:
        return None, None
    if not (-90 <= lat_value <= 90 and -180 <= lng_value <= 180):
        return None, None
    return lat_value, lng_value


def normalize_row(
    row: Mapping[str, Any],
    shape: SourceShape = SourceShape.PRIMARY,
    *,
    fetched_at: Optional[datetime] = None,
) -> EntityRecord:
    """Build an :class:`EntityRecord` from one backend row.

    Each target field takes the first alias (in precedence order) holding a
    value. Optional fields without a match become ``None``. Raises
    :class:`RowRejected` when the row has no ``id`` or carries values the
    canonical model cannot accept.
    """
    if not isinstance(row, Mapping):
        raise RowRejected(f"row is {type(row).__name__}, expected an object")
    aliases = ALIASES[SourceShape(shape)]
    identifier = _as_text(_resolve(row, aliases["id"]))
    if not identifier:
        raise RowRejected("row has no id")

    slug = _as_text(_resolve(row, aliases["slug"]))
    lat, lng = _coordinates(_resolve(row, aliases["lat"]), _resolve(row, aliases["lng"]))
    created_at = _resolve(row, aliases["created_at"])
    if created_at is None:
        created_at = fetched_at or datetime.now(timezone.utc)

    payload = {
        "id": identifier,
        "slug": slug,
        "name": _as_text(_resolve(row, aliases["name"])) or slug or "",
        "address": _as_text(_resolve(row, aliases["address"])),
        "city": _as_text(_resolve(row, aliases["city"])),
        "state": _as_text(_resolve(row, aliases["state"])),
        "country": _as_text(_resolve(row, aliases["country"])),
        "lat": lat,
        "lng": lng,
        "category": _as_text(_resolve(row, aliases["category"])),
        "created_at": created_at,
    }
    try:
        return EntityRecord(**payload)
    except PydanticValidationError as exc:
        raise RowRejected(f"row {identifier}: {exc.error_count()} invalid field(s)") from exc


def coerce_rows(payload: Any) -> List[Any]:
    """Flatten a store payload into a list of rows.

    Accepts a list of rows, a single row object, or an envelope object
    holding the rows under ``data``/``results``/``rows``/``items``. An object
    with an ``id`` is always a single row, whatever list fields it carries.
    """
    if payload is None:
        return []
    if isinstance(payload, list):
        return list(payload)
    if isinstance(payload, Mapping):
        if "id" in payload:
            return [payload]
        for key in _ENVELOPE_KEYS:
            inner = payload.get(key)
            if isinstance(inner, list):
                return list(inner)
        return [payload]
    return [payload]


def normalize_batch(
    rows: Iterable[Any],
    shape: SourceShape = SourceShape.PRIMARY,
    *,
    fetched_at: Optional[datetime] = None,
) -> NormalizedBatch:
    """Normalise every row, dropping and counting those that are rejected."""
    stamp = fetched_at or datetime.now(timezone.utc)
    batch = NormalizedBatch()
    for row in rows:
        try:
            batch.records.append(normalize_row(row, shape, fetched_at=stamp))
        except RowRejected as exc:
            batch.failures += 1
            LOGGER.debug("row_rejected", shape=SourceShape(shape).value, reason=str(exc))
    return batch
