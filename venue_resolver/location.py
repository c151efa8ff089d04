"""Sources of the caller's reference location."""
from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol

from pydantic import ValidationError

from venue_resolver.storage.models import Location


class LocationSource(Protocol):
    """Supplies the latest known location without blocking, or None."""

    def current(self) -> Optional[Location]:
        ...


class StaticLocationSource:
    """Holds a location that the host application updates over time."""

    def __init__(self, location: Optional[Location] = None) -> None:
        self._location = location

    def current(self) -> Optional[Location]:
        return self._location

    def update(self, location: Optional[Location]) -> None:
        self._location = location


def location_from_mapping(payload: Mapping[str, Any]) -> Optional[Location]:
    """Build a Location from ``lat``/``lng`` (or ``latitude``/``longitude``) keys.

    Returns None when either coordinate is missing or out of range.
    """
    lat = payload.get("lat", payload.get("latitude"))
    lng = payload.get("lng", payload.get("longitude"))
    if lat is None or lng is None:
        return None
    try:
        return Location(
            lat=lat,
            lng=lng,
            city=payload.get("city") or None,
            state=payload.get("state") or None,
            country=payload.get("country") or None,
        )
    except ValidationError:
        return None
