"""Merge helper for records that share an id."""
from __future__ import annotations

from typing import Dict

from venue_resolver.storage.models import EntityRecord

# Coordinates travel as a pair and are merged together.
_COORDINATES = ("lat", "lng")


class EntityMerger:
    """Fills fields missing on the kept record from a later duplicate."""

    def merge(self, existing: EntityRecord, candidate: EntityRecord) -> EntityRecord:
        """Return a new record; values already present on ``existing`` win."""
        updates: Dict[str, object] = {}
        for key, value in candidate.model_dump(exclude=set(_COORDINATES)).items():
            if value in (None, ""):
                continue
            if getattr(existing, key) in (None, ""):
                updates[key] = value
        if not existing.has_coordinates and candidate.has_coordinates:
            updates["lat"] = candidate.lat
            updates["lng"] = candidate.lng
        if not updates:
            return existing
        return existing.model_copy(update=updates)
