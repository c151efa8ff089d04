"""Deduplication of normalised records within one resolution batch."""
from __future__ import annotations

from typing import Dict, Iterable, List

from venue_resolver.quality.merge import EntityMerger
from venue_resolver.storage.models import EntityRecord


class Deduplicator:
    """Keeps the first record per id, back-filling it from later duplicates."""

    def __init__(self, merger: EntityMerger | None = None) -> None:
        self._merger = merger or EntityMerger()
        self._seen: Dict[str, EntityRecord] = {}
        self._order: List[str] = []
        self.duplicates = 0

    def key_for(self, record: EntityRecord) -> str:
        """Compute the identity key for the record."""
        return record.id

    def is_duplicate(self, record: EntityRecord) -> bool:
        """Return True when a record with the same id was already seen."""
        return self.key_for(record) in self._seen

    def remember(self, record: EntityRecord) -> None:
        """Record the entity, merging it into an earlier one with the same id."""
        key = self.key_for(record)
        if not self.is_duplicate(record):
            self._seen[key] = record
            self._order.append(key)
            return
        self.duplicates += 1
        self._seen[key] = self._merger.merge(self._seen[key], record)

    def records(self) -> List[EntityRecord]:
        """Return the surviving records in first-seen order."""
        return [self._seen[key] for key in self._order]


def deduplicate(records: Iterable[EntityRecord]) -> tuple[List[EntityRecord], int]:
    """Collapse records sharing an id, returning survivors and the duplicate count."""
    dedup = Deduplicator()
    for record in records:
        dedup.remember(record)
    return dedup.records(), dedup.duplicates
