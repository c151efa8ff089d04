"""Tagged outcomes produced by fallback tiers and the chain as a whole."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Tuple

from venue_resolver.errors import TierFailure
from venue_resolver.normalize.records import SourceShape
from venue_resolver.storage.models import EntityRecord


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    EMPTY = "empty"
    FAILURE = "failure"


@dataclass(frozen=True)
class TierOutcome:
    """Result of a single tier attempt.

    ``rows`` holds the raw payload rows; ``records`` the normalised, de-duplicated
    and filtered records that decide whether the tier succeeded.
    """

    tier: str
    kind: OutcomeKind
    shape: SourceShape = SourceShape.PRIMARY
    rows: Tuple[Any, ...] = ()
    records: Tuple[EntityRecord, ...] = ()
    failure: Optional[TierFailure] = None
    elapsed_ms: int = 0

    @classmethod
    def success(
        cls,
        tier: str,
        rows: Tuple[Any, ...],
        records: Tuple[EntityRecord, ...],
        *,
        shape: SourceShape,
        elapsed_ms: int = 0,
    ) -> "TierOutcome":
        return cls(tier=tier, kind=OutcomeKind.SUCCESS, shape=shape, rows=rows, records=records, elapsed_ms=elapsed_ms)

    @classmethod
    def empty(
        cls, tier: str, rows: Tuple[Any, ...] = (), *, shape: SourceShape, elapsed_ms: int = 0
    ) -> "TierOutcome":
        return cls(tier=tier, kind=OutcomeKind.EMPTY, shape=shape, rows=rows, elapsed_ms=elapsed_ms)

    @classmethod
    def failed(cls, tier: str, cause: BaseException, *, shape: SourceShape, elapsed_ms: int = 0) -> "TierOutcome":
        return cls(
            tier=tier,
            kind=OutcomeKind.FAILURE,
            shape=shape,
            failure=TierFailure(tier, cause),
            elapsed_ms=elapsed_ms,
        )


@dataclass(frozen=True)
class FallbackOutcome:
    """Aggregate result of running a chain of tiers.

    ``SUCCESS`` carries the records of the first tier that produced any.
    ``FAILURE`` means every tier errored. Any other combination is ``EMPTY``.
    """

    kind: OutcomeKind
    attempts: Tuple[TierOutcome, ...] = ()

    @property
    def winner(self) -> Optional[TierOutcome]:
        if self.kind is not OutcomeKind.SUCCESS:
            return None
        return self.attempts[-1]

    @property
    def rows(self) -> Tuple[Any, ...]:
        winner = self.winner
        return winner.rows if winner is not None else ()

    @property
    def records(self) -> Tuple[EntityRecord, ...]:
        winner = self.winner
        return winner.records if winner is not None else ()

    @property
    def shape(self) -> Optional[SourceShape]:
        winner = self.winner
        return winner.shape if winner is not None else None

    @property
    def failures(self) -> Tuple[TierFailure, ...]:
        return tuple(attempt.failure for attempt in self.attempts if attempt.failure is not None)

    @property
    def tiers(self) -> Tuple[str, ...]:
        return tuple(attempt.tier for attempt in self.attempts)


@dataclass(frozen=True)
class NotFound:
    """Terminal by-id outcome: every tier answered and none held the entity."""

    identifier: str
    partial_failures: Tuple[str, ...] = ()

    def as_dict(self) -> Mapping[str, object]:
        return {
            "identifier": self.identifier,
            "found": False,
            "partial_failures": list(self.partial_failures),
        }
