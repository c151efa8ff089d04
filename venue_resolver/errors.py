"""Error taxonomy for venue resolution."""
from __future__ import annotations

from typing import Optional, Sequence


class ResolverError(Exception):
    """Base class for every error raised by the resolver."""


class ConfigError(ResolverError):
    """Settings could not be loaded or failed validation."""


class ValidationError(ResolverError, ValueError):
    """A request was malformed (bad page, page size or identifier)."""


class StoreError(ResolverError):
    """A read against the persistent store failed."""

    def __init__(self, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class TierFailure(ResolverError):
    """A single fallback tier errored; recovered by moving to the next tier."""

    def __init__(self, tier: str, cause: BaseException) -> None:
        super().__init__(f"{tier}: {cause}")
        self.tier = tier
        self.cause = cause


class ResolutionFailed(ResolverError):
    """Every tier failed, so nothing could be retrieved right now."""

    def __init__(self, failures: Sequence[TierFailure]) -> None:
        tiers = ", ".join(failure.tier for failure in failures) or "none"
        super().__init__(f"all tiers failed ({tiers})")
        self.failures = list(failures)


class RequestSuperseded(ResolverError):
    """The request was cancelled or replaced by a newer one for the same call site."""

    def __init__(self, call_site: str, generation: int) -> None:
        super().__init__(f"request {generation} for {call_site!r} was superseded")
        self.call_site = call_site
        self.generation = generation


class RowRejected(ResolverError):
    """A backend row could not be normalised into an entity record."""
