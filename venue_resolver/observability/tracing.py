"""Tracing helpers for resolution requests and tier attempts."""
from __future__ import annotations

import contextlib
import time
from typing import Iterator, List

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars


def _logger():
    return structlog.get_logger("venue_resolver.trace")


def set_context(*, call_site: str, generation: int, operation: str) -> None:
    bind_contextvars(call_site=call_site, generation=generation, operation=operation)
    _logger().debug("trace_context")


def clear_context() -> None:
    clear_contextvars()


@contextlib.contextmanager
def span(*, name: str, tier: str) -> Iterator[List[int]]:
    """Time a block; the yielded list receives the elapsed milliseconds."""
    elapsed: List[int] = []
    start = time.perf_counter()
    try:
        yield elapsed
    finally:
        elapsed.append(int((time.perf_counter() - start) * 1000))
        _logger().debug("trace_span", span=name, tier=tier, elapsed_ms=elapsed[-1])


def log_retry(attempt: int, *, path: str, reason: str) -> None:
    _logger().warning("store_retry", attempt=attempt, path=path, reason=reason)


def log_tier_result(*, tier: str, kind: str, rows: int, records: int, elapsed_ms: int) -> None:
    _logger().info("tier_result", tier=tier, outcome=kind, rows=rows, records=records, elapsed_ms=elapsed_ms)


def log_tier_failure(*, tier: str, reason: str, elapsed_ms: int) -> None:
    _logger().warning("tier_failure", tier=tier, reason=reason, elapsed_ms=elapsed_ms)
