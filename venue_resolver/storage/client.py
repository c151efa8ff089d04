"""Read-only clients for the hosted relational backend."""
from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Protocol

import httpx
import orjson
import structlog

from venue_resolver.errors import StoreError
from venue_resolver.observability.tracing import log_retry
from venue_resolver.settings import StoreSettings
from venue_resolver.storage.models import Location

LOGGER = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TableQuery:
    """Filters and window for a single table read."""

    eq: Mapping[str, object] = field(default_factory=dict)
    order_by: Optional[str] = None
    descending: bool = False
    limit: Optional[int] = None
    offset: Optional[int] = None


class StoreClient(Protocol):
    """The two reads the resolver needs from the persistent store."""

    async def query_table(self, table: str, query: TableQuery) -> Any:
        ...

    async def query_aggregating_service(self, page: int, page_size: int, location: Optional[Location]) -> Any:
        ...


def _eq_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class RestStoreClient:
    """PostgREST-dialect client over a shared ``httpx.AsyncClient``."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        service_function: str,
        max_attempts: int = 3,
        backoff_seconds: float = 0.5,
    ) -> None:
        self._client = client
        self._service_function = service_function
        self._max_attempts = max(1, max_attempts)
        self._backoff = backoff_seconds

    async def _send(self, method: str, path: str, **kwargs: Any) -> Any:
        delay = self._backoff
        for attempt in range(1, self._max_attempts + 1):
            try:
                response = await self._client.request(method, path, **kwargs)
                break
            except httpx.TransportError as exc:
                log_retry(attempt, path=path, reason=str(exc))
                if attempt == self._max_attempts:
                    raise StoreError(f"{method} {path} failed: {exc}") from exc
                await asyncio.sleep(delay)
                delay *= 2

        if response.status_code >= 400:
            raise StoreError(
                f"{method} {path} returned {response.status_code}: {response.text[:200]}",
                status=response.status_code,
            )
        if not response.content:
            return []
        try:
            return orjson.loads(response.content)
        except orjson.JSONDecodeError as exc:
            raise StoreError(f"{method} {path} returned invalid JSON") from exc

    async def query_table(self, table: str, query: TableQuery) -> Any:
        params: List[tuple[str, str]] = [("select", "*")]
        for name, value in query.eq.items():
            params.append((name, f"eq.{_eq_value(value)}"))
        if query.order_by:
            params.append(("order", f"{query.order_by}.{'desc' if query.descending else 'asc'}"))
        if query.limit is not None:
            params.append(("limit", str(query.limit)))
        if query.offset:
            params.append(("offset", str(query.offset)))
        return await self._send("GET", f"/rest/v1/{table}", params=params)

    async def query_aggregating_service(self, page: int, page_size: int, location: Optional[Location]) -> Any:
        body: Dict[str, object] = {"page": page, "page_size": page_size}
        if location is not None:
            body.update({"lat": location.lat, "lng": location.lng})
            if location.city:
                body["city"] = location.city
        return await self._send("POST", f"/rest/v1/rpc/{self._service_function}", json=body)


class FixtureStoreClient:
    """Serves both reads from a local JSON fixture file.

    The fixture holds ``{"tables": {name: [rows]}, "service": [rows]}``;
    ``"service"`` may instead be ``{"error": "..."}`` to simulate an outage.
    """

    def __init__(self, path: Path) -> None:
        try:
            payload = orjson.loads(path.read_bytes())
        except (OSError, orjson.JSONDecodeError) as exc:
            raise StoreError(f"cannot read fixture {path}: {exc}") from exc
        if not isinstance(payload, dict):
            raise StoreError(f"fixture {path} must hold a JSON object")
        self._path = path
        self._tables: Dict[str, List[Dict[str, Any]]] = payload.get("tables") or {}
        self._service = payload.get("service")

    async def query_table(self, table: str, query: TableQuery) -> Any:
        if table not in self._tables:
            raise StoreError(f"relation {table!r} does not exist in {self._path.name}", status=404)
        rows = [
            row
            for row in self._tables[table]
            if all(_eq_value(row.get(name)) == _eq_value(value) for name, value in query.eq.items())
        ]
        if query.order_by:
            key = query.order_by
            present = [row for row in rows if row.get(key) is not None]
            missing = [row for row in rows if row.get(key) is None]
            present.sort(key=lambda row: row[key], reverse=query.descending)
            rows = present + missing
        start = query.offset or 0
        end = start + query.limit if query.limit is not None else None
        return rows[start:end]

    async def query_aggregating_service(self, page: int, page_size: int, location: Optional[Location]) -> Any:
        if isinstance(self._service, dict) and "error" in self._service:
            raise StoreError(str(self._service["error"]), status=500)
        rows = list(self._service or [])
        start = (page - 1) * page_size
        return rows[start:start + page_size]


@contextlib.asynccontextmanager
async def create_store_client(settings: StoreSettings) -> AsyncIterator[StoreClient]:
    """Yield the configured store client for the duration of the context."""
    if settings.fixture_path is not None:
        LOGGER.info("store_client", kind="fixture", path=str(settings.fixture_path))
        yield FixtureStoreClient(settings.fixture_path)
        return
    if not settings.url:
        raise StoreError("no store URL or fixture configured")
    headers = {"Accept": "application/json"}
    if settings.api_key:
        headers["apikey"] = settings.api_key
        headers["Authorization"] = f"Bearer {settings.api_key}"
    limits = httpx.Limits(max_connections=settings.max_connections, max_keepalive_connections=settings.max_connections)
    LOGGER.info("store_client", kind="rest", url=settings.url)
    async with httpx.AsyncClient(
        base_url=settings.url,
        headers=headers,
        limits=limits,
        timeout=settings.timeout_seconds,
    ) as client:
        yield RestStoreClient(
            client,
            service_function=settings.service_function,
            max_attempts=settings.max_attempts,
            backoff_seconds=settings.backoff_seconds,
        )
