import asyncio
from typing import Any, Dict, List, Optional

import pytest

from venue_resolver.storage.client import TableQuery


class RecordingStore:
    """In-memory store double that records every call in order.

    ``service`` and table entries may be row lists or exceptions to raise.
    With ``scripted=True`` the service value is a list of responses consumed
    one per call. When ``gate`` is set, calls block on it before answering.
    """

    def __init__(
        self,
        service: Any = None,
        tables: Optional[Dict[str, Any]] = None,
        *,
        scripted: bool = False,
        gate: Optional[asyncio.Event] = None,
    ) -> None:
        self.service = service
        self.tables = tables or {}
        self.scripted = scripted
        self.gate = gate
        self.calls: List[tuple] = []
        self.queries: List[TableQuery] = []

    async def _wait(self) -> None:
        gate = self.gate
        if gate is not None:
            await gate.wait()

    @staticmethod
    def _answer(response: Any) -> Any:
        if isinstance(response, Exception):
            raise response
        return response

    async def query_aggregating_service(self, page, page_size, location):
        self.calls.append(("service", page, page_size, location))
        response = self.service.pop(0) if self.scripted else self.service
        await self._wait()
        return self._answer(response)

    async def query_table(self, table: str, query: TableQuery):
        self.calls.append(("table", table, dict(query.eq)))
        self.queries.append(query)
        response = self.tables.get(table, [])
        await self._wait()
        rows = self._answer(response)
        return [row for row in rows if all(str(row.get(k)) == str(v) for k, v in query.eq.items())]

    def tiers_called(self) -> List[str]:
        return [call[0] if call[0] == "service" else f"table:{call[1]}" for call in self.calls]


@pytest.fixture()
def make_store():
    return RecordingStore
