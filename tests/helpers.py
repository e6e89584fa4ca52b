"""Test doubles and page builders shared across test modules."""

import asyncio
from typing import Optional, Union

from multicity.models import FlightResult, PageStatus, ResultPage, SegmentQuery


class FakeSearchAPI:
    """In-memory stand-in for the remote search service.

    Search ids are derived from the route (``S-LHRJFK``). Each search id
    plays back a script of pages or exceptions; the last item repeats once
    the script is exhausted. Gates hold submissions (by route) or fetches
    (by search id) until they are set.
    """

    def __init__(self) -> None:
        self.scripts: dict[str, list[Union[ResultPage, Exception]]] = {}
        self.submit_errors: dict[str, list[Exception]] = {}
        self.submit_ids: dict[str, str] = {}
        self.submit_calls: list[SegmentQuery] = []
        self.fetch_calls: list[tuple[str, object]] = []
        self.submit_gates: dict[str, asyncio.Event] = {}
        self.fetch_gates: dict[str, asyncio.Event] = {}
        self._positions: dict[str, int] = {}

    def available(self) -> bool:
        return True

    def script(self, search_id: str, items: list[Union[ResultPage, Exception]]) -> None:
        self.scripts[search_id] = list(items)
        self._positions[search_id] = 0

    @staticmethod
    def search_id_for(route: str) -> str:
        return "S-" + route.replace("-", "")

    async def submit_search(self, query: SegmentQuery) -> str:
        route = query.segment.route
        self.submit_calls.append(query)
        gate = self.submit_gates.get(route)
        if gate is not None:
            await gate.wait()
        errors = self.submit_errors.get(route)
        if errors:
            raise errors.pop(0)
        return self.submit_ids.get(route, self.search_id_for(route))

    async def fetch_results(self, search_id: str, cursor=None) -> ResultPage:
        self.fetch_calls.append((search_id, cursor))
        gate = self.fetch_gates.get(search_id)
        if gate is not None:
            await gate.wait()
        items = self.scripts.get(search_id) or [ResultPage(completion=100)]
        pos = self._positions.get(search_id, 0)
        item = items[min(pos, len(items) - 1)]
        self._positions[search_id] = pos + 1
        if isinstance(item, Exception):
            raise item
        return item


def page(
    completion: Union[int, bool],
    ids: tuple = (),
    cursor=None,
    status: str = "ok",
    message: Optional[str] = None,
    price: float = 100.0,
) -> ResultPage:
    """Build a result page holding one FlightResult per id."""
    return ResultPage(
        completion=completion,
        results=[FlightResult(result_id=i, price=price, currency="USD") for i in ids],
        resume_cursor=cursor,
        status=PageStatus(status),
        message=message,
    )


async def settle(rounds: int = 20) -> None:
    """Let pending tasks run until they block."""
    for _ in range(rounds):
        await asyncio.sleep(0)
