"""Per-key poll loop for an active remote search.

A Poller repeatedly fetches the newly available results of one remote
search, merges them into the result cache, reports progress to the
segment views that share its key, and decides when to stop:

- ``completed``: the provider reports 100% (or explicitly no results
  while some results were already merged).
- ``stalled_no_results``: the provider reports no results, or the search
  is at least half done and several consecutive pages came back empty.
- ``stalled_idle``: too many consecutive cycles added nothing new.
- ``failed``: a fetch failed twice in a row.
- ``cancelled``: deactivated by a new batch or by teardown.

Each cycle performs at most one cache write and one view update, and
cycles for one key never overlap.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from multicity.config import SearchSettings
from multicity.errors import FetchError
from multicity.models import (
    CacheEntry,
    Cursor,
    PageStatus,
    PassengerCount,
    PollerState,
    ResultPage,
    SegmentQuery,
    SegmentView,
)
from multicity.search.cache import ResultCache
from multicity.search.retry import retry_once

logger = logging.getLogger(__name__)

NO_FLIGHTS_FOR_ROUTE = "No flights found for this route and date."
NO_FLIGHTS_AFTER_ATTEMPTS = (
    "No flights found after multiple attempts. Please try different search criteria."
)
SOME_RESULTS_MISSING = "Could not load more results. Some flights may be missing."
NO_FLIGHTS_TRY_AGAIN = "No flights found. Please try different dates or airports."


class SearchAPI(Protocol):
    """Remote search service: start a search, then poll it by id."""

    async def submit_search(self, query: SegmentQuery) -> str:
        """Start a search and return its opaque id."""
        ...

    async def fetch_results(self, search_id: str, cursor: Optional[Cursor] = None) -> ResultPage:
        """Return results that became available after ``cursor``."""
        ...


ViewMutator = Callable[[SegmentView], None]
ViewUpdater = Callable[[ViewMutator], None]


@dataclass
class PollState:
    """Counters for one poll loop. Never shared with the orchestrator."""

    passengers: PassengerCount
    active: bool = False
    idle_polls: int = 0
    empty_polls: int = 0
    results_found: int = 0
    task: Optional[asyncio.Task] = None


class Poller:
    """Drives one remote search from first poll to a terminal state."""

    def __init__(
        self,
        key: str,
        search_id: str,
        api: SearchAPI,
        cache: ResultCache,
        update_view: ViewUpdater,
        passengers: PassengerCount,
        settings: Optional[SearchSettings] = None,
    ) -> None:
        self.key = key
        self.search_id = search_id
        self._api = api
        self._cache = cache
        self._update_view = update_view
        self._settings = settings or SearchSettings()
        self.poll_state = PollState(passengers=passengers)
        self.state = PollerState.IDLE
        self._last: Optional[CacheEntry] = None

    @property
    def active(self) -> bool:
        return self.poll_state.active

    def start(self, cursor: Optional[Cursor] = None) -> asyncio.Task:
        """Begin polling in a background task, optionally resuming from a cursor."""
        if self.state != PollerState.IDLE:
            raise RuntimeError(f"Poller for {self.key} already started ({self.state.value})")

        entry = self._current_entry()
        if entry is not None:
            self.poll_state.results_found = len(entry.results)

        self.state = PollerState.ACTIVE
        self.poll_state.active = True

        def _show_loading(view: SegmentView) -> None:
            view.loading = True
            view.has_more = True
            view.is_complete = False

        self._update_view(_show_loading)

        task = asyncio.get_running_loop().create_task(self._run(cursor))
        self.poll_state.task = task
        logger.debug("Polling %s (search %s) from cursor %s", self.key, self.search_id, cursor)
        return task

    def deactivate(self) -> None:
        """Stop polling. An in-flight cycle is abandoned without side effects."""
        if not self.state.is_terminal:
            self.state = PollerState.CANCELLED
        self.poll_state.active = False

        task = self.poll_state.task
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()

    async def wait(self) -> PollerState:
        """Wait for the poll loop to end and return the final state."""
        task = self.poll_state.task
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        return self.state

    # ------------------------------------------------------------------
    # Poll loop
    # ------------------------------------------------------------------

    async def _run(self, cursor: Optional[Cursor]) -> None:
        try:
            while True:
                keep_going, cursor = await self._poll_once(cursor)
                if not keep_going:
                    return
                await asyncio.sleep(self._settings.poll_interval)
                if not self.poll_state.active:
                    return
        except asyncio.CancelledError:
            if not self.state.is_terminal:
                self.state = PollerState.CANCELLED
            self.poll_state.active = False
            raise

    async def _poll_once(self, cursor: Optional[Cursor]) -> tuple[bool, Optional[Cursor]]:
        """Run one cycle. Returns whether to continue, and the next cursor."""
        try:
            page = await retry_once(
                lambda: self._api.fetch_results(self.search_id, cursor),
                FetchError,
                f"Fetching results for {self.key}",
            )
        except FetchError as exc:
            if not self.poll_state.active:
                return False, cursor
            self._fail(exc)
            return False, cursor

        if not self.poll_state.active:
            logger.debug("Discarding page for %s: poller deactivated", self.key)
            return False, cursor

        return self._apply_page(page, cursor)

    def _apply_page(self, page: ResultPage, cursor: Optional[Cursor]) -> tuple[bool, Optional[Cursor]]:
        settings = self._settings
        state = self.poll_state
        completion = page.completion

        entry = self._current_entry()
        merged = {r.result_id: r for r in entry.results} if entry else {}
        before = len(merged)

        outcome: Optional[PollerState] = None
        error: Optional[str] = None

        if page.is_empty:
            if completion >= 100 or page.status == PageStatus.NO_RESULTS:
                if merged:
                    outcome = PollerState.COMPLETED
                else:
                    outcome = PollerState.STALLED_NO_RESULTS
                    error = page.message or NO_FLIGHTS_FOR_ROUTE
            else:
                state.empty_polls += 1
                if (
                    state.empty_polls >= settings.max_empty_polls
                    and completion >= settings.fast_fail_completion
                ):
                    outcome = PollerState.STALLED_NO_RESULTS
                    error = None if merged else NO_FLIGHTS_AFTER_ATTEMPTS
        else:
            state.empty_polls = 0
            for item in page.results:
                # Resent ids overwrite in place, keeping first-seen order
                merged[item.result_id] = item.stamped(self.search_id, state.passengers)

        added = len(merged) - before
        state.results_found += added

        if outcome is None:
            if added == 0 and completion < 100:
                state.idle_polls += 1
            else:
                state.idle_polls = 0

            if state.results_found == 0:
                ceiling = settings.max_idle_polls_no_results
            else:
                ceiling = settings.max_idle_polls

            if state.idle_polls >= ceiling:
                outcome = PollerState.STALLED_IDLE
                error = None if merged else NO_FLIGHTS_AFTER_ATTEMPTS
            elif completion >= 100:
                outcome = PollerState.COMPLETED

        previous_progress = entry.progress if entry else 0
        progress = max(previous_progress, completion)
        was_complete = entry.is_complete if entry else False
        next_cursor = page.resume_cursor if page.resume_cursor is not None else cursor
        results = list(merged.values())

        self._last = self._cache.put(
            self.key,
            CacheEntry(
                results=results,
                is_complete=was_complete or outcome is not None,
                progress=progress,
                cursor=next_cursor,
                search_id=self.search_id,
            ),
        )

        logger.debug(
            "Poll %s: %d%% complete, +%d new (%d total), idle=%d empty=%d",
            self.key, completion, added, len(results), state.idle_polls, state.empty_polls,
        )

        def _apply(view: SegmentView) -> None:
            view.results = list(results)
            view.progress = progress
            view.cursor = next_cursor
            view.search_id = self.search_id
            if outcome is None:
                view.is_complete = False
                view.loading = True
            else:
                view.is_complete = True
                view.loading = False
                view.error = error
            view.refresh_has_more()

        self._update_view(_apply)

        if outcome is None:
            return True, next_cursor

        self._finish(outcome, len(results))
        return False, next_cursor

    def _current_entry(self) -> Optional[CacheEntry]:
        """The cached state of this search, or the last state this poller wrote.

        Falls back to the poller's own copy when the cache was cleared or
        the key now belongs to a different search.
        """
        entry = self._cache.get(self.key)
        if entry is not None and entry.search_id == self.search_id:
            return entry
        return self._last

    def _fail(self, exc: FetchError) -> None:
        entry = self._current_entry()
        had_results = bool(entry and entry.results)
        error = SOME_RESULTS_MISSING if had_results else NO_FLIGHTS_TRY_AGAIN

        # Mark the search finished so a later cache hit does not resume it
        final = entry or CacheEntry(search_id=self.search_id)
        self._last = self._cache.put(self.key, final.model_copy(update={"is_complete": True}))

        def _apply(view: SegmentView) -> None:
            view.loading = False
            view.is_complete = True
            view.error = error
            view.refresh_has_more()

        self._update_view(_apply)
        logger.warning("Polling %s stopped: %s", self.key, exc)
        self._finish(PollerState.FAILED, len(entry.results) if entry else 0)

    def _finish(self, outcome: PollerState, result_count: int) -> None:
        self.state = outcome
        self.poll_state.active = False
        logger.info("Search %s %s with %d results", self.key, outcome.value, result_count)


class PollerRegistry:
    """Every live Poller writing into one result cache.

    Orchestrators that share a cache share a registry, so starting a new
    batch from any of them stops the pollers of all of them.
    """

    def __init__(self) -> None:
        self._pollers: list[Poller] = []

    def add(self, poller: Poller) -> None:
        self._pollers = [p for p in self._pollers if p.active]
        self._pollers.append(poller)

    def deactivate_all(self) -> int:
        """Deactivate every registered poller. Returns how many were still active."""
        pollers, self._pollers = self._pollers, []
        stopped = 0
        for poller in pollers:
            if poller.active:
                stopped += 1
            poller.deactivate()
        return stopped

    def __len__(self) -> int:
        return sum(1 for p in self._pollers if p.active)


_registries: "weakref.WeakKeyDictionary[ResultCache, PollerRegistry]" = weakref.WeakKeyDictionary()


def registry_for(cache: ResultCache) -> PollerRegistry:
    """The registry shared by every orchestrator writing into ``cache``."""
    registry = _registries.get(cache)
    if registry is None:
        registry = _registries[cache] = PollerRegistry()
    return registry
