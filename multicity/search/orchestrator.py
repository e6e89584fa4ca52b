"""Batch coordinator for multi-segment flight searches.

For each segment of a batch the orchestrator reuses a fresh cached
search, joins an in-flight submission for the same key, or submits a new
remote search; it then hands the search to a :class:`Poller` and keeps
one :class:`SegmentView` per requested segment up to date.

Usage::

    async with SegmentOrchestrator(api) as orchestrator:
        await orchestrator.start_batch(segments, PassengerCount(adults=2))
        await orchestrator.wait_for_pollers()
        for view in orchestrator.views:
            ...
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Sequence, Union

from multicity.config import SearchSettings
from multicity.errors import SubmissionError
from multicity.models import (
    CabinClass,
    CacheEntry,
    Cursor,
    PassengerCount,
    PollerState,
    SegmentInput,
    SegmentQuery,
    SegmentView,
)
from multicity.search.cache import ResultCache, default_cache
from multicity.search.dedup import SubmissionDeduplicator, default_deduplicator
from multicity.search.keys import build_segment_key
from multicity.search.poller import Poller, PollerRegistry, SearchAPI, ViewMutator, registry_for
from multicity.search.retry import retry_once

logger = logging.getLogger(__name__)

SEARCH_INIT_FAILED = "Search initialization failed."

Listener = Callable[[int, SegmentView], None]


class SegmentOrchestrator:
    """Runs batches of segment searches and exposes their live state.

    Segment views are only ever mutated here, in response to poller
    updates and :meth:`reveal_more`. Each batch gets a new generation
    number; updates carrying an older generation are dropped, so pollers
    and submissions from a previous batch cannot touch the current views.
    """

    def __init__(
        self,
        api: SearchAPI,
        cache: Optional[ResultCache] = None,
        deduplicator: Optional[SubmissionDeduplicator] = None,
        settings: Optional[SearchSettings] = None,
        registry: Optional[PollerRegistry] = None,
    ) -> None:
        self._api = api
        self._settings = settings or SearchSettings()
        self._cache = cache if cache is not None else default_cache()
        # Any batch that clears a cache stops every poller writing into it
        self._registry = registry if registry is not None else registry_for(self._cache)
        self._dedup = deduplicator if deduplicator is not None else default_deduplicator()

        self._views: list[SegmentView] = []
        self._keys: list[str] = []
        self._key_indices: dict[str, list[int]] = {}
        self._pollers: dict[str, Poller] = {}
        self._listeners: list[Listener] = []
        self._generation = 0
        self._closed = False

    # ------------------------------------------------------------------
    # Consumer surface
    # ------------------------------------------------------------------

    @property
    def views(self) -> list[SegmentView]:
        """Segment views in request order. Read-only for consumers."""
        return list(self._views)

    def key_for(self, index: int) -> str:
        return self._keys[index]

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener(index, view)`` after every view change.

        Returns:
            A function that removes the listener.
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def start_batch(
        self,
        segments: Sequence[SegmentInput],
        passengers: PassengerCount,
        cabin: Union[CabinClass, str, None] = None,
        direct: bool = False,
    ) -> None:
        """Start (or resume) a search for every segment.

        Returns once every submission attempt has settled; polling carries
        on in the background.
        """
        if self._closed:
            raise RuntimeError("Orchestrator is closed")

        cabin_class = CabinClass.parse(cabin)
        self._reset()
        generation = self._generation

        self._views = [
            SegmentView(search_index=idx, segment=seg, visible_count=self._settings.reveal_step)
            for idx, seg in enumerate(segments)
        ]
        self._keys = []
        self._key_indices = {}
        queries: dict[str, SegmentQuery] = {}
        for idx, seg in enumerate(segments):
            key = build_segment_key(seg, passengers, cabin_class, direct)
            self._keys.append(key)
            self._key_indices.setdefault(key, []).append(idx)
            # Repeated legs share the first segment's search
            if key not in queries:
                queries[key] = SegmentQuery(
                    segment=seg, passengers=passengers, cabin=cabin_class, direct=direct
                )

        for idx in range(len(self._views)):
            self._notify(idx)

        logger.info(
            "Starting batch of %d segments (%d unique searches)", len(segments), len(queries)
        )
        await asyncio.gather(
            *(self._resolve(generation, key, query) for key, query in queries.items())
        )

    def reveal_more(self, index: int) -> None:
        """Show the next page of already-fetched results for one segment.

        Never triggers a remote fetch.
        """
        if self._closed or not 0 <= index < len(self._views):
            return
        view = self._views[index]
        grown = min(view.visible_count + self._settings.reveal_step, len(view.results))
        view.visible_count = max(view.visible_count, grown)
        view.refresh_has_more()
        self._notify(index)

    async def wait_for_pollers(self, timeout: Optional[float] = None) -> dict[str, PollerState]:
        """Wait until every poller of the current batch has stopped.

        Returns:
            The state of each poller, keyed by segment key. Pollers still
            active when the timeout expires report ``active``.
        """
        pollers = dict(self._pollers)
        tasks = [p.poll_state.task for p in pollers.values() if p.poll_state.task is not None]
        if tasks:
            await asyncio.wait(tasks, timeout=timeout)
        return {key: poller.state for key, poller in pollers.items()}

    def close(self) -> None:
        """Deactivate every poller. No view changes after this returns."""
        if self._closed:
            return
        self._closed = True
        self._generation += 1
        for poller in self._pollers.values():
            poller.deactivate()
        logger.debug("Orchestrator closed (%d pollers stopped)", len(self._pollers))

    async def aclose(self) -> None:
        """Close and wait for the cancelled poll tasks to unwind."""
        self.close()
        tasks = [p.poll_state.task for p in self._pollers.values() if p.poll_state.task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def __aenter__(self) -> "SegmentOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
        return None

    # ------------------------------------------------------------------
    # Batch internals
    # ------------------------------------------------------------------

    def _reset(self) -> None:
        """Drop everything belonging to the previous batch."""
        self._cache.clear()
        self._dedup.clear()
        for poller in self._pollers.values():
            poller.deactivate()
        stopped = self._registry.deactivate_all()
        if stopped:
            logger.debug("Stopped %d pollers still writing the shared cache", stopped)
        self._pollers.clear()
        self._generation += 1

    async def _resolve(self, generation: int, key: str, query: SegmentQuery) -> None:
        """Cache hit, joined submission, or new submission for one key."""
        entry = self._cache.get_fresh(key, ttl_seconds=self._settings.cache_ttl)
        if entry is not None:
            logger.debug("Cache hit for %s (complete=%s)", key, entry.is_complete)
            self._hydrate(generation, key, entry, query.passengers)
            if not entry.is_complete and entry.search_id:
                self._start_poller(generation, key, entry.search_id, entry.cursor, query.passengers)
            return

        def _searching(view: SegmentView) -> None:
            view.loading = True
            view.error = None
            view.has_more = True

        self._update_key(generation, key, _searching)

        future = self._dedup.begin(key, lambda: self._submit(key, query))
        try:
            search_id = await asyncio.shield(future)
        except SubmissionError as exc:
            reason = exc.__cause__ or exc
            self._update_key(generation, key, _failed(f"Unable to search flights: {reason}"))
            return

        if generation != self._generation:
            logger.debug("Dropping submission result for %s from a previous batch", key)
            return

        if not search_id:
            logger.warning("Search for %s started without a search id", key)
            self._update_key(generation, key, _failed(SEARCH_INIT_FAILED))
            return

        def _submitted(view: SegmentView) -> None:
            view.search_id = search_id

        self._update_key(generation, key, _submitted)
        self._cache.put(key, CacheEntry(search_id=search_id))
        self._start_poller(generation, key, search_id, None, query.passengers)

    async def _submit(self, key: str, query: SegmentQuery) -> str:
        # Blind retry: a lost response to a successful first attempt
        # leaves an orphaned remote search behind.
        return await retry_once(
            lambda: self._api.submit_search(query),
            SubmissionError,
            f"Starting search for {key}",
        )

    def _hydrate(
        self, generation: int, key: str, entry: CacheEntry, passengers: PassengerCount
    ) -> None:
        results = [r.stamped(None, passengers) for r in entry.results]

        def _apply(view: SegmentView) -> None:
            view.results = list(results)
            view.is_complete = entry.is_complete
            view.loading = not entry.is_complete
            view.progress = entry.progress
            view.search_id = entry.search_id
            view.cursor = entry.cursor
            view.refresh_has_more()

        self._update_key(generation, key, _apply)

    def _start_poller(
        self,
        generation: int,
        key: str,
        search_id: str,
        cursor: Optional[Cursor],
        passengers: PassengerCount,
    ) -> None:
        if generation != self._generation:
            return
        existing = self._pollers.get(key)
        if existing is not None and existing.active:
            logger.debug("Poller for %s already active", key)
            return

        poller = Poller(
            key=key,
            search_id=search_id,
            api=self._api,
            cache=self._cache,
            update_view=lambda mutate: self._update_key(generation, key, mutate),
            passengers=passengers,
            settings=self._settings,
        )
        self._pollers[key] = poller
        self._registry.add(poller)
        poller.start(cursor)

    def _update_key(self, generation: int, key: str, mutate: ViewMutator) -> None:
        """Apply a change to every view of the current batch that shares a key."""
        if self._closed or generation != self._generation:
            return
        for idx in self._key_indices.get(key, ()):
            mutate(self._views[idx])
            self._notify(idx)

    def _notify(self, index: int) -> None:
        view = self._views[index]
        for listener in list(self._listeners):
            try:
                listener(index, view)
            except Exception:
                logger.exception("Segment view listener failed for segment %d", index)


def _failed(message: str) -> ViewMutator:
    def _apply(view: SegmentView) -> None:
        view.loading = False
        view.is_complete = True
        view.has_more = False
        view.error = message

    return _apply
