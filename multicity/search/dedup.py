"""Coalescing of concurrent search submissions.

At most one "start search" call per key is in flight at any time. Every
caller asking for the same key while it is pending shares its outcome.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

SubmitFn = Callable[[], Awaitable[str]]


class SubmissionDeduplicator:
    """Registry of in-flight submissions keyed by segment key."""

    def __init__(self) -> None:
        self._pending: dict[str, asyncio.Future] = {}

    def begin(self, key: str, submit_fn: SubmitFn) -> asyncio.Future:
        """Return the pending submission for a key, starting one if needed.

        The registration is removed as soon as the submission settles, so a
        later call for the same key submits again. Await the result through
        ``asyncio.shield`` so a cancelled waiter does not cancel the shared
        call.
        """
        existing = self._pending.get(key)
        if existing is not None:
            logger.debug("Joining pending submission for %s", key)
            return existing

        task = asyncio.ensure_future(submit_fn())
        self._pending[key] = task
        task.add_done_callback(lambda t, k=key: self._settle(k, t))
        return task

    def _settle(self, key: str, task: asyncio.Future) -> None:
        # A clear() followed by a fresh submission may have replaced us
        if self._pending.get(key) is task:
            del self._pending[key]
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Submission for %s failed: %s", key, task.exception())

    def pending(self, key: str) -> Optional[asyncio.Future]:
        return self._pending.get(key)

    def clear(self) -> int:
        """Forget every registration. In-flight calls keep running."""
        count = len(self._pending)
        self._pending.clear()
        return count

    def __len__(self) -> int:
        return len(self._pending)


_default_deduplicator: Optional[SubmissionDeduplicator] = None


def default_deduplicator() -> SubmissionDeduplicator:
    """Process-wide deduplicator shared by orchestrators that are not given one."""
    global _default_deduplicator
    if _default_deduplicator is None:
        _default_deduplicator = SubmissionDeduplicator()
    return _default_deduplicator
