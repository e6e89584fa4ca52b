"""Single immediate retry for remote calls."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_once(
    fn: Callable[[], Awaitable[T]],
    error_cls: type[Exception],
    label: str,
) -> T:
    """Await ``fn()``, calling it a second time straight away if it raises.

    Args:
        fn: Zero-argument coroutine factory; called once per attempt.
        error_cls: Raised (chained to the last error) when both attempts fail.
        label: Human-readable description used in log and error messages.

    Raises:
        error_cls: If the retry fails too. Cancellation is never retried.
    """
    try:
        return await fn()
    except Exception as exc:
        logger.info("%s failed, retrying once: %s", label, exc)

    try:
        return await fn()
    except Exception as exc:
        logger.warning("%s failed after retry: %s", label, exc)
        raise error_cls(f"{label} failed: {exc}") from exc
