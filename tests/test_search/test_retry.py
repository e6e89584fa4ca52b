"""Tests for the single immediate retry helper."""

import asyncio

import pytest

from multicity.errors import FetchError
from multicity.search.retry import retry_once


def _flaky(*outcomes):
    """Coroutine factory that plays back results or raises exceptions."""
    calls = []

    async def fn():
        outcome = outcomes[len(calls)]
        calls.append(outcome)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    return fn, calls


class TestRetryOnce:
    @pytest.mark.asyncio
    async def test_first_attempt_succeeds(self):
        fn, calls = _flaky("ok")
        assert await retry_once(fn, FetchError, "Fetch") == "ok"
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_retry_succeeds(self):
        fn, calls = _flaky(ConnectionError("reset"), "ok")
        assert await retry_once(fn, FetchError, "Fetch") == "ok"
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_both_fail_raises_wrapped(self):
        last = TimeoutError("slow")
        fn, calls = _flaky(ConnectionError("reset"), last)
        with pytest.raises(FetchError, match="Fetch results failed: slow") as exc_info:
            await retry_once(fn, FetchError, "Fetch results")
        assert exc_info.value.__cause__ is last
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_cancellation_not_retried(self):
        calls = []

        async def fn():
            calls.append(1)
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await retry_once(fn, FetchError, "Fetch")
        assert len(calls) == 1
