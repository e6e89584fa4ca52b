"""Exception hierarchy for multicity.

Remote API errors are raised by the search client. Submission and fetch
errors wrap the last remote error once the single retry is exhausted.
Stalls and explicit no-result responses are poller outcomes, not errors.
"""

from __future__ import annotations


class MulticityError(Exception):
    """Base exception for multicity."""


class ConfigError(MulticityError):
    """Settings file or environment holds an invalid value."""


# ---------------------------------------------------------------------------
# Remote search API
# ---------------------------------------------------------------------------


class SearchAPIError(MulticityError):
    """Base exception for search API errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SearchTimeoutError(SearchAPIError):
    """Request timed out (connection or HTTP 408)."""


class RateLimitError(SearchAPIError):
    """HTTP 429: too many requests."""


class AuthError(SearchAPIError):
    """HTTP 401: invalid or missing API key."""


class SearchExpiredError(SearchAPIError):
    """HTTP 404 on a result poll: the search id is unknown or expired."""


class InvalidResponseError(SearchAPIError):
    """Response body is not JSON or lacks a required field."""


# ---------------------------------------------------------------------------
# Retry exhaustion
# ---------------------------------------------------------------------------


class SubmissionError(MulticityError):
    """Starting a remote search failed after one retry."""


class FetchError(MulticityError):
    """Polling a remote search failed after one retry."""
