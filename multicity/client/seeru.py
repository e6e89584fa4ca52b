"""Seeru flight search API client.

Two endpoints drive a search: one starts it and returns an opaque search
id, the other returns results that became available since a cursor.
HTTP calls use ``requests`` and run in a worker thread so the caller's
event loop keeps polling other searches meanwhile.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import requests
from pydantic import ValidationError

from multicity.config import SearchSettings
from multicity.errors import (
    AuthError,
    InvalidResponseError,
    RateLimitError,
    SearchAPIError,
    SearchExpiredError,
    SearchTimeoutError,
)
from multicity.models import Cursor, FlightResult, PageStatus, ResultPage, SegmentQuery

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_NO_RESULTS_MESSAGE = "No flights found for this route and date combination."
_EXPIRED_MESSAGE = "Search results not found or expired"


class SeeruClient:
    """Async facade over the Seeru search and result endpoints."""

    def __init__(
        self,
        settings: Optional[SearchSettings] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.settings = settings or SearchSettings()
        self._session = session or requests.Session()

    def available(self) -> bool:
        """Check whether an API key is configured."""
        return bool(self.settings.api_key.strip())

    async def submit_search(self, query: SegmentQuery) -> str:
        """Start a search for one segment and return its search id."""
        return await asyncio.to_thread(self.submit_search_sync, query)

    async def fetch_results(self, search_id: str, cursor: Optional[Cursor] = None) -> ResultPage:
        """Fetch results that became available after ``cursor``."""
        return await asyncio.to_thread(self.fetch_results_sync, search_id, cursor)

    # ------------------------------------------------------------------
    # Blocking implementations
    # ------------------------------------------------------------------

    def submit_search_sync(self, query: SegmentQuery) -> str:
        pax = query.passengers
        path = f"/search/{query.trips}/{pax.adults}/{pax.children}/{pax.infants}"
        params = {"cabin": query.cabin.code, "direct": 1 if query.direct else 0}

        data = self._get(path, params, context=query.trips)
        search_id = data.get("search_id")
        if not search_id or not isinstance(search_id, str):
            raise InvalidResponseError(f"No search_id in search response for {query.trips}")

        logger.info("Started search %s for %s", search_id, query.trips)
        return search_id

    def fetch_results_sync(self, search_id: str, cursor: Optional[Cursor] = None) -> ResultPage:
        params: dict[str, Any] = {}
        if cursor:
            params["after"] = cursor

        try:
            data = self._get(f"/result/{search_id}", params, context=search_id)
        except SearchAPIError as exc:
            if exc.status_code == 404:
                raise SearchExpiredError(_EXPIRED_MESSAGE, status_code=404) from exc
            raise
        return parse_result_page(data)

    def _get(self, path: str, params: dict[str, Any], context: str) -> dict[str, Any]:
        url = self.settings.base_url.rstrip("/") + path
        headers = {
            "Authorization": f"Bearer {self.settings.api_key}",
            "Content-Type": "application/json",
        }

        try:
            resp = self._session.get(
                url, params=params, headers=headers, timeout=self.settings.http_timeout
            )
        except requests.Timeout as exc:
            logger.warning("Seeru timeout for %s", context)
            raise SearchTimeoutError(f"Request timed out for {context}") from exc
        except requests.RequestException as exc:
            logger.warning("Seeru network error for %s: %s", context, exc)
            raise SearchAPIError(f"Network error for {context}: {exc}") from exc

        if resp.status_code == 401:
            raise AuthError("Invalid or missing SEERU_API_KEY", status_code=401)
        if resp.status_code == 408:
            raise SearchTimeoutError(f"Request timed out for {context}", status_code=408)
        if resp.status_code == 429:
            raise RateLimitError(
                "Too many requests. Please wait a moment before trying again.", status_code=429
            )
        if resp.status_code >= 400:
            logger.warning("Seeru HTTP %d for %s", resp.status_code, context)
            raise SearchAPIError(
                f"HTTP {resp.status_code} for {context}", status_code=resp.status_code
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise InvalidResponseError(f"Non-JSON response for {context}") from exc

        if not isinstance(data, dict):
            raise InvalidResponseError(f"Unexpected response shape for {context}")
        return data


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


def parse_result_page(data: dict[str, Any]) -> ResultPage:
    """Normalize a raw result payload into a ResultPage.

    Raises:
        InvalidResponseError: If ``complete`` is missing or malformed.
    """
    if "complete" not in data or data["complete"] is None:
        raise InvalidResponseError("Result payload has no completion field")

    raw_results = data.get("result")
    if not isinstance(raw_results, list):
        raw_results = []

    # Later duplicates in the same payload replace earlier ones
    by_id: dict[str, FlightResult] = {}
    for raw in raw_results:
        result = parse_flight(raw)
        if result is not None:
            by_id[result.result_id] = result

    last_result = data.get("last_result")
    cursor = last_result if isinstance(last_result, int) and not isinstance(last_result, bool) else None

    try:
        page = ResultPage(
            completion=data["complete"],
            results=list(by_id.values()),
            resume_cursor=cursor,
            message=data.get("message"),
        )
    except ValidationError as exc:
        raise InvalidResponseError(f"Malformed result payload: {exc.error_count()} errors") from exc

    if not page.results and page.completion >= 100:
        page.status = PageStatus.NO_RESULTS
        page.message = page.message or _NO_RESULTS_MESSAGE
    elif data.get("status") == PageStatus.NO_RESULTS.value:
        page.status = PageStatus.NO_RESULTS
    return page


def parse_flight(raw: Any) -> Optional[FlightResult]:
    """Extract the fields the aggregator uses from one provider result."""
    if not isinstance(raw, dict):
        return None
    trip_id = raw.get("trip_id")
    if not trip_id:
        logger.debug("Skipping result without trip_id")
        return None

    legs = raw.get("legs") or []
    first_leg = legs[0] if legs and isinstance(legs[0], dict) else {}
    segments = first_leg.get("segments") or []
    first_segment = segments[0] if segments and isinstance(segments[0], dict) else {}
    stops = first_leg.get("stops")

    try:
        return FlightResult(
            result_id=str(trip_id),
            price=raw.get("price"),
            tax=raw.get("tax"),
            currency=raw.get("currency") or "USD",
            airline_name=first_segment.get("airline_name") or None,
            airline_code=first_segment.get("iata") or None,
            stops=len(stops) if isinstance(stops, list) else None,
            duration_minutes=first_leg.get("duration"),
            fare_key=raw.get("fare_key") or raw.get("id") or None,
            search_id=raw.get("search_id"),
            raw=raw,
        )
    except ValidationError as exc:
        logger.debug("Skipping malformed result %s: %s", trip_id, exc)
        return None
