"""Domain models for the multi-segment flight search aggregator.

Pydantic models for segment queries, passenger counts, provider results,
result pages, cache entries, and the per-segment view exposed to consumers.
"""

import datetime
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator


# --- Enums ---


class CabinClass(str, Enum):
    """Cabin classes."""

    ECONOMY = "economy"
    PREMIUM = "premium"
    BUSINESS = "business"
    FIRST = "first"

    @property
    def code(self) -> str:
        """One-letter code used by the search API and in cache keys."""
        return _CABIN_CODES[self]

    @classmethod
    def parse(cls, value: Union[str, "CabinClass", None]) -> "CabinClass":
        """Accept a cabin name or its one-letter code."""
        if value is None:
            return cls.ECONOMY
        if isinstance(value, CabinClass):
            return value
        text = value.strip().lower()
        for cabin, code in _CABIN_CODES.items():
            if text == code:
                return cabin
        return cls(text)


_CABIN_CODES = {
    CabinClass.ECONOMY: "e",
    CabinClass.PREMIUM: "p",
    CabinClass.BUSINESS: "b",
    CabinClass.FIRST: "f",
}


class PageStatus(str, Enum):
    """Status reported with a page of search results."""

    OK = "ok"
    NO_RESULTS = "no_results"


class PollerState(str, Enum):
    """Lifecycle of a poll loop for one search key."""

    IDLE = "idle"
    ACTIVE = "active"
    COMPLETED = "completed"
    STALLED_NO_RESULTS = "stalled_no_results"
    STALLED_IDLE = "stalled_idle"
    FAILED = "failed"
    CANCELLED = "cancelled"  # deactivated by a new batch or teardown

    @property
    def is_terminal(self) -> bool:
        return self not in (PollerState.IDLE, PollerState.ACTIVE)


# --- Search inputs ---

MAX_PASSENGERS = 9

# Opaque pagination token from the result-fetch call
Cursor = Union[int, str]


class PassengerCount(BaseModel):
    """Travellers on a search."""

    adults: int = Field(default=1, ge=1)
    children: int = Field(default=0, ge=0)
    infants: int = Field(default=0, ge=0)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def within_party_limit(self) -> "PassengerCount":
        if self.total > MAX_PASSENGERS:
            raise ValueError(f"Maximum {MAX_PASSENGERS} passengers allowed per search")
        return self

    @property
    def total(self) -> int:
        return self.adults + self.children + self.infants


class SegmentInput(BaseModel):
    """One origin/destination/date leg of a batch.

    The display names are for presentation only and never take part in
    cache or deduplication identity.
    """

    origin: str = Field(min_length=3, max_length=3, description="3-letter IATA code")
    destination: str = Field(min_length=3, max_length=3, description="3-letter IATA code")
    date: datetime.date
    origin_display: Optional[str] = None
    destination_display: Optional[str] = None

    model_config = {"frozen": True}

    @field_validator("origin", "destination", mode="before")
    @classmethod
    def uppercase_codes(cls, v: str) -> str:
        return v.strip().upper() if isinstance(v, str) else v

    @property
    def route(self) -> str:
        return f"{self.origin}-{self.destination}"

    @property
    def display_route(self) -> str:
        return f"{self.origin_display or self.origin} - {self.destination_display or self.destination}"


class SegmentQuery(BaseModel):
    """Everything the remote API needs to start a search for one segment."""

    segment: SegmentInput
    passengers: PassengerCount = Field(default_factory=PassengerCount)
    cabin: CabinClass = CabinClass.ECONOMY
    direct: bool = False

    model_config = {"frozen": True}

    @property
    def trips(self) -> str:
        """Trip string in the provider format ``ORG-DST-YYYYMMDD``."""
        seg = self.segment
        return f"{seg.origin}-{seg.destination}-{seg.date.strftime('%Y%m%d')}"


# --- Search outputs ---


class FlightResult(BaseModel):
    """A single priced itinerary returned by the search provider."""

    result_id: str = Field(min_length=1, description="Provider trip id, unique per search")
    price: Optional[float] = None
    tax: Optional[float] = None
    currency: Optional[str] = None
    airline_name: Optional[str] = None
    airline_code: Optional[str] = None
    stops: Optional[int] = Field(default=None, ge=0)
    duration_minutes: Optional[int] = Field(default=None, ge=0)
    fare_key: Optional[str] = None
    search_id: Optional[str] = None
    passengers: Optional[PassengerCount] = None
    raw: dict[str, Any] = Field(default_factory=dict, repr=False)

    def stamped(self, search_id: Optional[str], passengers: PassengerCount) -> "FlightResult":
        """Copy carrying the search id and the passenger counts it was priced for."""
        update: dict[str, Any] = {"passengers": passengers}
        if search_id is not None:
            update["search_id"] = search_id
        return self.model_copy(update=update)


class ResultPage(BaseModel):
    """One poll response: newly available results and overall progress."""

    completion: int = Field(ge=0, le=100)
    results: list[FlightResult] = Field(default_factory=list)
    resume_cursor: Optional[Cursor] = None
    status: PageStatus = PageStatus.OK
    message: Optional[str] = None

    @field_validator("completion", mode="before")
    @classmethod
    def normalize_completion(cls, v: Any) -> Any:
        # Providers report either a percentage or a done/not-done flag
        if isinstance(v, bool):
            return 100 if v else 0
        if isinstance(v, (int, float)):
            return max(0, min(100, int(v)))
        return v

    @property
    def is_empty(self) -> bool:
        return self.status == PageStatus.NO_RESULTS or not self.results


class CacheEntry(BaseModel):
    """Merged state of one remote search, keyed by segment key."""

    results: list[FlightResult] = Field(default_factory=list)
    is_complete: bool = False
    progress: int = Field(default=0, ge=0, le=100)
    cursor: Optional[Cursor] = None
    search_id: Optional[str] = None
    timestamp: float = 0.0


class SegmentView(BaseModel):
    """Consumer-facing state for one requested segment."""

    search_index: int
    segment: SegmentInput
    results: list[FlightResult] = Field(default_factory=list)
    is_complete: bool = False
    has_more: bool = True
    loading: bool = True
    error: Optional[str] = None
    visible_count: int = 4
    progress: int = 0
    search_id: Optional[str] = None
    cursor: Optional[Cursor] = None

    @property
    def visible_results(self) -> list[FlightResult]:
        return self.results[: self.visible_count]

    def refresh_has_more(self) -> None:
        """More to reveal while fetching continues or results exceed the window."""
        self.has_more = not self.is_complete or len(self.results) > self.visible_count
