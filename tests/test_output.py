"""Tests for output formatters."""

import datetime
import json

import pytest

from multicity.models import FlightResult, SegmentInput, SegmentView
from multicity.output import format_duration, format_price, format_stops, get_formatter
from multicity.output.json_formatter import JsonFormatter
from multicity.output.plain_formatter import PlainFormatter
from multicity.output.rich_formatter import RichFormatter


# --- Fixtures ---


@pytest.fixture
def views() -> list[SegmentView]:
    """One finished segment with six results and one failed segment."""
    done = SegmentView(
        search_index=0,
        segment=SegmentInput(
            origin="LHR",
            destination="JFK",
            date=datetime.date(2025, 6, 1),
            origin_display="London",
        ),
        results=[
            FlightResult(
                result_id=f"T{i}",
                price=400.0 + i,
                currency="GBP",
                airline_name="British Airways",
                airline_code="BA",
                stops=i % 2,
                duration_minutes=470,
                raw={"trip_id": f"T{i}"},
            )
            for i in range(6)
        ],
        is_complete=True,
        loading=False,
        progress=100,
    )
    failed = SegmentView(
        search_index=1,
        segment=SegmentInput(origin="JFK", destination="SFO", date=datetime.date(2025, 6, 8)),
        is_complete=True,
        loading=False,
        has_more=False,
        error="No flights found. Please try different dates or airports.",
    )
    return [done, failed]


class TestHelpers:
    def test_format_price(self):
        assert format_price(1234.5, "USD") == "USD 1,234.50"
        assert format_price(None, "USD") == "-"

    def test_format_duration(self):
        assert format_duration(470) == "7h 50m"
        assert format_duration(65) == "1h 05m"
        assert format_duration(None) == "-"

    @pytest.mark.parametrize("stops,expected", [(0, "nonstop"), (1, "1 stop"), (2, "2 stops"), (None, "-")])
    def test_format_stops(self, stops, expected):
        assert format_stops(stops) == expected


class TestGetFormatter:
    def test_known_names(self):
        assert isinstance(get_formatter("rich"), RichFormatter)
        assert isinstance(get_formatter("plain"), PlainFormatter)
        assert isinstance(get_formatter("json"), JsonFormatter)

    def test_unknown_name(self):
        with pytest.raises(ValueError, match="Unknown formatter"):
            get_formatter("xml")


class TestPlainFormatter:
    def test_lists_visible_results(self, views):
        out = PlainFormatter().format_views(views)
        assert "1. London - JFK  2025-06-01" in out
        assert "Results: 6" in out
        assert out.count("British Airways") == 4
        assert "... 2 more" in out

    def test_shows_error_note(self, views):
        out = PlainFormatter().format_views(views)
        assert "2. JFK - SFO" in out
        assert "Note:    No flights found" in out

    def test_no_ansi(self, views):
        assert "\x1b[" not in PlainFormatter().format_views(views)


class TestRichFormatter:
    def test_renders_tables(self, views):
        out = RichFormatter().format_views(views)
        assert "London - JFK" in out
        assert "British Airways" in out
        assert "2 more results" in out
        assert "JFK - SFO" in out


class TestJsonFormatter:
    def test_valid_json(self, views):
        data = json.loads(JsonFormatter().format_views(views))
        assert data["type"] == "segment_results"
        assert len(data["segments"]) == 2

    def test_visible_results_only(self, views):
        first = json.loads(JsonFormatter().format_views(views))["segments"][0]
        assert first["result_count"] == 6
        assert [r["result_id"] for r in first["results"]] == ["T0", "T1", "T2", "T3"]
        assert "raw" not in first["results"][0]
        assert first["segment"]["date"] == "2025-06-01"

    def test_error_carried(self, views):
        second = json.loads(JsonFormatter().format_views(views))["segments"][1]
        assert second["error"].startswith("No flights found")
        assert second["results"] == []
