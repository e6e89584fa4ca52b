"""Tests for segment key building and segment argument parsing."""

import datetime

import pytest

from multicity.models import CabinClass, PassengerCount, SegmentInput
from multicity.search.keys import build_segment_key, parse_segment_arg


def _seg(origin="LHR", destination="JFK", day=1, **kwargs) -> SegmentInput:
    return SegmentInput(
        origin=origin, destination=destination, date=datetime.date(2025, 6, day), **kwargs
    )


class TestBuildSegmentKey:
    def test_key_format(self):
        key = build_segment_key(_seg(), PassengerCount(adults=2, children=1), CabinClass.BUSINESS, True)
        assert key == "LHR:JFK:2025-06-01:b:1:2:1:0"

    def test_defaults_to_economy_any_stops(self):
        assert build_segment_key(_seg(), PassengerCount()) == "LHR:JFK:2025-06-01:e:0:1:0:0"

    def test_cabin_code_accepted(self):
        pax = PassengerCount()
        assert build_segment_key(_seg(), pax, "f") == build_segment_key(_seg(), pax, CabinClass.FIRST)

    def test_display_names_ignored(self):
        """Segments differing only in display names share a key."""
        pax = PassengerCount(adults=2)
        plain = build_segment_key(_seg(), pax)
        named = build_segment_key(
            _seg(origin_display="London Heathrow", destination_display="New York JFK"), pax
        )
        assert plain == named

    def test_lowercase_codes_normalized(self):
        assert build_segment_key(_seg("lhr", "jfk"), PassengerCount()).startswith("LHR:JFK:")

    @pytest.mark.parametrize(
        "other",
        [
            {"segment": _seg(day=2)},
            {"segment": _seg("JFK", "LHR")},
            {"passengers": PassengerCount(adults=1, infants=1)},
            {"cabin": CabinClass.PREMIUM},
            {"direct": True},
        ],
    )
    def test_any_identity_field_changes_key(self, other):
        base = {
            "segment": _seg(),
            "passengers": PassengerCount(),
            "cabin": CabinClass.ECONOMY,
            "direct": False,
        }
        assert build_segment_key(**base) != build_segment_key(**{**base, **other})


class TestParseSegmentArg:
    def test_valid(self):
        seg = parse_segment_arg("lhr-jfk-2025-06-01")
        assert seg.origin == "LHR"
        assert seg.destination == "JFK"
        assert seg.date == datetime.date(2025, 6, 1)

    @pytest.mark.parametrize("text", ["LHR-JFK", "LHRJFK20250601", ""])
    def test_wrong_shape(self, text):
        with pytest.raises(ValueError, match="ORG-DST-YYYY-MM-DD"):
            parse_segment_arg(text)

    def test_bad_date(self):
        with pytest.raises(ValueError, match="Invalid date"):
            parse_segment_arg("LHR-JFK-2025-13-40")
