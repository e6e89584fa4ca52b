"""Cache and deduplication keys for segment searches."""

from __future__ import annotations

import datetime
from typing import Union

from multicity.models import CabinClass, PassengerCount, SegmentInput


def build_segment_key(
    segment: SegmentInput,
    passengers: PassengerCount,
    cabin: Union[CabinClass, str, None] = None,
    direct: bool = False,
) -> str:
    """Build the identity of a segment search.

    Two segments that differ only in display names produce the same key.

    Returns:
        ``ORG:DST:YYYY-MM-DD:cabin:direct:adults:children:infants``,
        e.g. ``LHR:JFK:2025-06-01:e:0:2:1:0``.
    """
    cabin_code = CabinClass.parse(cabin).code
    parts = [
        segment.origin.strip().upper(),
        segment.destination.strip().upper(),
        segment.date.isoformat(),
        cabin_code,
        "1" if direct else "0",
        str(passengers.adults),
        str(passengers.children),
        str(passengers.infants),
    ]
    return ":".join(parts)


def parse_segment_arg(text: str) -> SegmentInput:
    """Parse ``ORG-DST-YYYY-MM-DD`` into a SegmentInput.

    Raises:
        ValueError: If the text is not in that shape.
    """
    parts = text.strip().split("-", 2)
    if len(parts) != 3:
        raise ValueError(
            f"Invalid segment {text!r}. Expected ORG-DST-YYYY-MM-DD, e.g. LHR-JFK-2025-06-01"
        )
    origin, destination, date_text = parts
    try:
        date = datetime.date.fromisoformat(date_text)
    except ValueError:
        raise ValueError(f"Invalid date {date_text!r} in segment {text!r}. Use YYYY-MM-DD")
    return SegmentInput(origin=origin, destination=destination, date=date)
