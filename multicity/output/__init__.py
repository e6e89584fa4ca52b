"""Output formatters for multicity.

Provides a Formatter protocol and three implementations:
- RichFormatter: colored Rich tables per segment
- PlainFormatter: plain text without ANSI escapes
- JsonFormatter: valid JSON for piping to jq
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from multicity.models import SegmentView


class Formatter(Protocol):
    """Protocol for formatting segment search results."""

    def format_views(self, views: list[SegmentView]) -> str:
        """Format the segment views of a finished batch."""
        ...


def get_formatter(name: str = "rich") -> Formatter:
    """Get a formatter by name.

    Args:
        name: One of "rich", "plain", "json".

    Raises:
        ValueError: If the name is not recognized.
    """
    if name == "rich":
        from multicity.output.rich_formatter import RichFormatter

        return RichFormatter()
    elif name == "plain":
        from multicity.output.plain_formatter import PlainFormatter

        return PlainFormatter()
    elif name == "json":
        from multicity.output.json_formatter import JsonFormatter

        return JsonFormatter()
    else:
        raise ValueError(f"Unknown formatter: {name!r}. Use 'rich', 'plain', or 'json'.")


def format_price(price: float | None, currency: str | None) -> str:
    if price is None:
        return "-"
    return f"{currency or 'USD'} {price:,.2f}"


def format_duration(minutes: int | None) -> str:
    if minutes is None:
        return "-"
    return f"{minutes // 60}h {minutes % 60:02d}m"


def format_stops(stops: int | None) -> str:
    if stops is None:
        return "-"
    if stops == 0:
        return "nonstop"
    return f"{stops} stop{'s' if stops > 1 else ''}"
