"""Plain text output formatter -- no ANSI escapes."""

from __future__ import annotations

from multicity.models import SegmentView
from multicity.output import format_duration, format_price, format_stops


def _header(title: str) -> str:
    """Create a plain text section header."""
    return f"\n{'=' * 60}\n  {title}\n{'=' * 60}\n"


class PlainFormatter:
    """Format segment views as plain text."""

    def format_views(self, views: list[SegmentView]) -> str:
        lines: list[str] = []
        for view in views:
            seg = view.segment
            lines.append(_header(f"{view.search_index + 1}. {seg.display_route}  {seg.date.isoformat()}"))
            status = "complete" if view.is_complete else f"{view.progress}% searched"
            lines.append(f"  Status:  {status}")
            lines.append(f"  Results: {len(view.results)}")
            if view.error:
                lines.append(f"  Note:    {view.error}")

            for i, result in enumerate(view.visible_results, 1):
                airline = result.airline_name or result.airline_code or "?"
                lines.append(
                    f"  {i:>2}. {airline:<24} {format_price(result.price, result.currency):>14}"
                    f"  {format_stops(result.stops):<9} {format_duration(result.duration_minutes)}"
                )

            hidden = len(view.results) - len(view.visible_results)
            if hidden > 0:
                lines.append(f"  ... {hidden} more")
        return "\n".join(lines)
