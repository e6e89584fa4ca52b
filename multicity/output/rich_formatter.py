"""Rich-based output formatter with one table per segment."""

from __future__ import annotations

from io import StringIO

from rich.console import Console
from rich.table import Table
from rich.text import Text

from multicity.models import SegmentView
from multicity.output import format_duration, format_price, format_stops


def _render(renderable) -> str:
    """Render a Rich object to a string."""
    buf = StringIO()
    console = Console(file=buf, force_terminal=True, width=120)
    console.print(renderable)
    return buf.getvalue()


def _status_text(view: SegmentView) -> Text:
    if view.error:
        return Text(view.error, style="yellow" if view.results else "bold red")
    if view.is_complete:
        return Text(f"{len(view.results)} results", style="bold green")
    return Text(f"{view.progress}% searched", style="blue")


class RichFormatter:
    """Format segment views using Rich tables."""

    def format_views(self, views: list[SegmentView]) -> str:
        parts: list[str] = []
        for view in views:
            seg = view.segment
            title = Text()
            title.append(f"{view.search_index + 1}. {seg.display_route}", style="bold")
            title.append(f"  {seg.date.isoformat()}  ")
            title.append_text(_status_text(view))

            table = Table(title=title, title_justify="left", show_lines=False)
            table.add_column("#", justify="right", style="dim")
            table.add_column("Airline")
            table.add_column("Price", justify="right", style="green")
            table.add_column("Stops")
            table.add_column("Duration", justify="right")

            for i, result in enumerate(view.visible_results, 1):
                table.add_row(
                    str(i),
                    result.airline_name or result.airline_code or "?",
                    format_price(result.price, result.currency),
                    format_stops(result.stops),
                    format_duration(result.duration_minutes),
                )

            hidden = len(view.results) - len(view.visible_results)
            if hidden > 0:
                table.caption = f"{hidden} more results"
            parts.append(_render(table))
        return "".join(parts)
