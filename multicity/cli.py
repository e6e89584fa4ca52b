"""multicity CLI -- search several flight segments at once.

Starts one remote search per segment, polls them concurrently until each
completes or stalls, and prints the merged results.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Annotated, Optional

import typer
from pydantic import ValidationError

from multicity.errors import ConfigError

# ---------------------------------------------------------------------------
# App and sub-apps
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="multicity",
    help="Multi-segment flight search -- start, poll and merge per-segment searches.",
    no_args_is_help=True,
)

config_app = typer.Typer(
    name="config",
    help="Inspect multicity configuration.",
    no_args_is_help=True,
)

app.add_typer(config_app, name="config")


# ---------------------------------------------------------------------------
# Global option types
# ---------------------------------------------------------------------------

JsonFlag = Annotated[bool, typer.Option("--json", help="Output as JSON.")]
PlainFlag = Annotated[bool, typer.Option("--plain", help="Output as plain text (no color).")]
VerboseFlag = Annotated[bool, typer.Option("--verbose", "-v", help="Verbose output.")]
QuietFlag = Annotated[bool, typer.Option("--quiet", "-q", help="Suppress non-essential output.")]
ConfigOption = Annotated[
    Optional[Path], typer.Option("--config", help="Settings YAML (default ~/.multicity/config.yaml).")
]
Segments = Annotated[list[str], typer.Argument(help="Segments as ORG-DST-YYYY-MM-DD")]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_format(json_flag: bool = False, plain_flag: bool = False) -> str:
    """Determine output format: json > plain > TTY auto-detect > rich."""
    if json_flag:
        return "json"
    if plain_flag:
        return "plain"
    if sys.stdout.isatty():
        return "rich"
    return "plain"


def _setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure logging based on verbosity flags."""
    if quiet:
        logging.basicConfig(level=logging.ERROR)
    elif verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)


def _error_panel(message: str) -> None:
    """Print an error message, using Rich panel if available."""
    try:
        from rich.console import Console
        from rich.panel import Panel

        console = Console(stderr=True)
        console.print(Panel(message, title="Error", border_style="red"))
    except Exception:
        typer.echo(f"Error: {message}", err=True)


def _parse_segments(segments: list[str]):
    from multicity.search.keys import parse_segment_arg

    try:
        return [parse_segment_arg(s) for s in segments]
    except ValueError as exc:
        raise typer.BadParameter(str(exc))


def _parse_passengers(adults: int, children: int, infants: int):
    from multicity.models import PassengerCount

    try:
        return PassengerCount(adults=adults, children=children, infants=infants)
    except ValidationError as exc:
        msgs = "; ".join(err["msg"] for err in exc.errors())
        raise typer.BadParameter(f"Invalid passengers: {msgs}")


def _parse_cabin(cabin: str):
    from multicity.models import CabinClass

    try:
        return CabinClass.parse(cabin)
    except ValueError:
        valid = ", ".join(c.value for c in CabinClass)
        raise typer.BadParameter(f"Invalid cabin '{cabin}'. Choose from: {valid}")


def _load_settings(config: Optional[Path]):
    from multicity.config import load_settings

    try:
        return load_settings(config)
    except ConfigError as exc:
        _error_panel(str(exc))
        raise typer.Exit(code=2)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def search(
    segments: Segments,
    adults: Annotated[int, typer.Option("--adults", "-a", help="Adult passengers")] = 1,
    children: Annotated[int, typer.Option("--children", help="Child passengers")] = 0,
    infants: Annotated[int, typer.Option("--infants", help="Infant passengers")] = 0,
    cabin: Annotated[str, typer.Option("--cabin", help="economy, premium, business or first")] = "economy",
    direct: Annotated[bool, typer.Option("--direct", help="Nonstop flights only")] = False,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Results shown per segment", min=1)] = 4,
    timeout: Annotated[float, typer.Option("--timeout", help="Seconds to wait for polling")] = 120.0,
    config: ConfigOption = None,
    json: JsonFlag = False,
    plain: PlainFlag = False,
    verbose: VerboseFlag = False,
    quiet: QuietFlag = False,
) -> None:
    """Search every segment and print the merged results."""
    _setup_logging(verbose, quiet)

    segment_inputs = _parse_segments(segments)
    passengers = _parse_passengers(adults, children, infants)
    cabin_class = _parse_cabin(cabin)
    settings = _load_settings(config)

    from multicity.client import SeeruClient

    client = SeeruClient(settings)
    if not client.available():
        _error_panel(
            "SEERU_API_KEY not set.\n\n"
            "Set the key: export SEERU_API_KEY=your_key_here\n"
            "or add api_key to ~/.multicity/config.yaml."
        )
        raise typer.Exit(code=2)

    try:
        views = asyncio.run(
            _run_batch(client, settings, segment_inputs, passengers, cabin_class, direct,
                       limit, timeout, progress=verbose and not quiet)
        )
    except Exception as exc:
        _error_panel(str(exc))
        raise typer.Exit(code=2)

    from multicity.output import get_formatter

    typer.echo(get_formatter(_get_format(json, plain)).format_views(views))

    if not any(view.results for view in views):
        raise typer.Exit(code=1)


async def _run_batch(client, settings, segments, passengers, cabin, direct, limit, timeout, progress=False):
    """Run one batch to completion and return its segment views."""
    from multicity.models import PollerState
    from multicity.search.cache import ResultCache
    from multicity.search.orchestrator import SegmentOrchestrator

    async with SegmentOrchestrator(
        client, cache=ResultCache(ttl_seconds=settings.cache_ttl), settings=settings
    ) as orchestrator:
        if progress:
            def _progress(index, view):
                typer.echo(
                    f"  [{index + 1}] {view.segment.route}: {view.progress}% "
                    f"({len(view.results)} results)",
                    err=True,
                )

            orchestrator.subscribe(_progress)

        await orchestrator.start_batch(segments, passengers, cabin, direct)
        states = await orchestrator.wait_for_pollers(timeout=timeout)
        for index, view in enumerate(orchestrator.views):
            if states.get(orchestrator.key_for(index)) == PollerState.ACTIVE:
                typer.echo(
                    f"Warning: {view.segment.route} still searching after {timeout:g}s, "
                    f"showing {len(view.results)} results so far.",
                    err=True,
                )

        for index, view in enumerate(orchestrator.views):
            while view.visible_count < limit and view.has_more and len(view.results) > view.visible_count:
                orchestrator.reveal_more(index)
        return orchestrator.views


@app.command()
def key(
    segments: Segments,
    adults: Annotated[int, typer.Option("--adults", "-a", help="Adult passengers")] = 1,
    children: Annotated[int, typer.Option("--children", help="Child passengers")] = 0,
    infants: Annotated[int, typer.Option("--infants", help="Infant passengers")] = 0,
    cabin: Annotated[str, typer.Option("--cabin", help="economy, premium, business or first")] = "economy",
    direct: Annotated[bool, typer.Option("--direct", help="Nonstop flights only")] = False,
) -> None:
    """Print the cache key of each segment."""
    from multicity.search.keys import build_segment_key

    segment_inputs = _parse_segments(segments)
    passengers = _parse_passengers(adults, children, infants)
    cabin_class = _parse_cabin(cabin)
    for seg in segment_inputs:
        typer.echo(build_segment_key(seg, passengers, cabin_class, direct))


@config_app.command(name="show")
def config_show(config: ConfigOption = None) -> None:
    """Print the effective settings (API key masked)."""
    import yaml

    settings = _load_settings(config)
    data = settings.model_dump(mode="json")
    data["api_key"] = "***" if settings.api_key else ""
    typer.echo(yaml.safe_dump(data, sort_keys=False).rstrip())


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    app()
