"""
Command-line interface for visit planning.
Reads a JSON stop list, plans the day and prints the itinerary.
"""

import asyncio
import json
import logging
from pathlib import Path

import click
from pydantic import ValidationError

from .schemas import AppConfig, PlanRequest
from .service import PlannerService, PlanResult, load_config
from .util.time_utils import format_hhmm


logger = logging.getLogger(__name__)


@click.group()
@click.option('--config', default=None, type=click.Path(), help='Configuration file path')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.pass_context
def main(ctx, config: str, verbose: bool):
    """Visit Planner CLI."""
    app_config = load_config(config) if config else AppConfig()

    # Setup logging
    log_level = logging.DEBUG if verbose else getattr(logging, app_config.logging.level)
    logging.basicConfig(
        level=log_level,
        format=app_config.logging.format
    )

    ctx.ensure_object(dict)
    ctx.obj['config'] = app_config


@main.command()
@click.argument('stops_file', type=click.Path(exists=True))
@click.option('--start', default=None, help='Day start time (HH:MM), overrides the file')
@click.option('--no-optimize', is_flag=True, help='Keep the stop order from the file')
@click.option('--json', 'as_json', is_flag=True, help='Print the plan as JSON')
@click.pass_context
def plan(ctx, stops_file: str, start: str, no_optimize: bool, as_json: bool):
    """Plan a day of visits from a JSON stops file."""
    service = PlannerService(ctx.obj['config'])

    try:
        request = _load_request(Path(stops_file), service, start, no_optimize)
    except ValidationError as e:
        raise click.ClickException(f"Invalid stops file:\n{e}")

    async def _plan():
        try:
            return await service.plan(request)
        finally:
            await service.close()

    result = asyncio.run(_plan())

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        _print_plan(result, request)


def _load_request(path: Path, service: PlannerService, start: str, no_optimize: bool) -> PlanRequest:
    """Stops file: a list of stops, or an object with ``stops`` and options."""
    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise click.ClickException(f"Could not parse {path}: {e}")

    if isinstance(data, list):
        data = {"stops": data}
    if not isinstance(data, dict):
        raise click.ClickException(f"{path} must contain a list of stops or an object")

    data.setdefault("start_time", service.config.planner.default_start_time)
    if start:
        data["start_time"] = start
    if no_optimize:
        data["optimize"] = False
    return PlanRequest(**data)


def _print_plan(result: PlanResult, request: PlanRequest) -> None:
    click.echo(f"Start {request.start_time}")
    if result.ordered_stops:
        first = result.ordered_stops[0]
        click.echo(f"  1. {first.label}" + (f" (fixed {first.fixed_time})" if first.fixed_time else ""))

    for i, segment in enumerate(result.segments, start=2):
        stop = segment.to_stop
        line = (
            f"  {i}. {stop.label}  arrive {format_hhmm(segment.arrival_time)}"
            f"  ({segment.travel_km:.1f} km, {segment.travel_minutes:.0f} min"
            f", depart {format_hhmm(segment.departure_time)})"
        )
        if segment.wait_minutes >= 1:
            line += f"  wait {segment.wait_minutes:.0f} min"
        click.echo(line)

    if result.return_leg:
        leg = result.return_leg
        click.echo(
            f"Return to {leg.destination.label}: {leg.distance_km:.1f} km, {leg.duration_minutes:.0f} min"
            + (f", home by {format_hhmm(leg.arrival_time)}" if leg.arrival_time else "")
        )

    totals = result.totals
    click.echo(f"\nTotal: {totals.duration_minutes:.0f} min, {totals.distance_km:.1f} km")
    if result.return_leg:
        click.echo(
            f"Total with return: {totals.duration_minutes_with_return:.0f} min, "
            f"{totals.distance_km_with_return:.1f} km"
        )

    summary = result.conflicts
    if summary.has_conflicts:
        click.echo(f"\nConflicts: {summary.errors} errors, {summary.warnings} warnings")
        for conflict in summary.conflicts:
            click.echo(f"  [{conflict.severity.value}] {conflict.stop_id}: {conflict.message}")
    else:
        click.echo("\nNo conflicts")


if __name__ == '__main__':
    main()
