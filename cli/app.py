from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, TypeVar

import typer

from app.main import open_console
from cli.config import CLIConfig, load_config
from cli.render import (
    echo_heading,
    render_build_info,
    render_event,
    render_normalized,
    render_schedule_names,
    render_step,
)
from models.errors import InvalidStepError, StepParseError, TransportError, UnknownUnitError
from models.records import Schedule, TemperatureScale
from services.client import ScheduleServiceClient
from services.durations import elapsed_seconds
from services.events import Broker, Unregister
from services.normalizer import ScheduleNormalizer, validate_schedule, validate_steps
from services.projector import GraphProjector
from services.step_parser import parse_step
from services.transport import ServerEvent
from settings import get_settings

T = TypeVar("T")


@dataclass
class CLIState:
    config: CLIConfig


app = typer.Typer(
    help="Utilities for defining kiln firing schedules and following the kiln.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


def _transport_exit(exc: TransportError) -> typer.Exit:
    typer.secho(str(exc), fg=typer.colors.RED, err=True)
    return typer.Exit(code=1)


def _invalid_exit(exc: Exception) -> typer.Exit:
    typer.secho(f"Invalid schedule: {exc}", fg=typer.colors.RED, err=True)
    return typer.Exit(code=2)


async def _with_client(
    config: CLIConfig, operation: Callable[[ScheduleServiceClient], Awaitable[T]]
) -> T:
    client = ScheduleServiceClient(base_url=config.base_url, timeout=config.timeout)
    try:
        return await operation(client)
    finally:
        await client.aclose()


def _execute(state: CLIState, operation: Callable[[ScheduleServiceClient], Awaitable[T]]) -> T:
    try:
        return asyncio.run(_with_client(state.config, operation))
    except TransportError as exc:
        raise _transport_exit(exc) from exc
    except (InvalidStepError, UnknownUnitError, StepParseError) as exc:
        raise _invalid_exit(exc) from exc


def _load_schedule_file(path: Path) -> Schedule:
    try:
        payload = json.loads(path.read_text())
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"{path} is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise typer.BadParameter(f"{path} must contain a JSON object.")
    try:
        return validate_schedule(payload)
    except InvalidStepError as exc:
        raise _invalid_exit(exc) from exc


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Kiln service base URL (defaults to KILN_API_BASE_URL env or http://localhost:8080).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each request.",
    ),
) -> None:
    """Entry point for the CLI."""
    ctx.obj = CLIState(config=load_config(base_url=base_url, timeout=timeout))


@app.command("list")
def list_command(ctx: typer.Context) -> None:
    """List the schedules known to the service."""
    state = _get_state(ctx)
    names = _execute(state, lambda client: client.list_schedules())
    render_schedule_names(names)


@app.command("show")
def show_command(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Schedule name."),
    local: bool = typer.Option(
        False,
        "--local/--remote",
        help="Normalize here instead of asking the service for normalized steps.",
    ),
) -> None:
    """Show a schedule's timeline and plot points."""
    state = _get_state(ctx)

    async def fetch(client: ScheduleServiceClient):
        if local:
            schedule = await client.get_schedule(name)
            return ScheduleNormalizer().normalize_schedule(schedule)
        return await client.get_normalized_schedule(name)

    normalized = _execute(state, fetch)
    render_normalized(normalized, GraphProjector().project(normalized))


@app.command("preview")
def preview_command(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Schedule JSON file."),
) -> None:
    """Normalize a schedule file offline and print its plot points."""
    schedule = _load_schedule_file(file)
    normalized = ScheduleNormalizer().normalize_schedule(schedule)
    render_normalized(normalized, GraphProjector().project(normalized))


@app.command("create")
def create_command(
    ctx: typer.Context,
    file: Optional[Path] = typer.Option(
        None, "--file", "-f", exists=True, dir_okay=False, readable=True, help="Schedule JSON file."
    ),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Schedule name."),
    description: str = typer.Option("", "--description", "-d"),
    scale: TemperatureScale = typer.Option(TemperatureScale.celsius, "--scale"),
    steps: Optional[List[str]] = typer.Option(
        None,
        "--step",
        "-s",
        help="Step phrase, e.g. 'ambient to 600 by 100 degrees per hour'. Repeatable.",
    ),
) -> None:
    """Create a schedule from a JSON file or from step phrases."""
    state = _get_state(ctx)
    if file is not None:
        schedule = _load_schedule_file(file)
    else:
        if not name:
            raise typer.BadParameter("Provide --file or --name with at least one --step.")
        if not steps:
            raise typer.BadParameter("At least one --step is required.")
        try:
            parsed = tuple(
                parse_step(text, ambient_temperature=state.config.ambient_temperature)
                for text in steps
            )
            validate_steps(parsed)
        except (InvalidStepError, UnknownUnitError, StepParseError) as exc:
            raise _invalid_exit(exc) from exc
        schedule = Schedule(name=name, description=description, scale=scale, steps=parsed)

    created = _execute(state, lambda client: client.create_schedule(schedule))
    typer.secho(f"Created schedule {schedule.name}: {created}", fg=typer.colors.GREEN)


@app.command("delete")
def delete_command(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Schedule name."),
) -> None:
    """Delete a schedule."""
    state = _get_state(ctx)
    _execute(state, lambda client: client.delete_schedule(name))
    typer.secho(f"Deleted schedule {name}.", fg=typer.colors.GREEN)


@app.command("parse-step")
def parse_step_command(
    ctx: typer.Context,
    text: str = typer.Argument(..., help="Step phrase to parse."),
    remote: bool = typer.Option(False, "--remote", help="Also validate the phrase with the service."),
) -> None:
    """Parse a step phrase and print how long it takes."""
    state = _get_state(ctx)
    try:
        step = parse_step(text, ambient_temperature=state.config.ambient_temperature)
        elapsed = elapsed_seconds(step)
    except (InvalidStepError, UnknownUnitError, StepParseError) as exc:
        raise _invalid_exit(exc) from exc
    render_step(step, elapsed)

    if not remote:
        return
    check = _execute(state, lambda client: client.validate_step_text(text))
    if check.rejected is not None:
        typer.secho(
            f"Rejected by service ({check.rejected.status_code}): {check.rejected.detail}",
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(code=1)
    typer.secho("Accepted by service.", fg=typer.colors.GREEN)


@app.command("build-info")
def build_info_command(ctx: typer.Context) -> None:
    """Show the service's build metadata."""
    state = _get_state(ctx)
    info = _execute(state, lambda client: client.build_info())
    render_build_info(info)


async def _watch(config: CLIConfig, channels: List[str], limit: int) -> int:
    settings = replace(get_settings(), base_url=config.base_url, request_timeout=config.timeout)
    received = 0
    finished = asyncio.Event()
    registrations: List[Unregister] = []

    def on_event(event: ServerEvent) -> None:
        nonlocal received
        render_event(event)
        received += 1
        if limit and received >= limit:
            finished.set()

    def attach(broker: Broker) -> None:
        for unregister in registrations:
            unregister()
        registrations[:] = [broker.register(channel, on_event) for channel in channels]

    async with open_console(settings=settings) as console:
        console.multiplexer.on_broker_change(attach)
        run_task = console.start()
        wait_task = asyncio.create_task(finished.wait())
        done, _ = await asyncio.wait({run_task, wait_task}, return_when=asyncio.FIRST_COMPLETED)
        wait_task.cancel()
        if run_task in done:
            run_task.result()
    return received


@app.command("watch")
def watch_command(
    ctx: typer.Context,
    channels: Optional[List[str]] = typer.Option(
        None, "--channel", "-c", help="Channel to follow. Repeatable; defaults to kiln."
    ),
    limit: int = typer.Option(0, "--limit", min=0, help="Stop after this many events (0 = forever)."),
) -> None:
    """Follow live events from the kiln."""
    state = _get_state(ctx)
    selected = list(channels) if channels else ["kiln"]
    echo_heading(f"Watching {', '.join(selected)} on {state.config.base_url}")
    try:
        received = asyncio.run(_watch(state.config, selected, limit))
    except TransportError as exc:
        raise _transport_exit(exc) from exc
    except KeyboardInterrupt:
        raise typer.Exit(code=0)
    typer.echo(f"Received {received} event(s).")
