from __future__ import annotations

from typing import Any, Iterable

import typer

from app.schemas import BuildInfo
from models.records import DurationStep, GraphPoint, NormalizedSchedule, StepSpec
from services.transport import ServerEvent


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_schedule_names(names: Iterable[str]) -> None:
    echo_heading("Schedules")
    names = list(names)
    if not names:
        typer.echo("No schedules available.")
        return
    for name in names:
        typer.echo(f"  - {name}")


def render_normalized(normalized: NormalizedSchedule, points: Iterable[GraphPoint]) -> None:
    echo_heading(f"Schedule {normalized.name}")
    echo_key_values(
        [
            ("description", normalized.description or "-"),
            ("scale", normalized.scale.value),
            ("steps", len(normalized.steps)),
            ("total_seconds", f"{normalized.total_seconds:g}"),
        ]
    )

    typer.echo()
    echo_heading("Timeline")
    if normalized.steps:
        for index, step in enumerate(normalized.steps, start=1):
            typer.echo(
                f"  {index}. {step.start_time:g}s -> {step.end_time:g}s: "
                f"{step.start_temperature:g} -> {step.end_temperature:g}"
            )
    else:
        typer.echo("No steps.")

    typer.echo()
    echo_heading("Points")
    for point in points:
        typer.echo(f"  ({point.x:g}, {point.y:g})")


def describe_step(step: StepSpec) -> str:
    if isinstance(step, DurationStep):
        return (
            f"{step.start_temperature:g} to {step.end_temperature:g} "
            f"over {step.duration.value:g} {step.duration.unit}"
        )
    return (
        f"{step.start_temperature:g} to {step.end_temperature:g} "
        f"by {step.rate.value:g} degrees per {step.rate.unit}"
    )


def render_step(step: StepSpec, elapsed: float) -> None:
    echo_key_values(
        [
            ("step", describe_step(step)),
            ("elapsed_seconds", f"{elapsed:g}"),
        ]
    )


def render_build_info(info: BuildInfo) -> None:
    echo_heading("Build")
    echo_key_values(sorted(info.model_dump().items()))


def render_event(event: ServerEvent) -> None:
    typer.echo(f"[{event.event}] {event.data}")
