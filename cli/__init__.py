"""Typer command line for kiln schedules and live telemetry."""

from importlib import import_module
from types import ModuleType

__all__: list[str] = []


def __getattr__(name: str) -> ModuleType:
    # ``cli.app`` stays the module, so tests can patch ``cli.app.ScheduleServiceClient``.
    if name != "app":
        raise AttributeError(name)
    return import_module("cli.app")
