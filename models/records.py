"""Domain records for firing schedules and their derived timelines."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, Union


class TemperatureScale(str, Enum):
    """Label for schedule temperatures; values are never converted."""

    celsius = "Celsius"
    fahrenheit = "Fahrenheit"
    kelvin = "Kelvin"


class TimeUnit(str, Enum):
    hour = "hour"
    hours = "hours"
    minute = "minute"
    minutes = "minutes"
    second = "second"
    seconds = "seconds"


@dataclass(frozen=True, slots=True)
class Duration:
    value: float
    unit: str


@dataclass(frozen=True, slots=True)
class Rate:
    """Degrees per ``unit``; a zero value leaves the elapsed time undefined."""

    value: float
    unit: str


@dataclass(frozen=True, slots=True)
class DurationStep:
    """A step that takes a fixed amount of time."""

    start_temperature: float
    end_temperature: float
    duration: Duration
    description: Optional[str] = None


@dataclass(frozen=True, slots=True)
class RateStep:
    """A step whose length follows from the temperature delta and the rate."""

    start_temperature: float
    end_temperature: float
    rate: Rate
    description: Optional[str] = None


StepSpec = Union[DurationStep, RateStep]


@dataclass(frozen=True, slots=True)
class Schedule:
    """A firing schedule whose steps still need normalizing."""

    name: str
    scale: TemperatureScale
    steps: Tuple[StepSpec, ...] = ()
    description: str = ""


@dataclass(frozen=True, slots=True)
class NormalizedStep:
    start_time: float
    end_time: float
    start_temperature: float
    end_temperature: float


@dataclass(frozen=True, slots=True)
class NormalizedSchedule:
    """A schedule laid out on an absolute, contiguous timeline."""

    name: str
    scale: TemperatureScale
    steps: Tuple[NormalizedStep, ...] = field(default_factory=tuple)
    description: str = ""

    @property
    def total_seconds(self) -> float:
        if not self.steps:
            return 0.0
        return self.steps[-1].end_time


@dataclass(frozen=True, slots=True)
class GraphPoint:
    x: float
    y: float
