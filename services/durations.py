"""Elapsed time of a single schedule step."""

from __future__ import annotations

from models.errors import InvalidStepError
from models.records import DurationStep, RateStep, StepSpec
from services.units import seconds_per_unit


def elapsed_seconds(step: StepSpec) -> float:
    """Seconds a step takes, from its duration or from its rate.

    Rate steps take ``|end - start| / rate`` periods of the rate's unit. The
    direction of the change does not matter, so cooling steps resolve the same
    way as heating steps.
    """
    if isinstance(step, DurationStep):
        if step.duration.value < 0:
            raise InvalidStepError("duration must not be negative")
        return step.duration.value * seconds_per_unit(step.duration.unit)

    if isinstance(step, RateStep):
        if step.rate.value <= 0:
            raise InvalidStepError("rate must be greater than zero")
        delta = abs(step.end_temperature - step.start_temperature)
        periods = delta / step.rate.value
        return periods * seconds_per_unit(step.rate.unit)

    raise InvalidStepError("must have either a rate or duration")
