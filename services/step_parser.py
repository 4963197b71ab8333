"""Offline parser for step phrases typed by the operator.

Accepted forms::

    ambient to 200 over 2 hours
    100 to 300 by 100 degrees per hour
    600 to 600 over 30 minutes

``over`` gives a duration, ``by`` gives a rate. ``ambient`` stands for the
configured ambient temperature. A missing amount counts as 1.
"""

from __future__ import annotations

import re
from typing import Optional

from models.errors import StepParseError
from models.records import Duration, DurationStep, Rate, RateStep, StepSpec
from services.units import seconds_per_unit
from settings import get_settings

_NUMBER = r"\d+(?:\.\d+)?"
_TEMPERATURE = rf"(?:ambient|{_NUMBER})"

_STEP_PATTERN = re.compile(
    rf"^\s*(?P<start>{_TEMPERATURE})\s+to\s+(?P<end>{_TEMPERATURE})\s+"
    rf"(?P<kind>over|by)\s*(?P<amount>{_NUMBER})?\s*"
    r"(?:degrees\s+)?(?:per\s+)?(?P<unit>[a-z]+)\s*$",
    re.IGNORECASE,
)


def _temperature(token: str, ambient: float) -> float:
    if token.lower() == "ambient":
        return ambient
    return float(token)


def parse_step(
    text: str,
    ambient_temperature: Optional[float] = None,
    description: Optional[str] = None,
) -> StepSpec:
    """Parse one step phrase into a DurationStep or RateStep."""
    match = _STEP_PATTERN.match(text or "")
    if match is None:
        raise StepParseError(f"Cannot parse step {text!r}.")

    ambient = (
        ambient_temperature
        if ambient_temperature is not None
        else get_settings().ambient_temperature
    )
    start = _temperature(match.group("start"), ambient)
    end = _temperature(match.group("end"), ambient)
    amount = float(match.group("amount")) if match.group("amount") else 1.0
    unit = match.group("unit").lower()
    # Raises UnknownUnitError.
    seconds_per_unit(unit)

    if match.group("kind").lower() == "over":
        return DurationStep(
            start_temperature=start,
            end_temperature=end,
            duration=Duration(value=amount, unit=unit),
            description=description,
        )
    return RateStep(
        start_temperature=start,
        end_temperature=end,
        rate=Rate(value=amount, unit=unit),
        description=description,
    )
