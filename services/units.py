"""Time unit lookup used when resolving step durations."""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

from models.errors import UnknownUnitError
from models.records import TimeUnit

UNIT_SECONDS: Mapping[str, int] = MappingProxyType(
    {
        TimeUnit.hour.value: 3600,
        TimeUnit.hours.value: 3600,
        TimeUnit.minute.value: 60,
        TimeUnit.minutes.value: 60,
        TimeUnit.second.value: 1,
        TimeUnit.seconds.value: 1,
    }
)


def seconds_per_unit(unit: str) -> int:
    """Return the number of seconds in ``unit``, ignoring case."""
    if not isinstance(unit, str):
        raise UnknownUnitError(unit)
    try:
        return UNIT_SECONDS[unit.strip().lower()]
    except KeyError:
        raise UnknownUnitError(unit) from None
