from __future__ import annotations

import pytest

from models.errors import UnknownUnitError
from services.units import seconds_per_unit


@pytest.mark.parametrize(
    ("unit", "expected"),
    [
        ("hour", 3600),
        ("hours", 3600),
        ("minute", 60),
        ("minutes", 60),
        ("second", 1),
        ("seconds", 1),
    ],
)
def test_seconds_per_unit(unit: str, expected: int) -> None:
    assert seconds_per_unit(unit) == expected
    assert seconds_per_unit(unit.upper()) == expected
    assert seconds_per_unit(unit.capitalize()) == expected


@pytest.mark.parametrize("unit", ["day", "hrs", "", "fortnight"])
def test_unknown_unit_raises(unit: str) -> None:
    with pytest.raises(UnknownUnitError) as excinfo:
        seconds_per_unit(unit)

    assert excinfo.value.unit == unit


def test_non_string_unit_raises() -> None:
    with pytest.raises(UnknownUnitError):
        seconds_per_unit(None)  # type: ignore[arg-type]
