from __future__ import annotations

import pytest

from models.errors import StepParseError, UnknownUnitError
from models.records import DurationStep, RateStep
from services.durations import elapsed_seconds
from services.step_parser import parse_step
from settings import get_settings


def test_parse_duration_with_ambient() -> None:
    step = parse_step("ambient to 200 over 2 hours", ambient_temperature=25)

    assert isinstance(step, DurationStep)
    assert step.start_temperature == 25
    assert step.end_temperature == 200
    assert elapsed_seconds(step) == 7200


def test_parse_rate() -> None:
    step = parse_step("100 to 300 by 100 degrees per hour")

    assert isinstance(step, RateStep)
    assert step.rate.value == 100
    assert step.rate.unit == "hour"
    assert elapsed_seconds(step) == 7200


def test_parse_rate_without_amount_defaults_to_one() -> None:
    step = parse_step("10 to 12 by degrees per minute")

    assert isinstance(step, RateStep)
    assert step.rate.value == 1
    assert elapsed_seconds(step) == 120


def test_parse_is_case_insensitive_and_accepts_decimals() -> None:
    step = parse_step("  Ambient TO 99.5 Over 1.5 Minutes ", ambient_temperature=20.5)

    assert step.start_temperature == 20.5
    assert step.end_temperature == 99.5
    assert elapsed_seconds(step) == 90


def test_ambient_defaults_to_settings(monkeypatch) -> None:
    monkeypatch.setenv("KILN_AMBIENT_TEMPERATURE", "18")
    get_settings.cache_clear()
    try:
        step = parse_step("ambient to 100 over 1 hour")
    finally:
        get_settings.cache_clear()

    assert step.start_temperature == 18


@pytest.mark.parametrize(
    "text",
    ["", "hold for 200 minutes", "100 to over 2 hours", "100 200 over 2 hours", "100 to 200 in 2 hours"],
)
def test_malformed_text_raises(text: str) -> None:
    with pytest.raises(StepParseError):
        parse_step(text)


def test_unknown_unit_raises() -> None:
    with pytest.raises(UnknownUnitError):
        parse_step("100 to 200 over 2 days")
