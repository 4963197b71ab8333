"""Fold ordered schedule steps into an absolute, contiguous timeline."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, List, Mapping, Sequence, Tuple

from pydantic import ValidationError

from app.schemas import SchedulePayload
from models.errors import InvalidStepError, UnknownUnitError
from models.records import NormalizedSchedule, NormalizedStep, Schedule, StepSpec
from services.durations import elapsed_seconds

logger = logging.getLogger(__name__)


def normalize(steps: Sequence[StepSpec]) -> Tuple[NormalizedStep, ...]:
    """Lay ``steps`` end to end starting from t=0.

    Each step starts exactly where the previous one ended. Zero-length steps
    are kept as instantaneous set-point jumps.
    """
    clock = 0.0
    normalized: List[NormalizedStep] = []
    for step in steps:
        elapsed = elapsed_seconds(step)
        normalized.append(
            NormalizedStep(
                start_time=clock,
                end_time=clock + elapsed,
                start_temperature=step.start_temperature,
                end_temperature=step.end_temperature,
            )
        )
        clock += elapsed
    return tuple(normalized)


def validate_steps(steps: Sequence[StepSpec]) -> None:
    """Raise one InvalidStepError naming every step that cannot be resolved."""
    problems: List[str] = []
    for index, step in enumerate(steps, start=1):
        try:
            elapsed_seconds(step)
        except (InvalidStepError, UnknownUnitError) as exc:
            problems.append(f"step {index}: {exc}")
    if problems:
        raise InvalidStepError("\n".join(problems))


def validate_schedule(payload: Mapping[str, Any]) -> Schedule:
    """Convert a raw schedule payload, rejecting it if any step is malformed."""
    try:
        parsed = SchedulePayload.model_validate(payload)
    except ValidationError as exc:
        raise InvalidStepError(_describe_validation_error(exc)) from exc

    problems: List[str] = []
    steps: List[StepSpec] = []
    for index, raw_step in enumerate(parsed.steps, start=1):
        try:
            step = raw_step.to_step()
            elapsed_seconds(step)
        except (InvalidStepError, UnknownUnitError) as exc:
            logger.warning(
                "Rejecting schedule step",
                extra={"schedule_name": parsed.name, "step_index": index, "reason": str(exc)},
            )
            problems.append(f"step {index}: {exc}")
            continue
        steps.append(step)

    if problems:
        raise InvalidStepError("\n".join(problems))

    return Schedule(
        name=parsed.name,
        description=parsed.description or "",
        scale=parsed.scale,
        steps=tuple(steps),
    )


def _describe_validation_error(exc: ValidationError) -> str:
    lines = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        lines.append(f"{location}: {error.get('msg')}")
    return "\n".join(lines)


class ScheduleNormalizer:
    """Pure normalization component with a bounded memo of recent results.

    Inputs are frozen into tuples before lookup, so a list that changes after
    being normalized is normalized again rather than served from the memo.
    """

    def __init__(self, maxsize: int = 32) -> None:
        self._normalize_cached = lru_cache(maxsize=maxsize)(normalize)

    def normalize(self, steps: Sequence[StepSpec]) -> Tuple[NormalizedStep, ...]:
        return self._normalize_cached(tuple(steps))

    def cache_info(self):
        return self._normalize_cached.cache_info()

    def normalize_schedule(self, schedule: Schedule) -> NormalizedSchedule:
        if not isinstance(schedule, Schedule):
            raise TypeError(
                f"Only raw schedules can be normalized, got {type(schedule).__name__}."
            )
        return NormalizedSchedule(
            name=schedule.name,
            description=schedule.description,
            scale=schedule.scale,
            steps=self.normalize(schedule.steps),
        )

    def clear(self) -> None:
        self._normalize_cached.cache_clear()
