"""Pydantic schemas for the kiln service's HTTP and event payloads."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from models.errors import InvalidStepError
from models.records import (
    Duration,
    DurationStep,
    NormalizedSchedule,
    NormalizedStep,
    Rate,
    RateStep,
    Schedule,
    StepSpec,
    TemperatureScale,
)


class DurationPayload(BaseModel):
    value: float = Field(..., ge=0)
    unit: str


class RatePayload(BaseModel):
    """Rate as sent over the wire; zero is rejected when the step is resolved."""

    value: float = Field(..., ge=0)
    unit: str


class StepPayload(BaseModel):
    """Wire form of a step, with ``rate`` and ``duration`` as nullable siblings."""

    description: Optional[str] = None
    start_temperature: float = Field(..., ge=0)
    end_temperature: float = Field(..., ge=0)
    rate: Optional[RatePayload] = None
    duration: Optional[DurationPayload] = None

    def to_step(self) -> StepSpec:
        has_rate = self.rate is not None
        has_duration = self.duration is not None
        if has_rate and has_duration:
            raise InvalidStepError("must have either a rate or duration, not both")
        if self.duration is not None:
            return DurationStep(
                start_temperature=self.start_temperature,
                end_temperature=self.end_temperature,
                duration=Duration(value=self.duration.value, unit=self.duration.unit),
                description=self.description,
            )
        if self.rate is not None:
            return RateStep(
                start_temperature=self.start_temperature,
                end_temperature=self.end_temperature,
                rate=Rate(value=self.rate.value, unit=self.rate.unit),
                description=self.description,
            )
        raise InvalidStepError("must have either a rate or duration")

    @classmethod
    def from_step(cls, step: StepSpec) -> "StepPayload":
        if isinstance(step, DurationStep):
            return cls(
                description=step.description,
                start_temperature=step.start_temperature,
                end_temperature=step.end_temperature,
                duration=DurationPayload(value=step.duration.value, unit=step.duration.unit),
            )
        if isinstance(step, RateStep):
            return cls(
                description=step.description,
                start_temperature=step.start_temperature,
                end_temperature=step.end_temperature,
                rate=RatePayload(value=step.rate.value, unit=step.rate.unit),
            )
        raise InvalidStepError("must have either a rate or duration")


class SchedulePayload(BaseModel):
    """Request/response body for ``/schedules`` with raw steps."""

    name: str = Field(..., min_length=1)
    description: Optional[str] = ""
    scale: TemperatureScale = TemperatureScale.celsius
    steps: List[StepPayload] = Field(default_factory=list)

    def to_schedule(self) -> Schedule:
        return Schedule(
            name=self.name,
            description=self.description or "",
            scale=self.scale,
            steps=tuple(step.to_step() for step in self.steps),
        )

    @classmethod
    def from_schedule(cls, schedule: Schedule) -> "SchedulePayload":
        return cls(
            name=schedule.name,
            description=schedule.description,
            scale=schedule.scale,
            steps=[StepPayload.from_step(step) for step in schedule.steps],
        )


class NormalizedStepPayload(BaseModel):
    start_time: float = Field(..., ge=0)
    end_time: float = Field(..., ge=0)
    start_temperature: float
    end_temperature: float


class NormalizedSchedulePayload(BaseModel):
    """Response body for ``/schedules/{name}?normalize=true``."""

    name: str
    description: Optional[str] = ""
    scale: TemperatureScale = TemperatureScale.celsius
    steps: List[NormalizedStepPayload] = Field(default_factory=list)

    def to_normalized(self) -> NormalizedSchedule:
        return NormalizedSchedule(
            name=self.name,
            description=self.description or "",
            scale=self.scale,
            steps=tuple(
                NormalizedStep(
                    start_time=step.start_time,
                    end_time=step.end_time,
                    start_temperature=step.start_temperature,
                    end_temperature=step.end_temperature,
                )
                for step in self.steps
            ),
        )


class KilnStatus(BaseModel):
    """Payload pushed on the ``kiln`` channel."""

    model_config = ConfigDict(populate_by_name=True)

    state: str
    runtime: float = 0.0
    temperature: float = 0.0
    set_point: float = Field(default=0.0, alias="setPoint")

    @property
    def is_running(self) -> bool:
        return self.state.lower() == "running"

    @property
    def is_idle(self) -> bool:
        return self.state.lower() == "idle"


class BuildInfo(BaseModel):
    """Build metadata reported by the service; unknown keys are preserved."""

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    arch: str = "unknown"
    branch: str = "unknown"
    commit: str = "unknown"
    date: str = "unknown"
    version: str = "unknown"
