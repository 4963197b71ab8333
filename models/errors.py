"""Error taxonomy shared by the schedule engine, the HTTP client and the CLI."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


class KilnConsoleError(Exception):
    """Base class for every error raised by the console."""


class InvalidStepError(KilnConsoleError, ValueError):
    """A step has neither or both of rate/duration, or a zero rate."""


class UnknownUnitError(KilnConsoleError, ValueError):
    """A time unit that is not hour(s), minute(s) or second(s)."""

    def __init__(self, unit: object) -> None:
        super().__init__(f"Unknown time unit {unit!r}.")
        self.unit = unit


class StepParseError(KilnConsoleError, ValueError):
    """Step text that does not match the step grammar."""


class TransportError(KilnConsoleError):
    """Network or service failure talking to the kiln service."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class ValidationRejected:
    """Remote step validation refused the text; reported, never raised."""

    text: str
    status_code: int
    detail: str
