from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


_BASE_URL_ENV = "KILN_API_BASE_URL"
_TIMEOUT_ENV = "KILN_REQUEST_TIMEOUT"
_AMBIENT_ENV = "KILN_AMBIENT_TEMPERATURE"
_DASHBOARD_SCHEDULE_ENV = "KILN_DASHBOARD_SCHEDULE"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    base_url: str
    request_timeout: float
    ambient_temperature: float
    dashboard_schedule: str
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_float_env(name: str, default: float, allow_zero: bool = False) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    if parsed > 0 or (allow_zero and parsed == 0):
        return parsed
    return default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        base_url=_read_str_env(_BASE_URL_ENV, "http://localhost:8080").rstrip("/"),
        request_timeout=_read_float_env(_TIMEOUT_ENV, 30.0),
        ambient_temperature=_read_float_env(_AMBIENT_ENV, 25.0, allow_zero=True),
        dashboard_schedule=_read_str_env(_DASHBOARD_SCHEDULE_ENV, "fast"),
        log_level=_read_log_level("INFO"),
    )
