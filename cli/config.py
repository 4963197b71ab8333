from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from settings import get_settings


@dataclass(frozen=True)
class CLIConfig:
    base_url: str
    timeout: float
    ambient_temperature: float


def load_config(
    base_url: Optional[str] = None,
    timeout: Optional[float] = None,
) -> CLIConfig:
    settings = get_settings()
    url = base_url or settings.base_url
    if timeout is None or timeout <= 0:
        timeout = settings.request_timeout
    return CLIConfig(
        base_url=url.rstrip("/"),
        timeout=timeout,
        ambient_temperature=settings.ambient_temperature,
    )
