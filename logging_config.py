from __future__ import annotations

import logging
import time
from logging.config import dictConfig
from typing import Any, Iterable, Sequence

from settings import get_settings

_CONTEXT_KEYS = (
    "client_id",
    "channel",
    "state",
    "schedule_name",
    "step_index",
    "url",
    "status_code",
    "reason",
)

# Request-level loggers, held at WARNING unless running at DEBUG.
_CHATTY_LOGGERS = ("httpx", "httpcore")

_configured = False


def _render_value(value: Any) -> str:
    text = " / ".join(str(value).splitlines())
    if " " in text or "=" in text:
        return repr(text)
    return text


class ContextualFormatter(logging.Formatter):
    """Appends ``key=value`` pairs for the known context keys set via ``extra``."""

    converter = time.gmtime

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: str = "%",
        context_keys: Iterable[str] | None = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        self._context_keys: Sequence[str] = tuple(context_keys or _CONTEXT_KEYS)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        pairs = [
            f"{key}={_render_value(value)}"
            for key in self._context_keys
            if (value := getattr(record, key, None)) is not None
        ]
        if not pairs:
            return message
        return f"{message} | {' '.join(pairs)}"


def configure_logging(level: str | int | None = None) -> None:
    """Send console logs to stderr so command output on stdout stays clean."""
    global _configured
    if _configured:
        return

    log_level = level if level is not None else get_settings().log_level
    verbose = log_level in ("DEBUG", logging.DEBUG)

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "contextual": {
                    "()": "logging_config.ContextualFormatter",
                    "fmt": "%(asctime)sZ %(levelname)-7s %(name)s: %(message)s",
                    "datefmt": "%Y-%m-%dT%H:%M:%S",
                    "context_keys": list(_CONTEXT_KEYS),
                }
            },
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stderr",
                    "formatter": "contextual",
                }
            },
            "loggers": {
                name: {"level": "DEBUG" if verbose else "WARNING"} for name in _CHATTY_LOGGERS
            },
            "root": {"handlers": ["stderr"], "level": log_level},
        }
    )

    _configured = True
