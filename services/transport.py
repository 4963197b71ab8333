"""Server-sent event transport for the ``/connect`` stream."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import AsyncIterator

import httpx
from httpx_sse import SSEError, aconnect_sse

from models.errors import TransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ServerEvent:
    """One named event; ``data`` is the payload exactly as the server sent it."""

    event: str
    data: str


class SseTransport:
    """Opens the push connection and yields its events until the server stops."""

    def __init__(self, client: httpx.AsyncClient, path: str = "/connect") -> None:
        self._client = client
        self._path = path

    async def events(self) -> AsyncIterator[ServerEvent]:
        # Connect is bounded; reads are not.
        timeout = httpx.Timeout(self._client.timeout.connect, read=None)
        try:
            async with aconnect_sse(self._client, "GET", self._path, timeout=timeout) as source:
                source.response.raise_for_status()
                async for sse in source.aiter_sse():
                    yield ServerEvent(event=sse.event, data=sse.data)
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            logger.error(
                "Event stream rejected",
                extra={"url": self._path, "status_code": status_code},
            )
            raise TransportError(
                f"Event stream returned status {status_code}.", status_code=status_code
            ) from exc
        except (httpx.HTTPError, SSEError) as exc:
            logger.error("Event stream failed", extra={"url": self._path, "reason": str(exc)})
            raise TransportError(f"Event stream failed: {exc}") from exc
