from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx

from app.views import Dashboard, StatusBar
from logging_config import configure_logging
from models.records import GraphPoint, NormalizedSchedule
from services.client import ScheduleServiceClient
from services.events import EventChannelMultiplexer
from services.normalizer import ScheduleNormalizer
from services.projector import GraphProjector
from services.transport import SseTransport
from settings import Settings, get_settings

logger = logging.getLogger(__name__)


class KilnConsole:
    """Wires the schedule client, the event multiplexer and the views together."""

    def __init__(
        self,
        settings: Settings,
        client: ScheduleServiceClient,
        multiplexer: EventChannelMultiplexer,
    ) -> None:
        self.settings = settings
        self.client = client
        self.multiplexer = multiplexer
        self.normalizer = ScheduleNormalizer()
        self.projector = GraphProjector()
        self._run_task: Optional[asyncio.Task] = None

    def start(self) -> asyncio.Task:
        """Open the push connection in the background."""
        if self._run_task is None:
            self._run_task = asyncio.create_task(self.multiplexer.run())
        return self._run_task

    async def normalized_schedule(self, name: str, local: bool = False) -> NormalizedSchedule:
        """Fetch ``name`` normalized by the service, or normalize it here."""
        if not local:
            return await self.client.get_normalized_schedule(name)
        schedule = await self.client.get_schedule(name)
        return self.normalizer.normalize_schedule(schedule)

    async def schedule_points(self, name: str, local: bool = False) -> list[GraphPoint]:
        normalized = await self.normalized_schedule(name, local=local)
        return self.projector.points(normalized)

    async def open_dashboard(self, name: Optional[str] = None) -> Dashboard:
        schedule_name = name or self.settings.dashboard_schedule
        points = await self.schedule_points(schedule_name)
        logger.info(
            "Dashboard opened",
            extra={"schedule_name": schedule_name, "client_id": self.multiplexer.client_id},
        )
        return Dashboard(self.multiplexer, points)

    def open_status_bar(self) -> StatusBar:
        return StatusBar(self.multiplexer)

    async def aclose(self) -> None:
        if self._run_task is not None and not self._run_task.done():
            self._run_task.cancel()
            try:
                await self._run_task
            except asyncio.CancelledError:
                pass
        await self.multiplexer.aclose()
        await self.client.aclose()


def create_console(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> KilnConsole:
    configure_logging()
    resolved = settings or get_settings()
    client = ScheduleServiceClient(
        base_url=resolved.base_url,
        timeout=resolved.request_timeout,
        transport=transport,
    )
    multiplexer = EventChannelMultiplexer(SseTransport(client.http), client)
    return KilnConsole(settings=resolved, client=client, multiplexer=multiplexer)


@asynccontextmanager
async def open_console(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> AsyncIterator[KilnConsole]:
    console = create_console(settings=settings, transport=transport)
    try:
        yield console
    finally:
        await console.aclose()
