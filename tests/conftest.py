from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Tuple, Union

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse

from models.errors import TransportError
from services.events import EventChannelMultiplexer
from services.transport import ServerEvent

FAST_SCHEDULE: Dict[str, Any] = {
    "name": "fast",
    "description": "Quick bisque test",
    "scale": "Celsius",
    "steps": [
        {
            "description": "warm up",
            "start_temperature": 0,
            "end_temperature": 100,
            "rate": None,
            "duration": {"value": 1, "unit": "Hours"},
        },
        {
            "description": "hold",
            "start_temperature": 100,
            "end_temperature": 100,
            "rate": None,
            "duration": {"value": 30, "unit": "minutes"},
        },
    ],
}

FAST_NORMALIZED: Dict[str, Any] = {
    "name": "fast",
    "description": "Quick bisque test",
    "scale": "Celsius",
    "steps": [
        {"start_time": 0, "end_time": 3600, "start_temperature": 0, "end_temperature": 100},
        {"start_time": 3600, "end_time": 5400, "start_temperature": 100, "end_temperature": 100},
    ],
}


def build_kiln_service() -> FastAPI:
    """In-memory stand-in for the kiln controller's HTTP surface."""
    service = FastAPI()
    service.state.schedules = {"fast": FAST_SCHEDULE}
    service.state.subscriptions = []

    @service.get("/schedules")
    async def list_schedules() -> List[str]:
        return sorted(service.state.schedules)

    @service.get("/schedules/{name}")
    async def by_name(name: str, normalize: bool = False) -> Dict[str, Any]:
        if name not in service.state.schedules:
            raise HTTPException(status_code=404, detail=f"cannot find schedule with name [{name}]")
        if normalize:
            if name != "fast":
                raise HTTPException(status_code=500, detail="normalization unavailable")
            return FAST_NORMALIZED
        return service.state.schedules[name]

    @service.post("/schedules")
    async def create(body: Dict[str, Any]) -> str:
        service.state.schedules[body["name"]] = body
        return f"{body['name']}.json"

    @service.put("/schedules/{name}")
    async def update(name: str, body: Dict[str, Any]) -> str:
        service.state.schedules.pop(name, None)
        service.state.schedules[body["name"]] = body
        return f"{body['name']}.json"

    @service.delete("/schedules/{name}")
    async def delete(name: str) -> str:
        if service.state.schedules.pop(name, None) is None:
            raise HTTPException(status_code=500, detail="unknown error deleting schedule")
        return f"{name}.json"

    @service.get("/step/parse/{text}")
    async def parse(text: str):
        if text == "ambient to 200 over 2 hours":
            return {"start_time": 0, "end_time": 7200, "start_temperature": 25, "end_temperature": 200}
        return JSONResponse(status_code=406, content={"message": f"cannot parse [{text}]"})

    @service.get("/build-info")
    async def build_info() -> Dict[str, Any]:
        return {"version": "0.3.1", "commit": "abc123", "profile": "release"}

    @service.post("/subscribe/{client_id}/{channel}")
    async def subscribe(client_id: str, channel: str) -> Dict[str, Any]:
        service.state.subscriptions.append((client_id, channel))
        return {}

    return service


@pytest.fixture
def kiln_service() -> FastAPI:
    return build_kiln_service()


class QueueSource:
    """Event source fed by the test; ``None`` ends the stream, exceptions are raised."""

    def __init__(self) -> None:
        self.queue: "asyncio.Queue[Union[ServerEvent, Exception, None]]" = asyncio.Queue()

    async def events(self):
        while True:
            item = await self.queue.get()
            self.queue.task_done()
            if item is None:
                return
            if isinstance(item, Exception):
                raise item
            yield item


class RecordingSubscriber:
    def __init__(self, fail: bool = False) -> None:
        self.calls: List[Tuple[str, str]] = []
        self.fail = fail

    async def subscribe(self, client_id: str, channel: str) -> None:
        self.calls.append((client_id, channel))
        if self.fail:
            raise TransportError("subscribe refused", status_code=503)


class EventHarness:
    """Runs a multiplexer over a QueueSource inside the current event loop."""

    def __init__(self, fail_subscribe: bool = False) -> None:
        self.source = QueueSource()
        self.subscriber = RecordingSubscriber(fail=fail_subscribe)
        self.multiplexer = EventChannelMultiplexer(self.source, self.subscriber)
        self.task: Optional[asyncio.Task] = None

    def start(self) -> asyncio.Task:
        self.task = asyncio.create_task(self.multiplexer.run())
        return self.task

    async def push(self, item: Union[ServerEvent, Exception, None]) -> None:
        await self.source.queue.put(item)
        await self.settle()

    async def send(self, event: str, data: str) -> None:
        await self.push(ServerEvent(event=event, data=data))

    async def settle(self) -> None:
        await self.source.queue.join()
        for _ in range(5):
            await asyncio.sleep(0)


@pytest.fixture
def harness_factory():
    return EventHarness
