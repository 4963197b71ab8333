"""Async HTTP client for the kiln schedule service."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Union
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from app.schemas import (
    BuildInfo,
    NormalizedSchedulePayload,
    NormalizedStepPayload,
    SchedulePayload,
)
from models.errors import TransportError, ValidationRejected
from models.records import NormalizedSchedule, NormalizedStep, Schedule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepCheck:
    """Outcome of remote step validation."""

    text: str
    valid: bool
    step: Optional[NormalizedStep] = None
    rejected: Optional[ValidationRejected] = None


class ScheduleServiceClient:
    """Thin async wrapper over the service's schedule, step and subscribe routes."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    @property
    def http(self) -> httpx.AsyncClient:
        return self._client

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ScheduleServiceClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def list_schedules(self) -> List[str]:
        response = await self._request("GET", "/schedules")
        payload = response.json()
        if not isinstance(payload, list):
            raise TransportError("Unexpected response payload when listing schedules.")
        return [str(name) for name in payload]

    async def get_schedule(self, name: str) -> Schedule:
        response = await self._request(
            "GET", f"/schedules/{quote(name, safe='')}", params={"normalize": "false"}
        )
        try:
            payload = SchedulePayload.model_validate(response.json())
        except ValidationError as exc:
            raise TransportError(f"Unexpected schedule payload for {name!r}.") from exc
        return payload.to_schedule()

    async def get_normalized_schedule(self, name: str) -> NormalizedSchedule:
        response = await self._request(
            "GET", f"/schedules/{quote(name, safe='')}", params={"normalize": "true"}
        )
        try:
            payload = NormalizedSchedulePayload.model_validate(response.json())
        except ValidationError as exc:
            raise TransportError(f"Unexpected normalized schedule payload for {name!r}.") from exc
        return payload.to_normalized()

    async def create_schedule(self, schedule: Union[Schedule, SchedulePayload]) -> Any:
        body = _schedule_body(schedule)
        response = await self._request("POST", "/schedules", json=body)
        return response.json()

    async def update_schedule(self, name: str, schedule: Union[Schedule, SchedulePayload]) -> Any:
        body = _schedule_body(schedule)
        response = await self._request("PUT", f"/schedules/{quote(name, safe='')}", json=body)
        return response.json()

    async def delete_schedule(self, name: str) -> Any:
        response = await self._request("DELETE", f"/schedules/{quote(name, safe='')}")
        return response.json()

    async def validate_step_text(self, text: str) -> StepCheck:
        url = f"/step/parse/{quote(text, safe='')}"
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as exc:
            logger.error("Step validation request failed", extra={"url": url, "reason": str(exc)})
            raise TransportError(f"Step validation request failed: {exc}") from exc

        if not response.is_success:
            return StepCheck(
                text=text,
                valid=False,
                rejected=ValidationRejected(
                    text=text,
                    status_code=response.status_code,
                    detail=_describe(response),
                ),
            )

        step: Optional[NormalizedStep] = None
        try:
            parsed = NormalizedStepPayload.model_validate(response.json())
        except (ValueError, ValidationError):
            parsed = None
        if parsed is not None:
            step = NormalizedStep(
                start_time=parsed.start_time,
                end_time=parsed.end_time,
                start_temperature=parsed.start_temperature,
                end_temperature=parsed.end_temperature,
            )
        return StepCheck(text=text, valid=True, step=step)

    async def build_info(self) -> BuildInfo:
        response = await self._request("GET", "/build-info")
        try:
            return BuildInfo.model_validate(response.json())
        except ValidationError as exc:
            raise TransportError("Unexpected build info payload.") from exc

    async def subscribe(self, client_id: str, channel: str) -> None:
        await self._request(
            "POST", f"/subscribe/{quote(client_id, safe='')}/{quote(channel, safe='')}"
        )

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            detail = _describe(exc.response)
            logger.error(
                "Kiln service returned an error",
                extra={"url": url, "status_code": status_code, "reason": detail},
            )
            raise TransportError(
                f"Request failed with status {status_code}: {detail or 'no detail provided.'}",
                status_code=status_code,
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("Kiln service request failed", extra={"url": url, "reason": str(exc)})
            raise TransportError(f"Request to {url} failed: {exc}") from exc
        return response


def _schedule_body(schedule: Union[Schedule, SchedulePayload]) -> dict:
    payload = (
        schedule if isinstance(schedule, SchedulePayload) else SchedulePayload.from_schedule(schedule)
    )
    return payload.model_dump(mode="json")


def _describe(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text.strip()
    if isinstance(data, dict):
        for key in ("detail", "message", "error"):
            value = data.get(key)
            if value:
                return str(value)
    return response.text.strip()
