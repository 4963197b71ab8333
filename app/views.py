"""Telemetry consumers: the dashboard series and the status bar readout."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, List

from app.schemas import KilnStatus
from models.records import GraphPoint
from services.events import Broker, EventChannelMultiplexer, Unregister
from services.transport import ServerEvent

KILN_CHANNEL = "kiln"


def _noop() -> None:
    return None


class ChannelView(ABC):
    """Keeps one registration alive across broker replacements until closed."""

    channel = KILN_CHANNEL

    def __init__(self, multiplexer: EventChannelMultiplexer) -> None:
        self._unregister: Unregister = _noop
        self._closed = False
        self._stop_watching = multiplexer.on_broker_change(self._attach)
        self._attach(multiplexer.broker)

    def _attach(self, broker: Broker) -> None:
        self._unregister()
        self._unregister = broker.register(self.channel, self._receive)

    def _receive(self, event: ServerEvent) -> None:
        self.on_status(KilnStatus.model_validate_json(event.data))

    @abstractmethod
    def on_status(self, status: KilnStatus) -> None:
        """Handle one decoded status update."""

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._stop_watching()
        self._unregister()
        self._unregister = _noop
        self._closed = True


class Dashboard(ChannelView):
    """Scheduled curve plus the measured and set-point series of the current run."""

    def __init__(
        self,
        multiplexer: EventChannelMultiplexer,
        scheduled: Iterable[GraphPoint] = (),
    ) -> None:
        self.scheduled: List[GraphPoint] = list(scheduled)
        self.live: List[GraphPoint] = []
        self.set_point: List[GraphPoint] = []
        super().__init__(multiplexer)

    def on_status(self, status: KilnStatus) -> None:
        if status.is_running:
            self.live.append(GraphPoint(x=status.runtime, y=status.temperature))
            self.set_point.append(GraphPoint(x=status.runtime, y=status.set_point))
        elif status.is_idle:
            self.live.clear()
            self.set_point.clear()


class StatusBar(ChannelView):
    """Latest kiln readout."""

    def __init__(self, multiplexer: EventChannelMultiplexer) -> None:
        self.state = "Idle"
        self.temperature = 0.0
        self.set_point = 0.0
        super().__init__(multiplexer)

    def on_status(self, status: KilnStatus) -> None:
        self.state = status.state
        self.temperature = status.temperature
        self.set_point = status.set_point

    @property
    def readout(self) -> str:
        return (
            f"temperature {self.temperature:.2f} | "
            f"set point {self.set_point:.2f} | {self.state}"
        )
