"""Fan one server push connection out to independently subscribable channels.

The multiplexer owns the only listener table. Consumers never see it; they get
a broker and call ``broker.register(channel, callback)``, keeping the returned
``unregister`` callable. Until the server has assigned a client id the broker
is ``NULL_BROKER``, whose registrations do nothing. Consumers that want to
follow the connection watch ``on_broker_change`` and register again whenever
the broker they hold is replaced.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Callable, Dict, List, Optional, Protocol, Set

from models.errors import TransportError
from services.transport import ServerEvent

logger = logging.getLogger(__name__)

Listener = Callable[[ServerEvent], None]
Unregister = Callable[[], None]

ID_EVENT = "id"
SYSTEM_CHANNEL = "system"


class ConnectionState(str, Enum):
    disconnected = "disconnected"
    connecting = "connecting"
    identified = "identified"
    streaming = "streaming"
    error = "error"
    closed = "closed"


_LIVE_STATES = frozenset({ConnectionState.identified, ConnectionState.streaming})


class EventSource(Protocol):
    def events(self) -> AsyncIterator[ServerEvent]: ...


class ChannelSubscriber(Protocol):
    async def subscribe(self, client_id: str, channel: str) -> None: ...


class Broker(Protocol):
    def register(self, channel: str, callback: Listener) -> Unregister: ...


def _noop_unregister() -> None:
    return None


class NullBroker:
    """Broker handed out before the handshake and after the connection ends."""

    def register(self, channel: str, callback: Listener) -> Unregister:
        return _noop_unregister


NULL_BROKER = NullBroker()


@dataclass(eq=False)
class Subscription:
    client_id: str
    channel: str
    listener: Listener


class ChannelBroker:
    """Broker bound to one identified connection."""

    def __init__(self, multiplexer: "EventChannelMultiplexer", client_id: str) -> None:
        self._multiplexer = multiplexer
        self.client_id = client_id

    def register(self, channel: str, callback: Listener) -> Unregister:
        return self._multiplexer._register(self, channel, callback)


class EventChannelMultiplexer:
    """Runs the push connection and dispatches its events by channel name."""

    def __init__(self, source: EventSource, subscriber: ChannelSubscriber) -> None:
        self._source = source
        self._subscriber = subscriber
        self._state = ConnectionState.disconnected
        self._broker: Broker = NULL_BROKER
        self._client_id: Optional[str] = None
        self._channels: Dict[str, List[Subscription]] = {}
        self._broker_observers: List[Callable[[Broker], None]] = []
        self._pending: Set[asyncio.Task] = set()
        self.last_error: Optional[TransportError] = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def client_id(self) -> Optional[str]:
        return self._client_id

    @property
    def broker(self) -> Broker:
        return self._broker

    def channels(self) -> Dict[str, int]:
        """Listener counts per channel."""
        return {channel: len(listeners) for channel, listeners in self._channels.items()}

    def on_broker_change(self, callback: Callable[[Broker], None]) -> Unregister:
        self._broker_observers.append(callback)

        def stop() -> None:
            try:
                self._broker_observers.remove(callback)
            except ValueError:
                pass

        return stop

    async def run(self) -> None:
        """Consume the connection until it ends or fails.

        A failure leaves the multiplexer in ``error`` and is re-raised as
        TransportError. There is no reconnect.
        """
        if self._state is not ConnectionState.disconnected:
            raise RuntimeError(f"Multiplexer already started (state={self._state.value}).")

        self._set_state(ConnectionState.connecting)
        try:
            async with aclosing(self._source.events()) as events:
                async for event in events:
                    if self._state is ConnectionState.closed:
                        break
                    self._handle(event)
        except TransportError as exc:
            if self._state is ConnectionState.closed:
                return
            self.last_error = exc
            self._set_state(ConnectionState.error)
            logger.error(
                "Event connection failed",
                extra={"client_id": self._client_id, "reason": str(exc)},
            )
            self._drop_subscriptions()
            raise
        except asyncio.CancelledError:
            self._shutdown()
            raise

        if self._state is not ConnectionState.closed:
            logger.info("Event connection ended", extra={"client_id": self._client_id})
            self._shutdown()

    def dispatch(self, event: ServerEvent) -> None:
        """Deliver ``event`` to every listener on its channel, in registration order."""
        for subscription in tuple(self._channels.get(event.event, ())):
            try:
                subscription.listener(event)
            except Exception:
                logger.exception(
                    "Listener raised while handling event",
                    extra={"channel": event.event, "client_id": subscription.client_id},
                )

    async def aclose(self) -> None:
        """Tear down every subscription and wait for in-flight subscribe calls."""
        self._shutdown()
        pending = list(self._pending)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def _handle(self, event: ServerEvent) -> None:
        if event.event == ID_EVENT and self._state is ConnectionState.connecting:
            self._identify(event.data.strip())
            return
        if self._state is ConnectionState.identified:
            self._set_state(ConnectionState.streaming)
        if event.event == SYSTEM_CHANNEL:
            logger.debug("System event: %s", event.data, extra={"client_id": self._client_id})
        self.dispatch(event)

    def _identify(self, client_id: str) -> None:
        self._client_id = client_id
        self._set_state(ConnectionState.identified)
        self._subscribe_remote(client_id, SYSTEM_CHANNEL)
        self._publish(ChannelBroker(self, client_id))

    def _register(self, broker: ChannelBroker, channel: str, callback: Listener) -> Unregister:
        if broker is not self._broker or self._state not in _LIVE_STATES:
            return _noop_unregister

        self._subscribe_remote(broker.client_id, channel)
        subscription = Subscription(client_id=broker.client_id, channel=channel, listener=callback)
        self._channels.setdefault(channel, []).append(subscription)
        logger.debug("Listener registered", extra={"channel": channel, "client_id": broker.client_id})

        def unregister() -> None:
            self._remove(subscription)

        return unregister

    def _remove(self, subscription: Subscription) -> None:
        listeners = self._channels.get(subscription.channel)
        if not listeners:
            return
        for index, candidate in enumerate(listeners):
            if candidate is subscription:
                del listeners[index]
                break
        if not listeners:
            del self._channels[subscription.channel]

    def _subscribe_remote(self, client_id: str, channel: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(
                "No running event loop, skipping remote subscribe",
                extra={"client_id": client_id, "channel": channel},
            )
            return
        task = loop.create_task(self._subscribe_quietly(client_id, channel))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _subscribe_quietly(self, client_id: str, channel: str) -> None:
        try:
            await self._subscriber.subscribe(client_id, channel)
        except TransportError as exc:
            logger.warning(
                "Remote subscribe failed",
                extra={"client_id": client_id, "channel": channel, "reason": str(exc)},
            )

    def _shutdown(self) -> None:
        if self._state is not ConnectionState.error:
            self._set_state(ConnectionState.closed)
        self._drop_subscriptions()

    def _drop_subscriptions(self) -> None:
        self._channels.clear()
        if self._broker is not NULL_BROKER:
            self._publish(NULL_BROKER)

    def _publish(self, broker: Broker) -> None:
        self._broker = broker
        for observer in tuple(self._broker_observers):
            try:
                observer(broker)
            except Exception:
                logger.exception("Broker observer raised", extra={"client_id": self._client_id})

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        logger.debug(
            "Connection state changed",
            extra={"state": state.value, "client_id": self._client_id},
        )
        self._state = state
