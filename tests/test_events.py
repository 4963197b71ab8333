"""Tests for the event channel multiplexer."""

from __future__ import annotations

import asyncio
import logging
from typing import List

import pytest

from models.errors import TransportError
from services.events import NULL_BROKER, ConnectionState, EventChannelMultiplexer
from services.transport import ServerEvent


def test_null_broker_register_is_safe() -> None:
    unregister = NULL_BROKER.register("kiln", lambda event: None)

    unregister()
    unregister()


def test_pre_handshake_broker_is_noop(harness_factory) -> None:
    received: List[str] = []

    async def scenario() -> None:
        harness = harness_factory()
        mux = harness.multiplexer
        assert mux.state is ConnectionState.disconnected
        assert mux.broker is NULL_BROKER

        unregister = mux.broker.register("kiln", lambda event: received.append(event.data))
        harness.start()
        await harness.settle()
        assert mux.state is ConnectionState.connecting

        mux.dispatch(ServerEvent(event="kiln", data="{}"))
        unregister()
        unregister()

        assert harness.subscriber.calls == []
        assert mux.channels() == {}
        await harness.push(None)

    asyncio.run(scenario())

    assert received == []


def test_handshake_subscribes_system_and_publishes_broker(harness_factory) -> None:
    async def scenario() -> None:
        harness = harness_factory()
        mux = harness.multiplexer
        published = []
        mux.on_broker_change(published.append)
        harness.start()

        await harness.send("id", "client-1\n")

        assert mux.state is ConnectionState.identified
        assert mux.client_id == "client-1"
        assert mux.broker is not NULL_BROKER
        assert published == [mux.broker]
        assert harness.subscriber.calls == [("client-1", "system")]

        await harness.push(None)
        await harness.task
        assert mux.state is ConnectionState.closed
        assert published[-1] is NULL_BROKER

    asyncio.run(scenario())


def test_fan_out_in_registration_order(harness_factory) -> None:
    received: List[str] = []

    async def scenario() -> None:
        harness = harness_factory()
        mux = harness.multiplexer
        harness.start()
        await harness.send("id", "client-1")

        unregister_first = mux.broker.register("kiln", lambda event: received.append(f"first:{event.data}"))
        mux.broker.register("kiln", lambda event: received.append(f"second:{event.data}"))
        await harness.settle()

        assert mux.channels() == {"kiln": 2}
        assert harness.subscriber.calls == [
            ("client-1", "system"),
            ("client-1", "kiln"),
            ("client-1", "kiln"),
        ]

        await harness.send("kiln", '{"n": 1}')
        assert mux.state is ConnectionState.streaming

        unregister_first()
        await harness.send("kiln", '{"n": 2}')
        await harness.push(None)

    asyncio.run(scenario())

    assert received == ['first:{"n": 1}', 'second:{"n": 1}', 'second:{"n": 2}']


def test_events_only_reach_their_channel(harness_factory) -> None:
    kiln: List[str] = []
    system: List[str] = []

    async def scenario() -> None:
        harness = harness_factory()
        harness.start()
        await harness.send("id", "client-1")
        harness.multiplexer.broker.register("kiln", lambda event: kiln.append(event.data))
        harness.multiplexer.broker.register("system", lambda event: system.append(event.data))

        await harness.send("system", "uptime=5")
        await harness.send("other", "ignored")
        await harness.send("kiln", '{"state": "Idle"}')
        await harness.push(None)

    asyncio.run(scenario())

    assert kiln == ['{"state": "Idle"}']
    assert system == ["uptime=5"]


def test_unregister_is_idempotent(harness_factory) -> None:
    received: List[str] = []

    async def scenario() -> None:
        harness = harness_factory()
        harness.start()
        await harness.send("id", "client-1")
        unregister = harness.multiplexer.broker.register("kiln", lambda event: received.append(event.data))

        unregister()
        unregister()

        assert harness.multiplexer.channels() == {}
        await harness.send("kiln", "late")
        await harness.push(None)

    asyncio.run(scenario())

    assert received == []


def test_same_callback_registered_twice_is_removed_once(harness_factory) -> None:
    received: List[str] = []

    def listener(event: ServerEvent) -> None:
        received.append(event.data)

    async def scenario() -> None:
        harness = harness_factory()
        harness.start()
        await harness.send("id", "client-1")
        unregister = harness.multiplexer.broker.register("kiln", listener)
        harness.multiplexer.broker.register("kiln", listener)

        unregister()
        await harness.send("kiln", "once")
        await harness.push(None)

    asyncio.run(scenario())

    assert received == ["once"]


def test_listener_failure_does_not_stop_delivery(harness_factory, caplog) -> None:
    received: List[str] = []

    def broken(event: ServerEvent) -> None:
        raise ValueError("bad payload")

    async def scenario() -> None:
        harness = harness_factory()
        harness.start()
        await harness.send("id", "client-1")
        harness.multiplexer.broker.register("kiln", broken)
        harness.multiplexer.broker.register("kiln", lambda event: received.append(event.data))

        with caplog.at_level(logging.ERROR, logger="services.events"):
            await harness.send("kiln", "payload")
        await harness.push(None)

    asyncio.run(scenario())

    assert received == ["payload"]
    assert any("Listener raised" in record.getMessage() for record in caplog.records)


def test_remote_subscribe_failure_is_logged_not_fatal(harness_factory, caplog) -> None:
    received: List[str] = []

    async def scenario() -> None:
        harness = harness_factory(fail_subscribe=True)
        harness.start()
        with caplog.at_level(logging.WARNING, logger="services.events"):
            await harness.send("id", "client-1")
            harness.multiplexer.broker.register("kiln", lambda event: received.append(event.data))
            await harness.settle()
        await harness.send("kiln", "still delivered")
        await harness.push(None)

    asyncio.run(scenario())

    assert received == ["still delivered"]
    failures = [record for record in caplog.records if "Remote subscribe failed" in record.getMessage()]
    assert {getattr(record, "channel", None) for record in failures} == {"system", "kiln"}


def test_transport_error_moves_to_error_state(harness_factory) -> None:
    async def scenario() -> None:
        harness = harness_factory()
        mux = harness.multiplexer
        task = harness.start()
        await harness.send("id", "client-1")
        old_broker = mux.broker
        unregister = old_broker.register("kiln", lambda event: None)

        await harness.push(TransportError("connection reset"))

        with pytest.raises(TransportError):
            await task
        assert mux.state is ConnectionState.error
        assert isinstance(mux.last_error, TransportError)
        assert mux.broker is NULL_BROKER
        assert mux.channels() == {}

        unregister()
        late = old_broker.register("kiln", lambda event: None)
        late()
        assert mux.channels() == {}

        await mux.aclose()
        assert mux.state is ConnectionState.error

    asyncio.run(scenario())


def test_aclose_drops_every_subscription(harness_factory) -> None:
    async def scenario() -> None:
        harness = harness_factory()
        mux = harness.multiplexer
        harness.start()
        await harness.send("id", "client-1")
        unregister = mux.broker.register("kiln", lambda event: None)
        mux.broker.register("system", lambda event: None)

        await mux.aclose()

        assert mux.state is ConnectionState.closed
        assert mux.channels() == {}
        assert mux.broker is NULL_BROKER
        unregister()

        harness.task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await harness.task
        assert mux.state is ConnectionState.closed

    asyncio.run(scenario())


def test_run_twice_is_rejected(harness_factory) -> None:
    async def scenario() -> None:
        harness = harness_factory()
        harness.start()
        await harness.settle()

        with pytest.raises(RuntimeError):
            await harness.multiplexer.run()
        await harness.push(None)

    asyncio.run(scenario())


def test_listener_table_is_not_exposed() -> None:
    class NeverSource:
        async def events(self):
            return
            yield  # pragma: no cover

    class NoSubscriber:
        async def subscribe(self, client_id: str, channel: str) -> None:  # pragma: no cover
            return None

    mux = EventChannelMultiplexer(NeverSource(), NoSubscriber())
    counts = mux.channels()
    counts["kiln"] = 3

    assert mux.channels() == {}
