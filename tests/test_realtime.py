from __future__ import annotations

import asyncio
import json

import pytest

from subspace.errors import ConfigurationError
from subspace.network.envelope import Envelope, EnvelopeType, MessageEvent, UnknownEvent
from subspace.network.realtime import GOING_AWAY, RealtimeChannel


class FakeConnection:
    def __init__(self, *, ping_error: Exception | None = None) -> None:
        self.incoming: asyncio.Queue[str | bytes | Exception] = asyncio.Queue()
        self.sent: list[str] = []
        self.pings = 0
        self.closed_with: int | None = None
        self.ping_error = ping_error

    def feed(self, item: str | bytes | Exception) -> None:
        self.incoming.put_nowait(item)

    async def recv(self) -> str | bytes:
        item = await self.incoming.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def send(self, message: str) -> None:
        self.sent.append(message)

    async def ping(self) -> None:
        self.pings += 1
        if self.ping_error is not None:
            raise self.ping_error

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed_with = code


class FakeConnector:
    def __init__(
        self,
        *,
        failures: list[Exception] | None = None,
        ping_error: Exception | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.uris: list[str] = []
        self.connections: list[FakeConnection] = []
        self.failures = failures or []
        self.ping_error = ping_error
        self.gate = gate

    async def __call__(self, uri: str) -> FakeConnection:
        self.uris.append(uri)
        if self.gate is not None:
            await self.gate.wait()
        if self.failures:
            raise self.failures.pop(0)
        connection = FakeConnection(ping_error=self.ping_error)
        self.connections.append(connection)
        return connection


def _frame(kind: str, **data: object) -> str:
    return json.dumps({"type": kind, "data": data})


async def _settle(seconds: float = 0.02) -> None:
    await asyncio.sleep(seconds)


def _channel(connector: FakeConnector, **kwargs: float) -> RealtimeChannel:
    options = {"ping_interval": 30.0, "reconnect_delay": 0.05, **kwargs}
    return RealtimeChannel("ws://rt.test/ws", connect_factory=connector, **options)


@pytest.mark.asyncio
async def test_connect_embeds_identity_and_dispatches_in_order() -> None:
    connector = FakeConnector()
    channel = _channel(connector)
    received: list[Envelope] = []
    channel.on_message(received.append)

    await channel.connect("user-1")
    try:
        assert channel.is_connected
        assert connector.uris == ["ws://rt.test/ws?userId=user-1"]
        connection = connector.connections[0]
        connection.feed(_frame("new_message", id="m1", userId="user-1", content="hi"))
        connection.feed(_frame("message_read", id="m1", isRead=True))
        await _settle()

        assert [envelope.type for envelope in received] == [EnvelopeType.NEW_MESSAGE, EnvelopeType.MESSAGE_READ]
        first = received[0]
        assert isinstance(first, MessageEvent)
        assert first.message.content == "hi"
        assert channel.last_envelope == received[1]
    finally:
        await channel.disconnect()


@pytest.mark.asyncio
async def test_connect_twice_keeps_single_connection() -> None:
    connector = FakeConnector()
    channel = _channel(connector)

    await channel.connect("user-1")
    await channel.connect("user-1")
    await asyncio.gather(channel.connect("user-1"), channel.connect("user-2"))
    try:
        assert len(connector.uris) == 1
        assert channel.identity == "user-1"
    finally:
        await channel.disconnect()


@pytest.mark.asyncio
async def test_invalid_frame_is_dropped_and_loop_continues() -> None:
    connector = FakeConnector()
    channel = _channel(connector)
    received: list[Envelope] = []
    channel.on_message(received.append)

    await channel.connect("user-1")
    try:
        connection = connector.connections[0]
        connection.feed("{not json")
        connection.feed(json.dumps({"data": {}}))
        connection.feed(_frame("typing", userId="user-2"))
        await _settle()

        assert channel.is_connected
        assert len(received) == 1
        assert isinstance(received[0], UnknownEvent)
        assert received[0].payload == {"userId": "user-2"}
        assert len(connector.uris) == 1
    finally:
        await channel.disconnect()


@pytest.mark.asyncio
async def test_receive_failure_reconnects_once_with_same_identity() -> None:
    connector = FakeConnector()
    channel = _channel(connector, reconnect_delay=0.1)

    await channel.connect("user-1")
    try:
        connector.connections[0].feed(ConnectionResetError("peer went away"))
        await _settle(0.01)

        assert not channel.is_connected
        assert len(connector.uris) == 1

        await _settle(0.15)
        assert channel.is_connected
        assert connector.uris == ["ws://rt.test/ws?userId=user-1"] * 2

        await _settle(0.15)
        assert len(connector.uris) == 2
    finally:
        await channel.disconnect()


@pytest.mark.asyncio
async def test_failed_handshake_keeps_retrying_at_fixed_delay() -> None:
    connector = FakeConnector(failures=[OSError("refused"), OSError("refused")])
    channel = _channel(connector, reconnect_delay=0.02)

    await channel.connect("user-1")
    assert not channel.is_connected

    await _settle(0.2)
    try:
        assert channel.is_connected
        assert len(connector.uris) == 3
    finally:
        await channel.disconnect()


@pytest.mark.asyncio
async def test_disconnect_closes_and_never_reconnects() -> None:
    connector = FakeConnector()
    channel = _channel(connector, reconnect_delay=0.01)

    await channel.connect("user-1")
    connection = connector.connections[0]
    await channel.disconnect()
    await _settle(0.05)

    assert not channel.is_connected
    assert connection.closed_with == GOING_AWAY
    assert len(connector.uris) == 1

    await channel.send("hello")
    assert connection.sent == []


@pytest.mark.asyncio
async def test_disconnect_cancels_pending_reconnect() -> None:
    connector = FakeConnector()
    channel = _channel(connector, reconnect_delay=0.05)

    await channel.connect("user-1")
    connector.connections[0].feed(ConnectionResetError())
    await _settle(0.01)
    await channel.disconnect()
    await _settle(0.1)

    assert len(connector.uris) == 1
    assert not channel.is_connected


@pytest.mark.asyncio
async def test_disconnect_during_handshake_discards_late_connection() -> None:
    gate = asyncio.Event()
    connector = FakeConnector(gate=gate)
    channel = _channel(connector, reconnect_delay=0.01)

    pending = asyncio.create_task(channel.connect("user-1"))
    await _settle(0.01)
    await channel.disconnect()
    gate.set()
    await pending
    await _settle(0.05)

    assert not channel.is_connected
    assert len(connector.uris) == 1
    assert connector.connections[0].closed_with == GOING_AWAY


@pytest.mark.asyncio
async def test_connect_after_disconnect_during_handshake_wins() -> None:
    gate = asyncio.Event()
    connector = FakeConnector(gate=gate)
    channel = _channel(connector)

    first = asyncio.create_task(channel.connect("user-1"))
    await _settle(0.01)
    await channel.disconnect()
    second = asyncio.create_task(channel.connect("user-1"))
    await _settle(0.01)
    gate.set()
    await asyncio.gather(first, second)
    try:
        assert channel.is_connected
        assert len(connector.uris) == 2
        closed = [connection.closed_with for connection in connector.connections]
        assert sorted(closed, key=str) == [GOING_AWAY, None]
    finally:
        await channel.disconnect()


@pytest.mark.asyncio
async def test_send_when_connected() -> None:
    connector = FakeConnector()
    channel = _channel(connector)

    await channel.send("dropped")
    await channel.connect("user-1")
    try:
        await channel.send("hello")
        assert connector.connections[0].sent == ["hello"]
    finally:
        await channel.disconnect()


@pytest.mark.asyncio
async def test_heartbeat_ping_errors_do_not_drop_connection() -> None:
    connector = FakeConnector(ping_error=RuntimeError("ping failed"))
    channel = _channel(connector, ping_interval=0.01)

    await channel.connect("user-1")
    try:
        await _settle(0.05)
        assert connector.connections[0].pings >= 2
        assert channel.is_connected
        assert len(connector.uris) == 1
    finally:
        await channel.disconnect()


@pytest.mark.asyncio
async def test_slow_handler_does_not_block_receive_loop() -> None:
    connector = FakeConnector()
    channel = _channel(connector)
    release = asyncio.Event()
    started: list[str | None] = []

    async def _handler(envelope: Envelope) -> None:
        assert isinstance(envelope, MessageEvent)
        started.append(envelope.message.id)
        await release.wait()

    channel.on_message(_handler)
    await channel.connect("user-1")
    try:
        connection = connector.connections[0]
        connection.feed(_frame("new_message", id="m1"))
        connection.feed(_frame("new_message", id="m2"))
        await _settle()

        assert started == ["m1", "m2"]
        release.set()
    finally:
        await channel.disconnect()


@pytest.mark.asyncio
async def test_handler_errors_are_contained() -> None:
    connector = FakeConnector()
    channel = _channel(connector)

    def _handler(_envelope: Envelope) -> None:
        raise ValueError("handler bug")

    channel.on_message(_handler)
    await channel.connect("user-1")
    try:
        connector.connections[0].feed(_frame("new_message", id="m1"))
        await _settle()
        assert channel.is_connected
        assert channel.last_envelope is not None
    finally:
        await channel.disconnect()


def test_rejects_non_websocket_url() -> None:
    with pytest.raises(ConfigurationError):
        RealtimeChannel("http://rt.test/ws")
