"""Self-healing realtime channel over a websocket."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from loguru import logger
from pydantic import ValidationError
from websockets.asyncio.client import connect as ws_connect

from subspace.errors import ConfigurationError
from subspace.network.envelope import Envelope, decode_envelope

DEFAULT_WEBSOCKET_URL = "ws://localhost:8080/ws"
DEFAULT_PING_INTERVAL_SECONDS = 30.0
DEFAULT_RECONNECT_DELAY_SECONDS = 3.0
DEFAULT_OPEN_TIMEOUT_SECONDS = 30.0
GOING_AWAY = 1001


class Connection(Protocol):
    """The subset of a websocket client connection the channel relies on."""

    async def recv(self) -> str | bytes: ...

    async def send(self, message: str) -> None: ...

    async def ping(self) -> Any: ...

    async def close(self, code: int = 1000, reason: str = "") -> None: ...


ConnectFactory = Callable[[str], Awaitable[Connection]]
MessageHandler = Callable[[Envelope], Awaitable[None] | None]


async def open_websocket(uri: str) -> Connection:
    # Keepalive pings are sent by the channel's own heartbeat.
    return await ws_connect(uri, ping_interval=None, open_timeout=DEFAULT_OPEN_TIMEOUT_SECONDS)


@dataclass
class ChannelState:
    connected: bool = False
    last_envelope: Envelope | None = None


class RealtimeChannel:
    """Maintains one long-lived connection and dispatches inbound envelopes.

    After a receive failure the channel reconnects with the last identity after
    a fixed delay, indefinitely, until `disconnect` is called. Failures are
    logged and never raised to callers.
    """

    def __init__(
        self,
        url: str = DEFAULT_WEBSOCKET_URL,
        *,
        ping_interval: float = DEFAULT_PING_INTERVAL_SECONDS,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY_SECONDS,
        connect_factory: ConnectFactory = open_websocket,
        on_message_received: MessageHandler | None = None,
    ) -> None:
        parts = urlsplit(url)
        if parts.scheme not in {"ws", "wss"} or not parts.hostname:
            raise ConfigurationError(f"Invalid WebSocket URL: {url!r}")
        self.url = url
        self.ping_interval = ping_interval
        self.reconnect_delay = reconnect_delay
        self.on_message_received = on_message_received
        self._connect_factory = connect_factory
        self._state = ChannelState()
        self._identity: str | None = None
        self._connection: Connection | None = None
        self._closing = False
        self._generation = 0
        self._pending_handshake: int | None = None
        self._receive_task: asyncio.Task[None] | None = None
        self._heartbeat_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._handler_tasks: set[asyncio.Task[None]] = set()

    @property
    def is_connected(self) -> bool:
        return self._state.connected

    @property
    def last_envelope(self) -> Envelope | None:
        return self._state.last_envelope

    @property
    def identity(self) -> str | None:
        return self._identity

    def on_message(self, handler: MessageHandler | None) -> None:
        """Register the handler invoked once per decoded envelope."""
        self.on_message_received = handler

    def uri_for(self, identity: str) -> str:
        parts = urlsplit(self.url)
        query = [*parse_qsl(parts.query), ("userId", identity)]
        return urlunsplit(parts._replace(query=urlencode(query)))

    async def connect(self, identity: str) -> None:
        if self._state.connected or self._pending_handshake is not None:
            logger.info("realtime.connect.skipped identity={} reason=already_connected", identity)
            return

        self._identity = identity
        self._closing = False
        self._cancel_reconnect()
        uri = self.uri_for(identity)
        self._generation += 1
        generation = self._generation
        self._pending_handshake = generation
        try:
            connection = await self._connect_factory(uri)
        except Exception as exc:
            if generation != self._generation:
                logger.debug("realtime.connect.superseded uri={} error={!r}", uri, exc)
                return
            logger.error("realtime.connect.failed uri={} error={!r}", uri, exc)
            self._schedule_reconnect()
            return
        finally:
            if self._pending_handshake == generation:
                self._pending_handshake = None

        # A disconnect or a newer connect owns the channel now.
        if generation != self._generation:
            logger.debug("realtime.connect.superseded uri={}", uri)
            await self._close_quietly(connection)
            return

        self._connection = connection
        self._state.connected = True
        logger.info("realtime.connected identity={}", identity)
        self._receive_task = asyncio.create_task(self._receive_loop(connection))
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(connection))

    async def disconnect(self) -> None:
        self._closing = True
        self._generation += 1
        self._pending_handshake = None
        self._cancel_reconnect()
        connection = self._connection
        was_connected = self._state.connected
        self._connection = None
        self._state.connected = False

        tasks = [task for task in (self._receive_task, self._heartbeat_task) if task is not None]
        self._receive_task = None
        self._heartbeat_task = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                continue

        if connection is not None:
            await self._close_quietly(connection)
        if was_connected:
            logger.info("realtime.disconnected identity={}", self._identity)

    async def send(self, text: str) -> None:
        connection = self._connection
        if connection is None or not self._state.connected:
            logger.warning("realtime.send.skipped reason=not_connected")
            return
        try:
            await connection.send(text)
        except Exception as exc:
            logger.error("realtime.send.error error={!r}", exc)

    async def _receive_loop(self, connection: Connection) -> None:
        try:
            while True:
                frame = await connection.recv()
                self._handle_frame(frame)
        except Exception as exc:
            logger.error("realtime.receive.error error={!r}", exc)
        self._connection_lost(connection)

    def _handle_frame(self, frame: str | bytes) -> None:
        logger.debug("realtime.frame.received frame={!r}", frame)
        try:
            envelope = decode_envelope(frame)
        except ValidationError as exc:
            logger.error("realtime.frame.invalid error={}", exc)
            return
        self._state.last_envelope = envelope
        self._dispatch(envelope)
        logger.info("realtime.frame.processed type={}", envelope.type)

    def _dispatch(self, envelope: Envelope) -> None:
        handler = self.on_message_received
        if handler is None:
            return
        task = asyncio.create_task(self._run_handler(handler, envelope))
        self._handler_tasks.add(task)
        task.add_done_callback(self._handler_tasks.discard)

    @staticmethod
    async def _run_handler(handler: MessageHandler, envelope: Envelope) -> None:
        try:
            result = handler(envelope)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("realtime.handler.error type={}", envelope.type)

    async def _heartbeat_loop(self, connection: Connection) -> None:
        while self._connection is connection:
            await asyncio.sleep(self.ping_interval)
            if self._connection is not connection:
                return
            try:
                await connection.ping()
            except Exception as exc:
                logger.warning("realtime.ping.error error={!r}", exc)

    def _connection_lost(self, connection: Connection) -> None:
        if self._connection is not connection:
            return
        self._connection = None
        self._state.connected = False
        self._receive_task = None
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            self._heartbeat_task = None
        if not self._closing:
            self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._identity is None or self._closing:
            return
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        logger.warning("realtime.reconnect.scheduled delay={}s identity={}", self.reconnect_delay, self._identity)
        self._reconnect_task = asyncio.create_task(self._reconnect_after_delay())

    async def _reconnect_after_delay(self) -> None:
        await asyncio.sleep(self.reconnect_delay)
        self._reconnect_task = None
        identity = self._identity
        if self._closing or identity is None:
            return
        await self.connect(identity)

    def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        self._reconnect_task = None

    @staticmethod
    async def _close_quietly(connection: Connection) -> None:
        try:
            await connection.close(code=GOING_AWAY)
        except Exception as exc:
            logger.warning("realtime.close.error error={!r}", exc)
