#!/usr/bin/env python3
"""Device side of the hub connection.

RemoteSession implements the session transport over a Unix domain
socket: it performs the join handshake, dispatches the hub's
notifications into a local EventBus from a background reader task and
answers heartbeats with ping/pong. Any send or receive failure closes
the session and reports it lost exactly once, which is what drives the
connection supervisor.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import suppress
from typing import Callable

from klipsync.client_constants import HEARTBEAT_TIMEOUT
from klipsync.errors import TransportFailure
from klipsync.events import EventBus, EventName, Handler, Payload, Scope, Subscription
from klipsync.protocol import (
    KIND_EVENT,
    KIND_JOIN,
    KIND_PING,
    KIND_PONG,
    KIND_PUBLISH,
    KIND_REJECT,
    KIND_WELCOME,
    ProtocolError,
    encode_message,
    read_message,
    send_goodbye,
)
from klipsync.session_params import SessionParams

logger = logging.getLogger(__name__)


async def connect_to_hub(
    socket_path: str,
) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """Connect to a klipsync hub via Unix domain socket.

    Args:
        socket_path: Path to the Unix domain socket.

    Returns:
        Tuple of (StreamReader, StreamWriter) for the connection.

    Raises:
        TransportFailure: If connection fails (socket not found, refused, etc).
    """
    try:
        return await asyncio.open_unix_connection(socket_path)
    except OSError as e:
        raise TransportFailure(f"Failed to connect to {socket_path}: {e}") from e


class RemoteSession:
    """Session membership held over a hub connection."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        handle: str,
        initial: dict,
        hub_time: float,
        on_lost: Callable[[str], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.reader = reader
        self.writer = writer
        self.handle = handle
        self.initial = initial
        self.bus = EventBus()
        self.closed = False
        self._on_lost = on_lost
        self._clock = clock
        self._hub_time = hub_time
        self._joined_at = clock()
        self._pong: asyncio.Future[None] | None = None
        self._reader_task: asyncio.Task[None] | None = None

    @classmethod
    async def open(
        cls,
        socket_path: str,
        params: SessionParams,
        on_lost: Callable[[str], None] | None = None,
    ) -> RemoteSession:
        """Connect, join the session and start the reader task.

        Raises:
            TransportFailure: If connecting or joining fails.
        """
        reader, writer = await connect_to_hub(socket_path)
        try:
            writer.write(encode_message(KIND_JOIN, params=params.to_dict()))
            await writer.drain()
            reply = await read_message(reader)
        except (ProtocolError, OSError) as e:
            writer.close()
            raise TransportFailure(f"Join failed: {e}") from e
        if reply is None or reply.get("kind") != KIND_WELCOME:
            writer.close()
            reason = reply.get("reason") if reply and reply.get("kind") == KIND_REJECT else reply
            raise TransportFailure(f"Join rejected: {reason}")
        session = cls(
            reader,
            writer,
            handle=str(reply["handle"]),
            initial=reply.get("state") or {},
            hub_time=float(reply.get("now", 0.0)),
            on_lost=on_lost,
        )
        session._reader_task = asyncio.create_task(session._read_loop())
        logger.debug("Joined session %s as %s", params.name, session.handle)
        return session

    def now(self) -> float:
        """Hub model time in milliseconds, extrapolated locally."""
        return self._hub_time + (self._clock() - self._joined_at) * 1000.0

    def publish(self, scope: Scope, event: EventName, payload: Payload) -> None:
        if self.closed or self.writer.is_closing():
            raise TransportFailure("Session is closed")
        try:
            self.writer.write(
                encode_message(KIND_PUBLISH, scope=scope.value, event=event.value, payload=payload)
            )
        except (ProtocolError, OSError) as e:
            self._lost(f"publish failed: {e}")
            raise TransportFailure(f"Publish failed: {e}") from e

    def subscribe(
        self, scope: Scope, event: EventName, handler: Handler, owner: object | None = None
    ) -> Subscription:
        return self.bus.subscribe(scope, event, handler, owner)

    def unsubscribe_all(self, owner: object) -> int:
        return self.bus.unsubscribe_all(owner)

    async def heartbeat(self) -> None:
        """Send a ping and wait for the pong.

        Raises:
            TransportFailure: If the ping cannot be sent or no pong arrives
                within HEARTBEAT_TIMEOUT.
        """
        if self.closed:
            raise TransportFailure("Session is closed")
        loop = asyncio.get_running_loop()
        self._pong = loop.create_future()
        try:
            self.writer.write(encode_message(KIND_PING))
            await self.writer.drain()
            await asyncio.wait_for(asyncio.shield(self._pong), timeout=HEARTBEAT_TIMEOUT)
        except (OSError, asyncio.TimeoutError) as e:
            self._lost(f"heartbeat failed: {e!r}")
            raise TransportFailure(f"Heartbeat failed: {e!r}") from e
        finally:
            self._pong = None

    async def leave(self) -> None:
        """Send goodbye and close without reporting the session lost.

        After a lost session only the reader task and socket are cleaned up.
        """
        if not self.closed:
            self.closed = True
            await send_goodbye(self.writer)
        await self._shutdown()

    async def _read_loop(self) -> None:
        reason = "hub closed the connection"
        try:
            while True:
                message = await read_message(self.reader)
                if message is None:
                    break
                self._dispatch(message)
        except ProtocolError as e:
            reason = f"protocol error: {e}"
        except OSError as e:
            reason = f"connection error: {e}"
        self._lost(reason)

    def _dispatch(self, message: dict) -> None:
        kind = message.get("kind")
        if kind == KIND_PONG:
            if self._pong is not None and not self._pong.done():
                self._pong.set_result(None)
        elif kind == KIND_EVENT:
            try:
                scope = Scope(message["scope"])
                event = EventName(message["event"])
            except (KeyError, ValueError):
                logger.warning("Ignoring unknown event %r", message.get("event"))
                return
            self.bus.publish(scope, event, message.get("payload") or {})
        else:
            logger.debug("Ignoring message kind %r", kind)

    def _lost(self, reason: str) -> None:
        if self.closed:
            return
        self.closed = True
        logger.warning("Session lost: %s", reason)
        if self._pong is not None and not self._pong.done():
            self._pong.set_exception(TransportFailure(reason))
        self.writer.close()
        if self._on_lost is not None:
            self._on_lost(reason)

    async def _shutdown(self) -> None:
        task = self._reader_task
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        self.writer.close()
        with suppress(OSError):
            await self.writer.wait_closed()


async def remote_connector(
    socket_path: str,
    params: SessionParams,
    on_lost: Callable[[str], None],
) -> RemoteSession:
    """Connector for hub sockets, suitable for functools.partial(remote_connector, path)."""
    return await RemoteSession.open(socket_path, params, on_lost)
