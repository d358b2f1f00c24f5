#!/usr/bin/env python3
"""Hub client connection handler.

Each device connection runs through handle_client: a join handshake,
then a loop relaying the device's requests into its session while a
writer task streams the session's notifications back. Leaving the
session on disconnect lets the model drop the device.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import TYPE_CHECKING

from klipsync.errors import TransportFailure
from klipsync.events import NOTIFICATIONS, REQUESTS, EventName, Payload, Scope
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

if TYPE_CHECKING:
    from klipsync.transport import LocalHub, LocalSession

logger = logging.getLogger(__name__)


async def handle_client(
    hub: LocalHub,
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
) -> None:
    """Serve one device connection until it disconnects.

    Args:
        hub: The session hub.
        reader: The asyncio StreamReader for the socket connection.
        writer: The asyncio StreamWriter for the socket connection.
    """
    outbox: asyncio.Queue[bytes | None] = asyncio.Queue()
    session: LocalSession | None = None
    writer_task = asyncio.create_task(_drain_outbox(outbox, writer))
    try:
        session = await _handshake(hub, reader, outbox)
        if session is None:
            return
        await _relay_requests(session, reader, outbox)
        logger.debug("Device %s disconnected cleanly", session.handle)
    except ProtocolError as e:
        logger.warning("Protocol error: %s", e)
    except ConnectionError as e:
        logger.warning("Connection error: %s", e)
    finally:
        if session is not None:
            await session.leave()
        outbox.put_nowait(None)
        with suppress(ConnectionError, OSError):
            await writer_task
        writer.close()
        with suppress(ConnectionError, OSError):
            await writer.wait_closed()


async def _handshake(
    hub: LocalHub,
    reader: asyncio.StreamReader,
    outbox: asyncio.Queue[bytes | None],
) -> LocalSession | None:
    message = await read_message(reader)
    if message is None:
        return None
    if message.get("kind") != KIND_JOIN:
        raise ProtocolError(f"Expected join, got {message.get('kind')!r}")
    try:
        params = SessionParams.from_dict(message["params"])
    except (KeyError, TypeError) as e:
        raise ProtocolError(f"Malformed join parameters: {e}") from e
    try:
        session = hub.join(params)
    except TransportFailure as e:
        logger.warning("Join rejected: %s", e)
        outbox.put_nowait(encode_message(KIND_REJECT, reason=str(e)))
        return None

    outbox.put_nowait(
        encode_message(KIND_WELCOME, handle=session.handle, state=session.initial, now=session.now())
    )
    for event in NOTIFICATIONS:
        session.subscribe(Scope.CLIPBOARD, event, _forwarder(event, outbox))
    logger.debug("Device joined session %s as %s", params.name, session.handle)
    return session


def _forwarder(event: EventName, outbox: asyncio.Queue[bytes | None]):
    def forward(payload: Payload) -> None:
        outbox.put_nowait(
            encode_message(KIND_EVENT, scope=Scope.CLIPBOARD.value, event=event.value, payload=payload)
        )
    return forward


async def _relay_requests(
    session: LocalSession,
    reader: asyncio.StreamReader,
    outbox: asyncio.Queue[bytes | None],
) -> None:
    while True:
        message = await read_message(reader)
        if message is None:
            return
        kind = message.get("kind")
        if kind == KIND_PING:
            outbox.put_nowait(encode_message(KIND_PONG))
        elif kind == KIND_PUBLISH:
            _publish_request(session, message)
        else:
            raise ProtocolError(f"Unexpected message kind {kind!r}")


def _publish_request(session: LocalSession, message: dict) -> None:
    """Relay a device request; devices may not publish notifications."""
    try:
        scope = Scope(message["scope"])
        event = EventName(message["event"])
    except (KeyError, ValueError) as e:
        raise ProtocolError(f"Unknown event in publish: {e}") from e
    if event not in REQUESTS:
        logger.warning("Device %s tried to publish %s, ignored", session.handle, event.value)
        return
    payload = message.get("payload") or {}
    if not isinstance(payload, dict):
        raise ProtocolError("Publish payload is not an object")
    # The hub, not the device, vouches for the session handle.
    payload["session_handle"] = session.handle
    session.publish(scope, event, payload)


async def _drain_outbox(outbox: asyncio.Queue[bytes | None], writer: asyncio.StreamWriter) -> None:
    while True:
        data = await outbox.get()
        if data is None:
            await send_goodbye(writer)
            return
        writer.write(data)
        await writer.drain()
