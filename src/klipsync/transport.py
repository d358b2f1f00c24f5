#!/usr/bin/env python3
"""Session transport interface and in-process implementation.

A session transport delivers published events to every member of a
session, in one order, including the publisher. The replication model
lives on the hub side of the transport; devices only publish requests
and subscribe to notifications.

LocalHub keeps one model and event bus per session name and hands out
LocalSession objects. It backs both the hub server and the tests.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Protocol

from klipsync.errors import TransportFailure
from klipsync.events import REQUESTS, EventBus, EventName, Handler, Payload, Scope, Subscription
from klipsync.model import ReplicationModel

logger = logging.getLogger(__name__)

LostCallback = Callable[[str], None]


class SessionTransport(Protocol):
    """What a device needs from a joined session."""

    handle: str
    initial: dict

    def now(self) -> float: ...

    def publish(self, scope: Scope, event: EventName, payload: Payload) -> None: ...

    def subscribe(
        self, scope: Scope, event: EventName, handler: Handler, owner: object | None = None
    ) -> Subscription: ...

    def unsubscribe_all(self, owner: object) -> int: ...

    async def heartbeat(self) -> None: ...

    async def leave(self) -> None: ...


Connector = Callable[[Any, LostCallback], Awaitable[SessionTransport]]


def _call_later(delay: float, callback: Callable[[], None]) -> Any:
    """Schedule callback on the running loop, or run it now without one."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        callback()
        return None
    return loop.call_later(delay, callback)


@dataclass
class HubSession:
    """Hub-side state of one named session."""

    name: str
    password: str
    bus: EventBus
    model: ReplicationModel
    members: dict[str, LocalSession] = field(default_factory=dict)


class LocalHub:
    """In-process session hub.

    Args:
        clock: Monotonic clock in seconds; model time is derived from it.
        schedule: Callable(delay, callback) for delayed model work.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        schedule: Callable[[float, Callable[[], None]], Any] = _call_later,
    ) -> None:
        self._clock = clock
        self._started = clock()
        self._schedule = schedule
        self.sessions: dict[str, HubSession] = {}
        self.persisted: dict[str, dict] = {}

    def now(self) -> float:
        """Logical model time in milliseconds since the hub started."""
        return (self._clock() - self._started) * 1000.0

    def join(self, params: Any, on_lost: LostCallback | None = None) -> LocalSession:
        """Join a session, creating it (and restoring its snapshot) if needed.

        Args:
            params: SessionParams with name and password.
            on_lost: Called with a reason if the hub drops this member.

        Returns:
            The joined LocalSession.

        Raises:
            TransportFailure: If the password does not match the session's.
        """
        hub_session = self.sessions.get(params.name)
        if hub_session is None:
            hub_session = self._create(params.name, params.password)
        elif hub_session.password != params.password:
            raise TransportFailure(f"Password mismatch for session {params.name}")
        handle = uuid.uuid4().hex
        member = LocalSession(self, hub_session, handle, on_lost)
        hub_session.members[handle] = member
        hub_session.bus.publish(Scope.SESSION, EventName.VIEW_JOIN, {"session_handle": handle})
        logger.debug("Session %s joined by %s", params.name, handle)
        return member

    def _create(self, name: str, password: str) -> HubSession:
        bus = EventBus()

        def persist(snapshot: dict) -> None:
            self.persisted[name] = snapshot

        model = ReplicationModel(
            bus,
            clock=self.now,
            seed=name,
            persist=persist,
            restored=self.persisted.get(name),
            schedule=self._schedule,
        )
        hub_session = HubSession(name, password, bus, model)
        self.sessions[name] = hub_session
        return hub_session

    def leave(self, member: LocalSession) -> None:
        hub_session = member.hub_session
        if hub_session.members.pop(member.handle, None) is None:
            return
        hub_session.bus.publish(
            Scope.SESSION, EventName.VIEW_EXIT, {"session_handle": member.handle}
        )
        logger.debug("Session %s left by %s", hub_session.name, member.handle)

    def disconnect(self, handle: str, reason: str = "connection lost") -> None:
        """Drop a member as if its connection failed."""
        for hub_session in self.sessions.values():
            member = hub_session.members.get(handle)
            if member is not None:
                member.drop(reason)
                return

    def restart(self) -> None:
        """Discard all live sessions, keeping persisted snapshots.

        Members are dropped; the next join recreates each session's model
        from its last snapshot.
        """
        for hub_session in list(self.sessions.values()):
            for member in list(hub_session.members.values()):
                member.drop("hub restarted")
        self.sessions.clear()


class LocalSession:
    """A device's membership in a LocalHub session."""

    def __init__(
        self,
        hub: LocalHub,
        hub_session: HubSession,
        handle: str,
        on_lost: LostCallback | None = None,
    ) -> None:
        self.hub = hub
        self.hub_session = hub_session
        self.handle = handle
        self.initial = hub_session.model.state()
        self.closed = False
        self._on_lost = on_lost
        self._subscriptions: list[Subscription] = []

    def now(self) -> float:
        return self.hub.now()

    def publish(self, scope: Scope, event: EventName, payload: Payload) -> None:
        if self.closed:
            raise TransportFailure("Session is closed")
        if event in REQUESTS:
            payload = {**payload, "session_handle": self.handle}
        self.hub_session.bus.publish(scope, event, payload)

    def subscribe(
        self, scope: Scope, event: EventName, handler: Handler, owner: object | None = None
    ) -> Subscription:
        sub = self.hub_session.bus.subscribe(scope, event, handler, owner)
        self._subscriptions.append(sub)
        return sub

    def unsubscribe_all(self, owner: object) -> int:
        self._subscriptions = [s for s in self._subscriptions if s.owner is not owner]
        return self.hub_session.bus.unsubscribe_all(owner)

    async def heartbeat(self) -> None:
        if self.closed:
            raise TransportFailure("Session is closed")

    async def leave(self) -> None:
        self._close()

    def drop(self, reason: str) -> None:
        """Close the membership and report it lost."""
        if self.closed:
            return
        self._close()
        if self._on_lost is not None:
            self._on_lost(reason)

    def _close(self) -> None:
        if self.closed:
            return
        self.closed = True
        for sub in self._subscriptions:
            self.hub_session.bus.unsubscribe(sub)
        self._subscriptions.clear()
        self.hub.leave(self)


async def local_connector(hub: LocalHub, params: Any, on_lost: LostCallback) -> LocalSession:
    """Connector for LocalHub, suitable for functools.partial(local_connector, hub)."""
    return hub.join(params, on_lost)
