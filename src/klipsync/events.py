#!/usr/bin/env python3
"""Typed publish/subscribe for session events.

Every event travels on a (Scope, EventName) pair. Views publish request
events, the replication model handles them and publishes notification
events back. The bus guarantees a single delivery order: an event
published while another event is being delivered is queued and delivered
after it, so every subscriber observes the same sequence.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)

Payload = dict[str, Any]
Handler = Callable[[Payload], None]


class Scope(str, Enum):
    """Event namespace."""

    CLIPBOARD = "clipboard"
    SESSION = "session"


class EventName(str, Enum):
    """All events known to a session."""

    # Requests (view -> model)
    ADD_CLIP = "add-clip"
    REMOVE_CLIP = "remove-clip"
    CLEAR_CLIPS = "clear-clips"
    REGISTER_DEVICE = "register-device"
    UPDATE_DEVICE = "update-device"
    UNREGISTER_DEVICE = "unregister-device"
    ACTIVATE_DEVICE = "activate-device"
    DEACTIVATE_DEVICE = "deactivate-device"

    # Notifications (model -> views)
    CLIP_ADDED = "clip-added"
    CLIP_REMOVED = "clip-removed"
    CLIPS_CLEARED = "clips-cleared"
    CLIPS_UPDATED = "clips-updated"
    DEVICES_UPDATED = "devices-updated"
    DEVICE_ACTIVATED = "device-activated"
    DEVICE_DEACTIVATED = "device-deactivated"

    # Transport-generated
    VIEW_JOIN = "view-join"
    VIEW_EXIT = "view-exit"


REQUESTS: frozenset[EventName] = frozenset({
    EventName.ADD_CLIP,
    EventName.REMOVE_CLIP,
    EventName.CLEAR_CLIPS,
    EventName.REGISTER_DEVICE,
    EventName.UPDATE_DEVICE,
    EventName.UNREGISTER_DEVICE,
    EventName.ACTIVATE_DEVICE,
    EventName.DEACTIVATE_DEVICE,
})

SESSION_EVENTS: frozenset[EventName] = frozenset({
    EventName.VIEW_JOIN,
    EventName.VIEW_EXIT,
})

NOTIFICATIONS: frozenset[EventName] = frozenset(
    set(EventName) - REQUESTS - SESSION_EVENTS
)


@dataclass(frozen=True)
class Subscription:
    """Handle returned by EventBus.subscribe."""

    scope: Scope
    event: EventName
    handler: Handler
    owner: object | None = None


@dataclass
class EventBus:
    """Ordered, re-entrancy safe event dispatcher.

    Attributes:
        subscriptions: Active subscriptions keyed by (scope, event), in
            subscription order.
    """

    subscriptions: dict[tuple[Scope, EventName], list[Subscription]] = field(
        default_factory=dict
    )
    _queue: deque[tuple[Scope, EventName, Payload]] = field(default_factory=deque)
    _delivering: bool = False

    def subscribe(
        self,
        scope: Scope,
        event: EventName,
        handler: Handler,
        owner: object | None = None,
    ) -> Subscription:
        """Register handler for an event.

        Args:
            scope: Event scope.
            event: Event name.
            handler: Callable receiving the payload dict.
            owner: Optional object used to drop all of its subscriptions
                at once via unsubscribe_all().

        Returns:
            The subscription handle.
        """
        sub = Subscription(Scope(scope), EventName(event), handler, owner)
        self.subscriptions.setdefault((sub.scope, sub.event), []).append(sub)
        return sub

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a single subscription. Unknown handles are ignored."""
        subs = self.subscriptions.get((subscription.scope, subscription.event), [])
        if subscription in subs:
            subs.remove(subscription)

    def unsubscribe_all(self, owner: object) -> int:
        """Remove every subscription registered with the given owner.

        Returns:
            Number of subscriptions removed.
        """
        removed = 0
        for key, subs in self.subscriptions.items():
            kept = [s for s in subs if s.owner is not owner]
            removed += len(subs) - len(kept)
            self.subscriptions[key] = kept
        return removed

    def publish(self, scope: Scope, event: EventName, payload: Payload | None = None) -> None:
        """Deliver an event to all of its subscribers.

        If called from inside a handler, the event is queued and delivered
        once the current delivery finishes.
        """
        self._queue.append((Scope(scope), EventName(event), dict(payload or {})))
        if self._delivering:
            return
        self._delivering = True
        try:
            while self._queue:
                self._deliver(*self._queue.popleft())
        finally:
            self._delivering = False

    def _deliver(self, scope: Scope, event: EventName, payload: Payload) -> None:
        for sub in list(self.subscriptions.get((scope, event), [])):
            try:
                sub.handler(payload)
            except Exception:
                logger.exception("Error in %s/%s handler", scope.value, event.value)
