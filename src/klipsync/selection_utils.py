#!/usr/bin/env python3
"""X11 selection utility functions.

Shared event-waiting helper used while reading a selection: events that
arrive before the awaited one are deferred so the regular event handler
can process them afterwards in their original order.
"""

from __future__ import annotations

import time

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from Xlib.display import Display
    from Xlib.protocol.rq import Event

# Sleep between pending_events() checks while waiting, in seconds.
POLL_STEP: float = 0.005


def is_owner_change_event(event: "Event") -> bool:
    """Return True for XFixes SetSelectionOwnerNotify events."""
    return type(event).__name__ == "SetSelectionOwnerNotify"


def wait_for_event_type(
    display: "Display",
    target_event_type: int,
    deferred_events: list["Event"],
    timeout: float,
) -> "Event":
    """Poll display for an event of the target type.

    Reads events from the display until an event of target_event_type
    is found. SelectionRequest and SetSelectionOwnerNotify events seen on
    the way are appended to deferred_events for later processing; other
    events are dropped.

    This blocks the calling thread; run it via asyncio.to_thread.

    Args:
        display: The X11 display connection.
        target_event_type: The X11 event type to wait for.
        deferred_events: List to collect other events during wait.
        timeout: Seconds to wait before giving up.

    Returns:
        The matching event of target_event_type.

    Raises:
        TimeoutError: If no matching event arrives within timeout.
    """
    from Xlib import X

    deadline = time.monotonic() + timeout
    while True:
        while display.pending_events() > 0:
            event = display.next_event()
            if event.type == target_event_type:
                return event
            if event.type == X.SelectionRequest or is_owner_change_event(event):
                deferred_events.append(event)
        if time.monotonic() >= deadline:
            raise TimeoutError(f"No event of type {target_event_type} within {timeout}s")
        time.sleep(POLL_STEP)
