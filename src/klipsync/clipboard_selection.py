"""X11 selection request handling.

While klipsync owns CLIPBOARD (after installing a remote clip), other
applications ask it for the content with SelectionRequest events. This
module answers them and collects pending events without blocking.

The module handles:
- Responding to SelectionRequest events (TARGETS, UTF8_STRING, STRING)
- Processing pending X11 events without blocking asyncio
"""

from __future__ import annotations

import logging

from typing import TYPE_CHECKING

from klipsync.selection_utils import is_owner_change_event

if TYPE_CHECKING:
    from Xlib.display import Display
    from Xlib.protocol.event import SelectionRequest
    from Xlib.protocol.rq import Event

logger = logging.getLogger(__name__)

# Fraction of the maximum request size a single property write may use.
PROPERTY_SAFETY_MARGIN: float = 0.9


def get_max_property_size(display: "Display") -> int:
    """Return the largest property in bytes that fits one change_property."""
    # max_request_length is in 4-byte units
    max_bytes = display.display.info.max_request_length * 4
    return int(max_bytes * PROPERTY_SAFETY_MARGIN)


def handle_selection_request(
    display: Display, event: SelectionRequest, content: bytes, acquisition_time: int | None
) -> None:
    """Respond to a SelectionRequest for the selection we own.

    Supports TARGETS, UTF8_STRING (preferred), STRING (legacy) and
    TIMESTAMP. Unsupported targets and content too large for a single
    property are refused with SelectionNotify property=None.

    Args:
        display: The X11 display connection.
        event: The SelectionRequest event.
        content: The content bytes to serve.
        acquisition_time: X server time when ownership was acquired, or None.
    """
    from Xlib import X, Xatom
    from Xlib.protocol.event import SelectionNotify as SelectionNotifyEvent

    targets_atom = display.intern_atom("TARGETS")
    utf8_atom = display.intern_atom("UTF8_STRING")
    timestamp_atom = display.intern_atom("TIMESTAMP")
    logger.debug("SelectionRequest target=%s prop=%s content_len=%s",
        event.target, event.property, len(content))

    prop = event.property
    if event.target == targets_atom:
        targets = [targets_atom, utf8_atom, Xatom.STRING, timestamp_atom]
        event.requestor.change_property(prop, Xatom.ATOM, 32, targets)
    elif event.target in (utf8_atom, Xatom.STRING):
        if len(content) > get_max_property_size(display):
            logger.warning("Refusing %d byte selection request (too large)", len(content))
            prop = X.NONE
        else:
            event.requestor.change_property(prop, event.target, 8, content)
    elif event.target == timestamp_atom and acquisition_time is not None:
        event.requestor.change_property(prop, Xatom.INTEGER, 32, [acquisition_time])
    else:
        prop = X.NONE

    event.requestor.send_event(
        SelectionNotifyEvent(
            time=event.time,
            requestor=event.requestor.id,
            selection=event.selection,
            target=event.target,
            property=prop,
        ),
        event_mask=0,
    )
    display.flush()


def process_pending_events(
    display: Display, deferred_events: list["Event"] | None = None
) -> list[Event]:
    """Collect already pending events without blocking.

    Args:
        display: The X11 display connection.
        deferred_events: Events deferred during clipboard reads. These are
            drained and placed first in the result.

    Returns:
        SelectionRequest and SetSelectionOwnerNotify events, in order.
    """
    from Xlib import X

    events: list[Event] = []
    if deferred_events:
        events.extend(deferred_events)
        deferred_events.clear()
    while display.pending_events() > 0:
        event = display.next_event()
        if event.type == X.SelectionRequest or is_owner_change_event(event):
            events.append(event)
    return events
