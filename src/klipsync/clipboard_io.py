"""X11 clipboard reads.

Reads the CLIPBOARD selection by asking its owner to convert it to
UTF8_STRING on our hidden window, then reading the resulting property.
The wait for the owner's reply runs in a worker thread with a timeout so
an unresponsive owner cannot stall the event loop.
"""

from __future__ import annotations

import asyncio
import logging

from Xlib import X

from klipsync.monitor_constants import CLIPBOARD_TIMEOUT
from klipsync.selection_utils import wait_for_event_type

from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from Xlib.display import Display
    from Xlib.xobject.drawable import Window
    from Xlib.protocol.rq import Event

logger = logging.getLogger(__name__)


async def read_clipboard_content(
    display: Display,
    window: Window,
    selection_atom: int,
    deferred_events: list["Event"],
) -> bytes | None:
    """Read clipboard content from the current selection owner.

    Args:
        display: The X11 display connection.
        window: The window to receive selection data.
        selection_atom: The selection atom to read.
        deferred_events: List to collect events deferred during the wait.

    Returns:
        Content bytes, or None if there is no owner, the owner refused the
        conversion, or the read timed out.

    Raises:
        OSError: On X connection errors.
    """
    owner = display.get_selection_owner(selection_atom)
    if owner == X.NONE:
        logger.debug("No selection owner for atom %s", selection_atom)
        return None

    utf8_atom = display.intern_atom("UTF8_STRING")
    prop_atom = display.intern_atom("KLIPSYNC_SEL")
    window.convert_selection(selection_atom, utf8_atom, prop_atom, X.CurrentTime)
    display.flush()

    try:
        notify = await asyncio.to_thread(
            wait_for_event_type, display, X.SelectionNotify, deferred_events, CLIPBOARD_TIMEOUT
        )
    except TimeoutError:
        logger.debug("Clipboard read timed out after %s seconds", CLIPBOARD_TIMEOUT)
        return None
    if notify.property == X.NONE:
        logger.debug("Selection owner refused UTF8_STRING conversion")
        return None
    return _read_selection_property(display, window, prop_atom)


def _read_selection_property(
    display: "Display", window: "Window", prop_atom: int
) -> bytes | None:
    """Read and delete selection property from window."""
    prop = window.get_full_property(prop_atom, X.AnyPropertyType)
    window.delete_property(prop_atom)
    display.flush()

    if prop is None:
        logger.debug("Selection property was empty")
        return None

    data = prop.value
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)
