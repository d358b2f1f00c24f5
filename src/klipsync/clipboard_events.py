"""X11 clipboard event registration and ownership.

This module provides functions for subscribing to XFixes selection owner
change notifications and for taking ownership of the CLIPBOARD selection
when installing clip text locally.
"""

from __future__ import annotations

import logging

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from Xlib.display import Display
    from Xlib.xobject.drawable import Window

logger = logging.getLogger(__name__)


def register_xfixes_events(display: Display, window: Window, clipboard_atom: int) -> None:
    """Register for XFixes selection change notifications on CLIPBOARD.

    Every time any application takes CLIPBOARD ownership (a copy or cut),
    the window receives a SetSelectionOwnerNotify event.

    Args:
        display: The X11 display connection.
        window: The window to receive selection events.
        clipboard_atom: The CLIPBOARD atom.
    """
    from Xlib.ext import xfixes

    xfixes.query_version(display)
    mask = xfixes.XFixesSetSelectionOwnerNotifyMask
    xfixes.select_selection_input(display, window.id, clipboard_atom, mask)
    display.flush()


def take_selection_ownership(display: Display, window: Window, selection_atom: int) -> bool:
    """Take ownership of a selection and verify it.

    Args:
        display: The X11 display connection.
        window: The window to own the selection.
        selection_atom: The selection atom.

    Returns:
        True if the window now owns the selection, False otherwise.
    """
    from Xlib import X

    window.set_selection_owner(selection_atom, X.CurrentTime)
    display.flush()
    owner = display.get_selection_owner(selection_atom)
    if owner != window:
        logger.error("Failed to acquire selection ownership")
        return False
    return True
