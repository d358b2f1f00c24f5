"""X11 display and window setup.

This module provides functions for connecting to the X server and
creating the hidden window used to own and request selections, using the
python-xlib library.

The module handles:
- Opening the X11 display named by DISPLAY
- Creating hidden windows for clipboard ownership
- Exposing the display file descriptor for asyncio integration
"""

from __future__ import annotations

import os

from Xlib import X

from typing import TYPE_CHECKING

from klipsync.errors import CapabilityUnavailable

if TYPE_CHECKING:
    from Xlib.display import Display
    from Xlib.xobject.drawable import Window


def open_display() -> Display:
    """Open the X11 display named by the DISPLAY environment variable.

    Returns:
        Display object for X11 operations.

    Raises:
        CapabilityUnavailable: If DISPLAY is unset or the connection fails.
    """
    display_name = os.environ.get("DISPLAY")
    if not display_name:
        raise CapabilityUnavailable("DISPLAY environment variable is not set")

    try:
        from Xlib.display import Display as XDisplay
        return XDisplay(display_name)
    except Exception as e:
        raise CapabilityUnavailable(f"Failed to connect to X11 display: {e}") from e


def get_display_fd(display: Display) -> int:
    """Get the file descriptor for the X11 display connection.

    The file descriptor can be integrated into asyncio's event loop using
    loop.add_reader() for event-driven X11 event processing.
    """
    return display.fileno()


def create_hidden_window(display: Display) -> Window:
    """Create a 1x1 unmapped window for clipboard ownership.

    X11 clipboard ownership requires a window. This creates a minimal hidden
    window that can own the CLIPBOARD selection when installing remote
    clips and receive SelectionNotify replies when reading.

    Args:
        display: The X11 display connection.

    Returns:
        A Window object for owning clipboard selections.
    """
    screen = display.screen()
    window = screen.root.create_window(
        0, 0, 1, 1, 0, screen.root_depth, event_mask=X.PropertyChangeMask,
    )
    return window
