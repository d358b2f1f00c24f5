#!/usr/bin/env python3
"""X11 clipboard backend.

Reads CLIPBOARD through the selection conversion protocol and writes it
by taking ownership and answering SelectionRequests. XFixes owner change
notifications are forwarded to a callback: on X11 another application
taking CLIPBOARD ownership is the closest thing to seeing the user press
a copy shortcut, so the monitor uses it to poll aggressively.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Callable

from Xlib import X

from klipsync.clipboard import create_hidden_window, get_display_fd, open_display
from klipsync.clipboard_backend import Capabilities
from klipsync.clipboard_events import register_xfixes_events, take_selection_ownership
from klipsync.clipboard_io import read_clipboard_content
from klipsync.clipboard_selection import handle_selection_request, process_pending_events
from klipsync.selection_utils import is_owner_change_event

if TYPE_CHECKING:
    from Xlib.display import Display
    from Xlib.protocol.rq import Event
    from Xlib.xobject.drawable import Window

logger = logging.getLogger(__name__)


class X11Clipboard:
    """CLIPBOARD selection access through python-xlib.

    Attributes:
        display: The X11 display connection.
        window: Hidden window used for ownership and conversions.
        clipboard_atom: Cached CLIPBOARD atom.
        content: Bytes served while we own the selection.
        owns_selection: Whether our window currently owns CLIPBOARD.
        acquisition_time: X server time of the last ownership acquisition.
    """

    capabilities = Capabilities(can_read=True, can_write=True, reliable_read=True)

    def __init__(self, display: Display, window: Window, clipboard_atom: int) -> None:
        self.display = display
        self.window = window
        self.clipboard_atom = clipboard_atom
        self.content = b""
        self.owns_selection = False
        self.acquisition_time: int | None = None
        self.deferred_events: list[Event] = []
        self.on_owner_change: Callable[[], None] | None = None
        self._reading = False
        self._loop: asyncio.AbstractEventLoop | None = None

    @classmethod
    def open(cls) -> X11Clipboard:
        """Connect to the display and prepare the hidden window.

        Raises:
            CapabilityUnavailable: If no X11 display is reachable.
        """
        display = open_display()
        window = create_hidden_window(display)
        clipboard_atom = display.intern_atom("CLIPBOARD")
        register_xfixes_events(display, window, clipboard_atom)
        return cls(display, window, clipboard_atom)

    def attach(self, loop: asyncio.AbstractEventLoop, on_owner_change: Callable[[], None]) -> None:
        """Process X11 events from loop whenever the display fd is readable."""
        self.on_owner_change = on_owner_change
        self._loop = loop
        loop.add_reader(get_display_fd(self.display), self.process_events)

    def detach(self) -> None:
        if self._loop is not None:
            self._loop.remove_reader(get_display_fd(self.display))
            self._loop = None
        self.on_owner_change = None

    async def read_text(self) -> str | None:
        if self.owns_selection:
            return self.content.decode("utf-8", errors="replace")
        self._reading = True
        try:
            data = await read_clipboard_content(
                self.display, self.window, self.clipboard_atom, self.deferred_events
            )
        finally:
            self._reading = False
        if self.deferred_events:
            self.process_events()
        if data is None:
            return None
        return data.decode("utf-8", errors="replace")

    async def write_text(self, text: str) -> None:
        """Install text as the CLIPBOARD content.

        Raises:
            OSError: If ownership could not be acquired.
        """
        self.content = text.encode("utf-8")
        if not take_selection_ownership(self.display, self.window, self.clipboard_atom):
            raise OSError("Failed to acquire CLIPBOARD ownership")
        self.owns_selection = True

    def process_events(self) -> None:
        """Answer SelectionRequests and track ownership changes."""
        if self._reading:
            # The read's worker thread is consuming events; it defers them.
            return
        for event in process_pending_events(self.display, self.deferred_events):
            if event.type == X.SelectionRequest:
                handle_selection_request(self.display, event, self.content, self.acquisition_time)
            elif is_owner_change_event(event):
                self._on_owner_change_event(event)

    def _on_owner_change_event(self, event: Event) -> None:
        if event.owner.id == self.window.id:
            self.owns_selection = True
            self.acquisition_time = event.timestamp
            return
        self.owns_selection = False
        self.acquisition_time = None
        logger.debug("CLIPBOARD taken by window %s", event.owner.id)
        if self.on_owner_change is not None:
            self.on_owner_change()

    def close(self) -> None:
        self.detach()
        try:
            self.window.destroy()
            self.display.close()
        except Exception as e:
            logger.debug("Error closing X11 display: %s", e)
