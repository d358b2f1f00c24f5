#!/usr/bin/env python3
"""Clipboard backend interface.

The monitor talks to the system clipboard only through a backend. A
backend declares what it can do up front; the monitor uses those
capabilities to choose between polling and the manual capture path.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from klipsync.errors import CapabilityUnavailable


@dataclass(frozen=True)
class Capabilities:
    """What a clipboard backend supports.

    Attributes:
        can_read: Programmatic reads are possible.
        can_write: Programmatic writes are possible.
        reliable_read: Reads work without a direct user gesture, so the
            clipboard can be polled.
    """

    can_read: bool
    can_write: bool
    reliable_read: bool = True


class ClipboardBackend(Protocol):
    capabilities: Capabilities

    async def read_text(self) -> str | None:
        """Return the clipboard text, or None if it holds no text.

        Raises:
            ClipboardPermissionError: If reading is refused in this context.
        """
        ...

    async def write_text(self, text: str) -> None: ...

    def close(self) -> None: ...


class UnavailableClipboard:
    """Backend for platforms with no clipboard access at all."""

    capabilities = Capabilities(can_read=False, can_write=False, reliable_read=False)

    def __init__(self, reason: str = "clipboard unavailable") -> None:
        self.reason = reason

    async def read_text(self) -> str | None:
        raise CapabilityUnavailable(self.reason)

    async def write_text(self, text: str) -> None:
        raise CapabilityUnavailable(self.reason)

    def close(self) -> None:
        pass
