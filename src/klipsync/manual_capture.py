#!/usr/bin/env python3
"""User-initiated clipboard capture.

Used where the clipboard cannot be polled: the user asks for a capture,
the monitor tries a direct read, and if that yields nothing the user is
given an editor to type or paste the text. Either way the text is
handed to the monitor as if it had been detected.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Awaitable, Callable

import click

if TYPE_CHECKING:
    from klipsync.monitor import CheckResult, ClipboardMonitor

logger = logging.getLogger(__name__)

Prompt = Callable[[], Awaitable["str | None"]]

EDITOR_TEMPLATE: str = ""


def _edit() -> str | None:
    text = click.edit(EDITOR_TEMPLATE, require_save=True)
    if text is None:
        return None
    return text.strip() or None


async def prompt_for_clip() -> str | None:
    """Open the user's editor for clip text.

    Returns:
        The entered text, or None if the editor was closed without saving.
    """
    return await asyncio.to_thread(_edit)


class ManualCapture:
    """Manual capture path for a monitor.

    Args:
        monitor: Monitor receiving the captured text.
        prompt: Coroutine function asking the user for text.
    """

    def __init__(self, monitor: ClipboardMonitor, prompt: Prompt = prompt_for_clip) -> None:
        self.monitor = monitor
        self.prompt = prompt

    async def capture(self) -> CheckResult:
        text = await self.monitor.read_directly()
        if text is None:
            logger.debug("Direct read gave nothing, asking for text")
            text = await self.prompt()
        return self.monitor.submit(text)
