#!/usr/bin/env python3
"""Local clipboard monitor.

The monitor turns local clipboard activity into "local clip detected"
callbacks. It owns no shared state: it polls the clipboard backend at an
interval chosen by the monitor state, remembers the last text it saw so
unchanged content is not reported twice, and classifies read failures.

Permission denials are expected (the clipboard may refuse reads while
another application holds focus) and are only counted. Any other read
error is logged; after UNKNOWN_ERROR_LIMIT consecutive ones the monitor
stops polling and falls back to paste events, the same capture path
used on platforms without reliable reads.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import suppress
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from klipsync.clipboard_backend import ClipboardBackend
from klipsync.errors import CapabilityUnavailable, ClipboardPermissionError
from klipsync.monitor_constants import (
    AGGRESSIVE_DURATION,
    INTERACTION_WINDOW,
    UNKNOWN_ERROR_LIMIT,
)
from klipsync.monitor_state import (
    MonitorMode,
    MonitorState,
    Presence,
    interval_for,
    is_more_attentive,
    resolve_state,
)

logger = logging.getLogger(__name__)

LocalClipListener = Callable[[str], None]


class CheckResult(str, Enum):
    """Outcome of one clipboard check."""

    NEW_CONTENT = "new-content"
    UNCHANGED = "unchanged"
    EMPTY = "empty"
    PERMISSION_DENIED = "permission-denied"
    READ_ERROR = "read-error"
    NOT_MONITORING = "not-monitoring"


class WriteRefusal(str, Enum):
    """Why a clipboard write was not performed."""

    NO_CAPABILITY = "no-capability"
    NOT_ALLOWED = "not-allowed"
    APPROVAL_REQUIRED = "approval-required"
    WRITE_FAILED = "write-failed"


@dataclass(frozen=True)
class WriteResult:
    success: bool
    refusal: WriteRefusal | None = None


@dataclass(frozen=True)
class MonitorStatus:
    """Snapshot of monitor state for display and tests."""

    is_monitoring: bool
    state: MonitorState
    mode: MonitorMode
    permission_errors: int
    unknown_errors: int
    last_seen: str | None


class ClipboardMonitor:
    """Adaptive clipboard poller.

    Args:
        backend: Clipboard backend to read and write.
        auto_write: Allow unforced writes while focused and recently used.
        unknown_error_limit: Consecutive unknown read errors before
            falling back to paste events.
        clock: Monotonic clock in seconds.
        sleep: Coroutine function used to wait between polls.
    """

    def __init__(
        self,
        backend: ClipboardBackend,
        auto_write: bool = False,
        unknown_error_limit: int = UNKNOWN_ERROR_LIMIT,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.backend = backend
        self.auto_write = auto_write
        self.unknown_error_limit = unknown_error_limit
        self.presence = Presence()
        self.state = MonitorState.IDLE
        self.mode = self._initial_mode()
        self.monitoring = False
        self.last_seen: str | None = None
        self.permission_errors = 0
        self.unknown_errors = 0
        self._clock = clock
        self._sleep = sleep
        self._listeners: list[LocalClipListener] = []
        self._lock = asyncio.Lock()
        self._poll_task: asyncio.Task[None] | None = None
        self._reading_polls: set[asyncio.Task[None]] = set()
        self._side_tasks: set[asyncio.Task[None]] = set()

    def _initial_mode(self) -> MonitorMode:
        caps = self.backend.capabilities
        if caps.can_read and caps.reliable_read:
            return MonitorMode.POLLING
        return MonitorMode.MANUAL

    @property
    def can_monitor(self) -> bool:
        return self.backend.capabilities.can_read

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------
    def add_listener(self, listener: LocalClipListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: LocalClipListener) -> None:
        with suppress(ValueError):
            self._listeners.remove(listener)

    def _emit(self, text: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(text)
            except Exception:
                logger.exception("Error in local clip listener")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start_monitoring(self) -> None:
        """Start capturing local clipboard changes. Idempotent.

        Must be called from a running event loop.

        Raises:
            CapabilityUnavailable: If the backend cannot read the clipboard.
                Callers should check can_monitor and use manual capture
                instead.
        """
        if self.monitoring:
            return
        if not self.can_monitor:
            raise CapabilityUnavailable("Clipboard reading is not available on this platform")
        self.monitoring = True
        self.mode = self._initial_mode()
        self.unknown_errors = 0
        self._refresh_state()
        self._start_polling()
        logger.info("Clipboard monitoring started (%s)", self.mode.value)

    def stop_monitoring(self) -> None:
        """Stop capturing and cancel all pending timers. Idempotent."""
        if not self.monitoring:
            return
        self.monitoring = False
        self._stop_polling()
        for task in list(self._side_tasks):
            task.cancel()
        self._side_tasks.clear()
        self._refresh_state()
        logger.info("Clipboard monitoring stopped")

    def status(self) -> MonitorStatus:
        return MonitorStatus(
            is_monitoring=self.monitoring,
            state=self.state,
            mode=self.mode,
            permission_errors=self.permission_errors,
            unknown_errors=self.unknown_errors,
            last_seen=self.last_seen,
        )

    def _start_polling(self) -> None:
        if self._poll_task is not None or not self.monitoring:
            return
        if self.mode is not MonitorMode.POLLING:
            return
        self._poll_task = asyncio.create_task(self._poll_loop())

    def _stop_polling(self) -> None:
        task = self._poll_task
        self._poll_task = None
        if task is None or task is asyncio.current_task():
            return
        # A read in flight is left to finish; the loop then exits on its own.
        if task not in self._reading_polls:
            task.cancel()

    async def _poll_loop(self) -> None:
        task = asyncio.current_task()
        while self._poll_task is task and self.monitoring and self.mode is MonitorMode.POLLING:
            self._refresh_state()
            interval = interval_for(self.state)
            if interval is None:
                break
            await self._sleep(interval)
            self._reading_polls.add(task)
            try:
                await self.check_once()
            finally:
                self._reading_polls.discard(task)
        if self._poll_task is task:
            self._poll_task = None

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------
    async def check_once(self) -> CheckResult:
        """Read the clipboard once and report new content.

        Reads never overlap; a check requested while another is in
        progress waits for it.
        """
        if not self.monitoring:
            return CheckResult.NOT_MONITORING
        async with self._lock:
            try:
                text = await self.backend.read_text()
            except ClipboardPermissionError as e:
                self.permission_errors += 1
                logger.debug("Clipboard read denied: %s", e)
                return CheckResult.PERMISSION_DENIED
            except Exception as e:
                self._record_unknown_error(e)
                return CheckResult.READ_ERROR
            self.unknown_errors = 0
            if not self.monitoring:
                return CheckResult.NOT_MONITORING
            return self._consider(text)

    def _consider(self, text: str | None) -> CheckResult:
        text = (text or "").strip()
        if not text:
            return CheckResult.EMPTY
        if text == self.last_seen:
            return CheckResult.UNCHANGED
        self.last_seen = text
        logger.debug("New local clipboard content (%d chars)", len(text))
        self._emit(text)
        return CheckResult.NEW_CONTENT

    def _record_unknown_error(self, error: Exception) -> None:
        self.unknown_errors += 1
        logger.warning("Error reading clipboard: %s", error)
        if self.unknown_errors >= self.unknown_error_limit and self.mode is MonitorMode.POLLING:
            logger.warning(
                "%d consecutive clipboard read errors, falling back to paste events",
                self.unknown_errors,
            )
            self.mode = MonitorMode.PASTE_EVENTS
            self._stop_polling()

    async def read_directly(self) -> str | None:
        """Read the clipboard for a user-initiated capture.

        Returns:
            The clipboard text, or None if it is empty or cannot be read.
        """
        if not self.backend.capabilities.can_read:
            return None
        try:
            text = await self.backend.read_text()
        except ClipboardPermissionError as e:
            self.permission_errors += 1
            logger.debug("Direct clipboard read denied: %s", e)
            return None
        except Exception as e:
            logger.warning("Direct clipboard read failed: %s", e)
            return None
        return text if text and text.strip() else None

    def submit(self, text: str | None) -> CheckResult:
        """Treat text captured by the user exactly like detected content."""
        return self._consider(text)

    # ------------------------------------------------------------------
    # Presence
    # ------------------------------------------------------------------
    def _refresh_state(self) -> MonitorState:
        self.state = resolve_state(self.presence, self.monitoring, self._clock())
        return self.state

    async def _presence_changed(self) -> None:
        previous = self.state
        current = self._refresh_state()
        if current is not previous:
            logger.debug("Monitor state %s -> %s", previous.value, current.value)
        if self.mode is not MonitorMode.POLLING or not self.monitoring:
            return
        if is_more_attentive(current, previous):
            # Check now, then restart the timer at the new interval.
            self._stop_polling()
            await self.check_once()
            self._start_polling()

    async def set_presence(self, visible: bool | None = None, focused: bool | None = None) -> None:
        """Update visibility and focus together."""
        if visible is not None:
            self.presence.visible = visible
        if focused is not None:
            if focused and not self.presence.focused:
                self.presence.aggressive_until = None
            self.presence.focused = focused
        await self._presence_changed()

    async def set_visibility(self, visible: bool) -> None:
        await self.set_presence(visible=visible)

    async def set_focus(self, focused: bool) -> None:
        await self.set_presence(focused=focused)

    def note_interaction(self) -> None:
        self.presence.last_interaction = self._clock()

    async def note_copy_shortcut(self) -> None:
        """Poll aggressively for a while to catch an imminent clipboard write."""
        self.note_interaction()
        self.presence.aggressive_until = self._clock() + AGGRESSIVE_DURATION
        await self._presence_changed()

    async def note_selection(self) -> None:
        self.presence.aggressive_until = self._clock() + AGGRESSIVE_DURATION
        await self._presence_changed()

    def notify_copy(self) -> None:
        """Schedule note_copy_shortcut from a synchronous callback."""
        if not self.monitoring:
            return
        task = asyncio.get_running_loop().create_task(self.note_copy_shortcut())
        self._side_tasks.add(task)
        task.add_done_callback(self._side_tasks.discard)

    def note_paste(self, text: str | None) -> CheckResult:
        """Accept text from a paste event."""
        if not self.monitoring:
            return CheckResult.NOT_MONITORING
        self.note_interaction()
        return self._consider(text)

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------
    def enable_auto_write(self) -> None:
        self.auto_write = True

    def disable_auto_write(self) -> None:
        self.auto_write = False

    def _write_allowed(self) -> bool:
        return (
            self.auto_write
            and self.presence.focused
            and self.presence.interacted_within(INTERACTION_WINDOW, self._clock())
        )

    async def write_to_clipboard(
        self,
        text: str,
        require_approval: bool = False,
        approved: bool = False,
        force: bool = False,
    ) -> WriteResult:
        """Place text on the local clipboard unless a guard refuses.

        Refusals are returned, never raised. The text becomes last_seen
        on success so it is not reported back as local content.

        Args:
            text: Text to write.
            require_approval: Refuse unless approved is also set.
            approved: The user approved this write.
            force: Skip the focus and recent-interaction guard.

        Returns:
            WriteResult with success or the refusal reason.
        """
        if not self.backend.capabilities.can_write:
            return WriteResult(False, WriteRefusal.NO_CAPABILITY)
        if not force and not self._write_allowed():
            return WriteResult(False, WriteRefusal.NOT_ALLOWED)
        if require_approval and not approved:
            return WriteResult(False, WriteRefusal.APPROVAL_REQUIRED)
        try:
            await self.backend.write_text(text)
        except Exception as e:
            logger.warning("Failed to write clipboard: %s", e)
            return WriteResult(False, WriteRefusal.WRITE_FAILED)
        self.last_seen = text.strip()
        logger.debug("Wrote %d chars to clipboard", len(text))
        return WriteResult(True)
