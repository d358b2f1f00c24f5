#!/usr/bin/env python3
"""Tests for presence-driven monitor states and polling intervals."""

import asyncio

import pytest

from conftest import FakeClipboard, FakeClock, instant, never, settle

from klipsync.monitor import ClipboardMonitor
from klipsync.monitor_constants import AGGRESSIVE_DURATION
from klipsync.monitor_state import (
    MonitorState,
    Presence,
    interval_for,
    is_more_attentive,
    resolve_state,
)


def test_resolve_state_precedence() -> None:
    presence = Presence(visible=False, focused=True, aggressive_until=10.0)
    assert resolve_state(presence, monitoring=False, now=0.0) is MonitorState.IDLE
    assert resolve_state(presence, monitoring=True, now=0.0) is MonitorState.POLLING_AGGRESSIVE
    assert resolve_state(presence, monitoring=True, now=10.0) is MonitorState.POLLING_HIDDEN
    presence.visible = True
    assert resolve_state(presence, monitoring=True, now=10.0) is MonitorState.POLLING_FOCUSED
    presence.focused = False
    assert resolve_state(presence, monitoring=True, now=10.0) is MonitorState.POLLING_VISIBLE


def test_intervals_shrink_with_attention() -> None:
    assert interval_for(MonitorState.IDLE) is None
    ordered = [
        MonitorState.POLLING_HIDDEN,
        MonitorState.POLLING_VISIBLE,
        MonitorState.POLLING_FOCUSED,
        MonitorState.POLLING_AGGRESSIVE,
    ]
    intervals = [interval_for(s) for s in ordered]
    assert intervals == [2.0, 1.0, 0.8, 0.5]
    assert is_more_attentive(MonitorState.POLLING_FOCUSED, MonitorState.POLLING_HIDDEN)
    assert not is_more_attentive(MonitorState.POLLING_HIDDEN, MonitorState.POLLING_VISIBLE)


@pytest.mark.asyncio
async def test_regaining_focus_checks_immediately(clipboard: FakeClipboard, clock: FakeClock) -> None:
    """Hidden, then visible and focused: one read happens without waiting."""
    monitor = ClipboardMonitor(clipboard, clock=clock, sleep=never)
    monitor.start_monitoring()
    try:
        await monitor.set_presence(visible=False)
        assert monitor.state is MonitorState.POLLING_HIDDEN
        assert clipboard.reads == 0

        clipboard.text = "copied elsewhere"
        await monitor.set_presence(visible=True, focused=True)
        assert monitor.state is MonitorState.POLLING_FOCUSED
        assert clipboard.reads == 1
        assert monitor.last_seen == "copied elsewhere"
        assert monitor._poll_task is not None
    finally:
        monitor.stop_monitoring()


@pytest.mark.asyncio
async def test_losing_attention_does_not_read(clipboard: FakeClipboard, clock: FakeClock) -> None:
    monitor = ClipboardMonitor(clipboard, clock=clock, sleep=never)
    monitor.start_monitoring()
    await monitor.set_focus(True)
    reads = clipboard.reads
    await monitor.set_focus(False)
    await monitor.set_visibility(False)
    assert clipboard.reads == reads
    assert monitor.state is MonitorState.POLLING_HIDDEN
    monitor.stop_monitoring()


@pytest.mark.asyncio
async def test_copy_shortcut_polls_aggressively_then_reverts(
    clipboard: FakeClipboard, clock: FakeClock
) -> None:
    monitor = ClipboardMonitor(clipboard, clock=clock, sleep=never)
    monitor.start_monitoring()
    await monitor.note_copy_shortcut()
    assert monitor.state is MonitorState.POLLING_AGGRESSIVE
    assert monitor.presence.last_interaction == clock()
    clock.advance(AGGRESSIVE_DURATION + 1)
    await monitor.set_presence()
    assert monitor.state is MonitorState.POLLING_VISIBLE
    monitor.stop_monitoring()


@pytest.mark.asyncio
async def test_gaining_focus_ends_aggressive_polling(clipboard: FakeClipboard, clock: FakeClock) -> None:
    monitor = ClipboardMonitor(clipboard, clock=clock, sleep=never)
    monitor.start_monitoring()
    await monitor.note_selection()
    assert monitor.state is MonitorState.POLLING_AGGRESSIVE
    await monitor.set_focus(True)
    assert monitor.state is MonitorState.POLLING_FOCUSED
    assert monitor.presence.aggressive_until is None
    monitor.stop_monitoring()


@pytest.mark.asyncio
async def test_notify_copy_from_sync_callback(clipboard: FakeClipboard, clock: FakeClock) -> None:
    monitor = ClipboardMonitor(clipboard, clock=clock, sleep=never)
    monitor.notify_copy()
    await settle()
    assert monitor.state is MonitorState.IDLE
    monitor.start_monitoring()
    monitor.notify_copy()
    await settle()
    assert monitor.state is MonitorState.POLLING_AGGRESSIVE
    monitor.stop_monitoring()


@pytest.mark.asyncio
async def test_poll_loop_uses_state_interval(clipboard: FakeClipboard, clock: FakeClock) -> None:
    intervals: list[float] = []

    async def sleep(delay: float) -> None:
        intervals.append(delay)
        await asyncio.sleep(0)

    clipboard.text = "polled"
    monitor = ClipboardMonitor(clipboard, clock=clock, sleep=sleep)
    seen: list[str] = []
    monitor.add_listener(seen.append)
    monitor.start_monitoring()
    await settle(10)
    monitor.stop_monitoring()
    assert intervals
    assert set(intervals) == {1.0}
    assert clipboard.reads >= 1
    assert seen == ["polled"]
    reads = clipboard.reads
    await settle()
    assert clipboard.reads == reads


class GatedClipboard(FakeClipboard):
    """Clipboard whose reads wait until the gate opens."""

    def __init__(self) -> None:
        super().__init__("gated")
        self.gate = asyncio.Event()
        self.reading = asyncio.Event()
        self.cancelled = 0

    async def read_text(self) -> str | None:
        self.reads += 1
        self.reading.set()
        try:
            await self.gate.wait()
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        return self.text


@pytest.mark.asyncio
async def test_attention_change_lets_poll_read_finish(clock: FakeClock) -> None:
    clipboard = GatedClipboard()
    monitor = ClipboardMonitor(clipboard, clock=clock, sleep=instant)
    await monitor.set_presence(visible=False)
    monitor.start_monitoring()
    try:
        await asyncio.wait_for(clipboard.reading.wait(), timeout=1.0)
        poll_task = monitor._poll_task

        change = asyncio.create_task(monitor.set_presence(visible=True, focused=True))
        await settle()
        assert not change.done()
        assert not poll_task.done()

        clipboard.gate.set()
        await asyncio.wait_for(change, timeout=1.0)
        assert clipboard.cancelled == 0
        assert clipboard.reads >= 2
        assert monitor.last_seen == "gated"
        assert monitor.state is MonitorState.POLLING_FOCUSED
        await asyncio.wait_for(poll_task, timeout=1.0)
        assert monitor._poll_task is not poll_task
    finally:
        monitor.stop_monitoring()
