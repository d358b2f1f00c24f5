#!/usr/bin/env python3
"""Tests for ClipboardMonitor reads and change detection."""

import logging

import pytest

from conftest import FakeClipboard, never

from klipsync.clipboard_backend import Capabilities
from klipsync.errors import CapabilityUnavailable, ClipboardPermissionError
from klipsync.monitor import CheckResult, ClipboardMonitor
from klipsync.monitor_state import MonitorMode, MonitorState


def make_monitor(clipboard: FakeClipboard, **kwargs) -> ClipboardMonitor:
    return ClipboardMonitor(clipboard, sleep=never, **kwargs)


@pytest.mark.asyncio
async def test_check_reports_new_content_once(clipboard: FakeClipboard) -> None:
    monitor = make_monitor(clipboard)
    seen: list[str] = []
    monitor.add_listener(seen.append)
    monitor.start_monitoring()
    try:
        clipboard.text = "hello"
        assert await monitor.check_once() == CheckResult.NEW_CONTENT
        assert await monitor.check_once() == CheckResult.UNCHANGED
        clipboard.text = "world"
        assert await monitor.check_once() == CheckResult.NEW_CONTENT
        assert seen == ["hello", "world"]
        assert monitor.status().last_seen == "world"
    finally:
        monitor.stop_monitoring()


@pytest.mark.asyncio
async def test_surrounding_whitespace_is_not_a_change(clipboard: FakeClipboard) -> None:
    monitor = make_monitor(clipboard)
    seen: list[str] = []
    monitor.add_listener(seen.append)
    monitor.start_monitoring()
    try:
        clipboard.text = "hello"
        assert await monitor.check_once() == CheckResult.NEW_CONTENT
        clipboard.text = "hello\n"
        assert await monitor.check_once() == CheckResult.UNCHANGED
        clipboard.text = "  world \n"
        assert await monitor.check_once() == CheckResult.NEW_CONTENT
        assert seen == ["hello", "world"]
    finally:
        monitor.stop_monitoring()


@pytest.mark.asyncio
@pytest.mark.parametrize("text", [None, "", "   \n\t"])
async def test_empty_clipboard_is_not_reported(clipboard: FakeClipboard, text) -> None:
    monitor = make_monitor(clipboard)
    seen: list[str] = []
    monitor.add_listener(seen.append)
    monitor.start_monitoring()
    clipboard.text = text
    assert await monitor.check_once() == CheckResult.EMPTY
    assert seen == []
    monitor.stop_monitoring()


@pytest.mark.asyncio
async def test_check_when_not_monitoring(clipboard: FakeClipboard) -> None:
    monitor = make_monitor(clipboard)
    clipboard.text = "ignored"
    assert await monitor.check_once() == CheckResult.NOT_MONITORING
    assert clipboard.reads == 0


@pytest.mark.asyncio
async def test_start_without_read_capability_raises() -> None:
    monitor = make_monitor(FakeClipboard(capabilities=Capabilities(False, True, False)))
    assert not monitor.can_monitor
    with pytest.raises(CapabilityUnavailable):
        monitor.start_monitoring()
    assert monitor.state is MonitorState.IDLE


@pytest.mark.asyncio
async def test_permission_denial_is_counted_quietly(clipboard: FakeClipboard, caplog) -> None:
    monitor = make_monitor(clipboard)
    monitor.start_monitoring()
    clipboard.read_errors = [ClipboardPermissionError("not focused")] * 3
    with caplog.at_level(logging.WARNING):
        for _ in range(3):
            assert await monitor.check_once() == CheckResult.PERMISSION_DENIED
    status = monitor.status()
    assert status.permission_errors == 3
    assert status.unknown_errors == 0
    assert status.mode is MonitorMode.POLLING
    assert not [r for r in caplog.records if r.levelno >= logging.WARNING]
    monitor.stop_monitoring()


@pytest.mark.asyncio
async def test_listener_error_does_not_stop_others(clipboard: FakeClipboard, caplog) -> None:
    monitor = make_monitor(clipboard)

    def broken(text: str) -> None:
        raise ValueError("boom")

    seen: list[str] = []
    monitor.add_listener(broken)
    monitor.add_listener(seen.append)
    monitor.start_monitoring()
    clipboard.text = "data"
    assert await monitor.check_once() == CheckResult.NEW_CONTENT
    assert seen == ["data"]
    assert "Error in local clip listener" in caplog.text
    monitor.remove_listener(broken)
    monitor.remove_listener(broken)
    monitor.stop_monitoring()


@pytest.mark.asyncio
async def test_stop_monitoring_is_idempotent(clipboard: FakeClipboard) -> None:
    monitor = make_monitor(clipboard)
    monitor.start_monitoring()
    monitor.start_monitoring()
    assert monitor.state is MonitorState.POLLING_VISIBLE
    monitor.stop_monitoring()
    monitor.stop_monitoring()
    assert monitor.state is MonitorState.IDLE
    assert not monitor.status().is_monitoring


@pytest.mark.asyncio
async def test_read_directly(clipboard: FakeClipboard) -> None:
    monitor = make_monitor(clipboard)
    clipboard.text = "direct"
    assert await monitor.read_directly() == "direct"
    clipboard.text = "  "
    assert await monitor.read_directly() is None
    clipboard.read_errors = [ClipboardPermissionError("no"), OSError("gone")]
    assert await monitor.read_directly() is None
    assert await monitor.read_directly() is None
    assert monitor.permission_errors == 1
    assert monitor.last_seen is None
