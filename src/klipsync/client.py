#!/usr/bin/env python3
"""Client mode implementation for klipsync.

This module provides the main entry point for client mode, which joins
the user's session on a klipsync hub through a Unix domain socket
(typically SSH-forwarded). The local X11 clipboard is monitored and,
while this device is active, new content is added to the shared history;
clips from the user's other devices are offered to the local clipboard.

Signals:
    SIGINT, SIGTERM: leave the session and exit.
    SIGUSR1: toggle sync for this device.
    SIGUSR2: capture a clip manually (direct read, then an editor).
    SIGHUP: retry after a permanent disconnect.

See supervisor.py for connection handling.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from functools import partial
from typing import TYPE_CHECKING, Coroutine

import click

from klipsync.clipboard_backend import UnavailableClipboard
from klipsync.errors import CapabilityUnavailable
from klipsync.hub_client import remote_connector
from klipsync.local_store import LocalStore, device_name
from klipsync.manual_capture import ManualCapture
from klipsync.monitor import ClipboardMonitor
from klipsync.supervisor import ConnectionState, ConnectionSupervisor

if TYPE_CHECKING:
    from klipsync.clipboard_backend import ClipboardBackend
    from klipsync.config import SyncConfig
    from klipsync.device_view import Notice

logger = logging.getLogger(__name__)

PREVIEW_LENGTH: int = 100


def open_backend() -> ClipboardBackend:
    """Open the X11 clipboard, or a capability-less backend without one."""
    from klipsync.clipboard_x11 import X11Clipboard

    try:
        return X11Clipboard.open()
    except CapabilityUnavailable as e:
        logger.warning("Clipboard unavailable, manual capture only: %s", e)
        return UnavailableClipboard(str(e))


def echo_notice(notice: Notice) -> None:
    if notice.clip is None:
        click.echo(notice.message)
        return
    text = notice.clip.text
    preview = text[:PREVIEW_LENGTH] + ("..." if len(text) > PREVIEW_LENGTH else "")
    click.echo(f"{notice.message}: {preview}")


def echo_state(state: ConnectionState) -> None:
    click.echo(f"Connection {state.value}", err=True)


async def run_client(config: SyncConfig, store: LocalStore | None = None) -> None:
    """Run client mode until SIGINT or SIGTERM.

    Args:
        config: Client configuration.
        store: Local store; the platform application directory by default.

    Raises:
        ConnectionError: If the session cannot be joined at startup.
    """
    loop = asyncio.get_running_loop()
    backend = open_backend()
    monitor = ClipboardMonitor(backend, auto_write=config.auto_write)
    capture = ManualCapture(monitor)
    attach = getattr(backend, "attach", None)
    if attach is not None:
        attach(loop, monitor.notify_copy)
    await monitor.set_presence(visible=True, focused=True)

    supervisor = ConnectionSupervisor(
        partial(remote_connector, config.socket_path),
        monitor,
        store or LocalStore(),
        device_name(),
        user=config.user,
        api_key=config.api_key,
        config=config.supervisor,
        view_config=config.view,
        on_notice=echo_notice,
        on_state_change=echo_state,
    )

    tasks: set[asyncio.Task[object]] = set()

    def spawn(coro: Coroutine[object, object, object]) -> None:
        task = loop.create_task(coro)
        tasks.add(task)
        task.add_done_callback(tasks.discard)

    def toggle_sync() -> None:
        if supervisor.view is not None:
            supervisor.view.toggle_sync()

    # Register signal handlers for clean shutdown
    shutdown_requested = asyncio.Event()
    loop.add_signal_handler(signal.SIGINT, shutdown_requested.set)
    loop.add_signal_handler(signal.SIGTERM, shutdown_requested.set)
    loop.add_signal_handler(signal.SIGUSR1, toggle_sync)
    loop.add_signal_handler(signal.SIGUSR2, lambda: spawn(capture.capture()))
    loop.add_signal_handler(signal.SIGHUP, lambda: spawn(supervisor.retry()))

    try:
        if not await supervisor.start():
            raise ConnectionError(f"Could not join session via {config.socket_path}")
        await shutdown_requested.wait()
        logger.debug("Client shutting down")
    finally:
        for task in list(tasks):
            task.cancel()
        await supervisor.stop()
        backend.close()
