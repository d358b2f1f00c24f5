#!/usr/bin/env python3
"""Tests for supervisor heartbeats and foreground handling."""

from unittest.mock import AsyncMock

import pytest

from conftest import FakeClipboard, FakeClock, SteppingSleep, settle

from klipsync.errors import TransportFailure
from klipsync.local_store import LocalStore
from klipsync.monitor import ClipboardMonitor
from klipsync.session_params import UserInfo
from klipsync.supervisor import ConnectionState, ConnectionSupervisor
from klipsync.transport import LocalHub, local_connector


async def connected(hub: LocalHub, store: LocalStore, clock: FakeClock, user: UserInfo) -> ConnectionSupervisor:
    async def connector(params, on_lost):
        return await local_connector(hub, params, on_lost)

    supervisor = ConnectionSupervisor(
        connector,
        ClipboardMonitor(FakeClipboard(), clock=clock, sleep=SteppingSleep(clock)),
        store,
        "Laptop",
        user=user,
        api_key="key",
        clock=clock,
        sleep=SteppingSleep(clock),
    )
    assert await supervisor.start()
    return supervisor


@pytest.mark.asyncio
async def test_heartbeat_runs_at_foreground_interval(hub, store, clock, user) -> None:
    supervisor = await connected(hub, store, clock, user)
    await settle()
    assert supervisor._sleep.delays == [300.0]
    assert await supervisor.check_connection()
    await supervisor.stop()


@pytest.mark.asyncio
async def test_background_slows_heartbeat_and_monitor(hub, store, clock, user) -> None:
    supervisor = await connected(hub, store, clock, user)
    await supervisor.set_foreground(False)
    await settle()
    assert supervisor.heartbeat_interval == 1200.0
    assert supervisor._sleep.delays[-1] == 1200.0
    assert supervisor.monitor.presence.visible is False
    await supervisor.stop()


@pytest.mark.asyncio
async def test_regaining_foreground_checks_connection(hub, store, clock, user) -> None:
    supervisor = await connected(hub, store, clock, user)
    await supervisor.set_foreground(False)
    supervisor.session.heartbeat = AsyncMock()
    await supervisor.set_foreground(True)
    supervisor.session.heartbeat.assert_awaited_once()
    await supervisor.set_foreground(True)
    supervisor.session.heartbeat.assert_awaited_once()
    await supervisor.stop()


@pytest.mark.asyncio
async def test_failed_heartbeat_triggers_reconnect(hub, store, clock, user) -> None:
    supervisor = await connected(hub, store, clock, user)
    old_session = supervisor.session
    old_session.heartbeat = AsyncMock(side_effect=TransportFailure("no pong"))
    assert await supervisor.check_connection() is False
    assert supervisor.is_reconnecting
    await supervisor._reconnect_task
    assert supervisor.state is ConnectionState.CONNECTED
    assert supervisor.session is not old_session
    await supervisor.stop()


@pytest.mark.asyncio
async def test_check_connection_when_disconnected(hub, store, clock, user) -> None:
    supervisor = await connected(hub, store, clock, user)
    await supervisor.stop()
    assert await supervisor.check_connection() is False
