#!/usr/bin/env python3
"""Tests for DeviceView registration, activation and local clip forwarding."""

import pytest

from conftest import FakeClipboard, never, record, settle

from klipsync.config import ViewConfig
from klipsync.device_view import DeviceView
from klipsync.events import EventName
from klipsync.monitor import ClipboardMonitor
from klipsync.session_params import SessionParams, UserInfo
from klipsync.transport import LocalHub

PARAMS = SessionParams(name="klipsync-alice", password="secret", api_key="key")


def make_view(
    hub: LocalHub,
    clipboard: FakeClipboard,
    device_id: str = "laptop",
    user: UserInfo | None = None,
    **kwargs,
) -> DeviceView:
    session = hub.join(PARAMS)
    monitor = ClipboardMonitor(clipboard, sleep=never)
    return DeviceView(session, monitor, device_id, f"{device_id} name", user=user, **kwargs)


def model_of(hub: LocalHub):
    return hub.sessions[PARAMS.name].model


def test_construction_registers_device(hub: LocalHub, clipboard: FakeClipboard, user: UserInfo) -> None:
    view = make_view(hub, clipboard, user=user)
    device = model_of(hub).registry.get("laptop")
    assert device.device_name == "laptop name"
    assert device.user_id == "user-1"
    assert [d.device_id for d in view.devices] == ["laptop"]
    assert not view.is_active


def test_start_sync_requires_user(hub: LocalHub, clipboard: FakeClipboard, caplog) -> None:
    view = make_view(hub, clipboard)
    assert view.start_sync() is False
    assert not model_of(hub).is_active("laptop")
    assert "no user logged in" in caplog.text


@pytest.mark.asyncio
async def test_activation_follows_model(hub: LocalHub, clipboard: FakeClipboard, user: UserInfo) -> None:
    view = make_view(hub, clipboard, user=user)
    assert view.start_sync()
    assert view.is_active
    assert view.monitor.monitoring
    assert view.toggle_sync()
    assert not view.is_active
    assert not view.monitor.monitoring
    view.close()


@pytest.mark.asyncio
async def test_other_device_activation_is_ignored(
    hub: LocalHub, clipboard: FakeClipboard, user: UserInfo
) -> None:
    view = make_view(hub, clipboard, device_id="laptop", user=user)
    other = make_view(hub, FakeClipboard(), device_id="phone", user=user)
    other.start_sync()
    assert other.is_active
    assert not view.is_active
    assert {d.device_id: d.is_active for d in view.devices} == {"laptop": False, "phone": True}
    other.close()


@pytest.mark.asyncio
async def test_local_clip_forwarded_only_when_active(
    hub: LocalHub, clipboard: FakeClipboard, user: UserInfo
) -> None:
    view = make_view(hub, clipboard, user=user)
    view.monitor.submit("before activation")
    assert model_of(hub).clip_count() == 0

    view.start_sync()
    clipboard.text = "copied"
    await view.monitor.check_once()
    clip = model_of(hub).clips()[0]
    assert (clip.text, clip.device_id, clip.user_id) == ("copied", "laptop", "user-1")
    assert [c.text for c in view.clips] == ["copied"]
    view.close()


@pytest.mark.asyncio
async def test_always_on_activates_immediately(
    hub: LocalHub, clipboard: FakeClipboard, user: UserInfo
) -> None:
    view = make_view(hub, clipboard, user=user, config=ViewConfig(always_on=True))
    assert view.is_active
    view.close()


@pytest.mark.asyncio
async def test_unregistered_device_stops_forwarding(
    hub: LocalHub, clipboard: FakeClipboard, user: UserInfo
) -> None:
    view = make_view(hub, clipboard, user=user)
    view.start_sync()
    assert view.monitor.monitoring
    view._publish(EventName.UNREGISTER_DEVICE, {"device_id": "laptop"})
    assert not view.is_active
    assert not view.monitor.monitoring
    view.monitor.submit("after unregister")
    assert model_of(hub).clip_count() == 0
    view.close()


@pytest.mark.asyncio
async def test_set_user_info_updates_device(hub: LocalHub, clipboard: FakeClipboard, user: UserInfo) -> None:
    view = make_view(hub, clipboard, config=ViewConfig(always_on=True))
    assert not view.is_active
    view.set_user_info(user)
    assert model_of(hub).registry.get("laptop").user_id == "user-1"
    assert view.is_active
    view.close()


def test_history_requests(hub: LocalHub, clipboard: FakeClipboard, user: UserInfo) -> None:
    view = make_view(hub, clipboard, user=user)
    assert view.add_test_clip()
    assert view.clips[0].text.startswith("Test clip from laptop name at ")
    view.delete_clip(view.clips[0].id)
    assert view.clips == []
    view.add_test_clip()
    assert view.clear_all()
    assert model_of(hub).clip_count() == 0


def test_publish_failure_is_reported(hub: LocalHub, clipboard: FakeClipboard, user: UserInfo) -> None:
    reasons: list[str] = []
    view = make_view(hub, clipboard, user=user, on_transport_failure=reasons.append)
    view.session.drop("cable pulled")
    assert view.clear_all() is False
    assert reasons == ["Session is closed"]


@pytest.mark.asyncio
async def test_resume_catches_up_missed_content(
    hub: LocalHub, clipboard: FakeClipboard, user: UserInfo
) -> None:
    view = make_view(hub, clipboard, user=user)
    requests = record(hub.sessions[PARAMS.name].bus, EventName.ADD_CLIP)
    clipboard.text = "copied while offline"
    assert view.resume_sync()
    await settle()
    assert [p["text"] for _, p in requests] == ["copied while offline"]
    assert view.monitor.last_seen == "copied while offline"
    assert view.monitor.monitoring
    view.close()


@pytest.mark.asyncio
async def test_catch_up_skips_known_text(hub: LocalHub, clipboard: FakeClipboard, user: UserInfo) -> None:
    view = make_view(hub, clipboard, user=user)
    view.add_test_clip()
    requests = record(hub.sessions[PARAMS.name].bus, EventName.ADD_CLIP)
    clipboard.text = view.clips[0].text
    view.resume_sync()
    await settle()
    assert requests == []
    assert view.monitor.monitoring
    view.close()


@pytest.mark.asyncio
async def test_close_detaches_from_session(hub: LocalHub, clipboard: FakeClipboard, user: UserInfo) -> None:
    view = make_view(hub, clipboard, user=user)
    view.start_sync()
    view.close()
    view.close()
    assert not view.monitor.monitoring
    other = make_view(hub, FakeClipboard(), device_id="phone", user=user)
    other.add_test_clip()
    assert view.clips == []
    other.close()
