#!/usr/bin/env python3
"""Tests for ReplicationModel device registration and activation."""

from conftest import record

from klipsync.events import EventBus, EventName, Scope
from klipsync.model import ReplicationModel


def register(bus: EventBus, device_id: str, handle: str | None = None) -> None:
    bus.publish(
        Scope.CLIPBOARD,
        EventName.REGISTER_DEVICE,
        {"device_id": device_id, "user_id": "u1", "device_name": "Laptop", "session_handle": handle},
    )


def test_registration_is_idempotent(bus: EventBus) -> None:
    now = [100.0]
    model = ReplicationModel(bus, clock=lambda: now[0])
    register(bus, "d1", "h1")
    now[0] = 200.0
    register(bus, "d1", "h1")
    assert model.device_count() == 1
    device = model.registry.get("d1")
    assert device.last_activity == 200.0
    assert device.joined_at == 100.0


def test_registration_publishes_devices_updated(bus: EventBus, model: ReplicationModel) -> None:
    seen = record(bus, EventName.DEVICES_UPDATED)
    register(bus, "d1")
    assert len(seen) == 1
    payload = seen[0][1]
    assert payload["count"] == 1
    assert payload["devices"][0]["device_id"] == "d1"
    assert payload["devices"][0]["is_active"] is False


def test_register_without_device_id_is_ignored(bus: EventBus, model: ReplicationModel) -> None:
    bus.publish(Scope.CLIPBOARD, EventName.REGISTER_DEVICE, {"user_id": "u1"})
    assert model.device_count() == 0


def test_activation_round_trip(bus: EventBus, model: ReplicationModel) -> None:
    register(bus, "d1")
    before = {k: v for k, v in model.registry.get("d1").to_dict().items() if k != "last_activity"}
    seen = record(bus, EventName.DEVICES_UPDATED, EventName.DEVICE_ACTIVATED, EventName.DEVICE_DEACTIVATED)
    bus.publish(Scope.CLIPBOARD, EventName.ACTIVATE_DEVICE, {"device_id": "d1"})
    assert model.is_active("d1")
    bus.publish(Scope.CLIPBOARD, EventName.DEACTIVATE_DEVICE, {"device_id": "d1"})
    assert not model.is_active("d1")
    after = {k: v for k, v in model.registry.get("d1").to_dict().items() if k != "last_activity"}
    assert after == before
    assert [e for e, _ in seen] == [
        EventName.DEVICES_UPDATED,
        EventName.DEVICE_ACTIVATED,
        EventName.DEVICES_UPDATED,
        EventName.DEVICE_DEACTIVATED,
    ]
    assert seen[1][1] == {"device_id": "d1", "device_name": "Laptop"}


def test_activate_unknown_device_is_noop(bus: EventBus, model: ReplicationModel) -> None:
    seen = record(bus, EventName.DEVICES_UPDATED, EventName.DEVICE_ACTIVATED)
    bus.publish(Scope.CLIPBOARD, EventName.ACTIVATE_DEVICE, {"device_id": "ghost"})
    assert seen == []
    assert not model.is_active("ghost")


def test_session_leave_removes_device(bus: EventBus, model: ReplicationModel) -> None:
    """Register, activate, then the transport reports the session left."""
    register(bus, "d1", "h1")
    register(bus, "d2", "h2")
    bus.publish(Scope.CLIPBOARD, EventName.ACTIVATE_DEVICE, {"device_id": "d1"})
    seen = record(bus, EventName.DEVICES_UPDATED)
    bus.publish(Scope.SESSION, EventName.VIEW_EXIT, {"session_handle": "h1"})
    assert "d1" not in model.registry
    assert model.registry.resolve_handle("h1") is None
    assert len(seen) == 1
    assert [d["device_id"] for d in seen[0][1]["devices"]] == ["d2"]


def test_unregister_device(bus: EventBus, model: ReplicationModel) -> None:
    register(bus, "d1", "h1")
    bus.publish(Scope.CLIPBOARD, EventName.UNREGISTER_DEVICE, {"device_id": "d1"})
    assert model.device_count() == 0
    assert model.registry.check_index()


def test_update_device_fills_user_info(bus: EventBus, model: ReplicationModel) -> None:
    bus.publish(Scope.CLIPBOARD, EventName.REGISTER_DEVICE, {"device_id": "d1"})
    assert model.registry.get("d1").user_id == "anonymous"
    bus.publish(
        Scope.CLIPBOARD,
        EventName.UPDATE_DEVICE,
        {"device_id": "d1", "user_id": "u1", "device_name": "Desk"},
    )
    device = model.registry.get("d1")
    assert (device.user_id, device.device_name) == ("u1", "Desk")


def test_update_unknown_device_does_not_register(bus: EventBus, model: ReplicationModel) -> None:
    bus.publish(Scope.CLIPBOARD, EventName.UPDATE_DEVICE, {"device_id": "d9", "user_id": "u1"})
    assert model.device_count() == 0
