#!/usr/bin/env python3
"""Tests for ReplicationModel clip handling."""

import pytest
from conftest import record

from klipsync.clip_store import AddOutcome
from klipsync.events import EventBus, EventName, Scope
from klipsync.model import ReplicationModel


def test_add_clip_request_publishes_added_then_updated(bus: EventBus, model: ReplicationModel) -> None:
    seen = record(bus, EventName.CLIP_ADDED, EventName.CLIPS_UPDATED)
    bus.publish(
        Scope.CLIPBOARD,
        EventName.ADD_CLIP,
        {"text": "  hello  ", "user_id": "u1", "device_id": "d1"},
    )
    assert [e for e, _ in seen] == [EventName.CLIP_ADDED, EventName.CLIPS_UPDATED]
    added = seen[0][1]
    assert added["text"] == "hello"
    assert added["user_id"] == "u1"
    assert added["device_id"] == "d1"
    assert added["created_at"] == 5000.0
    assert seen[1][1]["count"] == 1


def test_scenario_hello_twice(model: ReplicationModel) -> None:
    model.add_clip("hello", "u1", "d1")
    result = model.add_clip("hello", "u1", "d1")
    assert result.outcome is AddOutcome.DUPLICATE_SUPPRESSED
    assert [c.text for c in model.clips()] == ["hello"]


def test_duplicate_publishes_nothing(bus: EventBus, model: ReplicationModel) -> None:
    model.add_clip("hello", "u1", "d1")
    seen = record(bus, EventName.CLIP_ADDED, EventName.CLIPS_UPDATED)
    model.add_clip("hello", "u2", "d2")
    model.add_clip("   ", "u2", "d2")
    assert seen == []


def test_missing_provenance_uses_defaults(model: ReplicationModel) -> None:
    result = model.add_clip("text", None, None)
    assert result.clip.user_id == "anonymous"
    assert result.clip.device_id == "unknown"


def test_add_refreshes_contributing_device(model: ReplicationModel) -> None:
    model.register_device("d1", "u1", "Laptop")
    model.now = lambda: 9000.0
    model.add_clip("text", "u1", "d1")
    assert model.registry.get("d1").last_activity == 9000.0
    assert model.last_activity == 9000.0


def test_remove_clip(bus: EventBus, model: ReplicationModel) -> None:
    clip = model.add_clip("one", "u1", "d1").clip
    seen = record(bus, EventName.CLIP_REMOVED, EventName.CLIPS_UPDATED)
    bus.publish(Scope.CLIPBOARD, EventName.REMOVE_CLIP, {"clip_id": clip.id})
    assert [e for e, _ in seen] == [EventName.CLIP_REMOVED, EventName.CLIPS_UPDATED]
    assert seen[0][1]["id"] == clip.id
    assert model.clip_count() == 0
    assert model.remove_clip(clip.id) is None


def test_clear_all(bus: EventBus, model: ReplicationModel) -> None:
    model.add_clip("one", "u1", "d1")
    model.add_clip("two", "u1", "d1")
    seen = record(bus, EventName.CLIPS_CLEARED, EventName.CLIPS_UPDATED)
    bus.publish(Scope.CLIPBOARD, EventName.CLEAR_CLIPS, {})
    assert seen[0] == (EventName.CLIPS_CLEARED, {"count": 2})
    assert seen[1][1]["clips"] == []


def test_clip_ids_reproducible_for_same_seed() -> None:
    ids = []
    for _ in range(2):
        model = ReplicationModel(EventBus(), clock=lambda: 42.0, seed="session")
        ids.append([model.add_clip(f"t{n}", "u", "d").clip.id for n in range(3)])
    assert ids[0] == ids[1]
    assert len(set(ids[0])) == 3
    assert ids[0][0].startswith("0000000000042-")


def test_status(model: ReplicationModel) -> None:
    model.add_clip("one", "u1", "d1")
    model.register_device("d1")
    assert model.status() == {
        "clip_count": 1,
        "last_activity": 5000.0,
        "model_time": 5000.0,
        "device_count": 1,
    }


def test_model_refuses_missing_handler(monkeypatch: pytest.MonkeyPatch) -> None:
    """Every request event must have a handler."""
    from klipsync import model as model_module

    extended = model_module.REQUESTS | {EventName.CLIP_ADDED}
    monkeypatch.setattr(model_module, "REQUESTS", extended)
    with pytest.raises(RuntimeError, match="clip-added"):
        ReplicationModel(EventBus(), clock=lambda: 0.0)
