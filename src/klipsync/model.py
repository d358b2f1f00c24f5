#!/usr/bin/env python3
"""Replicated clipboard model.

The model owns the clip store and device registry of one session. All
mutation arrives through its request handlers, which the transport runs
one at a time in delivery order; this single funnel is what keeps the
duplicate window and the history bound correct when many devices publish
at once. Every mutation is announced with notification events so views
never read or write model state directly.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable

from klipsync.clip import Clip, make_clip_id
from klipsync.clip_store import AddOutcome, AddResult, ClipStore
from klipsync.device_registry import Device, DeviceRegistry
from klipsync.events import REQUESTS, SESSION_EVENTS, EventBus, EventName, Payload, Scope
from klipsync.model_constants import (
    ANONYMOUS_USER,
    DEDUP_WINDOW,
    MAX_CLIPS,
    RESTORE_GRACE_DELAY,
    UNKNOWN_DEVICE,
)
from klipsync.model_snapshot import build_snapshot, parse_snapshot

logger = logging.getLogger(__name__)

Scheduler = Callable[[float, Callable[[], None]], Any]


@dataclass
class PersistMetrics:
    """Timing of snapshot persistence."""

    operation_count: int = 0
    last_duration: float = 0.0
    average_duration: float = 0.0

    def record(self, duration: float) -> None:
        self.operation_count += 1
        self.last_duration = duration
        self.average_duration += (duration - self.average_duration) / self.operation_count


class ReplicationModel:
    """Authoritative clip history and device registry for one session.

    Args:
        bus: Event bus the model subscribes to and publishes on.
        clock: Logical model time in milliseconds.
        seed: Seed for clip id randomness.
        persist: Callback receiving snapshot dicts, or None.
        restored: Snapshot dict to restore from, or None.
        schedule: Callable(delay, callback) used to announce restored clips
            after a grace delay. If None the announcement is immediate.
        max_clips: Store capacity.
        dedup_window: Duplicate window size.
    """

    def __init__(
        self,
        bus: EventBus,
        clock: Callable[[], float],
        seed: int | str = 0,
        persist: Callable[[dict], None] | None = None,
        restored: dict | None = None,
        schedule: Scheduler | None = None,
        max_clips: int = MAX_CLIPS,
        dedup_window: int = DEDUP_WINDOW,
    ) -> None:
        self.bus = bus
        self.now = clock
        self.store = ClipStore(max_clips=max_clips, dedup_window=dedup_window)
        self.registry = DeviceRegistry()
        self.last_activity = clock()
        self.persist_metrics = PersistMetrics()
        self._rng = random.Random(seed)
        self._persist = persist
        self._schedule = schedule

        handlers: dict[EventName, Callable[[Payload], None]] = {
            EventName.ADD_CLIP: self._on_add_clip,
            EventName.REMOVE_CLIP: self._on_remove_clip,
            EventName.CLEAR_CLIPS: self._on_clear_clips,
            EventName.REGISTER_DEVICE: self._on_register_device,
            EventName.UPDATE_DEVICE: self._on_update_device,
            EventName.UNREGISTER_DEVICE: self._on_unregister_device,
            EventName.ACTIVATE_DEVICE: self._on_activate_device,
            EventName.DEACTIVATE_DEVICE: self._on_deactivate_device,
            EventName.VIEW_JOIN: self._on_view_join,
            EventName.VIEW_EXIT: self._on_view_exit,
        }
        missing = (REQUESTS | SESSION_EVENTS) - set(handlers)
        if missing:
            raise RuntimeError(f"Unhandled model events: {sorted(e.value for e in missing)}")
        for event, handler in handlers.items():
            scope = Scope.SESSION if event in SESSION_EVENTS else Scope.CLIPBOARD
            bus.subscribe(scope, event, handler, owner=self)

        if restored is not None:
            self._restore(restored)
        logger.debug("ReplicationModel initialized at %s", self.now())

    # ------------------------------------------------------------------
    # Clip operations
    # ------------------------------------------------------------------
    def add_clip(self, text: str, user_id: str | None, device_id: str | None) -> AddResult:
        """Add a clip unless empty or within the duplicate window.

        On success the contributing device's activity is refreshed and
        CLIP_ADDED followed by CLIPS_UPDATED is published.
        """
        now = self.now()
        clip = Clip(
            id=make_clip_id(now, self._rng),
            text=(text or "").strip(),
            created_at=now,
            user_id=user_id or ANONYMOUS_USER,
            device_id=device_id or UNKNOWN_DEVICE,
        )
        result = self.store.add(clip)
        if result.outcome is not AddOutcome.ADDED:
            return result
        self.last_activity = now
        self.registry.touch(clip.device_id, now)
        if result.evicted:
            logger.debug("Evicted %d oldest clips", len(result.evicted))
        self.bus.publish(Scope.CLIPBOARD, EventName.CLIP_ADDED, clip.to_dict())
        self._publish_clips()
        self.persist()
        return result

    def remove_clip(self, clip_id: str) -> Clip | None:
        """Remove a clip by id; returns None if not found."""
        removed = self.store.remove(clip_id)
        if removed is None:
            logger.debug("Remove requested for unknown clip %s", clip_id)
            return None
        self.last_activity = self.now()
        self.bus.publish(Scope.CLIPBOARD, EventName.CLIP_REMOVED, removed.to_dict())
        self._publish_clips()
        self.persist()
        logger.debug("Clip removed: %s", removed.id)
        return removed

    def clear_all(self) -> int:
        """Empty the store and return the number of clips removed."""
        count = self.store.clear()
        self.last_activity = self.now()
        self.bus.publish(Scope.CLIPBOARD, EventName.CLIPS_CLEARED, {"count": count})
        self._publish_clips()
        self.persist()
        logger.debug("All clips cleared, count was %d", count)
        return count

    # ------------------------------------------------------------------
    # Device operations
    # ------------------------------------------------------------------
    def register_device(
        self,
        device_id: str,
        user_id: str | None = None,
        device_name: str | None = None,
        session_handle: str | None = None,
    ) -> Device:
        """Insert or refresh a device; publishes DEVICES_UPDATED."""
        device, created = self.registry.upsert(
            device_id, self.now(), user_id, device_name, session_handle
        )
        if created:
            logger.info("New device registered: %s", device_id)
        self._publish_devices()
        return device

    def update_device(
        self,
        device_id: str,
        user_id: str | None = None,
        device_name: str | None = None,
        session_handle: str | None = None,
    ) -> Device | None:
        """Fill in user info for a registered device. Unknown ids are ignored."""
        if device_id not in self.registry:
            logger.debug("Update requested for unknown device %s", device_id)
            return None
        device, _ = self.registry.upsert(
            device_id, self.now(), user_id, device_name, session_handle
        )
        self._publish_devices()
        return device

    def unregister_device(self, device_id: str) -> Device | None:
        device = self.registry.remove(device_id)
        if device is not None:
            logger.info("Device unregistered: %s", device_id)
            self._publish_devices()
        return device

    def on_session_leave(self, session_handle: str) -> Device | None:
        """Drop the device whose connection left the session."""
        device = self.registry.remove_by_handle(session_handle)
        if device is not None:
            logger.info("Device left: %s (session %s)", device.device_id, session_handle)
            self._publish_devices()
        return device

    def activate_device(self, device_id: str) -> Device | None:
        return self._set_active(device_id, True)

    def deactivate_device(self, device_id: str) -> Device | None:
        return self._set_active(device_id, False)

    def _set_active(self, device_id: str, active: bool) -> Device | None:
        device = self.registry.set_active(device_id, active, self.now())
        if device is None:
            logger.debug("Activation change for unknown device %s", device_id)
            return None
        self._publish_devices()
        event = EventName.DEVICE_ACTIVATED if active else EventName.DEVICE_DEACTIVATED
        self.bus.publish(
            Scope.CLIPBOARD,
            event,
            {"device_id": device.device_id, "device_name": device.device_name},
        )
        return device

    def is_active(self, device_id: str) -> bool:
        device = self.registry.get(device_id)
        return bool(device and device.is_active)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    def clips(self) -> list[Clip]:
        return list(self.store.clips)

    def clip_count(self) -> int:
        return len(self.store)

    def devices(self) -> list[Device]:
        return list(self.registry.devices.values())

    def device_count(self) -> int:
        return len(self.registry)

    def status(self) -> dict:
        return {
            "clip_count": len(self.store),
            "last_activity": self.last_activity,
            "model_time": self.now(),
            "device_count": len(self.registry),
        }

    def state(self) -> dict:
        """Full current state as sent to a joining device."""
        return {
            "clips": [c.to_dict() for c in self.store.clips],
            "devices": self.registry.as_list(),
            "last_activity": self.last_activity,
        }

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def snapshot(self) -> dict:
        return build_snapshot(self.store.clips, self.devices(), self.last_activity)

    def persist(self) -> None:
        """Hand a snapshot to the persistence hook. Failures are logged."""
        if self._persist is None:
            return
        started = time.perf_counter()
        snapshot = self.snapshot()
        try:
            self._persist(snapshot)
        except Exception:
            logger.exception("Failed to persist clipboard data")
            return
        self.persist_metrics.record(time.perf_counter() - started)
        logger.debug("Clipboard data persisted: %d clips", len(snapshot["clips"]))

    def _restore(self, data: dict) -> None:
        parsed = parse_snapshot(data)
        if parsed is None:
            return
        clips, devices, last_activity = parsed
        self.store.replace(clips)
        self.registry.load(devices)
        self.last_activity = last_activity if last_activity is not None else self.now()
        logger.info("Persisted clipboard data loaded: %d clips", len(self.store))
        if not self.store.clips:
            return
        if self._schedule is None:
            self._publish_clips()
        else:
            self._schedule(RESTORE_GRACE_DELAY, self._publish_clips)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------
    def _publish_clips(self) -> None:
        self.bus.publish(
            Scope.CLIPBOARD,
            EventName.CLIPS_UPDATED,
            {"clips": [c.to_dict() for c in self.store.clips], "count": len(self.store)},
        )

    def _publish_devices(self) -> None:
        self.bus.publish(
            Scope.CLIPBOARD,
            EventName.DEVICES_UPDATED,
            {"devices": self.registry.as_list(), "count": len(self.registry)},
        )

    # ------------------------------------------------------------------
    # Request handlers
    # ------------------------------------------------------------------
    def _on_add_clip(self, data: Payload) -> None:
        self.add_clip(str(data.get("text") or ""), data.get("user_id"), data.get("device_id"))

    def _on_remove_clip(self, data: Payload) -> None:
        self.remove_clip(str(data.get("clip_id")))

    def _on_clear_clips(self, data: Payload) -> None:
        self.clear_all()

    def _on_register_device(self, data: Payload) -> None:
        if not data.get("device_id"):
            logger.warning("register-device without device_id ignored")
            return
        self.register_device(
            str(data["device_id"]),
            data.get("user_id"),
            data.get("device_name"),
            data.get("session_handle"),
        )

    def _on_update_device(self, data: Payload) -> None:
        self.update_device(
            str(data.get("device_id")),
            data.get("user_id"),
            data.get("device_name"),
            data.get("session_handle"),
        )

    def _on_unregister_device(self, data: Payload) -> None:
        self.unregister_device(str(data.get("device_id")))

    def _on_activate_device(self, data: Payload) -> None:
        self.activate_device(str(data.get("device_id")))

    def _on_deactivate_device(self, data: Payload) -> None:
        self.deactivate_device(str(data.get("device_id")))

    def _on_view_join(self, data: Payload) -> None:
        # Device details arrive with register-device.
        logger.debug("Session joined: %s", data.get("session_handle"))

    def _on_view_exit(self, data: Payload) -> None:
        handle = data.get("session_handle")
        if handle:
            self.on_session_leave(str(handle))
