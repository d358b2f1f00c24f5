#!/usr/bin/env python3
"""Per-device session agent.

A DeviceView bridges the local clipboard monitor and the replicated
model of a joined session. It registers the device, mirrors the model's
clip history and device list from notifications, forwards locally
detected text as add-clip requests while the device is active, and
offers clips from other devices to the local clipboard.

The model is authoritative for whether this device is active: the view
only publishes activate/deactivate requests and updates its own flag
when the corresponding notification for its device id arrives.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Callable, Coroutine

from klipsync.clip import Clip
from klipsync.config import ViewConfig
from klipsync.device_registry import Device
from klipsync.errors import CapabilityUnavailable, TransportFailure
from klipsync.events import EventName, Payload, Scope
from klipsync.model_constants import UNKNOWN_DEVICE_NAME
from klipsync.monitor import WriteRefusal, WriteResult

if TYPE_CHECKING:
    from klipsync.monitor import ClipboardMonitor
    from klipsync.session_params import UserInfo
    from klipsync.transport import SessionTransport

logger = logging.getLogger(__name__)


class NoticeKind(str, Enum):
    """What happened to a clip offered to the local clipboard."""

    AUTO_PASTED = "auto-pasted"
    APPROVAL_REQUIRED = "approval-required"
    PENDING = "pending"
    MANUAL_COPY = "manual-copy"
    PASTED = "pasted"


@dataclass(frozen=True)
class Notice:
    kind: NoticeKind
    message: str
    clip: Clip | None = None


def format_timestamp(model_time: float, now: float) -> str:
    """Describe how long ago model_time was, both in milliseconds."""
    minutes = int((now - model_time) // 60000)
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    return f"{hours // 24}d ago"


class DeviceView:
    """Session agent for one device.

    Args:
        session: Joined session transport.
        monitor: Local clipboard monitor, owned by the caller.
        device_id: Stable id of this device.
        device_name: Human readable name of this device.
        user: Authenticated user, or None until set_user_info.
        config: View behaviour.
        on_notice: Called with a Notice for each incoming clip outcome.
        on_transport_failure: Called with a reason when publishing fails.
    """

    def __init__(
        self,
        session: SessionTransport,
        monitor: ClipboardMonitor,
        device_id: str,
        device_name: str,
        user: UserInfo | None = None,
        config: ViewConfig | None = None,
        on_notice: Callable[[Notice], None] | None = None,
        on_transport_failure: Callable[[str], None] | None = None,
    ) -> None:
        self.session = session
        self.monitor = monitor
        self.device_id = device_id
        self.device_name = device_name
        self.user = user
        self.config = config or ViewConfig()
        self.on_notice = on_notice
        self.on_transport_failure = on_transport_failure
        self.is_active = False
        self.closed = False
        self.clips: list[Clip] = []
        self.devices: list[Device] = []
        self._catch_up_pending = False
        self._tasks: set[asyncio.Task[None]] = set()

        self._load_initial(session.initial)
        handlers: dict[EventName, Callable[[Payload], None]] = {
            EventName.CLIP_ADDED: self._on_clip_added,
            EventName.CLIP_REMOVED: self._on_clip_removed,
            EventName.CLIPS_CLEARED: self._on_clips_cleared,
            EventName.CLIPS_UPDATED: self._on_clips_updated,
            EventName.DEVICES_UPDATED: self._on_devices_updated,
            EventName.DEVICE_ACTIVATED: self._on_device_activated,
            EventName.DEVICE_DEACTIVATED: self._on_device_deactivated,
        }
        for event, handler in handlers.items():
            session.subscribe(Scope.CLIPBOARD, event, handler, owner=self)
        monitor.add_listener(self._on_local_clip)

        self._publish(
            EventName.REGISTER_DEVICE,
            {
                "device_id": device_id,
                "user_id": user.id if user else None,
                "device_name": device_name,
            },
        )
        if self.config.always_on and user is not None:
            self.start_sync()

    def _load_initial(self, state: dict) -> None:
        try:
            self.clips = [Clip.from_dict(c) for c in state.get("clips", [])]
            self.devices = [Device.from_dict(d) for d in state.get("devices", [])]
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Ignoring malformed initial session state: %s", e)
            self.clips, self.devices = [], []

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------
    def _publish(self, event: EventName, payload: Payload) -> bool:
        try:
            self.session.publish(Scope.CLIPBOARD, event, payload)
        except TransportFailure as e:
            logger.warning("Failed to publish %s: %s", event.value, e)
            if self.on_transport_failure is not None:
                self.on_transport_failure(str(e))
            return False
        return True

    def set_user_info(self, user: UserInfo) -> None:
        """Attach user details to the registered device."""
        self.user = user
        self._publish(
            EventName.UPDATE_DEVICE,
            {"device_id": self.device_id, "user_id": user.id, "device_name": self.device_name},
        )
        logger.info("User info set: %s <%s>", user.name, user.email)
        if self.config.always_on and not self.is_active:
            self.start_sync()

    def start_sync(self) -> bool:
        """Ask the model to activate this device."""
        if self.user is None:
            logger.error("Cannot start sync: no user logged in")
            return False
        return self._publish(
            EventName.ACTIVATE_DEVICE, {"device_id": self.device_id, "user_id": self.user.id}
        )

    def stop_sync(self) -> bool:
        return self._publish(
            EventName.DEACTIVATE_DEVICE,
            {"device_id": self.device_id, "user_id": self.user.id if self.user else None},
        )

    def toggle_sync(self) -> bool:
        return self.stop_sync() if self.is_active else self.start_sync()

    def resume_sync(self) -> bool:
        """Reactivate after a reconnect and catch up on missed local content."""
        if self.is_active:
            self._spawn(self._catch_up())
            return True
        self._catch_up_pending = True
        return self.start_sync()

    def add_test_clip(self) -> bool:
        text = f"Test clip from {self.device_name} at {datetime.now():%H:%M:%S}"
        return self._publish(
            EventName.ADD_CLIP,
            {"text": text, "user_id": self.user.id if self.user else None, "device_id": self.device_id},
        )

    def delete_clip(self, clip_id: str) -> bool:
        return self._publish(EventName.REMOVE_CLIP, {"clip_id": clip_id})

    def clear_all(self) -> bool:
        return self._publish(EventName.CLEAR_CLIPS, {})

    # ------------------------------------------------------------------
    # Local clipboard
    # ------------------------------------------------------------------
    def _on_local_clip(self, text: str) -> None:
        if not self.is_active or self.user is None:
            logger.debug("Local clip not forwarded: device inactive or no user")
            return
        self._publish(
            EventName.ADD_CLIP,
            {"text": text, "user_id": self.user.id, "device_id": self.device_id},
        )

    def _start_monitor(self) -> None:
        if self.closed or not self.is_active or not self.monitor.can_monitor:
            return
        try:
            self.monitor.start_monitoring()
        except CapabilityUnavailable as e:
            logger.info("Clipboard monitoring unavailable: %s", e)

    async def _catch_up(self) -> None:
        """Publish local clipboard content that changed while disconnected."""
        text = await self.monitor.read_directly()
        if text is not None:
            text = text.strip()
            self.monitor.last_seen = text
            known = {clip.text for clip in self.clips}
            if text not in known:
                logger.info("Catching up local clipboard content")
                self._on_local_clip(text)
        self._start_monitor()

    def _spawn(self, coro: Coroutine[object, object, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ------------------------------------------------------------------
    # Incoming clips
    # ------------------------------------------------------------------
    def device_name_for(self, device_id: str) -> str:
        for device in self.devices:
            if device.device_id == device_id:
                return device.device_name
        return UNKNOWN_DEVICE_NAME

    def _notify(self, kind: NoticeKind, message: str, clip: Clip | None = None) -> None:
        logger.info("%s", message)
        if self.on_notice is not None:
            self.on_notice(Notice(kind, message, clip))

    async def handle_incoming_clip(self, clip: Clip) -> WriteResult:
        """Offer a clip from another device to the local clipboard."""
        source = self.device_name_for(clip.device_id)
        result = await self.monitor.write_to_clipboard(
            clip.text, require_approval=self.config.require_approval
        )
        if result.success:
            self._notify(NoticeKind.AUTO_PASTED, f"Auto-pasted from {source}", clip)
        elif result.refusal is WriteRefusal.APPROVAL_REQUIRED:
            self._notify(NoticeKind.APPROVAL_REQUIRED, f"New clipboard from {source}", clip)
        elif result.refusal is WriteRefusal.NOT_ALLOWED:
            self._notify(NoticeKind.PENDING, f"Clipboard ready to paste from {source}", clip)
        else:
            self._notify(NoticeKind.MANUAL_COPY, "Manual copy required", clip)
        return result

    async def approve(self, clip: Clip) -> WriteResult:
        """Install a clip the user approved."""
        return await self._write_on_request(clip, approved=True)

    async def force_paste(self, clip: Clip) -> WriteResult:
        """Install a pending clip on explicit user request."""
        return await self._write_on_request(clip, approved=False)

    async def copy_clip(self, clip_id: str) -> WriteResult | None:
        """Copy a clip from the history to the local clipboard."""
        for clip in self.clips:
            if clip.id == clip_id:
                return await self._write_on_request(clip, approved=False)
        logger.warning("Clip %s not found", clip_id)
        return None

    async def _write_on_request(self, clip: Clip, approved: bool) -> WriteResult:
        result = await self.monitor.write_to_clipboard(clip.text, approved=approved, force=True)
        if result.success:
            self._notify(NoticeKind.PASTED, "Text pasted to clipboard", clip)
        else:
            self._notify(NoticeKind.MANUAL_COPY, "Copy failed, please copy manually", clip)
        return result

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------
    def _on_clip_added(self, data: Payload) -> None:
        clip = Clip.from_dict(data)
        if clip.device_id == self.device_id or not self.is_active:
            return
        logger.debug("Incoming clip from device %s", clip.device_id)
        self._spawn(self._handle_incoming(clip))

    async def _handle_incoming(self, clip: Clip) -> None:
        await self.handle_incoming_clip(clip)

    def _on_clip_removed(self, data: Payload) -> None:
        logger.debug("Clip removed: %s", data.get("id"))

    def _on_clips_cleared(self, data: Payload) -> None:
        logger.info("All clips cleared (%s)", data.get("count"))

    def _on_clips_updated(self, data: Payload) -> None:
        self.clips = [Clip.from_dict(c) for c in data.get("clips", [])]

    def _on_devices_updated(self, data: Payload) -> None:
        self.devices = [Device.from_dict(d) for d in data.get("devices", [])]
        for device in self.devices:
            if device.device_id == self.device_id:
                self._set_active(device.is_active)
                return
        self._set_active(False)

    def _on_device_activated(self, data: Payload) -> None:
        if data.get("device_id") == self.device_id:
            self._set_active(True)

    def _on_device_deactivated(self, data: Payload) -> None:
        if data.get("device_id") == self.device_id:
            self._set_active(False)

    def _set_active(self, active: bool) -> None:
        if active == self.is_active or self.closed:
            return
        self.is_active = active
        logger.info("Sync %s for device %s", "activated" if active else "deactivated", self.device_id)
        if not active:
            self.monitor.stop_monitoring()
        elif self._catch_up_pending:
            self._catch_up_pending = False
            self._spawn(self._catch_up())
        else:
            self._start_monitor()

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------
    def close(self) -> None:
        """Unsubscribe, stop the monitor and cancel pending work."""
        if self.closed:
            return
        self.closed = True
        self.session.unsubscribe_all(self)
        self.monitor.remove_listener(self._on_local_clip)
        self.monitor.stop_monitoring()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
