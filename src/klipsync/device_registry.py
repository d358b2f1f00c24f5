#!/usr/bin/env python3
"""Registry of devices known to a session.

Devices are stored once, keyed by their stable device id. A secondary
index maps transport session handles to device ids, because the
transport reports joins and leaves by session handle. The index is kept
a bijection: assigning a handle to a device first drops whatever the
device or the handle was previously linked to, and removing a device
removes its handle entry.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field

from klipsync.model_constants import ANONYMOUS_USER, UNKNOWN_DEVICE_NAME


@dataclass
class Device:
    """One registered device.

    Attributes:
        device_id: Stable per-installation id.
        user_id: Owning user id, filled in once the user is known.
        device_name: Human readable name.
        session_handle: Transport handle of the device's live connection.
        is_active: Whether the device contributes and receives clips.
        joined_at: Model time of first registration.
        last_activity: Model time of the latest activity.
    """

    device_id: str
    user_id: str = ANONYMOUS_USER
    device_name: str = UNKNOWN_DEVICE_NAME
    session_handle: str | None = None
    is_active: bool = False
    joined_at: float = 0.0
    last_activity: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> Device:
        return cls(
            device_id=str(data["device_id"]),
            user_id=str(data.get("user_id") or ANONYMOUS_USER),
            device_name=str(data.get("device_name") or UNKNOWN_DEVICE_NAME),
            session_handle=data.get("session_handle"),
            is_active=bool(data.get("is_active", False)),
            joined_at=float(data.get("joined_at", 0.0)),
            last_activity=float(data.get("last_activity", 0.0)),
        )


@dataclass
class DeviceRegistry:
    """Devices keyed by device id with a session handle index."""

    devices: dict[str, Device] = field(default_factory=dict)
    by_handle: dict[str, str] = field(default_factory=dict)

    def __contains__(self, device_id: object) -> bool:
        return device_id in self.devices

    def __len__(self) -> int:
        return len(self.devices)

    def get(self, device_id: str) -> Device | None:
        return self.devices.get(device_id)

    def resolve_handle(self, session_handle: str) -> str | None:
        """Return the device id linked to a session handle, if any."""
        return self.by_handle.get(session_handle)

    def upsert(
        self,
        device_id: str,
        now: float,
        user_id: str | None = None,
        device_name: str | None = None,
        session_handle: str | None = None,
    ) -> tuple[Device, bool]:
        """Insert a device or refresh an existing one.

        An existing device keeps its activation state and join time; its
        last activity, name, user and handle link are refreshed.

        Args:
            device_id: Stable device id.
            now: Current model time.
            user_id: Owning user, if known.
            device_name: Display name, if known.
            session_handle: Current transport handle, if known.

        Returns:
            Tuple of (device, created) where created is True for a new entry.
        """
        device = self.devices.get(device_id)
        created = device is None
        if device is None:
            device = Device(device_id=device_id, joined_at=now)
            self.devices[device_id] = device
        if user_id:
            device.user_id = user_id
        if device_name:
            device.device_name = device_name
        device.last_activity = now
        if session_handle:
            self.link(device_id, session_handle)
        return device, created

    def link(self, device_id: str, session_handle: str) -> None:
        """Point session_handle at device_id, dropping stale links.

        Raises:
            KeyError: If device_id is not registered.
        """
        device = self.devices[device_id]
        previous_owner = self.by_handle.get(session_handle)
        if previous_owner is not None and previous_owner != device_id:
            other = self.devices.get(previous_owner)
            if other is not None:
                other.session_handle = None
        if device.session_handle and device.session_handle != session_handle:
            self.by_handle.pop(device.session_handle, None)
        device.session_handle = session_handle
        self.by_handle[session_handle] = device_id

    def remove(self, device_id: str) -> Device | None:
        """Remove a device and its handle link."""
        device = self.devices.pop(device_id, None)
        if device is not None and device.session_handle:
            if self.by_handle.get(device.session_handle) == device_id:
                del self.by_handle[device.session_handle]
        return device

    def remove_by_handle(self, session_handle: str) -> Device | None:
        """Remove the device linked to a session handle."""
        device_id = self.by_handle.get(session_handle)
        if device_id is None:
            return None
        return self.remove(device_id)

    def set_active(self, device_id: str, active: bool, now: float) -> Device | None:
        device = self.devices.get(device_id)
        if device is None:
            return None
        device.is_active = active
        device.last_activity = now
        return device

    def touch(self, device_id: str, now: float) -> None:
        device = self.devices.get(device_id)
        if device is not None:
            device.last_activity = now

    def as_list(self) -> list[dict]:
        return [d.to_dict() for d in self.devices.values()]

    def load(self, devices: list[Device]) -> None:
        """Replace all entries, rebuilding the handle index."""
        self.devices = {}
        self.by_handle = {}
        for device in devices:
            handle = device.session_handle
            device.session_handle = None
            self.devices[device.device_id] = device
            if handle:
                self.link(device.device_id, handle)

    def check_index(self) -> bool:
        """Return True if every handle entry points at a device linked back to it."""
        return all(
            device_id in self.devices
            and self.devices[device_id].session_handle == handle
            for handle, device_id in self.by_handle.items()
        )
